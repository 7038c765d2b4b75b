"""
Optimizers registered by name.

Each algorithm is a triple of plain functions, ``init_state``, ``step``,
and ``free_state``, bundled in an `OptimizerEntry` and registered in the
execution context's optimizer registry. `Optimizer` is the object training
code holds: it resolves an entry by name and drives it.

Design notes
------------
- Updates write directly into parameter storage; they never create graph
  metadata.
- Parameters with ``grad is None`` are skipped to support partial graphs
  and frozen weights.
- Optimizer state is NumPy arrays keyed by parameter position.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

import numpy as np

from ._context import ExecutionContext, get_default_context
from .registry._named_registry import NamedRegistry, OptimizerEntry
from .tensor._tensor import Tensor


# ----------------------------------------------------------------------
# SGD (with optional momentum)
# ----------------------------------------------------------------------
def sgd_init_state(params: list[Tensor], hyper: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate SGD hyperparameters and allocate velocity buffers.

    Raises
    ------
    ValueError
        If ``lr <= 0`` or ``momentum`` is outside ``[0, 1)``.
    """
    lr = float(hyper.get("lr", 1e-2))
    momentum = float(hyper.get("momentum", 0.0))
    unknown = set(hyper) - {"lr", "momentum"}
    if unknown:
        raise ValueError(f"Unknown SGD hyperparameters: {sorted(unknown)}")
    if lr <= 0.0:
        raise ValueError(f"lr must be > 0, got {lr}")
    if not (0.0 <= momentum < 1.0):
        raise ValueError(f"momentum must be in [0, 1), got {momentum}")

    velocity = [np.zeros(p.shape, dtype=np.float32) for p in params] if momentum else None
    return {"lr": lr, "momentum": momentum, "velocity": velocity}


def sgd_step(params: list[Tensor], state: Dict[str, Any]) -> None:
    """
    ``v <- momentum * v + g``; ``p <- p - lr * v`` (plain SGD when momentum is 0).
    """
    lr = state["lr"]
    momentum = state["momentum"]
    velocity = state["velocity"]
    for i, p in enumerate(params):
        g = p.grad
        if g is None:
            continue
        update = g.data
        if velocity is not None:
            velocity[i] *= np.float32(momentum)
            velocity[i] += update
            update = velocity[i]
        p.data[...] -= np.float32(lr) * update


def sgd_free_state(state: Dict[str, Any]) -> None:
    state.clear()


# ----------------------------------------------------------------------
# Adam
# ----------------------------------------------------------------------
def adam_init_state(params: list[Tensor], hyper: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate Adam hyperparameters and allocate moment buffers.

    Raises
    ------
    ValueError
        If any hyperparameter is outside its valid range.
    """
    lr = float(hyper.get("lr", 1e-3))
    beta1 = float(hyper.get("beta1", 0.9))
    beta2 = float(hyper.get("beta2", 0.999))
    eps = float(hyper.get("eps", 1e-8))
    unknown = set(hyper) - {"lr", "beta1", "beta2", "eps"}
    if unknown:
        raise ValueError(f"Unknown Adam hyperparameters: {sorted(unknown)}")
    if lr <= 0.0:
        raise ValueError(f"lr must be > 0, got {lr}")
    if not (0.0 < beta1 < 1.0) or not (0.0 < beta2 < 1.0):
        raise ValueError(f"betas must be in (0,1), got {(beta1, beta2)}")
    if eps <= 0.0:
        raise ValueError(f"eps must be > 0, got {eps}")

    return {
        "lr": lr,
        "beta1": beta1,
        "beta2": beta2,
        "eps": eps,
        "t": 0,
        "m": [np.zeros(p.shape, dtype=np.float32) for p in params],
        "v": [np.zeros(p.shape, dtype=np.float32) for p in params],
    }


def adam_step(params: list[Tensor], state: Dict[str, Any]) -> None:
    """
    One bias-corrected Adam update.

        m_t = beta1 * m + (1 - beta1) * g
        v_t = beta2 * v + (1 - beta2) * g**2
        p <- p - lr * m_hat / (sqrt(v_hat) + eps)
    """
    b1, b2 = state["beta1"], state["beta2"]
    state["t"] += 1
    t = state["t"]
    bc1 = 1.0 - b1**t
    bc2 = 1.0 - b2**t

    for i, p in enumerate(params):
        g = p.grad
        if g is None:
            continue
        m = state["m"][i]
        v = state["v"][i]
        m[...] = b1 * m + (1.0 - b1) * g.data
        v[...] = b2 * v + (1.0 - b2) * (g.data * g.data)
        m_hat = m / bc1
        v_hat = v / bc2
        p.data[...] -= (state["lr"] * m_hat / (np.sqrt(v_hat) + state["eps"])).astype(
            np.float32
        )


def adam_free_state(state: Dict[str, Any]) -> None:
    state.clear()


OPTIMIZERS = {
    "sgd": OptimizerEntry(sgd_init_state, sgd_step, sgd_free_state),
    "adam": OptimizerEntry(adam_init_state, adam_step, adam_free_state),
}


def register_optimizers(registry: NamedRegistry) -> None:
    for name, entry in OPTIMIZERS.items():
        registry.register(name, entry)


class Optimizer:
    """
    Named optimizer bound to a parameter list.

    Parameters
    ----------
    name : str
        Registered optimizer name (e.g., "sgd", "adam").
    params : Iterable[Tensor]
        Parameters to update. The iterable is consumed and stored.
    context : Optional[ExecutionContext], optional
        Context whose optimizer registry is used.
    **hyper
        Algorithm hyperparameters (e.g., ``lr``, ``momentum``).

    Raises
    ------
    ConfigurationError
        If `name` is not registered.
    ValueError
        If a hyperparameter is invalid.
    """

    def __init__(
        self,
        name: str,
        params: Iterable[Tensor],
        *,
        context: Optional[ExecutionContext] = None,
        **hyper: Any,
    ) -> None:
        ctx = context if context is not None else get_default_context()
        self.name = name
        self._entry: OptimizerEntry = ctx.bootstrap().optimizers.require(name)
        self._params = list(params)
        self._state: Optional[Dict[str, Any]] = self._entry.init_state(
            self._params, dict(hyper)
        )

    def __repr__(self) -> str:
        return f"Optimizer(name={self.name!r}, params={len(self._params)})"

    @property
    def params(self) -> list[Tensor]:
        return self._params

    def step(self) -> None:
        if self._state is None:
            raise RuntimeError(f"Optimizer '{self.name}' has been closed")
        self._entry.step(self._params, self._state)

    def zero_grad(self) -> None:
        for p in self._params:
            p.zero_grad()

    def close(self) -> None:
        if self._state is not None:
            self._entry.free_state(self._state)
            self._state = None
