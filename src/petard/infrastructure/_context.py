"""
Execution context: registries, backends, and the resolved dispatch table.

An `ExecutionContext` is the explicit object the operation layer runs
against. It owns

- the forward `OperationRegistry` and its resolved `OperationTable`,
- the gradient-rule, layer, loss, and optimizer registries,
- the reference operation set and any accelerator backends.

Bootstrap order
---------------
1. Reference operations register every core operation at priority 0.
2. Gradient rules, layers, losses, and optimizers are registered by name.
3. Each backend is initialized; a ready backend registers its operations at
   its own (higher) priority, an unavailable one registers nothing.
4. The table is resolved once.

A process-wide default context exists for convenience
(`get_default_context`), but every public operation accepts ``context=`` so
code and tests can run against isolated contexts.
"""

from __future__ import annotations

import logging
import threading
import warnings
from typing import Any, Optional, Sequence

from ..domain._backend import IBackend
from ..domain._operations import LOSS_NAMES, OPERATION_NAMES
from ._config import AcceleratorConfig
from .ops._reference import ReferenceOperations
from .registry._named_registry import NamedRegistry, OptimizerEntry
from .registry._operation_registry import OperationRegistry, OperationTable

logger = logging.getLogger(__name__)


class ExecutionContext:
    """
    Registries plus backends, bootstrapped lazily on first use.

    Parameters
    ----------
    backends : Sequence[IBackend], optional
        Accelerator backends to bring up, in order. Defaults to none
        (reference operations only).
    """

    def __init__(self, backends: Sequence[IBackend] = ()) -> None:
        self.reference = ReferenceOperations()
        self.operations = OperationRegistry()
        self.gradients: NamedRegistry = NamedRegistry("gradient rule")
        self.layers: NamedRegistry = NamedRegistry("layer")
        self.losses: NamedRegistry = NamedRegistry("loss")
        self.optimizers: NamedRegistry[OptimizerEntry] = NamedRegistry("optimizer")

        self._backends: list[IBackend] = list(backends)
        self._table: Optional[OperationTable] = None
        self._bootstrapped = False
        self._lock = threading.Lock()

    @classmethod
    def with_accelerator(
        cls, config: Optional[AcceleratorConfig] = None, **backend_kwargs: Any
    ) -> "ExecutionContext":
        """
        Build a context that tries the WebGPU backend.

        Parameters
        ----------
        config : Optional[AcceleratorConfig], optional
            Accelerator settings.
        **backend_kwargs
            Forwarded to `WebGPUBackend` (e.g., ``session=``).
        """
        from .backends.webgpu._backend import WebGPUBackend

        ctx = cls()
        ctx._backends.append(
            WebGPUBackend(config, reference=ctx.reference, **backend_kwargs)
        )
        return ctx

    @property
    def backends(self) -> tuple[IBackend, ...]:
        return tuple(self._backends)

    def bootstrap(self) -> "ExecutionContext":
        """
        Register everything and resolve the dispatch table. Idempotent.

        Warns
        -----
        RuntimeWarning
            Once per backend that fails to initialize.
        """
        with self._lock:
            if self._bootstrapped:
                return self
            self._register_builtins()

            for backend in self._backends:
                if backend.init():
                    backend.register_ops(self.operations)
                else:
                    warnings.warn(
                        f"{backend.name} backend unavailable; "
                        "falling back to reference operations.",
                        RuntimeWarning,
                        stacklevel=3,
                    )

            self._table = self.operations.build_table()
            self._bootstrapped = True
            logger.debug(
                "Execution context ready: %s",
                ", ".join(
                    f"{name}@{self.operations.priority_of(name)}"
                    for name in OPERATION_NAMES
                ),
            )
            return self

    def _register_builtins(self) -> None:
        from . import _functional as F
        from ._layers import register_layers
        from ._optimizers import register_optimizers
        from .autograd._rules import register_gradient_rules

        self.operations.register_set(self.reference, OPERATION_NAMES, priority=0)
        register_gradient_rules(self.gradients)
        register_layers(self.layers)
        register_optimizers(self.optimizers)

        for name in LOSS_NAMES:
            loss_fn = getattr(F, name)

            def _bound(pred, target, _fn=loss_fn):
                return _fn(pred, target, context=self)

            _bound.__name__ = name
            self.losses.register(name, _bound)

    @property
    def table(self) -> OperationTable:
        """
        The resolved dispatch table, bootstrapping on first access.
        """
        if self._table is None:
            self.bootstrap()
        return self._table  # type: ignore[return-value]

    def refresh(self) -> OperationTable:
        """
        Re-resolve the table after registrations made outside bootstrap.
        """
        if not self._bootstrapped:
            self.bootstrap()
        self._table = self.operations.build_table()
        return self._table

    def close(self) -> None:
        """
        Clean up every backend and fall back to reference operations.

        Accelerated entries cannot be unregistered, so the registry is
        rebuilt with the reference set only.
        """
        with self._lock:
            for backend in reversed(self._backends):
                backend.cleanup()
            if self._bootstrapped:
                self.operations = OperationRegistry()
                self.operations.register_set(self.reference, OPERATION_NAMES, priority=0)
                self._table = self.operations.build_table()

    def __enter__(self) -> "ExecutionContext":
        return self.bootstrap()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


_default_context: Optional[ExecutionContext] = None
_default_lock = threading.Lock()


def get_default_context() -> ExecutionContext:
    """
    Return the process default context, creating it on first use.

    The default context tries WebGPU unless ``PETARD_ACCELERATOR=none``.
    """
    global _default_context
    with _default_lock:
        if _default_context is None:
            config = AcceleratorConfig.from_env()
            if config.enabled:
                _default_context = ExecutionContext.with_accelerator(config)
            else:
                _default_context = ExecutionContext()
        return _default_context


def set_default_context(context: Optional[ExecutionContext]) -> Optional[ExecutionContext]:
    """
    Replace the process default context.

    Parameters
    ----------
    context : Optional[ExecutionContext]
        New default; None resets to lazy creation.

    Returns
    -------
    Optional[ExecutionContext]
        The previous default, which the caller may close.
    """
    global _default_context
    with _default_lock:
        previous, _default_context = _default_context, context
        return previous
