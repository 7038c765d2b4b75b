"""
Domain-level optimizer contracts for petard.

This module defines the `IOptimizer` protocol, which specifies the minimal
interface required for optimizer implementations (e.g., SGD, Adam).

Notes
-----
- Domain contracts are backend-agnostic and must not depend on NumPy or
  infrastructure implementations.
- Optimizers update trainable tensors in-place from their accumulated
  gradients. Gradient computation itself belongs to the autograd engine.
"""

from __future__ import annotations

from typing import Iterable, Protocol, runtime_checkable


@runtime_checkable
class IOptimizer(Protocol):
    """
    Optimizer interface contract.

    Required methods
    ----------------
    - `step()` applies one optimization update to managed parameters.
    - `zero_grad()` zeroes gradients for managed parameters.
    - `close()` frees per-parameter optimizer state.
    """

    def step(self) -> None:
        """
        Apply one optimization step.

        Implementations should skip parameters that do not currently have
        gradients (e.g., `grad is None`).
        """
        ...

    def zero_grad(self) -> None: ...

    def close(self) -> None: ...

    @property
    def params(self) -> Iterable[object]: ...
