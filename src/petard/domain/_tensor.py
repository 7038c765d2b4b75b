"""
Tensor interface definitions.

This module defines the domain-level interface for tensor-like objects using
structural typing. The interface captures the backend-agnostic surface that
operation sets, gradient rules, layers, and optimizers rely on.

Notes
-----
The concrete implementation is the NumPy-backed
`petard.infrastructure.tensor.Tensor`. Backends never see any other tensor
type, but typing against the protocol keeps the domain layer free of NumPy.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Union, runtime_checkable

Number = Union[int, float]


@runtime_checkable
class ITensor(Protocol):
    """
    Tensor interface.

    An `ITensor` is a host-resident multi-dimensional float32 array that can
    participate in the computation graph.

    Notes
    -----
    - `grad` is lazily allocated; it is None until the first gradient
      contribution is accumulated into it.
    - `owns_data` is False for views that borrow a region of another
      tensor's buffer.
    """

    @property
    def shape(self) -> tuple[int, ...]:
        """
        Return the shape of the tensor.

        Returns
        -------
        tuple[int, ...]
            The tensor's shape.
        """
        ...

    @property
    def requires_grad(self) -> bool:
        """
        Indicate whether operations on this tensor are recorded for autograd.
        """
        ...

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None: ...

    @property
    def grad(self) -> Optional["ITensor"]:
        """
        Return the accumulated gradient, or None if none has been written.
        """
        ...

    @property
    def owns_data(self) -> bool: ...

    @property
    def released(self) -> bool: ...

    def numel(self) -> int:
        """
        Return the total number of elements.
        """
        ...

    def to_numpy(self) -> Any:
        """
        Return a copy of the tensor data as a NumPy array.
        """
        ...

    def fill(self, value: Number) -> None: ...

    def zero_grad(self) -> None:
        """
        Zero the gradient buffer in place, if one has been allocated.
        """
        ...

    def backward(self, grad_out: Optional["ITensor"] = None) -> None:
        """
        Run reverse-mode differentiation rooted at this tensor.
        """
        ...

    def release(self) -> None:
        """
        Free owned buffers and graph metadata.
        """
        ...
