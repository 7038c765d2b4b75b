"""
Concrete Tensor implementation (NumPy host storage).

This module provides the `Tensor` value type used by every operation set,
gradient rule, layer, and optimizer. Data always lives on the host as a
float32 NumPy array; accelerator backends upload it per call and write their
results back into newly allocated host tensors.

Design notes
------------
- A tensor either owns its buffer or is a *view* that borrows a region of an
  owning base tensor (`slice`, `reshape`, `flatten`). Releasing a view never
  touches the base; releasing the base invalidates every view over it.
- Gradients are stored as another `Tensor` in `_grad`, allocated lazily on
  the first accumulation and always shaped like the data.
- Graph metadata (`Context`) is attached by the dispatch layer, never by the
  operation sets, and only when some input requires gradients.
- Arithmetic operators and activation methods are thin wrappers over the
  functional operation API, so they go through the same dispatcher.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional, Union

import numpy as np

from ...domain._tensor import ITensor
from ...domain._errors import TensorReleasedError
from ._tensor_context import Context

Number = Union[int, float]
ShapeLike = Union[int, Iterable[int]]


def _normalize_shape(shape: ShapeLike) -> tuple[int, ...]:
    """
    Normalize an int or iterable of ints into a validated shape tuple.

    Raises
    ------
    ValueError
        If any dimension is negative.
    """
    if isinstance(shape, (int, np.integer)):
        dims = (int(shape),)
    else:
        dims = tuple(int(d) for d in shape)
    for d in dims:
        if d < 0:
            raise ValueError(f"Invalid shape {dims}: dimensions must be >= 0")
    return dims


class Tensor(ITensor):
    """
    Host-resident float32 tensor with optional autograd history.

    Parameters
    ----------
    shape : int | Iterable[int]
        Tensor shape. The tensor is zero-initialized.
    requires_grad : bool, optional
        Whether operations on this tensor are recorded for backprop.
        Defaults to False.
    ctx : Optional[Context], optional
        Graph metadata. Normally attached by the dispatch layer.

    Notes
    -----
    - `_data` is a NumPy ndarray of dtype float32, or None once released.
    - `_base` is None for owning tensors and the owning tensor for views.
    """

    def __init__(
        self,
        shape: ShapeLike,
        *,
        requires_grad: bool = False,
        ctx: Optional[Context] = None,
    ) -> None:
        self._shape = _normalize_shape(shape)
        self._data: Optional[np.ndarray] = np.zeros(self._shape, dtype=np.float32)
        self._base: Optional["Tensor"] = None
        self._released = False

        self._requires_grad: bool = bool(requires_grad)
        self._grad: Optional["Tensor"] = None
        self._ctx: Optional[Context] = ctx

    def __repr__(self) -> str:
        if self._released:
            return f"Tensor(shape={self._shape}, released)"
        kind = "owner" if self.owns_data else "view"
        return (
            f"Tensor(shape={self._shape}, dtype=float32, {kind}, "
            f"requires_grad={self._requires_grad})"
        )

    # ------------------------------------------------------------------
    # Factories
    # ------------------------------------------------------------------
    @staticmethod
    def _wrap(arr: np.ndarray, *, requires_grad: bool = False) -> "Tensor":
        """
        Build an owning tensor around `arr` without copying.

        `arr` must be a float32 array that no other tensor references.
        """
        t = Tensor.__new__(Tensor)
        t._shape = tuple(arr.shape)
        t._data = arr
        t._base = None
        t._released = False
        t._requires_grad = bool(requires_grad)
        t._grad = None
        t._ctx = None
        return t

    @staticmethod
    def empty(shape: ShapeLike, *, requires_grad: bool = False) -> "Tensor":
        """
        Create a tensor with uninitialized contents.
        """
        arr = np.empty(_normalize_shape(shape), dtype=np.float32)
        return Tensor._wrap(arr, requires_grad=requires_grad)

    @staticmethod
    def zeros(shape: ShapeLike, *, requires_grad: bool = False) -> "Tensor":
        """
        Create a tensor filled with zeros.
        """
        return Tensor(shape, requires_grad=requires_grad)

    @staticmethod
    def ones(shape: ShapeLike, *, requires_grad: bool = False) -> "Tensor":
        """
        Create a tensor filled with ones.
        """
        arr = np.ones(_normalize_shape(shape), dtype=np.float32)
        return Tensor._wrap(arr, requires_grad=requires_grad)

    @staticmethod
    def full(
        shape: ShapeLike, value: Number, *, requires_grad: bool = False
    ) -> "Tensor":
        """
        Create a tensor filled with a constant value.
        """
        arr = np.full(_normalize_shape(shape), float(value), dtype=np.float32)
        return Tensor._wrap(arr, requires_grad=requires_grad)

    @staticmethod
    def randn(
        shape: ShapeLike,
        *,
        seed: Optional[int] = None,
        scale: float = 1.0,
        requires_grad: bool = False,
    ) -> "Tensor":
        """
        Create a tensor of standard-normal samples.

        Parameters
        ----------
        shape : int | Iterable[int]
            Output shape.
        seed : Optional[int], optional
            Seed for a private `numpy.random.Generator`. The global NumPy RNG
            is never touched, so equal seeds give equal tensors.
        scale : float, optional
            Multiplier applied to every sample. Defaults to 1.0.
        requires_grad : bool, optional
            Defaults to False.
        """
        rng = np.random.default_rng(seed)
        arr = rng.standard_normal(_normalize_shape(shape)).astype(np.float32)
        if scale != 1.0:
            arr *= np.float32(scale)
        return Tensor._wrap(arr, requires_grad=requires_grad)

    @staticmethod
    def rand(
        shape: ShapeLike, *, seed: Optional[int] = None, requires_grad: bool = False
    ) -> "Tensor":
        """
        Create a tensor of uniform samples in [0, 1).
        """
        rng = np.random.default_rng(seed)
        arr = rng.random(_normalize_shape(shape), dtype=np.float32)
        return Tensor._wrap(arr, requires_grad=requires_grad)

    @staticmethod
    def from_numpy(arr: Any, *, requires_grad: bool = False) -> "Tensor":
        """
        Create an owning tensor holding a float32 copy of an array-like.
        """
        data = np.array(arr, dtype=np.float32, copy=True)
        return Tensor._wrap(data, requires_grad=requires_grad)

    # ------------------------------------------------------------------
    # Core properties
    # ------------------------------------------------------------------
    @property
    def shape(self) -> tuple[int, ...]:
        """
        Return the tensor shape.

        Returns
        -------
        tuple[int, ...]
            The tensor's shape.
        """
        return self._shape

    @property
    def ndim(self) -> int:
        return len(self._shape)

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(np.float32)

    @property
    def data(self) -> np.ndarray:
        """
        Return the live storage array (not a copy).

        Writes through this array are visible to every view sharing the
        buffer.

        Raises
        ------
        TensorReleasedError
            If the tensor (or its base) has been released.
        """
        self._ensure_live("data")
        return self._data  # type: ignore[return-value]

    @property
    def owns_data(self) -> bool:
        return self._base is None

    @property
    def base(self) -> Optional["Tensor"]:
        """
        Return the owning tensor for views, or None for owners.
        """
        return self._base

    @property
    def released(self) -> bool:
        """
        Return True if this tensor, or the base it borrows from, was released.
        """
        if self._released:
            return True
        return self._base is not None and self._base._released

    @property
    def requires_grad(self) -> bool:
        return self._requires_grad

    @requires_grad.setter
    def requires_grad(self, value: bool) -> None:
        self._requires_grad = bool(value)

    @property
    def grad(self) -> Optional["Tensor"]:
        """
        Return the accumulated gradient tensor, or None if none was written.
        """
        return self._grad

    def numel(self) -> int:
        """
        Return the total number of elements in the tensor.

        Returns
        -------
        int
            Product of all dimensions in the tensor shape.
        """
        n = 1
        for d in self._shape:
            n *= d
        return n

    def _ensure_live(self, op: str) -> None:
        if self.released:
            raise TensorReleasedError(op)

    # ------------------------------------------------------------------
    # Autograd hooks
    # ------------------------------------------------------------------
    def _set_ctx(self, ctx: Optional[Context]) -> None:
        """
        Attach or detach graph metadata.

        Notes
        -----
        This is an internal hook intended for use by the dispatch layer.
        """
        self._ctx = ctx

    def _get_ctx(self) -> Optional[Context]:
        """
        Return the attached graph metadata, or None for leaves.
        """
        return self._ctx

    def _accumulate_grad_(self, delta: np.ndarray) -> None:
        """
        Add `delta` into this tensor's gradient, allocating it on first write.

        Raises
        ------
        ValueError
            If `delta` does not have this tensor's shape. A single-element
            delta is accepted for any single-element tensor.
        """
        delta = np.asarray(delta, dtype=np.float32)
        single = delta.size == 1 and self.numel() == 1
        if delta.shape != self._shape and not single:
            raise ValueError(
                f"Grad shape mismatch: tensor {self._shape} vs gradient {delta.shape}"
            )
        if self._grad is None:
            self._grad = Tensor(self._shape)
        self._grad._data += delta.reshape(self._shape)

    def _reset_grad_(self) -> None:
        """
        Zero the gradient buffer, allocating it if absent.
        """
        if self._grad is None:
            self._grad = Tensor(self._shape)
        else:
            self._grad._data[...] = 0.0

    def zero_grad(self) -> None:
        """
        Zero the gradient buffer in place.

        Notes
        -----
        The buffer stays allocated, so `grad` keeps its shape; a tensor that
        never received a gradient is left untouched.
        """
        if self._grad is not None:
            self._grad._data[...] = 0.0

    def backward(self, grad_out: Optional["Tensor"] = None) -> None:
        """
        Backpropagate from this tensor through its computation graph.

        See `petard.infrastructure.autograd.backward`.
        """
        from ..autograd import backward

        backward(self, grad_out)

    # ------------------------------------------------------------------
    # Data movement
    # ------------------------------------------------------------------
    def to_numpy(self) -> np.ndarray:
        """
        Return a copy of the tensor contents.
        """
        self._ensure_live("to_numpy")
        return np.array(self._data, dtype=np.float32, copy=True)

    def item(self) -> float:
        """
        Return the value of a single-element tensor as a Python float.

        Raises
        ------
        ValueError
            If the tensor does not contain exactly 1 element.
        """
        self._ensure_live("item")
        if self.numel() != 1:
            raise ValueError(
                f"Tensor.item() requires a 1-element tensor, got shape={self._shape}"
            )
        return float(self._data.reshape(-1)[0])

    def fill(self, value: Number) -> None:
        """
        Overwrite every element with `value`.
        """
        self._ensure_live("fill")
        self._data[...] = np.float32(value)

    def copy_from_numpy(self, arr: Any) -> None:
        """
        Copy data from an array-like (or scalar) into this tensor.

        Raises
        ------
        ValueError
            If the array shape differs from the tensor shape.
        """
        self._ensure_live("copy_from_numpy")
        arr_nd = np.asarray(arr, dtype=np.float32)
        if arr_nd.shape != self._shape:
            raise ValueError(
                f"Shape mismatch: tensor {self._shape} vs array {arr_nd.shape}"
            )
        self._data[...] = arr_nd

    def copy_from(self, other: "Tensor") -> None:
        """
        Copy the contents of `other` into this tensor (in-place).

        Raises
        ------
        ValueError
            If the shapes differ.
        """
        if not isinstance(other, Tensor):
            raise TypeError(f"copy_from expects a Tensor, got {type(other)!r}")
        other._ensure_live("copy_from")
        self.copy_from_numpy(other._data)

    def clone(self) -> "Tensor":
        """
        Deep copy of tensor data into a new owning Tensor.

        The clone has ``requires_grad=False`` and no graph metadata.
        """
        return Tensor._wrap(self.to_numpy())

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def _make_view(self, arr: np.ndarray) -> "Tensor":
        view = Tensor._wrap(arr)
        view._base = self if self._base is None else self._base
        return view

    def slice(self, start: int, stop: int) -> "Tensor":
        """
        Return a view over rows ``[start, stop)`` of the leading axis.

        Parameters
        ----------
        start : int
            First row (inclusive).
        stop : int
            Last row (exclusive).

        Returns
        -------
        Tensor
            A non-owning tensor sharing storage with this tensor.

        Raises
        ------
        IndexError
            If the range is empty, reversed, or out of bounds.
        """
        self._ensure_live("slice")
        if self.ndim == 0:
            raise IndexError("Cannot slice a 0-d tensor")
        if not (0 <= start < stop <= self._shape[0]):
            raise IndexError(
                f"Invalid slice [{start}, {stop}) for leading dimension "
                f"{self._shape[0]}"
            )
        return self._make_view(self._data[start:stop])

    def reshape(self, new_shape: ShapeLike) -> "Tensor":
        """
        Return a view with the same elements and a new shape.

        Raises
        ------
        ValueError
            If the element count differs.
        """
        self._ensure_live("reshape")
        dims = _normalize_shape(new_shape)
        n = 1
        for d in dims:
            n *= d
        if n != self.numel():
            raise ValueError(f"Cannot reshape {self._shape} into {dims}")
        return self._make_view(self._data.reshape(dims))

    def flatten(self) -> "Tensor":
        return self.reshape((self.numel(),))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def release(self) -> None:
        """
        Free owned storage, the gradient buffer, and graph metadata.

        Notes
        -----
        - Input tensors referenced by the graph metadata are never released.
        - Releasing a view drops only the view's reference; the base stays
          valid.
        - Releasing twice is a no-op.
        """
        self._data = None
        self._grad = None
        self._ctx = None
        self._released = True

    # ------------------------------------------------------------------
    # Operator sugar (routes through the dispatcher)
    # ------------------------------------------------------------------
    @staticmethod
    def _as_tensor_like(x: Union["Tensor", Number], like: "Tensor") -> "Tensor":
        """
        Lift a Python scalar into a tensor shaped like `like`.

        Raises
        ------
        TypeError
            If `x` is neither a Tensor nor a supported scalar type.
        """
        if isinstance(x, Tensor):
            return x
        if isinstance(x, (int, float)):
            return Tensor.full(like.shape, float(x))
        raise TypeError(f"Unsupported operand type: {type(x)!r}")

    def __add__(self, other: Union["Tensor", Number]) -> "Tensor":
        from .. import _functional as F

        return F.add(self, self._as_tensor_like(other, self))

    def __radd__(self, other: Number) -> "Tensor":
        from .. import _functional as F

        return F.add(self._as_tensor_like(other, self), self)

    def __sub__(self, other: Union["Tensor", Number]) -> "Tensor":
        from .. import _functional as F

        return F.sub(self, self._as_tensor_like(other, self))

    def __rsub__(self, other: Number) -> "Tensor":
        from .. import _functional as F

        return F.sub(self._as_tensor_like(other, self), self)

    def __mul__(self, other: Union["Tensor", Number]) -> "Tensor":
        from .. import _functional as F

        return F.mul(self, self._as_tensor_like(other, self))

    def __rmul__(self, other: Number) -> "Tensor":
        from .. import _functional as F

        return F.mul(self._as_tensor_like(other, self), self)

    def __matmul__(self, other: "Tensor") -> "Tensor":
        from .. import _functional as F

        return F.matmul(self, other)

    @property
    def T(self) -> "Tensor":
        from .. import _functional as F

        return F.transpose2d(self)

    def relu(self) -> "Tensor":
        from .. import _functional as F

        return F.relu(self)

    def sigmoid(self) -> "Tensor":
        from .. import _functional as F

        return F.sigmoid(self)

    def tanh(self) -> "Tensor":
        from .. import _functional as F

        return F.tanh(self)

    def softmax(self) -> "Tensor":
        from .. import _functional as F

        return F.softmax(self)
