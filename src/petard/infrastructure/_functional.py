"""
Tensor operation API.

This is the surface layer and optimizer code calls. Every operation

1. rejects ``None`` and non-tensor operands before touching them,
2. calls the winning implementation from the context's resolved table,
3. attaches graph metadata when any operand requires gradients.

Every function takes an optional keyword-only ``context``; when omitted the
process default context is used.
"""

from __future__ import annotations

from typing import Any, Optional

from ..domain._errors import NullTensorError
from ._context import ExecutionContext, get_default_context
from .autograd._engine import attach_graph
from .autograd._engine import backward as _backward
from .tensor._tensor import ShapeLike, Tensor


def _resolve(context: Optional[ExecutionContext]) -> ExecutionContext:
    return context if context is not None else get_default_context()


def _check_operands(op: str, *operands: Any) -> None:
    for i, t in enumerate(operands):
        if not isinstance(t, Tensor):
            raise NullTensorError(op, i, None if t is None else type(t))
        t._ensure_live(op)


def _dispatch(
    op: str, impl: Any, operands: tuple, ctx: ExecutionContext
) -> Tensor:
    out = impl(*operands)
    return attach_graph(out, op, operands, ctx.gradients)


# ----------------------------------------------------------------------
# Factories
# ----------------------------------------------------------------------
def empty(shape: ShapeLike, *, requires_grad: bool = False) -> Tensor:
    return Tensor.empty(shape, requires_grad=requires_grad)


def zeros(shape: ShapeLike, *, requires_grad: bool = False) -> Tensor:
    return Tensor.zeros(shape, requires_grad=requires_grad)


def ones(shape: ShapeLike, *, requires_grad: bool = False) -> Tensor:
    return Tensor.ones(shape, requires_grad=requires_grad)


def randn(
    shape: ShapeLike,
    *,
    seed: Optional[int] = None,
    scale: float = 1.0,
    requires_grad: bool = False,
) -> Tensor:
    return Tensor.randn(shape, seed=seed, scale=scale, requires_grad=requires_grad)


def rand(
    shape: ShapeLike, *, seed: Optional[int] = None, requires_grad: bool = False
) -> Tensor:
    return Tensor.rand(shape, seed=seed, requires_grad=requires_grad)


def tensor(data: Any, *, requires_grad: bool = False) -> Tensor:
    """
    Create a tensor holding a float32 copy of `data`.
    """
    return Tensor.from_numpy(data, requires_grad=requires_grad)


def fill(t: Tensor, value: float) -> None:
    _check_operands("fill", t)
    t.fill(value)


def copy(dst: Tensor, src: Tensor) -> None:
    """
    Copy the contents of `src` into `dst` (shapes must match).
    """
    _check_operands("copy", dst, src)
    dst.copy_from(src)


# ----------------------------------------------------------------------
# Operations
# ----------------------------------------------------------------------
def add(a: Tensor, b: Tensor, *, context: Optional[ExecutionContext] = None) -> Tensor:
    """
    Elementwise sum with trailing-axis broadcasting.
    """
    _check_operands("add", a, b)
    ctx = _resolve(context)
    return _dispatch("add", ctx.table.add, (a, b), ctx)


def sub(a: Tensor, b: Tensor, *, context: Optional[ExecutionContext] = None) -> Tensor:
    _check_operands("sub", a, b)
    ctx = _resolve(context)
    return _dispatch("sub", ctx.table.sub, (a, b), ctx)


def mul(a: Tensor, b: Tensor, *, context: Optional[ExecutionContext] = None) -> Tensor:
    _check_operands("mul", a, b)
    ctx = _resolve(context)
    return _dispatch("mul", ctx.table.mul, (a, b), ctx)


def matmul(
    a: Tensor, b: Tensor, *, context: Optional[ExecutionContext] = None
) -> Tensor:
    """
    Matrix product. See `petard.infrastructure.ops.linalg_cpu` for the
    supported rank combinations.
    """
    _check_operands("matmul", a, b)
    ctx = _resolve(context)
    return _dispatch("matmul", ctx.table.matmul, (a, b), ctx)


def transpose2d(a: Tensor, *, context: Optional[ExecutionContext] = None) -> Tensor:
    _check_operands("transpose2d", a)
    ctx = _resolve(context)
    return _dispatch("transpose2d", ctx.table.transpose2d, (a,), ctx)


def relu(a: Tensor, *, context: Optional[ExecutionContext] = None) -> Tensor:
    _check_operands("relu", a)
    ctx = _resolve(context)
    return _dispatch("relu", ctx.table.relu, (a,), ctx)


def sigmoid(a: Tensor, *, context: Optional[ExecutionContext] = None) -> Tensor:
    _check_operands("sigmoid", a)
    ctx = _resolve(context)
    return _dispatch("sigmoid", ctx.table.sigmoid, (a,), ctx)


def tanh(a: Tensor, *, context: Optional[ExecutionContext] = None) -> Tensor:
    _check_operands("tanh", a)
    ctx = _resolve(context)
    return _dispatch("tanh", ctx.table.tanh, (a,), ctx)


def softmax(a: Tensor, *, context: Optional[ExecutionContext] = None) -> Tensor:
    """
    Softmax over the last axis.
    """
    _check_operands("softmax", a)
    ctx = _resolve(context)
    return _dispatch("softmax", ctx.table.softmax, (a,), ctx)


def mse(
    pred: Tensor, target: Tensor, *, context: Optional[ExecutionContext] = None
) -> Tensor:
    _check_operands("mse", pred, target)
    ctx = _resolve(context)
    return _dispatch("mse", ctx.table.mse, (pred, target), ctx)


def cross_entropy(
    pred: Tensor, target: Tensor, *, context: Optional[ExecutionContext] = None
) -> Tensor:
    """
    Mean over rows of ``-sum(target * log(pred))``; `pred` holds
    probabilities.
    """
    _check_operands("cross_entropy", pred, target)
    ctx = _resolve(context)
    return _dispatch("cross_entropy", ctx.table.cross_entropy, (pred, target), ctx)


def binary_cross_entropy(
    pred: Tensor, target: Tensor, *, context: Optional[ExecutionContext] = None
) -> Tensor:
    _check_operands("binary_cross_entropy", pred, target)
    ctx = _resolve(context)
    return _dispatch(
        "binary_cross_entropy", ctx.table.binary_cross_entropy, (pred, target), ctx
    )


# ----------------------------------------------------------------------
# Autograd and lifecycle
# ----------------------------------------------------------------------
def backward(root: Tensor, grad_out: Optional[Tensor] = None) -> None:
    """
    Backpropagate from `root`. See `petard.infrastructure.autograd.backward`.
    """
    _backward(root, grad_out)


def zero_grad(t: Tensor) -> None:
    _check_operands("zero_grad", t)
    t.zero_grad()


def release(t: Tensor) -> None:
    """
    Free `t`'s owned storage, gradient, and graph metadata.
    """
    if not isinstance(t, Tensor):
        raise NullTensorError("release", 0, None if t is None else type(t))
    t.release()
