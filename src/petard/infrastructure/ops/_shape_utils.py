"""
Shape helpers shared by the reference kernels and the gradient rules.

`broadcast_shape` validates NumPy-style (trailing-aligned) broadcasting for
binary elementwise operations. `sum_to_shape` is its inverse for gradients:
it sums a gradient over the axes that were broadcast in the forward pass.
"""

from __future__ import annotations

import numpy as np

from ...domain._errors import ShapeMismatchError


def broadcast_shape(
    op: str, a_shape: tuple[int, ...], b_shape: tuple[int, ...]
) -> tuple[int, ...]:
    """
    Return the broadcast result shape of two operand shapes.

    Raises
    ------
    ShapeMismatchError
        If the shapes are not broadcast-compatible.
    """
    if a_shape == b_shape:
        return tuple(a_shape)
    try:
        return tuple(np.broadcast_shapes(tuple(a_shape), tuple(b_shape)))
    except ValueError:
        raise ShapeMismatchError(op, a_shape, b_shape) from None


def _sum_to_shape_reduce_axes(
    src_shape: tuple[int, ...], target_shape: tuple[int, ...]
) -> tuple[tuple[int, ...], int]:
    """
    Compute the reduction axes for `sum_to_shape`.

    The target shape is left-padded with ones to the source rank; an axis is
    reduced where the padded target dimension is 1 and the source is not.

    Returns
    -------
    reduce_axes : tuple[int, ...]
        Axes of the source to sum over with ``keepdims=True``.
    pad : int
        Number of leading dimensions to drop after the reduction.

    Raises
    ------
    ValueError
        If `target_shape` could not have been broadcast to `src_shape`.
    """
    src = tuple(int(d) for d in src_shape)
    tgt = tuple(int(d) for d in target_shape)

    if len(tgt) > len(src):
        raise ValueError(f"target_shape rank {len(tgt)} > src rank {len(src)}")

    pad = len(src) - len(tgt)
    padded_tgt = (1,) * pad + tgt

    for i, (sd, td) in enumerate(zip(src, padded_tgt)):
        if td not in (1, sd):
            raise ValueError(
                f"Cannot sum_to_shape from {src_shape} to {target_shape}: "
                f"dim mismatch at axis {i}: src={sd}, target={td}"
            )

    reduce_axes = tuple(
        i for i, (sd, td) in enumerate(zip(src, padded_tgt)) if td == 1 and sd != 1
    )
    return reduce_axes, pad


def sum_to_shape(grad: np.ndarray, target_shape: tuple[int, ...]) -> np.ndarray:
    """
    Sum-reduce `grad` over broadcast axes so it has `target_shape`.
    """
    if tuple(grad.shape) == tuple(target_shape):
        return grad
    reduce_axes, pad = _sum_to_shape_reduce_axes(grad.shape, target_shape)
    out = grad.sum(axis=reduce_axes, keepdims=True) if reduce_axes else grad
    if pad:
        out = out.reshape(out.shape[pad:])
    return out.reshape(target_shape)
