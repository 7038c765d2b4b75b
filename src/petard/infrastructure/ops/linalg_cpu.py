"""
CPU reference kernels for matrix multiplication and 2D transpose.

Supported matmul forms
----------------------
- ``(M, K) @ (K, N) -> (M, N)``
- ``(M, K) @ (K,)   -> (M,)``
- ``(K,)   @ (K, N) -> (N,)``
- ``(K,)   @ (K,)   -> (1,)`` (dot product kept as a 1-element vector)

Any other rank combination, or an inner-dimension mismatch, raises
`ShapeMismatchError`.
"""

from __future__ import annotations

import numpy as np

from ...domain._errors import ShapeMismatchError


def matmul_forward_cpu(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """
    Multiply two matrices (or a matrix and a vector) in float32.

    Parameters
    ----------
    a : np.ndarray
        Left operand, 1-D or 2-D.
    b : np.ndarray
        Right operand, 1-D or 2-D.

    Returns
    -------
    np.ndarray
        Product with the shape listed in the module docstring.

    Raises
    ------
    ShapeMismatchError
        If the ranks are unsupported or the inner dimensions differ.
    """
    if a.ndim == 2 and b.ndim == 2:
        if a.shape[1] != b.shape[0]:
            raise ShapeMismatchError("matmul", a.shape, b.shape, detail="inner dims")
        return np.matmul(a, b).astype(np.float32, copy=False)

    if a.ndim == 2 and b.ndim == 1:
        if a.shape[1] != b.shape[0]:
            raise ShapeMismatchError("matmul", a.shape, b.shape, detail="inner dims")
        return np.matmul(a, b).astype(np.float32, copy=False)

    if a.ndim == 1 and b.ndim == 2:
        if a.shape[0] != b.shape[0]:
            raise ShapeMismatchError("matmul", a.shape, b.shape, detail="inner dims")
        return np.matmul(a, b).astype(np.float32, copy=False)

    if a.ndim == 1 and b.ndim == 1:
        if a.shape[0] != b.shape[0]:
            raise ShapeMismatchError("matmul", a.shape, b.shape, detail="lengths")
        return np.array([np.dot(a, b)], dtype=np.float32)

    raise ShapeMismatchError(
        "matmul", a.shape, b.shape, detail="expected 1-D or 2-D operands"
    )


def transpose2d_forward_cpu(a: np.ndarray) -> np.ndarray:
    """
    Return a C-ordered transposed copy of a 2-D array.

    Raises
    ------
    ShapeMismatchError
        If `a` is not 2-D.
    """
    if a.ndim != 2:
        raise ShapeMismatchError("transpose2d", a.shape, detail="expected a 2-D tensor")
    return np.array(a.T, dtype=np.float32, order="C", copy=True)
