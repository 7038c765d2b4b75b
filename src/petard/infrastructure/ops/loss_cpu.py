"""
CPU reference kernels for loss functions (NumPy backend).

Every loss returns a 1-element float32 vector so its output can seed
`backward` directly.

Conventions
-----------
- mse: mean over all elements of ``(pred - target)**2``.
- cross_entropy: ``pred`` holds probabilities (e.g., a softmax output) and
  ``target`` one-hot or soft labels; the per-row sums of
  ``-target * log(pred)`` are averaged over rows (the leading axis, or one
  row for 1-D inputs).
- binary_cross_entropy: elementwise mean of
  ``-(t * log(p) + (1 - t) * log(1 - p))``.

Probabilities are clipped by `PROB_EPS` before taking logarithms.
"""

from __future__ import annotations

import numpy as np

from ...domain._errors import ShapeMismatchError

PROB_EPS = 1e-7


def _check_same_shape(op: str, pred: np.ndarray, target: np.ndarray) -> None:
    if pred.shape != target.shape:
        raise ShapeMismatchError(op, pred.shape, target.shape)
    if pred.size == 0:
        raise ShapeMismatchError(op, pred.shape, target.shape, detail="empty input")


def row_count(pred: np.ndarray) -> int:
    """
    Number of rows cross-entropy averages over.
    """
    return int(pred.shape[0]) if pred.ndim >= 2 else 1


def mse_forward_cpu(pred: np.ndarray, target: np.ndarray) -> np.ndarray:
    _check_same_shape("mse", pred, target)
    diff = pred.astype(np.float64) - target.astype(np.float64)
    return np.array([np.mean(diff * diff)], dtype=np.float32)


def cross_entropy_forward_cpu(pred: np.ndarray, target: np.ndarray) -> np.ndarray:
    _check_same_shape("cross_entropy", pred, target)
    p = np.clip(pred.astype(np.float64), PROB_EPS, 1.0)
    total = -np.sum(target.astype(np.float64) * np.log(p))
    return np.array([total / row_count(pred)], dtype=np.float32)


def binary_cross_entropy_forward_cpu(
    pred: np.ndarray, target: np.ndarray
) -> np.ndarray:
    _check_same_shape("binary_cross_entropy", pred, target)
    p = np.clip(pred.astype(np.float64), PROB_EPS, 1.0 - PROB_EPS)
    t = target.astype(np.float64)
    loss = -(t * np.log(p) + (1.0 - t) * np.log(1.0 - p))
    return np.array([np.mean(loss)], dtype=np.float32)
