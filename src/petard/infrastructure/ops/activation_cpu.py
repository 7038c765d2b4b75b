"""
CPU reference kernels for activation functions (NumPy backend).

These are the numerical ground truth that accelerator kernels are compared
against, so each one uses the same numerically stable formulation as its
device counterpart:

- sigmoid evaluates ``exp(-|x|)`` so it never overflows;
- softmax subtracts the row maximum before exponentiating.
"""

from __future__ import annotations

import numpy as np


def relu_forward_cpu(x: np.ndarray) -> np.ndarray:
    return np.maximum(x, np.float32(0.0)).astype(np.float32, copy=False)


def sigmoid_forward_cpu(x: np.ndarray) -> np.ndarray:
    """
    Numerically stable logistic sigmoid.
    """
    e = np.exp(-np.abs(x, dtype=np.float32))
    s = np.float32(1.0) / (np.float32(1.0) + e)
    return np.where(x >= 0, s, e * s).astype(np.float32, copy=False)


def tanh_forward_cpu(x: np.ndarray) -> np.ndarray:
    return np.tanh(x, dtype=np.float32)


def softmax_forward_cpu(x: np.ndarray) -> np.ndarray:
    """
    Softmax over the last axis.

    A 1-D input is treated as a single row.

    Parameters
    ----------
    x : np.ndarray
        Input of rank >= 1.

    Returns
    -------
    np.ndarray
        Array of the same shape whose rows are positive and sum to 1.
    """
    if x.ndim == 0:
        raise ValueError("softmax requires at least 1 dimension")
    shifted = x - np.max(x, axis=-1, keepdims=True)
    e = np.exp(shifted, dtype=np.float32)
    return (e / np.sum(e, axis=-1, keepdims=True)).astype(np.float32, copy=False)
