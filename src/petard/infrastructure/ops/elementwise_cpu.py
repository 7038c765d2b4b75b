"""
CPU reference kernels for binary elementwise arithmetic (NumPy backend).

Operands broadcast NumPy-style, aligned on trailing dimensions, so a bias
vector of shape ``(N,)`` can be added to a batch of shape ``(B, N)``.
Results are always freshly allocated float32 arrays.
"""

from __future__ import annotations

import numpy as np

from ._shape_utils import broadcast_shape


def add_forward_cpu(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    broadcast_shape("add", a.shape, b.shape)
    return np.add(a, b, dtype=np.float32)


def sub_forward_cpu(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    broadcast_shape("sub", a.shape, b.shape)
    return np.subtract(a, b, dtype=np.float32)


def mul_forward_cpu(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    broadcast_shape("mul", a.shape, b.shape)
    return np.multiply(a, b, dtype=np.float32)
