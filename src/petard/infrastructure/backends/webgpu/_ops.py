"""
WebGPU operation set.

`WebGPUOperations` implements the accelerated subset of the core operations
(add, sub, mul, matmul, relu, sigmoid, tanh, softmax) on top of a
`WebGPUSession`. Each method first checks whether the device can take the
call; if not, it returns exactly what the reference implementation returns.

Fallback conditions
-------------------
- the session is not READY;
- elementwise operands whose shapes differ (the reference path broadcasts);
- matmul operands that are not both 2-D, or whose inner dimensions differ;
- softmax inputs with fewer than 2 dimensions;
- empty tensors, buffers above the device binding limit, or grids above
  the per-dimension workgroup limit.
"""

from __future__ import annotations

import struct
from typing import Optional

from ...ops._reference import ReferenceOperations
from ...tensor._tensor import Tensor
from ._session import WebGPUSession
from ._shaders import MAX_WORKGROUPS_PER_DIM, TILE_SIZE, elementwise_grid

ACCELERATED_OPS: tuple[str, ...] = (
    "add",
    "sub",
    "mul",
    "matmul",
    "relu",
    "sigmoid",
    "tanh",
    "softmax",
)


class WebGPUOperations:
    """
    Accelerated operations with transparent reference fallback.

    Parameters
    ----------
    session : WebGPUSession
        Session used for device round trips.
    reference : Optional[ReferenceOperations], optional
        Fallback operation set. Defaults to a new `ReferenceOperations`.
    """

    name = "webgpu"

    def __init__(
        self, session: WebGPUSession, reference: Optional[ReferenceOperations] = None
    ) -> None:
        self._session = session
        self._reference = reference if reference is not None else ReferenceOperations()

    @property
    def session(self) -> WebGPUSession:
        return self._session

    def _fits(self, *tensors: Tensor) -> bool:
        limit = self._session.max_binding_bytes
        return all(0 < t.numel() and t.numel() * 4 <= limit for t in tensors)

    def _binary(self, name: str, a: Tensor, b: Tensor) -> Tensor:
        if not self._session.ready or a.shape != b.shape or not self._fits(a):
            return getattr(self._reference, name)(a, b)
        n = a.numel()
        out = self._session.run(name, [a.data, b.data], n, elementwise_grid(n))
        return Tensor._wrap(out.reshape(a.shape))

    def _unary(self, name: str, a: Tensor) -> Tensor:
        if not self._session.ready or not self._fits(a):
            return getattr(self._reference, name)(a)
        n = a.numel()
        out = self._session.run(name, [a.data], n, elementwise_grid(n))
        return Tensor._wrap(out.reshape(a.shape))

    def add(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("add", a, b)

    def sub(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("sub", a, b)

    def mul(self, a: Tensor, b: Tensor) -> Tensor:
        return self._binary("mul", a, b)

    def relu(self, a: Tensor) -> Tensor:
        return self._unary("relu", a)

    def sigmoid(self, a: Tensor) -> Tensor:
        return self._unary("sigmoid", a)

    def tanh(self, a: Tensor) -> Tensor:
        return self._unary("tanh", a)

    def matmul(self, a: Tensor, b: Tensor) -> Tensor:
        """
        Tiled ``(M, K) @ (K, N)`` on the device.
        """
        if (
            not self._session.ready
            or a.ndim != 2
            or b.ndim != 2
            or a.shape[1] != b.shape[0]
        ):
            return self._reference.matmul(a, b)

        m, k = a.shape
        n = b.shape[1]
        grid = ((n + TILE_SIZE - 1) // TILE_SIZE, (m + TILE_SIZE - 1) // TILE_SIZE)
        if (
            m * n == 0
            or not self._fits(a, b)
            or m * n * 4 > self._session.max_binding_bytes
            or max(grid) > MAX_WORKGROUPS_PER_DIM
        ):
            return self._reference.matmul(a, b)

        dims = struct.pack("4I", m, k, n, 0)
        out = self._session.run("matmul", [a.data, b.data], m * n, grid, dims)
        return Tensor._wrap(out.reshape(m, n))

    def softmax(self, a: Tensor) -> Tensor:
        """
        Row-wise softmax over the last axis, one workgroup per row.
        """
        if not self._session.ready or a.ndim < 2 or not self._fits(a):
            return self._reference.softmax(a)

        row_size = a.shape[-1]
        rows = a.numel() // row_size
        if rows > MAX_WORKGROUPS_PER_DIM:
            return self._reference.softmax(a)

        params = struct.pack("4I", row_size, row_size, 0, 0)
        out = self._session.run("softmax", [a.data], a.numel(), (rows, 1), params)
        return Tensor._wrap(out.reshape(a.shape))
