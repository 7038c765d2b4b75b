"""
Reference (host) operation set.

`ReferenceOperations` adapts the NumPy kernels in the ``*_cpu`` modules to
the tensor-level `IOperationSet` contract. It is always registered at
priority 0 and is the fallback target of every accelerator operation, so it
must accept every input an accelerator may decline.
"""

from __future__ import annotations

from ..tensor._tensor import Tensor
from .activation_cpu import (
    relu_forward_cpu,
    sigmoid_forward_cpu,
    softmax_forward_cpu,
    tanh_forward_cpu,
)
from .elementwise_cpu import add_forward_cpu, mul_forward_cpu, sub_forward_cpu
from .linalg_cpu import matmul_forward_cpu, transpose2d_forward_cpu
from .loss_cpu import (
    binary_cross_entropy_forward_cpu,
    cross_entropy_forward_cpu,
    mse_forward_cpu,
)


class ReferenceOperations:
    """
    NumPy implementation of every core operation.

    Each method reads its operands' data, runs the matching kernel, and wraps
    the freshly allocated result in a new owning `Tensor` with no graph
    metadata.
    """

    name = "reference"

    def add(self, a: Tensor, b: Tensor) -> Tensor:
        return Tensor._wrap(add_forward_cpu(a.data, b.data))

    def sub(self, a: Tensor, b: Tensor) -> Tensor:
        return Tensor._wrap(sub_forward_cpu(a.data, b.data))

    def mul(self, a: Tensor, b: Tensor) -> Tensor:
        return Tensor._wrap(mul_forward_cpu(a.data, b.data))

    def matmul(self, a: Tensor, b: Tensor) -> Tensor:
        return Tensor._wrap(matmul_forward_cpu(a.data, b.data))

    def transpose2d(self, a: Tensor) -> Tensor:
        return Tensor._wrap(transpose2d_forward_cpu(a.data))

    def relu(self, a: Tensor) -> Tensor:
        return Tensor._wrap(relu_forward_cpu(a.data))

    def sigmoid(self, a: Tensor) -> Tensor:
        return Tensor._wrap(sigmoid_forward_cpu(a.data))

    def tanh(self, a: Tensor) -> Tensor:
        return Tensor._wrap(tanh_forward_cpu(a.data))

    def softmax(self, a: Tensor) -> Tensor:
        return Tensor._wrap(softmax_forward_cpu(a.data))

    def mse(self, pred: Tensor, target: Tensor) -> Tensor:
        return Tensor._wrap(mse_forward_cpu(pred.data, target.data))

    def cross_entropy(self, pred: Tensor, target: Tensor) -> Tensor:
        return Tensor._wrap(cross_entropy_forward_cpu(pred.data, target.data))

    def binary_cross_entropy(self, pred: Tensor, target: Tensor) -> Tensor:
        return Tensor._wrap(binary_cross_entropy_forward_cpu(pred.data, target.data))
