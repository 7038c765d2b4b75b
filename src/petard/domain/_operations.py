"""
Operation-set contracts for petard.

An operation set is an object exposing one forward implementation per named
operation. The reference (host) set implements every name; accelerator sets
implement a subset and fall back to the reference set for the rest of each
call's edge cases.

Forward implementations never touch graph metadata. Graph attachment is done
once, in the dispatch layer, after whichever backend produced the value.
"""

from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

from ._tensor import ITensor

OPERATION_NAMES: tuple[str, ...] = (
    "add",
    "sub",
    "mul",
    "matmul",
    "transpose2d",
    "relu",
    "sigmoid",
    "tanh",
    "softmax",
    "mse",
    "cross_entropy",
    "binary_cross_entropy",
)
"""Every operation the dispatch table resolves."""

LOSS_NAMES: tuple[str, ...] = ("mse", "cross_entropy", "binary_cross_entropy")

GradientRule = Callable[[ITensor], None]
"""
A gradient rule receives the output node, reads its gradient and graph
metadata, and accumulates into the gradients of the node's inputs.
"""


@runtime_checkable
class IOperationSet(Protocol):
    """
    Forward implementations of the core operations.

    Every method returns a newly allocated tensor and leaves its operands
    unmodified.
    """

    def add(self, a: ITensor, b: ITensor) -> ITensor: ...
    def sub(self, a: ITensor, b: ITensor) -> ITensor: ...
    def mul(self, a: ITensor, b: ITensor) -> ITensor: ...
    def matmul(self, a: ITensor, b: ITensor) -> ITensor: ...
    def transpose2d(self, a: ITensor) -> ITensor: ...
    def relu(self, a: ITensor) -> ITensor: ...
    def sigmoid(self, a: ITensor) -> ITensor: ...
    def tanh(self, a: ITensor) -> ITensor: ...
    def softmax(self, a: ITensor) -> ITensor: ...
    def mse(self, pred: ITensor, target: ITensor) -> ITensor: ...
    def cross_entropy(self, pred: ITensor, target: ITensor) -> ITensor: ...
    def binary_cross_entropy(self, pred: ITensor, target: ITensor) -> ITensor: ...
