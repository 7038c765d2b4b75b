"""
Gradient rules for the core operations.

Each rule receives the output node of a recorded operation, reads the
node's gradient and its parents from the attached `Context`, and adds the
local contribution into the gradient of every parent that requires
gradients. Rules depend only on tensor values, never on which backend
produced the forward result.
"""

from __future__ import annotations

import numpy as np

from ...domain._operations import GradientRule
from ..ops._shape_utils import sum_to_shape
from ..ops.loss_cpu import PROB_EPS, row_count
from ..registry._named_registry import NamedRegistry
from ..tensor._tensor import Tensor


def _upstream(node: Tensor) -> np.ndarray:
    return node.grad.data  # type: ignore[union-attr]


def _loss_upstream(node: Tensor) -> float:
    return float(node.grad.data.reshape(-1)[0])  # type: ignore[union-attr]


def add_backward(node: Tensor) -> None:
    a, b = node._get_ctx().parents
    g = _upstream(node)
    if a.requires_grad:
        a._accumulate_grad_(sum_to_shape(g, a.shape))
    if b.requires_grad:
        b._accumulate_grad_(sum_to_shape(g, b.shape))


def sub_backward(node: Tensor) -> None:
    a, b = node._get_ctx().parents
    g = _upstream(node)
    if a.requires_grad:
        a._accumulate_grad_(sum_to_shape(g, a.shape))
    if b.requires_grad:
        b._accumulate_grad_(-sum_to_shape(g, b.shape))


def mul_backward(node: Tensor) -> None:
    a, b = node._get_ctx().parents
    g = _upstream(node)
    if a.requires_grad:
        a._accumulate_grad_(sum_to_shape(g * b.data, a.shape))
    if b.requires_grad:
        b._accumulate_grad_(sum_to_shape(g * a.data, b.shape))


def matmul_backward(node: Tensor) -> None:
    """
    ``grad_A = G @ B.T`` and ``grad_B = A.T @ G``.

    1-D operands are promoted to 2-D (a row vector on the left, a column
    vector on the right) so the 2-D formulas cover every supported form.
    """
    a, b = node._get_ctx().parents
    a2 = a.data if a.ndim == 2 else a.data.reshape(1, -1)
    b2 = b.data if b.ndim == 2 else b.data.reshape(-1, 1)
    g2 = _upstream(node).reshape(a2.shape[0], b2.shape[1])
    if a.requires_grad:
        a._accumulate_grad_((g2 @ b2.T).reshape(a.shape))
    if b.requires_grad:
        b._accumulate_grad_((a2.T @ g2).reshape(b.shape))


def transpose2d_backward(node: Tensor) -> None:
    (a,) = node._get_ctx().parents
    if a.requires_grad:
        a._accumulate_grad_(_upstream(node).T)


def relu_backward(node: Tensor) -> None:
    (a,) = node._get_ctx().parents
    if a.requires_grad:
        mask = (a.data > 0).astype(np.float32)
        a._accumulate_grad_(_upstream(node) * mask)


def sigmoid_backward(node: Tensor) -> None:
    (a,) = node._get_ctx().parents
    if a.requires_grad:
        s = node.data
        a._accumulate_grad_(_upstream(node) * s * (1.0 - s))


def tanh_backward(node: Tensor) -> None:
    (a,) = node._get_ctx().parents
    if a.requires_grad:
        t = node.data
        a._accumulate_grad_(_upstream(node) * (1.0 - t * t))


def softmax_backward(node: Tensor) -> None:
    """
    Per-row Jacobian-vector product over the last axis.

    ``grad_in = s * (g - sum(g * s, axis=-1))``; rows never mix.
    """
    (a,) = node._get_ctx().parents
    if a.requires_grad:
        s = node.data
        g = _upstream(node)
        dot = np.sum(g * s, axis=-1, keepdims=True)
        a._accumulate_grad_(s * (g - dot))


def mse_backward(node: Tensor) -> None:
    pred, target = node._get_ctx().parents
    up = _loss_upstream(node)
    n = pred.numel()
    grad = (2.0 / n) * (pred.data.astype(np.float64) - target.data) * up
    if pred.requires_grad:
        pred._accumulate_grad_(grad)
    if target.requires_grad:
        target._accumulate_grad_(-grad)


def cross_entropy_backward(node: Tensor) -> None:
    pred, target = node._get_ctx().parents
    up = _loss_upstream(node)
    rows = row_count(pred.data)
    p = np.clip(pred.data.astype(np.float64), PROB_EPS, 1.0)
    if pred.requires_grad:
        pred._accumulate_grad_(-(target.data / p) / rows * up)
    if target.requires_grad:
        target._accumulate_grad_(-np.log(p) / rows * up)


def binary_cross_entropy_backward(node: Tensor) -> None:
    pred, target = node._get_ctx().parents
    up = _loss_upstream(node)
    n = pred.numel()
    p = np.clip(pred.data.astype(np.float64), PROB_EPS, 1.0 - PROB_EPS)
    t = target.data.astype(np.float64)
    if pred.requires_grad:
        pred._accumulate_grad_((p - t) / (p * (1.0 - p)) / n * up)
    if target.requires_grad:
        target._accumulate_grad_((np.log(1.0 - p) - np.log(p)) / n * up)


GRADIENT_RULES: dict[str, GradientRule] = {
    "add": add_backward,
    "sub": sub_backward,
    "mul": mul_backward,
    "matmul": matmul_backward,
    "transpose2d": transpose2d_backward,
    "relu": relu_backward,
    "sigmoid": sigmoid_backward,
    "tanh": tanh_backward,
    "softmax": softmax_backward,
    "mse": mse_backward,
    "cross_entropy": cross_entropy_backward,
    "binary_cross_entropy": binary_cross_entropy_backward,
}


def register_gradient_rules(registry: NamedRegistry) -> None:
    """
    Install the rule for every core operation into `registry`.
    """
    for name, rule in GRADIENT_RULES.items():
        registry.register(name, rule)
