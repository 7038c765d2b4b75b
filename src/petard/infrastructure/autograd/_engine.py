"""
Reverse-mode autograd engine.

The dispatch layer calls `attach_graph` on every operation output. If any
operand requires gradients, the output is marked likewise and receives a
`Context` with the operation tag, its inputs, and the gradient rule looked
up from the gradient-rule registry.

`backward` orders the reachable graph topologically with an explicit visited
set, then invokes every node's rule exactly once, outputs before inputs. A
tensor reachable along several paths therefore receives exactly one
contribution per incoming edge.

Gradient buffers of interior nodes are reset at the start of each pass;
leaf gradients accumulate across passes until `zero_grad` is called.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from ...domain._errors import NullTensorError, ShapeMismatchError, TensorReleasedError
from ..registry._named_registry import NamedRegistry
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import Context

logger = logging.getLogger(__name__)


def attach_graph(
    out: Tensor, op: str, inputs: Sequence[Tensor], rules: NamedRegistry
) -> Tensor:
    """
    Record `out` as produced by `op` from `inputs` if any input requires grad.

    Parameters
    ----------
    out : Tensor
        Freshly produced operation output.
    op : str
        Operation tag; also the gradient-rule name.
    inputs : Sequence[Tensor]
        Operands in call order.
    rules : NamedRegistry
        Gradient-rule registry.

    Returns
    -------
    Tensor
        `out`, for chaining.

    Raises
    ------
    ConfigurationError
        If a gradient is required but no rule is registered for `op`.
    """
    if not any(t.requires_grad for t in inputs):
        return out
    rule = rules.require(op)
    out.requires_grad = True
    out._set_ctx(Context(op=op, parents=tuple(inputs), rule=rule))
    return out


def _topological_order(root: Tensor) -> list[Tensor]:
    """
    Return every tensor reachable from `root`, inputs before outputs.

    Iterative post-order DFS, so deep graphs do not hit the recursion limit.
    """
    order: list[Tensor] = []
    visited: set[int] = set()
    stack: list[tuple[Tensor, bool]] = [(root, False)]

    while stack:
        node, expanded = stack.pop()
        if expanded:
            order.append(node)
            continue
        if id(node) in visited:
            continue
        visited.add(id(node))
        stack.append((node, True))

        ctx = node._get_ctx()
        if ctx is not None:
            for parent in reversed(tuple(ctx.parents)):
                if id(parent) not in visited:
                    stack.append((parent, False))

    return order


def backward(root: Tensor, grad_out: Optional[Tensor] = None) -> None:
    """
    Backpropagate gradients from `root` through its computation graph.

    Parameters
    ----------
    root : Tensor
        Output to differentiate. Must require gradients.
    grad_out : Optional[Tensor], optional
        Gradient w.r.t. `root`. If omitted, `root` must contain exactly one
        element and the seed is 1.

    Raises
    ------
    NullTensorError
        If `root` (or `grad_out`) is not a Tensor.
    RuntimeError
        If `root` does not require gradients.
    ShapeMismatchError
        If no seed is given for a multi-element root, or the seed's shape
        differs from the root's.
    TensorReleasedError
        If any tensor in the graph has been released.
    """
    if not isinstance(root, Tensor):
        raise NullTensorError("backward", 0, None if root is None else type(root))
    root._ensure_live("backward")
    if not root.requires_grad:
        raise RuntimeError("backward: tensor does not require gradients")

    if grad_out is None:
        if root.numel() != 1:
            raise ShapeMismatchError(
                "backward",
                root.shape,
                detail="grad_out must be provided for non-scalar tensors",
            )
        seed = np.ones(root.shape, dtype=np.float32)
    else:
        if not isinstance(grad_out, Tensor):
            raise NullTensorError(
                "backward", 1, None if grad_out is None else type(grad_out)
            )
        if grad_out.shape != root.shape:
            raise ShapeMismatchError("backward", root.shape, grad_out.shape)
        seed = grad_out.to_numpy()

    order = _topological_order(root)

    for node in order:
        if node.released:
            raise TensorReleasedError("backward")
        if node._get_ctx() is not None:
            node._reset_grad_()

    root._accumulate_grad_(seed)

    for node in reversed(order):
        ctx = node._get_ctx()
        if ctx is None:
            continue
        ctx.rule(node)

    logger.debug("backward visited %d tensors", len(order))
