from typing import Callable, Sequence
from dataclasses import dataclass

from ...domain._tensor import ITensor


@dataclass
class Context:
    """
    Graph metadata attached to a Tensor produced by an operation.

    A `Context` is created by the dispatch layer only when at least one input
    of the producing call requires gradients.

    Attributes
    ----------
    op : str
        Operation tag (e.g., "matmul"). Used for diagnostics and for looking up
        the gradient rule.
    parents : Sequence[Tensor]
        The input tensors of the operation, in call order.
    rule : Callable[[Tensor], None]
        Gradient rule bound at forward time. It reads the output node's
        gradient and accumulates into each parent that requires gradients.

    Notes
    -----
    The rule comes from the gradient-rule registry, never from the forward
    dispatcher, so outputs produced by different backends share one formula.
    """

    op: str
    parents: Sequence["ITensor"]
    rule: Callable[["ITensor"], None]
