"""
Layers built on the tensor operation API.

Layers never touch backends or graph metadata directly: every forward pass
is a composition of dispatched operations, so layers run on whichever
backend the execution context resolved and are differentiated by the
shared gradient rules.

Shape conventions
-----------------
- Linear: x (batch, in_features) or (in_features,) -> (batch, out_features)
  or (out_features,). Weights are stored as (in_features, out_features) so
  the forward pass is ``x @ W + b``.
"""

from __future__ import annotations

import math
from typing import Iterable, Iterator, Optional

from ._context import ExecutionContext
from . import _functional as F
from .registry._named_registry import NamedRegistry
from .tensor._tensor import Tensor


class Layer:
    """
    Base class for layers.

    Parameters
    ----------
    context : Optional[ExecutionContext], optional
        Context the layer dispatches through. Defaults to the process
        default context at call time.
    """

    def __init__(self, *, context: Optional[ExecutionContext] = None) -> None:
        self.context = context

    def forward(self, x: Tensor) -> Tensor:
        raise NotImplementedError

    def __call__(self, x: Tensor) -> Tensor:
        return self.forward(x)

    def parameters(self) -> list[Tensor]:
        return []

    def zero_grad(self) -> None:
        for p in self.parameters():
            p.zero_grad()


class Linear(Layer):
    """
    Fully connected layer ``y = x @ W + b``.

    Parameters
    ----------
    in_features : int
        Input width. Must be > 0.
    out_features : int
        Output width. Must be > 0.
    seed : Optional[int], optional
        Seed for weight initialization. Defaults to 42.
    context : Optional[ExecutionContext], optional
        Dispatch context.

    Notes
    -----
    Weights use He initialization, ``randn * sqrt(2 / in_features)``; the
    bias starts at zero. Both require gradients.
    """

    def __init__(
        self,
        in_features: int,
        out_features: int,
        *,
        seed: Optional[int] = 42,
        context: Optional[ExecutionContext] = None,
    ) -> None:
        super().__init__(context=context)
        if in_features <= 0 or out_features <= 0:
            raise ValueError(
                f"Linear features must be > 0, got ({in_features}, {out_features})"
            )
        self.in_features = int(in_features)
        self.out_features = int(out_features)
        self.weight = Tensor.randn(
            (self.in_features, self.out_features),
            seed=seed,
            scale=math.sqrt(2.0 / self.in_features),
            requires_grad=True,
        )
        self.bias = Tensor.zeros((self.out_features,), requires_grad=True)

    def __repr__(self) -> str:
        return f"Linear(in_features={self.in_features}, out_features={self.out_features})"

    def forward(self, x: Tensor) -> Tensor:
        y = F.matmul(x, self.weight, context=self.context)
        return F.add(y, self.bias, context=self.context)

    def parameters(self) -> list[Tensor]:
        return [self.weight, self.bias]


class ReLU(Layer):
    def forward(self, x: Tensor) -> Tensor:
        return F.relu(x, context=self.context)


class Sigmoid(Layer):
    def forward(self, x: Tensor) -> Tensor:
        return F.sigmoid(x, context=self.context)


class Tanh(Layer):
    def forward(self, x: Tensor) -> Tensor:
        return F.tanh(x, context=self.context)


class Softmax(Layer):
    """
    Softmax over the last axis.
    """

    def forward(self, x: Tensor) -> Tensor:
        return F.softmax(x, context=self.context)


class Sequential(Layer):
    """
    Apply layers in order.
    """

    def __init__(
        self, layers: Iterable[Layer], *, context: Optional[ExecutionContext] = None
    ) -> None:
        super().__init__(context=context)
        self.layers = list(layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    def __len__(self) -> int:
        return len(self.layers)

    def forward(self, x: Tensor) -> Tensor:
        for layer in self.layers:
            x = layer(x)
        return x

    def parameters(self) -> list[Tensor]:
        params: list[Tensor] = []
        for layer in self.layers:
            params.extend(layer.parameters())
        return params


LAYERS = {
    "linear": Linear,
    "relu": ReLU,
    "sigmoid": Sigmoid,
    "tanh": Tanh,
    "softmax": Softmax,
}


def register_layers(registry: NamedRegistry) -> None:
    for name, layer_cls in LAYERS.items():
        registry.register(name, layer_cls)
