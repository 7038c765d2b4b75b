"""
petard: differentiable tensors with pluggable execution backends.

The public API re-exports the tensor type, the operation functions, the
execution context, and the layer/optimizer collaborators.
"""

from .domain._errors import (
    BackendResourceError,
    ConfigurationError,
    DeviceTimeoutError,
    NullTensorError,
    ShapeMismatchError,
    TensorReleasedError,
)
from .infrastructure._config import AcceleratorConfig
from .infrastructure._context import (
    ExecutionContext,
    get_default_context,
    set_default_context,
)
from .infrastructure._functional import (
    add,
    backward,
    binary_cross_entropy,
    copy,
    cross_entropy,
    empty,
    fill,
    matmul,
    mse,
    ones,
    rand,
    randn,
    release,
    relu,
    sigmoid,
    softmax,
    sub,
    mul,
    tanh,
    tensor,
    transpose2d,
    zero_grad,
    zeros,
)
from .infrastructure._layers import Linear, ReLU, Sequential, Sigmoid, Softmax, Tanh
from .infrastructure._optimizers import Optimizer
from .infrastructure.tensor import Tensor

__version__ = "0.1.0a0"
