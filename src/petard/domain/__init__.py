from ._backend import IBackend, SessionState
from ._errors import (
    BackendResourceError,
    ConfigurationError,
    DeviceTimeoutError,
    NullTensorError,
    ShapeMismatchError,
    TensorReleasedError,
)
from ._operations import IOperationSet, GradientRule, LOSS_NAMES, OPERATION_NAMES
from ._optimizers import IOptimizer
from ._tensor import ITensor
