from ._backend import WebGPUBackend
from ._ops import ACCELERATED_OPS, WebGPUOperations
from ._session import CachedPipeline, WebGPUSession
from ._shaders import KERNELS, KernelSpec
