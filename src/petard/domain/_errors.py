"""
Error taxonomy for petard.

This module defines the exceptions raised by the tensor operation layer, the
registries, and the execution backends. Every error derives from a builtin
exception type so callers may catch either the specific petard error or the
broader builtin category (e.g., ``LookupError`` for unregistered names).

Only one failure path is caught and logged inside the library: accelerator
bring-up. Every other error propagates to the caller.
"""

from typing import Optional


class ConfigurationError(LookupError):
    """
    Raised when a name is not registered in a string-keyed registry.

    Attributes
    ----------
    name : str
        The name that could not be resolved.
    kind : str
        The registry kind (e.g., "operation", "gradient rule", "optimizer").
    """

    def __init__(self, name: str, kind: str = "operation") -> None:
        """
        Initialize the ConfigurationError.

        Parameters
        ----------
        name : str
            Name that was looked up.
        kind : str, optional
            Human-readable registry kind. Defaults to "operation".
        """
        super().__init__(f"No {kind} registered under the name '{name}'.")
        self.name = name
        self.kind = kind


class ShapeMismatchError(ValueError):
    """
    Raised when operand shapes are incompatible for an operation.

    The accelerator backend never surfaces this error; it falls back to the
    reference implementation instead, which raises it when the shapes are
    incompatible for every backend.

    Attributes
    ----------
    operation : str
        The operation that rejected the operands.
    shapes : tuple[tuple[int, ...], ...]
        Shapes of the operands, in call order.
    """

    def __init__(self, operation: str, *shapes: tuple, detail: str = "") -> None:
        shape_text = ", ".join(str(tuple(s)) for s in shapes)
        message = f"{operation}: incompatible shapes {shape_text}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.operation = operation
        self.shapes = tuple(tuple(s) for s in shapes)


class BackendResourceError(RuntimeError):
    """
    Raised when an execution backend fails to acquire a device resource.

    During session bring-up this error is caught, logged, and turns the
    session permanently unavailable for its lifetime; computation continues on
    the reference path.

    Attributes
    ----------
    backend : str
        Name of the backend (e.g., "webgpu").
    resource : str
        The resource that could not be acquired (e.g., "adapter", "device").
    """

    def __init__(self, backend: str, resource: str, detail: str = "") -> None:
        message = f"{backend}: failed to acquire {resource}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.backend = backend
        self.resource = resource


class DeviceTimeoutError(TimeoutError):
    """
    Raised when a bounded wait on an asynchronous device step expires.

    Attributes
    ----------
    step : str
        The step that was being waited on (e.g., "adapter", "readback").
    timeout : float
        The timeout, in seconds, that was exceeded.
    """

    def __init__(self, step: str, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout:.3f}s waiting for {step}.")
        self.step = step
        self.timeout = timeout


class NullTensorError(TypeError):
    """
    Raised when an operation receives ``None`` or a non-tensor operand.

    Attributes
    ----------
    operation : str
        The public entry point that rejected the operand.
    position : int
        Zero-based position of the offending operand.
    """

    def __init__(self, operation: str, position: int, got: Optional[type]) -> None:
        got_name = "None" if got is None else got.__name__
        super().__init__(
            f"{operation}: operand {position} must be a Tensor, got {got_name}."
        )
        self.operation = operation
        self.position = position


class TensorReleasedError(RuntimeError):
    """
    Raised when a released tensor (or a view over a released base) is used.
    """

    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation}: tensor has been released.")
        self.operation = operation
