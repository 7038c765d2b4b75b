"""
Execution backend contracts for petard.

This module defines the lifecycle states of an accelerator session and the
abstract contract that every execution backend implements so that the
execution context can bring it up, register its operations, and tear it
down without knowing which hardware API sits underneath.

Design notes
------------
- A backend reports readiness through `init()`; failure to initialize is
  never fatal, it only means no operations are registered for that backend.
- Backends register their operations into the operation registry at a
  priority higher than the reference set, so call sites never branch on
  backend identity.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any


class SessionState(Enum):
    """
    Lifecycle states of an accelerator session.

    Attributes
    ----------
    UNINITIALIZED : SessionState
        No acquisition attempted yet.
    INITIALIZING : SessionState
        Adapter/device acquisition in progress.
    READY : SessionState
        Device and queue obtained; dispatch reaches hardware.
    UNAVAILABLE : SessionState
        Acquisition failed or timed out. Terminal for the session.
    TORN_DOWN : SessionState
        Device objects explicitly released. Terminal for the session.
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    UNAVAILABLE = "unavailable"
    TORN_DOWN = "torn_down"

    def is_terminal(self) -> bool:
        """
        Return True if no further transition is possible.
        """
        return self in (SessionState.UNAVAILABLE, SessionState.TORN_DOWN)


class IBackend(ABC):
    """
    Abstract execution backend.

    Subclasses wrap one hardware API (e.g., WebGPU) and expose the four
    lifecycle hooks used by the execution context.

    Attributes
    ----------
    name : str
        Short backend identifier used in logs and registry diagnostics.
    """

    name: str = "backend"

    @abstractmethod
    def init(self) -> bool:
        """
        Bring the backend up.

        Returns
        -------
        bool
            True if the backend is ready to execute operations.
        """
        raise NotImplementedError

    @abstractmethod
    def available(self) -> bool:
        """
        Return True if the backend is currently ready.
        """
        raise NotImplementedError

    @abstractmethod
    def register_ops(self, registry: Any) -> list[str]:
        """
        Install this backend's operations into an operation registry.

        Implementations must register nothing unless `available()` is True.

        Parameters
        ----------
        registry : OperationRegistry
            Registry receiving the implementations.

        Returns
        -------
        list[str]
            Names for which this backend's implementation won.
        """
        raise NotImplementedError

    @abstractmethod
    def cleanup(self) -> None:
        """
        Release every device object held by the backend.
        """
        raise NotImplementedError
