"""
WebGPU execution backend.

Ties a `WebGPUSession` and its `WebGPUOperations` to the `IBackend`
lifecycle used by the execution context.
"""

from __future__ import annotations

import logging
from typing import Optional

from ....domain._backend import IBackend
from ..._config import AcceleratorConfig
from ...ops._reference import ReferenceOperations
from ...registry._operation_registry import OperationRegistry
from ._ops import ACCELERATED_OPS, WebGPUOperations
from ._session import WebGPUSession

logger = logging.getLogger(__name__)


class WebGPUBackend(IBackend):
    """
    Accelerator backend registering WebGPU kernels above the reference set.

    Parameters
    ----------
    config : Optional[AcceleratorConfig], optional
        Priority, timeouts, and adapter preference.
    session : Optional[WebGPUSession], optional
        Session to use. Defaults to a new session built from `config`.
    reference : Optional[ReferenceOperations], optional
        Fallback operation set shared with the execution context.
    """

    name = "webgpu"

    def __init__(
        self,
        config: Optional[AcceleratorConfig] = None,
        *,
        session: Optional[WebGPUSession] = None,
        reference: Optional[ReferenceOperations] = None,
    ) -> None:
        self.config = config if config is not None else AcceleratorConfig()
        self.session = session if session is not None else WebGPUSession(self.config)
        self.operations = WebGPUOperations(self.session, reference)

    def init(self) -> bool:
        return self.session.open()

    def available(self) -> bool:
        return self.session.ready

    def register_ops(self, registry: OperationRegistry) -> list[str]:
        if not self.available():
            return []
        won = registry.register_set(
            self.operations, ACCELERATED_OPS, priority=self.config.priority
        )
        logger.info(
            "Registered WebGPU operations at priority %d: %s",
            self.config.priority,
            ", ".join(won) or "(none)",
        )
        return won

    def cleanup(self) -> None:
        self.session.close()
