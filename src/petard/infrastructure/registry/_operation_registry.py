"""
Priority-based operation registry and the resolved dispatch table.

Every forward operation is registered by name together with an integer
priority. The reference set registers at priority 0; an accelerator backend
registers the names it supports at a higher priority once its session is
ready. Resolution happens once, when the execution context builds an
`OperationTable`; call sites then read attributes off the table instead of
hashing operation names on every call.

Replacement rule
----------------
A registration installs its implementation only if the name is unregistered
or the new priority is strictly greater than the stored one. Ties keep the
incumbent, so the outcome does not depend on registration order between
equal-priority backends.
"""

from __future__ import annotations

import logging
from collections import namedtuple
from dataclasses import dataclass, fields
from typing import Any, Callable, Dict, Iterable, Optional

from ...domain._errors import ConfigurationError
from ...domain._operations import OPERATION_NAMES

logger = logging.getLogger(__name__)

RegistryEntry = namedtuple("RegistryEntry", ["impl", "priority"])
"""Currently winning (implementation, priority) pair for one name."""


@dataclass(frozen=True)
class OperationTable:
    """
    Concrete function table resolved from an `OperationRegistry`.

    Each attribute is the winning implementation for the operation of the
    same name at the time the table was built.
    """

    add: Callable[..., Any]
    sub: Callable[..., Any]
    mul: Callable[..., Any]
    matmul: Callable[..., Any]
    transpose2d: Callable[..., Any]
    relu: Callable[..., Any]
    sigmoid: Callable[..., Any]
    tanh: Callable[..., Any]
    softmax: Callable[..., Any]
    mse: Callable[..., Any]
    cross_entropy: Callable[..., Any]
    binary_cross_entropy: Callable[..., Any]

    def get(self, name: str) -> Callable[..., Any]:
        """
        Return the implementation for `name`.

        Raises
        ------
        ConfigurationError
            If `name` is not part of the table.
        """
        if name not in _TABLE_FIELDS:
            raise ConfigurationError(name, "operation")
        return getattr(self, name)


_TABLE_FIELDS = frozenset(f.name for f in fields(OperationTable))


class OperationRegistry:
    """
    Name -> (implementation, priority) registry for forward operations.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RegistryEntry] = {}

    def register(self, name: str, impl: Callable[..., Any], priority: int = 0) -> bool:
        """
        Offer `impl` as the implementation of `name` at `priority`.

        Parameters
        ----------
        name : str
            Operation name.
        impl : Callable
            Forward implementation.
        priority : int, optional
            Higher wins. Defaults to 0.

        Returns
        -------
        bool
            True if `impl` is now the winning implementation.

        Raises
        ------
        ValueError
            If `name` is empty.
        TypeError
            If `impl` is not callable.
        """
        if not name:
            raise ValueError("operation name must be a non-empty string")
        if not callable(impl):
            raise TypeError(f"implementation for '{name}' must be callable")

        current = self._entries.get(name)
        if current is not None and priority <= current.priority:
            logger.debug(
                "Keeping '%s' at priority %d (offered %d)",
                name,
                current.priority,
                priority,
            )
            return False

        self._entries[name] = RegistryEntry(impl, int(priority))
        return True

    def register_set(
        self, op_set: object, names: Iterable[str], priority: int = 0
    ) -> list[str]:
        """
        Register the bound methods `op_set.<name>` for every name.

        Returns
        -------
        list[str]
            Names for which `op_set` won.
        """
        won = []
        for name in names:
            if self.register(name, getattr(op_set, name), priority):
                won.append(name)
        return won

    def resolve(self, name: str) -> Optional[Callable[..., Any]]:
        """
        Return the winning implementation for `name`, or None if unregistered.
        """
        entry = self._entries.get(name)
        return None if entry is None else entry.impl

    def require(self, name: str) -> Callable[..., Any]:
        """
        Return the winning implementation for `name`.

        Raises
        ------
        ConfigurationError
            If `name` is unregistered.
        """
        impl = self.resolve(name)
        if impl is None:
            raise ConfigurationError(name, "operation")
        return impl

    def priority_of(self, name: str) -> Optional[int]:
        entry = self._entries.get(name)
        return None if entry is None else entry.priority

    def names(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def build_table(self) -> OperationTable:
        """
        Resolve every core operation into an `OperationTable`.

        Raises
        ------
        ConfigurationError
            If any core operation is unregistered.
        """
        return OperationTable(**{name: self.require(name) for name in OPERATION_NAMES})
