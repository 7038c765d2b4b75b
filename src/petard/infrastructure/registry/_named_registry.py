"""
String-keyed registries for gradient rules, layers, losses, and optimizers.

These registries hold one value per name with last-write-wins semantics.
Priority-based resolution is only needed for forward operations, which use
`OperationRegistry` instead.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Iterator, Optional

from typing_extensions import TypeVar

from ...domain._errors import ConfigurationError

V = TypeVar("V")


class NamedRegistry(Generic[V]):
    """
    Mapping from names to registered values.

    Parameters
    ----------
    kind : str
        Human-readable registry kind used in `ConfigurationError` messages
        (e.g., "gradient rule").
    """

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self._entries: Dict[str, V] = {}

    def register(self, name: str, value: V) -> None:
        """
        Register `value` under `name`, replacing any previous entry.

        Raises
        ------
        ValueError
            If `name` is empty.
        """
        if not name:
            raise ValueError(f"{self.kind} name must be a non-empty string")
        self._entries[name] = value

    def resolve(self, name: str) -> Optional[V]:
        """
        Return the value registered under `name`, or None.
        """
        return self._entries.get(name)

    def require(self, name: str) -> V:
        """
        Return the value registered under `name`.

        Raises
        ------
        ConfigurationError
            If nothing is registered under `name`.
        """
        try:
            return self._entries[name]
        except KeyError:
            raise ConfigurationError(name, self.kind) from None

    def names(self) -> list[str]:
        return sorted(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class OptimizerEntry:
    """
    Functions implementing one optimizer algorithm.

    Attributes
    ----------
    init_state : Callable[[list, dict], Any]
        Builds per-optimizer state from the parameter list and hyperparameters.
    step : Callable[[list, Any, dict], None]
        Applies one update in place.
    free_state : Callable[[Any], None]
        Releases the state built by `init_state`.
    """

    init_state: Callable[..., Any]
    step: Callable[..., None]
    free_state: Callable[[Any], None]
