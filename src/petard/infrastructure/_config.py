"""
Accelerator tuning knobs.

`AcceleratorConfig` carries the few values the WebGPU backend needs: whether
to try the accelerator at all, the dispatcher priority it registers at, the
bounded-wait timeouts, and the adapter power preference.

Environment variables
---------------------
PETARD_ACCELERATOR : str, optional
    ``webgpu`` (default) to try the accelerator, ``none`` to stay on the
    reference path.
PETARD_WEBGPU_PRIORITY : int, optional
    Dispatcher priority for accelerated operations. Must exceed 0.
PETARD_WEBGPU_INIT_TIMEOUT : float, optional
    Seconds to wait for adapter and device acquisition.
PETARD_WEBGPU_READBACK_TIMEOUT : float, optional
    Seconds to wait for a result buffer to become host-visible.
PETARD_WEBGPU_POWER_PREFERENCE : str, optional
    ``high-performance`` or ``low-power``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

_POWER_PREFERENCES = ("high-performance", "low-power")
_ACCELERATOR_CHOICES = ("webgpu", "none")


@dataclass(frozen=True)
class AcceleratorConfig:
    """
    Immutable accelerator settings.

    Attributes
    ----------
    enabled : bool
        Whether the default execution context attempts WebGPU bring-up.
    priority : int
        Dispatcher priority for accelerated operations. Must be > 0 so it
        overrides the reference set.
    init_timeout : float
        Seconds allowed for adapter/device acquisition.
    readback_timeout : float
        Seconds allowed for mapping a staging buffer after submission.
    power_preference : str
        Adapter power preference passed to the first adapter request.

    Raises
    ------
    ValueError
        On construction, if any value is out of range.
    """

    enabled: bool = True
    priority: int = 10
    init_timeout: float = 10.0
    readback_timeout: float = 30.0
    power_preference: str = "high-performance"

    def __post_init__(self) -> None:
        if int(self.priority) <= 0:
            raise ValueError(f"priority must be > 0, got {self.priority}")
        if self.init_timeout <= 0.0:
            raise ValueError(f"init_timeout must be > 0, got {self.init_timeout}")
        if self.readback_timeout <= 0.0:
            raise ValueError(
                f"readback_timeout must be > 0, got {self.readback_timeout}"
            )
        if self.power_preference not in _POWER_PREFERENCES:
            raise ValueError(
                f"power_preference must be one of {_POWER_PREFERENCES}, "
                f"got {self.power_preference!r}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AcceleratorConfig":
        """
        Build a config from ``PETARD_*`` environment variables.

        Parameters
        ----------
        environ : Optional[Mapping[str, str]], optional
            Mapping to read instead of `os.environ` (used by tests).

        Raises
        ------
        ValueError
            If a variable holds an unparsable or out-of-range value.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        accelerator = env.get("PETARD_ACCELERATOR", "webgpu").strip().lower()
        if accelerator not in _ACCELERATOR_CHOICES:
            raise ValueError(
                f"PETARD_ACCELERATOR must be one of {_ACCELERATOR_CHOICES}, "
                f"got {accelerator!r}"
            )

        def _number(key: str, default, cast):
            raw = env.get(key)
            if raw is None or raw.strip() == "":
                return default
            try:
                return cast(raw)
            except ValueError:
                raise ValueError(f"{key} must be a {cast.__name__}, got {raw!r}") from None

        return cls(
            enabled=accelerator == "webgpu",
            priority=_number("PETARD_WEBGPU_PRIORITY", defaults.priority, int),
            init_timeout=_number(
                "PETARD_WEBGPU_INIT_TIMEOUT", defaults.init_timeout, float
            ),
            readback_timeout=_number(
                "PETARD_WEBGPU_READBACK_TIMEOUT", defaults.readback_timeout, float
            ),
            power_preference=env.get(
                "PETARD_WEBGPU_POWER_PREFERENCE", defaults.power_preference
            ).strip(),
        )
