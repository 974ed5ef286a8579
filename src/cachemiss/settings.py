"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Coalescer settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import CoalescerConfigError
from .runtime.contracts import CoalescingPolicy

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")

CONCURRENCY_MODES = ("asyncio", "thread")
METRICS_BACKENDS = ("noop", "inmemory", "prometheus")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise CoalescerConfigError(f"Invalid boolean for {name}: {raw!r}")


def _env_timeout(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as exc:
        raise CoalescerConfigError(f"Invalid number for {name}: {raw!r}") from exc
    if value <= 0:
        raise CoalescerConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = (os.getenv(name) or default).strip().lower() or default
    if value not in choices:
        raise CoalescerConfigError(
            f"Unknown {name}: {value} (expected one of {', '.join(choices)})"
        )
    return value


@dataclass(frozen=True, slots=True)
class CoalescerSettings:
    """Explicit settings used to build coalescers."""

    coalescing_enabled: bool = True
    shield_waiters: bool = True
    wait_timeout_s: float | None = None
    concurrency: str = "asyncio"
    metrics_backend: str = "noop"
    metrics_namespace: str = "cachemiss"

    @staticmethod
    def from_env() -> "CoalescerSettings":
        """Load settings from `CACHEMISS_*` environment variables."""
        return CoalescerSettings(
            coalescing_enabled=_env_bool("CACHEMISS_COALESCING_ENABLED", True),
            shield_waiters=_env_bool("CACHEMISS_SHIELD_WAITERS", True),
            wait_timeout_s=_env_timeout("CACHEMISS_WAIT_TIMEOUT_S"),
            concurrency=_env_choice(
                "CACHEMISS_CONCURRENCY", "asyncio", CONCURRENCY_MODES
            ),
            metrics_backend=_env_choice(
                "CACHEMISS_METRICS_BACKEND", "noop", METRICS_BACKENDS
            ),
            metrics_namespace=(
                os.getenv("CACHEMISS_METRICS_NAMESPACE", "cachemiss").strip()
                or "cachemiss"
            ),
        )

    def to_policy(self) -> CoalescingPolicy:
        """Adapt settings into the runtime-level policy object."""
        return CoalescingPolicy(
            enabled=self.coalescing_enabled,
            shield_waiters=self.shield_waiters,
            wait_timeout_s=self.wait_timeout_s,
        )
