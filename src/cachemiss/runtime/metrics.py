"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for coalescer observability.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from threading import Lock
from typing import Protocol

logger = logging.getLogger("cachemiss.metrics")

FETCH_STARTED = "coalescer_fetch_started_total"
JOINED = "coalescer_joined_total"
FETCH_COMPLETED = "coalescer_fetch_completed_total"
DEREGISTERED = "coalescer_deregistered_total"
STALE_DEREGISTER = "coalescer_stale_deregister_total"
WAIT_TIMEOUT = "coalescer_wait_timeout_total"
BYPASS = "coalescer_bypass_total"


class CoalescerMetrics(Protocol):
    """Minimal metrics interface for coalescer instrumentation."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""


class NoOpCoalescerMetrics:
    """Default metrics sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = name
        _ = value
        _ = tags


class InMemoryCoalescerMetrics:
    """Process-local counters, handy for tests and debugging."""

    def __init__(self) -> None:
        self._counters: dict[tuple[str, tuple[tuple[str, str], ...]], int] = {}
        self._lock = Lock()

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        key = (name, tuple(sorted((tags or {}).items())))
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def get(self, name: str, **tags: str) -> int:
        """Return one counter value; unknown counters read as zero."""
        key = (name, tuple(sorted(tags.items())))
        with self._lock:
            return self._counters.get(key, 0)

    def snapshot(self) -> dict[str, int]:
        """Return all counters summed across tag sets."""
        out: dict[str, int] = {}
        with self._lock:
            for (name, _tags), value in self._counters.items():
                out[name] = out.get(name, 0) + value
        return out


class PrometheusCoalescerMetrics:
    """
    Prometheus-backed coalescer metrics adapter.

    Requires `prometheus_client` package.
    """

    def __init__(self, *, namespace: str = "cachemiss", registry: object | None = None) -> None:
        try:
            from prometheus_client import Counter
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "PrometheusCoalescerMetrics requires `prometheus_client` to be installed."
            ) from exc

        self._Counter = Counter
        self._namespace = namespace
        self._registry = registry
        self._counters: dict[str, object] = {}
        self._lock = Lock()

    def _counter(self, name: str, label_names: tuple[str, ...]):
        key = f"{name}|{','.join(label_names)}"
        with self._lock:
            counter = self._counters.get(key)
            if counter is None:
                kwargs = {}
                if self._registry is not None:
                    kwargs["registry"] = self._registry
                counter = self._Counter(
                    name=name,
                    documentation=f"cachemiss coalescer metric {name}",
                    namespace=self._namespace,
                    labelnames=label_names,
                    **kwargs,
                )
                self._counters[key] = counter
        return counter

    def incr(self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None) -> None:
        label_names = tuple(sorted((tags or {}).keys()))
        counter = self._counter(name, label_names)
        if label_names:
            label_values = [str((tags or {})[label]) for label in label_names]
            counter.labels(*label_values).inc(value)
        else:
            counter.inc(value)


def safe_incr(
    metrics: CoalescerMetrics,
    name: str,
    value: int = 1,
    *,
    tags: Mapping[str, str] | None = None,
) -> None:
    """Increment a counter without letting a broken sink fail resolution."""
    try:
        metrics.incr(name, value, tags=tags)
    except Exception:  # noqa: BLE001
        logger.exception("Coalescer metrics sink failed (metric=%s)", name)
