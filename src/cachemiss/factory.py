"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for building coalescers from environment variables.
"""

from __future__ import annotations

from .errors import CoalescerConfigError
from .runtime.coalescing import RequestCoalescer
from .runtime.metrics import (
    CoalescerMetrics,
    InMemoryCoalescerMetrics,
    NoOpCoalescerMetrics,
    PrometheusCoalescerMetrics,
)
from .runtime.threaded import ThreadRequestCoalescer
from .settings import CoalescerSettings


def create_metrics(settings: CoalescerSettings) -> CoalescerMetrics:
    """Build the metrics sink named by `settings.metrics_backend`."""
    backend = settings.metrics_backend
    if backend == "noop":
        return NoOpCoalescerMetrics()
    if backend == "inmemory":
        return InMemoryCoalescerMetrics()
    if backend == "prometheus":
        return PrometheusCoalescerMetrics(namespace=settings.metrics_namespace)
    raise CoalescerConfigError(f"Unknown metrics backend: {backend}")


def create_coalescer_from_env(
    *,
    settings: CoalescerSettings | None = None,
    metrics: CoalescerMetrics | None = None,
) -> RequestCoalescer | ThreadRequestCoalescer:
    """
    Create a coalescer from `CACHEMISS_*` environment variables.

    Concurrency modes:
    - `asyncio` (default): `RequestCoalescer`
    - `thread`: `ThreadRequestCoalescer`

    An explicit `metrics` sink wins over `CACHEMISS_METRICS_BACKEND`.
    """
    settings = settings or CoalescerSettings.from_env()
    policy = settings.to_policy()
    sink = metrics if metrics is not None else create_metrics(settings)

    if settings.concurrency == "asyncio":
        return RequestCoalescer(policy=policy, metrics=sink)
    if settings.concurrency == "thread":
        return ThreadRequestCoalescer(policy=policy, metrics=sink)
    raise CoalescerConfigError(f"Unknown concurrency mode: {settings.concurrency}")
