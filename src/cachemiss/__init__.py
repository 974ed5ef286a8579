"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Request coalescing for expensive or rate-limited lookups.

Concurrent callers asking for the same key share one fetch; nothing is kept
once it completes, so the next call fetches again.

Quick start::

    from cachemiss import RequestCoalescer

    coalescer = RequestCoalescer()

    async def load_user(user_id: int) -> dict:
        return await db.fetch_user(user_id)

    user = await coalescer.resolve(42, load_user)
"""

from .errors import (
    CacheMissError,
    CoalescerConfigError,
    ForeignLoopError,
    ResolveTimeoutError,
)
from .factory import create_coalescer_from_env, create_metrics
from .runtime import (
    CoalescerMetrics,
    CoalescingPolicy,
    InMemoryCoalescerMetrics,
    KeyResolver,
    NoOpCoalescerMetrics,
    PrometheusCoalescerMetrics,
    RequestCoalescer,
    ThreadKeyResolver,
    ThreadRequestCoalescer,
    coalesced,
)
from .settings import CoalescerSettings

__all__ = [
    "RequestCoalescer",
    "KeyResolver",
    "ThreadRequestCoalescer",
    "ThreadKeyResolver",
    "CoalescingPolicy",
    "CoalescerSettings",
    "coalesced",
    "create_coalescer_from_env",
    "create_metrics",
    "CoalescerMetrics",
    "NoOpCoalescerMetrics",
    "InMemoryCoalescerMetrics",
    "PrometheusCoalescerMetrics",
    "CacheMissError",
    "CoalescerConfigError",
    "ResolveTimeoutError",
    "ForeignLoopError",
]
