"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/__init__.py.
"""

from .coalescing import KeyResolver, RequestCoalescer
from .contracts import CoalescingPolicy
from .decorators import coalesced
from .metrics import (
    CoalescerMetrics,
    InMemoryCoalescerMetrics,
    NoOpCoalescerMetrics,
    PrometheusCoalescerMetrics,
)
from .threaded import ThreadKeyResolver, ThreadRequestCoalescer

__all__ = [
    "RequestCoalescer",
    "KeyResolver",
    "ThreadRequestCoalescer",
    "ThreadKeyResolver",
    "CoalescingPolicy",
    "coalesced",
    "CoalescerMetrics",
    "NoOpCoalescerMetrics",
    "InMemoryCoalescerMetrics",
    "PrometheusCoalescerMetrics",
]
