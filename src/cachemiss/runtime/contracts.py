"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Typed runtime policies for request coalescing.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CoalescingPolicy:
    """In-flight request deduplication controls."""

    enabled: bool = True
    shield_waiters: bool = True
    wait_timeout_s: float | None = None
