"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy for request coalescing.

Supplier exceptions are never wrapped: they reach every waiter verbatim.
"""

from __future__ import annotations

from typing import Any


class CacheMissError(Exception):
    """Base class for errors raised by the library itself."""


class CoalescerConfigError(CacheMissError, ValueError):
    """Raised when settings or backend selection are invalid."""


class ResolveTimeoutError(CacheMissError, TimeoutError):
    """Raised to one waiter whose wait bound elapsed before the fetch finished."""

    def __init__(self, key: Any, timeout_s: float) -> None:
        super().__init__(f"Timed out after {timeout_s:g}s waiting for key {key!r}")
        self.key = key
        self.timeout_s = timeout_s


class ForeignLoopError(CacheMissError, RuntimeError):
    """Raised when a key is in flight on a different event loop than the caller's."""

    def __init__(self, key: Any) -> None:
        super().__init__(
            f"Key {key!r} is being fetched on another event loop; "
            "RequestCoalescer is per event loop, use ThreadRequestCoalescer "
            "to share fetches across threads"
        )
        self.key = key
