"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Thread-based request coalescing.

Same contract as `RequestCoalescer`, for callers running on OS threads. The
first caller for a key runs the fetch in its own thread; concurrent callers
block on a shared `concurrent.futures.Future` until it resolves.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Generic, TypeVar

from ..errors import ResolveTimeoutError
from .contracts import CoalescingPolicy
from .metrics import (
    BYPASS,
    DEREGISTERED,
    FETCH_COMPLETED,
    FETCH_STARTED,
    JOINED,
    STALE_DEREGISTER,
    WAIT_TIMEOUT,
    CoalescerMetrics,
    NoOpCoalescerMetrics,
    safe_incr,
)

logger = logging.getLogger("cachemiss.threaded")

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class ThreadKeyResolver(Generic[K, T]):
    """Coordinates one fetch for one key across threads."""

    def __init__(self, key: K, owner: ThreadRequestCoalescer[K, T]) -> None:
        self.key = key
        self._owner = owner
        self._future: Future[T] | None = None
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        with self._lock:
            future = self._future
        if future is None:
            return "unstarted"
        if not future.done():
            return "pending"
        return "completed"

    def resolve_once(self, fetch: Callable[[K], T]) -> T:
        with self._lock:
            future = self._future
            started = future is None
            if future is None:
                future = Future()
                self._future = future
        self._owner._on_attach(self.key, started=started)
        if started:
            self._run(fetch, future)
        return self._owner._wait(self.key, future)

    def _run(self, fetch: Callable[[K], T], future: Future[T]) -> None:
        # The future is resolved only after deregistration, so a caller that
        # has seen the outcome always gets a new resolver on its next call.
        try:
            value = fetch(self.key)
        except BaseException as exc:  # noqa: BLE001
            logger.debug("Fetch failed for key=%r: %r", self.key, exc)
            self._owner._on_complete(self.key, "failure")
            self._owner._deregister(self.key, self)
            future.set_exception(exc)
        else:
            self._owner._on_complete(self.key, "success")
            self._owner._deregister(self.key, self)
            future.set_result(value)


class ThreadRequestCoalescer(Generic[K, T]):
    """Deduplicate identical in-flight requests across threads."""

    def __init__(
        self,
        *,
        policy: CoalescingPolicy | None = None,
        metrics: CoalescerMetrics | None = None,
    ) -> None:
        self._resolvers: dict[K, ThreadKeyResolver[K, T]] = {}
        self._lock = threading.Lock()
        self._policy = policy or CoalescingPolicy()
        self._metrics: CoalescerMetrics = metrics or NoOpCoalescerMetrics()

    @property
    def policy(self) -> CoalescingPolicy:
        return self._policy

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._resolvers)

    def in_flight_keys(self) -> list[K]:
        with self._lock:
            return list(self._resolvers)

    def resolve(self, key: K, fetch: Callable[[K], T]) -> T:
        """
        Return the outcome of `fetch(key)`, sharing it with concurrent callers.

        The calling thread runs `fetch` when nothing is in flight for `key`;
        otherwise it blocks until the running fetch finishes and returns the
        same value (or raises the same exception).
        """
        if not self._policy.enabled:
            safe_incr(self._metrics, BYPASS)
            return fetch(key)

        with self._lock:
            resolver = self._resolvers.get(key)
            if resolver is None:
                resolver = ThreadKeyResolver(key, self)
                self._resolvers[key] = resolver
        return resolver.resolve_once(fetch)

    def _deregister(self, key: K, resolver: ThreadKeyResolver[K, T]) -> None:
        with self._lock:
            if self._resolvers.get(key) is resolver:
                del self._resolvers[key]
                removed = True
            else:
                removed = False
        if removed:
            safe_incr(self._metrics, DEREGISTERED)
        else:
            logger.debug("Skipped stale deregistration for key=%r", key)
            safe_incr(self._metrics, STALE_DEREGISTER)

    def _wait(self, key: K, future: Future[T]) -> T:
        timeout_s = self._policy.wait_timeout_s
        try:
            return future.result(timeout=timeout_s)
        except FutureTimeoutError:
            # A fetch that raised TimeoutError itself has completed the future.
            if future.done():
                return future.result()
            safe_incr(self._metrics, WAIT_TIMEOUT)
            raise ResolveTimeoutError(key, timeout_s) from None

    def _on_attach(self, key: K, *, started: bool) -> None:
        if started:
            logger.debug("Starting fetch for key=%r", key)
            safe_incr(self._metrics, FETCH_STARTED)
        else:
            logger.debug("Joining in-flight fetch for key=%r", key)
            safe_incr(self._metrics, JOINED)

    def _on_complete(self, key: K, outcome: str) -> None:
        logger.debug("Fetch finished for key=%r outcome=%s", key, outcome)
        safe_incr(self._metrics, FETCH_COMPLETED, tags={"outcome": outcome})
