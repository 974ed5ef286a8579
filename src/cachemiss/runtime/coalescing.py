"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Asyncio request coalescing.

`RequestCoalescer` keeps one `KeyResolver` per key with a fetch in flight.
Every caller that arrives while the fetch runs attaches to the same resolver
and receives the same outcome; once the fetch finishes the resolver removes
itself so the next call starts a fresh fetch.

Both gates are `threading.Lock` instances held only around dict and attribute
edits that never await, so they never block the event loop for longer than
those edits and can be taken from task done callbacks.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Awaitable, Callable, Hashable
from typing import Any, Generic, TypeVar, Union

from ..errors import ForeignLoopError, ResolveTimeoutError
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

logger = logging.getLogger("cachemiss.coalescing")

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

FetchFn = Callable[[K], Union[Awaitable[T], T]]


async def _call_fetch(fetch: Callable[[Any], Any], key: Any) -> Any:
    value = fetch(key)
    if inspect.isawaitable(value):
        value = await value
    return value


def _outcome_of(task: asyncio.Task[Any]) -> str:
    if task.cancelled():
        return "cancelled"
    # Retrieving the exception also keeps asyncio from reporting it as
    # unretrieved when every waiter has already left.
    if task.exception() is not None:
        return "failure"
    return "success"


class KeyResolver(Generic[K, T]):
    """
    Coordinates one fetch for one key and broadcasts its outcome.

    The fetch starts on the first `resolve_once` call; later calls join it.
    A resolver never restarts: after completion the registry hands out a new
    instance for the same key.
    """

    def __init__(
        self,
        key: K,
        owner: RequestCoalescer[K, T],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.key = key
        self.loop = loop
        self._owner = owner
        self._task: asyncio.Task[T] | None = None
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        task = self._task
        if task is None:
            return "unstarted"
        if not task.done():
            return "pending"
        return "completed"

    async def resolve_once(self, fetch: FetchFn[K, T]) -> T:
        with self._lock:
            task = self._task
            started = task is None
            if task is None:
                if self.loop is None:
                    self.loop = asyncio.get_running_loop()
                task = asyncio.create_task(self._run(fetch))
                # Registered before any waiter awaits the task, so it runs
                # ahead of every waiter's wakeup.
                task.add_done_callback(self._on_done)
                self._task = task
        self._owner._on_attach(self.key, started=started)
        return await self._owner._wait(self.key, task)

    async def _run(self, fetch: FetchFn[K, T]) -> T:
        try:
            return await _call_fetch(fetch, self.key)
        except Exception as exc:
            logger.debug("Fetch failed for key=%r: %r", self.key, exc)
            raise

    def _on_done(self, task: asyncio.Task[T]) -> None:
        self._owner._on_complete(self.key, _outcome_of(task))
        self._owner._deregister(self.key, self)


class RequestCoalescer(Generic[K, T]):
    """
    Deduplicate identical in-flight requests across asyncio tasks.

    Sharing happens within one event loop. A caller on another loop asking
    for a key that is in flight raises `ForeignLoopError`; code that calls
    from several threads should use `ThreadRequestCoalescer`.
    """

    def __init__(
        self,
        *,
        policy: CoalescingPolicy | None = None,
        metrics: CoalescerMetrics | None = None,
    ) -> None:
        self._resolvers: dict[K, KeyResolver[K, T]] = {}
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

    async def resolve(self, key: K, fetch: FetchFn[K, T]) -> T:
        """
        Return the outcome of `fetch(key)`, sharing it with concurrent callers.

        Only the first caller for a key with nothing in flight starts `fetch`.
        Callers arriving before it completes receive the same value or the
        same exception. A call made after completion starts a new fetch.

        `fetch` may be a coroutine function or a plain callable. A plain
        callable runs on the event loop thread and blocks every other key
        while it runs; wrap blocking work as
        `lambda key: asyncio.to_thread(blocking_fetch, key)`.

        Raises:
            ForeignLoopError: `key` is in flight on a different event loop.
        """
        if not self._policy.enabled:
            safe_incr(self._metrics, BYPASS)
            return await _call_fetch(fetch, key)

        loop = asyncio.get_running_loop()
        with self._lock:
            resolver = self._resolvers.get(key)
            if resolver is None:
                resolver = KeyResolver(key, self, loop)
                self._resolvers[key] = resolver
        if resolver.loop is not None and resolver.loop is not loop:
            raise ForeignLoopError(key)
        return await resolver.resolve_once(fetch)

    def _deregister(self, key: K, resolver: KeyResolver[K, T]) -> None:
        with self._lock:
            removed = self._resolvers.get(key) is resolver
            if removed:
                del self._resolvers[key]
        if removed:
            safe_incr(self._metrics, DEREGISTERED)
        else:
            logger.debug("Skipped stale deregistration for key=%r", key)
            safe_incr(self._metrics, STALE_DEREGISTER)

    async def _wait(self, key: K, task: asyncio.Task[T]) -> T:
        timeout_s = self._policy.wait_timeout_s
        if timeout_s is None:
            if self._policy.shield_waiters:
                return await asyncio.shield(task)
            return await task
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout_s)
        except asyncio.TimeoutError:
            # A fetch that raised TimeoutError itself has completed the task.
            if task.done():
                return task.result()
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
