"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Decorator that routes calls to a function through a coalescer.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable, Hashable
from typing import Any

from .coalescing import RequestCoalescer
from .threaded import ThreadRequestCoalescer

KeyFn = Callable[..., Hashable]


def _default_key(*args: Any, **kwargs: Any) -> Hashable:
    return (args, tuple(sorted(kwargs.items())))


def coalesced(
    coalescer: RequestCoalescer | ThreadRequestCoalescer,
    *,
    key: KeyFn | None = None,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Share one invocation of the wrapped function among concurrent callers.

    Args:
        coalescer: Registry used to deduplicate calls. An async function
            needs a `RequestCoalescer`; a plain function needs a
            `ThreadRequestCoalescer`.
        key: Builds the dedup key from the call arguments. Defaults to the
            positional arguments plus sorted keyword arguments, which must be
            hashable.

    Keys are scoped to the wrapped function, so two functions decorated
    with the same coalescer never share a result.
    """
    key_fn = key or _default_key

    def decorate(fn: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(fn):
            if not isinstance(coalescer, RequestCoalescer):
                raise TypeError("Async functions require a RequestCoalescer")

            @functools.wraps(fn)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                return await coalescer.resolve(
                    (fn, key_fn(*args, **kwargs)),
                    lambda _key: fn(*args, **kwargs),
                )

            return async_wrapper

        if not isinstance(coalescer, ThreadRequestCoalescer):
            raise TypeError("Sync functions require a ThreadRequestCoalescer")

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return coalescer.resolve(
                (fn, key_fn(*args, **kwargs)),
                lambda _key: fn(*args, **kwargs),
            )

        return wrapper

    return decorate
