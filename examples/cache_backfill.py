"""
cache_backfill.py — Coalesce cache misses against a slow backing store.

Twenty concurrent requests for the same product miss the cache at once; only
one of them reaches the backing store, the rest share its answer.

Usage:
    PYTHONPATH=src python examples/cache_backfill.py
"""

import asyncio
import logging

from cachemiss import InMemoryCoalescerMetrics, RequestCoalescer

cache: dict[str, str] = {}
store_hits = 0


async def load_product(sku: str) -> str:
    global store_hits
    if sku in cache:
        return cache[sku]
    store_hits += 1
    await asyncio.sleep(0.2)
    cache[sku] = f"product:{sku}"
    return cache[sku]


async def main() -> None:
    metrics = InMemoryCoalescerMetrics()
    coalescer = RequestCoalescer(metrics=metrics)

    results = await asyncio.gather(
        *(coalescer.resolve("sku-42", load_product) for _ in range(20))
    )
    print(f"results={set(results)}")
    print(f"store_hits={store_hits}")
    print(f"metrics={metrics.snapshot()}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.DEBUG)
    asyncio.run(main())
