#!/usr/bin/env python3
"""
Coalescing benchmark utility for fetch-count/latency characterization.

Usage examples:
  PYTHONPATH=src python scripts/coalescing_benchmark.py --mode asyncio
  PYTHONPATH=src python scripts/coalescing_benchmark.py --mode thread --keys 200 --callers-per-key 8
"""

from __future__ import annotations

import argparse
import asyncio
import statistics
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from cachemiss import (
    CoalescingPolicy,
    InMemoryCoalescerMetrics,
    RequestCoalescer,
    ThreadRequestCoalescer,
)


def _percentile(values: list[float], q: float) -> float:
    if not values:
        return 0.0
    return sorted(values)[int(q * (len(values) - 1))]


async def run_asyncio(
    *, keys: int, callers_per_key: int, latency_ms: float, policy: CoalescingPolicy
) -> tuple[list[float], InMemoryCoalescerMetrics]:
    metrics = InMemoryCoalescerMetrics()
    coalescer = RequestCoalescer(policy=policy, metrics=metrics)
    latencies: list[float] = []

    async def fetch(key: int) -> str:
        await asyncio.sleep(latency_ms / 1000.0)
        return f"value-{key}"

    async def caller(key: int) -> None:
        started = time.perf_counter()
        await coalescer.resolve(key, fetch)
        latencies.append(time.perf_counter() - started)

    await asyncio.gather(
        *(caller(key) for key in range(keys) for _ in range(callers_per_key))
    )
    return latencies, metrics


def run_thread(
    *,
    keys: int,
    callers_per_key: int,
    latency_ms: float,
    policy: CoalescingPolicy,
    workers: int,
) -> tuple[list[float], InMemoryCoalescerMetrics]:
    metrics = InMemoryCoalescerMetrics()
    coalescer = ThreadRequestCoalescer(policy=policy, metrics=metrics)
    latencies: list[float] = []
    lock = threading.Lock()

    def fetch(key: int) -> str:
        time.sleep(latency_ms / 1000.0)
        return f"value-{key}"

    def caller(key: int) -> None:
        started = time.perf_counter()
        coalescer.resolve(key, fetch)
        with lock:
            latencies.append(time.perf_counter() - started)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [
            pool.submit(caller, key)
            for key in range(keys)
            for _ in range(callers_per_key)
        ]
        for future in futures:
            future.result()
    return latencies, metrics


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Coalescing benchmark utility")
    parser.add_argument("--mode", choices=("asyncio", "thread"), default="asyncio")
    parser.add_argument("--keys", type=int, default=1000)
    parser.add_argument("--callers-per-key", type=int, default=4)
    parser.add_argument("--latency-ms", type=float, default=10.0)
    parser.add_argument("--workers", type=int, default=64)
    parser.add_argument("--disable-coalescing", action="store_true")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    policy = CoalescingPolicy(enabled=not args.disable_coalescing)

    started = time.time()
    if args.mode == "asyncio":
        latencies, metrics = asyncio.run(
            run_asyncio(
                keys=args.keys,
                callers_per_key=args.callers_per_key,
                latency_ms=args.latency_ms,
                policy=policy,
            )
        )
    else:
        latencies, metrics = run_thread(
            keys=args.keys,
            callers_per_key=args.callers_per_key,
            latency_ms=args.latency_ms,
            policy=policy,
            workers=args.workers,
        )
    elapsed = time.time() - started

    counters = metrics.snapshot()
    fetches = counters.get("coalescer_fetch_started_total", 0) or counters.get(
        "coalescer_bypass_total", 0
    )
    p50 = statistics.median(latencies) if latencies else 0.0

    print(f"mode={args.mode}")
    print(f"keys={args.keys}")
    print(f"callers_per_key={args.callers_per_key}")
    print(f"coalescing={'off' if args.disable_coalescing else 'on'}")
    print(f"fetches={fetches}")
    print(f"joined={counters.get('coalescer_joined_total', 0)}")
    print(f"elapsed_s={elapsed:.3f}")
    print(f"call_latency_p50_ms={p50 * 1000:.2f}")
    print(f"call_latency_p95_ms={_percentile(latencies, 0.95) * 1000:.2f}")


if __name__ == "__main__":
    main()
