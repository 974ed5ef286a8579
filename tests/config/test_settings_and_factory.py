from __future__ import annotations

import pytest

from cachemiss import (
    CoalescerConfigError,
    CoalescerSettings,
    CoalescingPolicy,
    InMemoryCoalescerMetrics,
    NoOpCoalescerMetrics,
    PrometheusCoalescerMetrics,
    RequestCoalescer,
    ThreadRequestCoalescer,
    create_coalescer_from_env,
    create_metrics,
)

_ENV_VARS = (
    "CACHEMISS_COALESCING_ENABLED",
    "CACHEMISS_SHIELD_WAITERS",
    "CACHEMISS_WAIT_TIMEOUT_S",
    "CACHEMISS_CONCURRENCY",
    "CACHEMISS_METRICS_BACKEND",
    "CACHEMISS_METRICS_NAMESPACE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_settings_defaults_from_empty_env():
    settings = CoalescerSettings.from_env()
    assert settings == CoalescerSettings()
    assert settings.to_policy() == CoalescingPolicy()


def test_settings_read_every_variable(monkeypatch):
    monkeypatch.setenv("CACHEMISS_COALESCING_ENABLED", "off")
    monkeypatch.setenv("CACHEMISS_SHIELD_WAITERS", "No")
    monkeypatch.setenv("CACHEMISS_WAIT_TIMEOUT_S", "2.5")
    monkeypatch.setenv("CACHEMISS_CONCURRENCY", "THREAD")
    monkeypatch.setenv("CACHEMISS_METRICS_BACKEND", "inmemory")
    monkeypatch.setenv("CACHEMISS_METRICS_NAMESPACE", "svc")

    settings = CoalescerSettings.from_env()

    assert settings.concurrency == "thread"
    assert settings.metrics_backend == "inmemory"
    assert settings.metrics_namespace == "svc"
    assert settings.to_policy() == CoalescingPolicy(
        enabled=False, shield_waiters=False, wait_timeout_s=2.5
    )


@pytest.mark.parametrize(
    ("name", "value", "match"),
    [
        ("CACHEMISS_COALESCING_ENABLED", "maybe", "Invalid boolean"),
        ("CACHEMISS_WAIT_TIMEOUT_S", "soon", "Invalid number"),
        ("CACHEMISS_WAIT_TIMEOUT_S", "0", "must be positive"),
        ("CACHEMISS_CONCURRENCY", "gevent", "Unknown CACHEMISS_CONCURRENCY"),
        ("CACHEMISS_METRICS_BACKEND", "statsd", "Unknown CACHEMISS_METRICS_BACKEND"),
    ],
)
def test_invalid_settings_raise_config_error(monkeypatch, name, value, match):
    monkeypatch.setenv(name, value)
    with pytest.raises(CoalescerConfigError, match=match):
        CoalescerSettings.from_env()


def test_config_error_is_a_value_error():
    assert issubclass(CoalescerConfigError, ValueError)


def test_factory_defaults_to_asyncio_coalescer():
    coalescer = create_coalescer_from_env()
    assert isinstance(coalescer, RequestCoalescer)
    assert coalescer.policy == CoalescingPolicy()
    assert isinstance(coalescer._metrics, NoOpCoalescerMetrics)  # noqa: SLF001


def test_factory_builds_thread_coalescer(monkeypatch):
    monkeypatch.setenv("CACHEMISS_CONCURRENCY", "thread")
    monkeypatch.setenv("CACHEMISS_WAIT_TIMEOUT_S", "1")
    coalescer = create_coalescer_from_env()
    assert isinstance(coalescer, ThreadRequestCoalescer)
    assert coalescer.policy.wait_timeout_s == 1.0


def test_factory_prefers_injected_metrics(monkeypatch):
    monkeypatch.setenv("CACHEMISS_METRICS_BACKEND", "inmemory")
    injected = InMemoryCoalescerMetrics()
    coalescer = create_coalescer_from_env(metrics=injected)
    assert coalescer._metrics is injected  # noqa: SLF001


def test_factory_accepts_explicit_settings():
    coalescer = create_coalescer_from_env(
        settings=CoalescerSettings(concurrency="thread", coalescing_enabled=False)
    )
    assert isinstance(coalescer, ThreadRequestCoalescer)
    assert coalescer.policy.enabled is False


def test_factory_rejects_unknown_concurrency():
    with pytest.raises(CoalescerConfigError, match="Unknown concurrency mode"):
        create_coalescer_from_env(settings=CoalescerSettings(concurrency="fibers"))


def test_create_metrics_backends():
    assert isinstance(create_metrics(CoalescerSettings()), NoOpCoalescerMetrics)
    assert isinstance(
        create_metrics(CoalescerSettings(metrics_backend="inmemory")),
        InMemoryCoalescerMetrics,
    )
    with pytest.raises(CoalescerConfigError, match="Unknown metrics backend"):
        create_metrics(CoalescerSettings(metrics_backend="statsd"))


def test_create_metrics_prometheus_backend():
    pytest.importorskip("prometheus_client")
    metrics = create_metrics(
        CoalescerSettings(metrics_backend="prometheus", metrics_namespace="factorytest")
    )
    assert isinstance(metrics, PrometheusCoalescerMetrics)
