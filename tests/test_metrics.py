from __future__ import annotations

import pytest

from triage.metrics import (
    DEFAULT_METRIC_DEFINITIONS,
    FETCH_DURATION_SECONDS,
    TRANSFERS_TOTAL,
    MetricsRegistry,
    register_default_metrics,
)


def test_default_metrics_are_registered():
    registry = register_default_metrics(MetricsRegistry())

    names = {metric.name for metric in registry.metrics()}
    assert names == {definition.name for definition in DEFAULT_METRIC_DEFINITIONS}


def test_counter_labels_are_enforced():
    registry = register_default_metrics(MetricsRegistry())
    counter = registry.counter(TRANSFERS_TOTAL)

    counter.inc(labels={"gesture": "drag"})
    counter.inc(2, labels={"gesture": "drag"})

    assert counter.value(labels={"gesture": "drag"}) == 3
    with pytest.raises(ValueError):
        counter.inc()
    with pytest.raises(TypeError):
        registry.distribution(TRANSFERS_TOTAL)


def test_time_distribution_records_duration():
    registry = MetricsRegistry()

    with registry.time_distribution(FETCH_DURATION_SECONDS, labels={"target": "mine"}):
        pass

    stats = registry.distribution(FETCH_DURATION_SECONDS).stats(labels={"target": "mine"})
    assert stats.count == 1
    assert registry.snapshot()[FETCH_DURATION_SECONDS][("mine",)]["count"] == 1.0
