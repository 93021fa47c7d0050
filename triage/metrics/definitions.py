"""Metric definitions used by the sync engine."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class MetricDefinition:
    """Describe a metric that should exist in the registry."""

    name: str
    metric_type: str
    description: str
    label_names: Tuple[str, ...] = ()


TRANSFERS_TOTAL = "triage_transfers_total"
TRANSFER_OUTCOMES_TOTAL = "triage_transfer_outcomes_total"
POLLS_TOTAL = "triage_polls_total"
POLLS_SKIPPED_TOTAL = "triage_polls_skipped_total"
STALE_RESPONSES_TOTAL = "triage_stale_responses_total"
FETCH_DURATION_SECONDS = "triage_fetch_duration_seconds"

DEFAULT_METRIC_DEFINITIONS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name=TRANSFERS_TOTAL,
        metric_type="counter",
        description="Assignment transfers started, by gesture.",
        label_names=("gesture",),
    ),
    MetricDefinition(
        name=TRANSFER_OUTCOMES_TOTAL,
        metric_type="counter",
        description="Settled transfers by final state and failure kind.",
        label_names=("state", "reason"),
    ),
    MetricDefinition(
        name=POLLS_TOTAL,
        metric_type="counter",
        description="Background poll jobs dispatched, by view.",
        label_names=("view",),
    ),
    MetricDefinition(
        name=POLLS_SKIPPED_TOTAL,
        metric_type="counter",
        description="Poll ticks dropped because of an edit or an outstanding request.",
        label_names=("view", "reason"),
    ),
    MetricDefinition(
        name=STALE_RESPONSES_TOTAL,
        metric_type="counter",
        description="Server snapshots discarded because newer local state exists.",
        label_names=("queue",),
    ),
    MetricDefinition(
        name=FETCH_DURATION_SECONDS,
        metric_type="distribution",
        description="Latency of queue and detail fetches in seconds.",
        label_names=("target",),
    ),
)
