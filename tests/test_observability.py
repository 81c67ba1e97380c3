from __future__ import annotations

import json
import logging

from shode.util.logging import get_logger
from shode.util.observability import EventLogger, MetricsCollector, create_observability_manager


def test_metrics_collector_snapshot() -> None:
    metrics = MetricsCollector()
    metrics.increment("calls", 2)
    metrics.record_duration("latency", 1.5)
    metrics.record_duration("latency", 0.5)

    snapshot = metrics.snapshot()

    assert snapshot["counters"]["calls"] == 2
    assert snapshot["durations"]["latency"]["count"] == 2.0
    assert snapshot["durations"]["latency"]["avg_s"] == 1.0


def test_event_logger_emits_json(caplog) -> None:
    logger = EventLogger("shode.test.events", context={"run": "r1"})
    caplog.set_level(logging.INFO, logger="shode.test.events")

    logger.log("sample.event", {"value": 42})

    assert caplog.records
    payload = json.loads(caplog.records[-1].message)
    assert payload["event_type"] == "sample.event"
    assert payload["payload"]["value"] == 42
    assert payload["context"] == {"run": "r1"}


def test_event_logger_skips_disabled_levels(caplog) -> None:
    logger = EventLogger("shode.test.quiet")
    caplog.set_level(logging.WARNING, logger="shode.test.quiet")

    logger.log("debug.event", {"value": object()}, level="DEBUG")

    assert not [record for record in caplog.records if record.name == "shode.test.quiet"]


def test_track_duration_records_metric() -> None:
    manager = create_observability_manager()

    with manager.track_duration("block"):
        pass

    assert manager.metrics.snapshot()["durations"]["block"]["count"] == 1.0


def test_get_logger_namespaces_under_package() -> None:
    assert get_logger("Engine").name == "shode.Engine"
    assert get_logger("shode.app").name == "shode.app"


def test_durations_keep_running_totals() -> None:
    metrics = MetricsCollector()
    for _ in range(1000):
        metrics.record_duration("command.process", 0.5)

    stats = metrics.durations["command.process"]

    assert (stats.count, stats.total_s) == (1000, 500.0)
    assert metrics.snapshot()["durations"]["command.process"]["avg_s"] == 0.5
