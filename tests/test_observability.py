from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from taxhelper.logger import JsonFormatter, log_receipt_event
from taxhelper.metrics import JsonlMetricsSink, MetricsCollector


def test_json_formatter_includes_receipt_context() -> None:
    logger = logging.getLogger("test-observability")
    record = logger.makeRecord(
        name=logger.name,
        level=logging.INFO,
        fn="test",
        lno=1,
        msg="validated %s",
        args=("領収書",),
        exc_info=None,
        extra={
            "receipt_id": "r-1",
            "stage": "intake",
            "status": "completed",
            "latency_ms": 12,
            "outcome": "clean",
        },
    )
    payload = json.loads(JsonFormatter().format(record))
    assert payload["message"] == "validated 領収書"
    assert payload["receipt_id"] == "r-1"
    assert payload["stage"] == "intake"
    assert payload["status"] == "completed"
    assert payload["latency_ms"] == 12
    assert payload["outcome"] == "clean"
    assert payload["level"] == "INFO"


def test_json_formatter_omits_absent_context() -> None:
    record = logging.getLogger("test-observability").makeRecord(
        "test-observability", logging.WARNING, "test", 1, "plain", (), None
    )
    payload = json.loads(JsonFormatter().format(record))
    assert "receipt_id" not in payload
    assert "stage" not in payload


def test_log_receipt_event_attaches_only_given_fields(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("test-observability-helper")
    with caplog.at_level(logging.INFO, logger=logger.name):
        log_receipt_event(logger, logging.INFO, "done", receipt_id="r-22", stage="ledger", outcome="ok")

    record = caplog.records[-1]
    assert record.receipt_id == "r-22"
    assert record.stage == "ledger"
    assert not hasattr(record, "latency_ms")


def test_metrics_collector_snapshot() -> None:
    metrics = MetricsCollector()
    metrics.record_status("completed")
    metrics.record_status("completed", needs_review=True)
    metrics.record_status("manual", needs_review=True)
    metrics.record_status("failed")
    metrics.increment("ledger_faults_total", 2)
    metrics.observe_latency(50)
    metrics.observe_latency(200)
    metrics.observe_latency(100)

    snapshot = metrics.snapshot()
    assert snapshot["receipts_processed_total"] == 4
    assert snapshot["receipts_completed_total"] == 2
    assert snapshot["receipts_review_total"] == 2
    assert snapshot["receipts_manual_total"] == 1
    assert snapshot["receipts_failed_total"] == 1
    assert snapshot["ledger_faults_total"] == 2
    assert snapshot["latency_p95_ms"] >= 100


def test_jsonl_metrics_sink_writes_snapshot(tmp_path: Path) -> None:
    sink = JsonlMetricsSink(path=tmp_path / "logs" / "metrics.jsonl")
    sink.emit_snapshot({"receipts_processed_total": 3, "note": "skipped"}, stage="intake")

    lines = (tmp_path / "logs" / "metrics.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["metric"] == "receipts_processed_total"
    assert payload["value"] == 3
    assert payload["stage"] == "intake"
    assert "recorded_at_utc" in payload
