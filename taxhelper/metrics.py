from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

STATUS_COUNTERS = {
    "completed": "receipts_completed_total",
    "manual": "receipts_manual_total",
    "failed": "receipts_failed_total",
}


@dataclass
class MetricsCollector:
    counters: Counter[str] = field(default_factory=Counter)
    latencies_ms: list[int] = field(default_factory=list)

    def increment(self, name: str, value: int = 1) -> None:
        self.counters[name] += value

    def record_status(self, status: str, *, needs_review: bool = False) -> None:
        self.increment("receipts_processed_total")
        counter = STATUS_COUNTERS.get(status)
        if counter is not None:
            self.increment(counter)
        if needs_review:
            self.increment("receipts_review_total")

    def observe_latency(self, value_ms: int) -> None:
        self.latencies_ms.append(value_ms)

    def snapshot(self) -> dict[str, Any]:
        p95 = 0
        if self.latencies_ms:
            ordered = sorted(self.latencies_ms)
            idx = int(0.95 * (len(ordered) - 1))
            p95 = ordered[idx]
        return {
            "receipts_processed_total": self.counters.get("receipts_processed_total", 0),
            "receipts_completed_total": self.counters.get("receipts_completed_total", 0),
            "receipts_review_total": self.counters.get("receipts_review_total", 0),
            "receipts_manual_total": self.counters.get("receipts_manual_total", 0),
            "receipts_failed_total": self.counters.get("receipts_failed_total", 0),
            "ledger_faults_total": self.counters.get("ledger_faults_total", 0),
            "latency_p95_ms": p95,
        }


class JsonlMetricsSink:
    def __init__(self, path: str | Path = "logs/metrics.jsonl") -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, event: dict[str, Any]) -> None:
        payload = {
            "recorded_at_utc": datetime.now(timezone.utc).isoformat(),
            **event,
        }
        with self._path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(payload, ensure_ascii=True) + "\n")

    def emit_snapshot(self, snapshot: dict[str, Any], *, stage: str) -> None:
        for key, value in snapshot.items():
            if isinstance(value, int):
                self.emit({"metric": key, "value": value, "stage": stage})
