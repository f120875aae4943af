from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException

from taxhelper.metrics import STATUS_COUNTERS


def create_monitoring_app(
    *,
    metrics_path: str | Path = "logs/metrics.jsonl",
    review_queue_dir: str | Path = "review_queue",
) -> FastAPI:
    app = FastAPI(title="Receipt Ledger Monitoring API", version="0.1.0")

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/stats")
    def stats() -> dict[str, Any]:
        counters = _aggregate_metrics(_read_jsonl(metrics_path))
        for name in (*STATUS_COUNTERS.values(), "receipts_processed_total", "receipts_review_total"):
            counters.setdefault(name, 0)
        counters["review_queue_total"] = len(_review_records(review_queue_dir))
        return counters

    @app.get("/backlog")
    def backlog(limit: int = 50) -> dict[str, Any]:
        records = _review_records(review_queue_dir)
        return {
            "review_queue_total": len(records),
            "items": [
                {"receipt_id": r.get("receipt_id"), "reason_codes": r.get("reason_codes", [])}
                for r in records[:limit]
            ],
        }

    @app.get("/backlog/{receipt_id}")
    def backlog_item(receipt_id: str) -> dict[str, Any]:
        record_file = Path(review_queue_dir) / f"{receipt_id}.json"
        if not record_file.is_file():
            raise HTTPException(status_code=404, detail=f"No review record for {receipt_id}")
        return json.loads(record_file.read_text(encoding="utf-8"))

    return app


def _read_jsonl(path: str | Path) -> list[dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        return []
    rows: list[dict[str, Any]] = []
    for line in p.read_text(encoding="utf-8").splitlines():
        if not line.strip():
            continue
        rows.append(json.loads(line))
    return rows


def _review_records(path: str | Path) -> list[dict[str, Any]]:
    p = Path(path)
    if not p.exists():
        return []
    return [json.loads(x.read_text(encoding="utf-8")) for x in sorted(p.glob("*.json")) if x.is_file()]


def _aggregate_metrics(events: list[dict[str, Any]]) -> dict[str, Any]:
    counters: dict[str, int] = {}
    for event in events:
        name = event.get("metric")
        value = event.get("value")
        if isinstance(name, str) and isinstance(value, int):
            counters[name] = counters.get(name, 0) + value
    return counters
