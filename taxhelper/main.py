from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from taxhelper.categories import load_category_aliases
from taxhelper.config import Settings, load_dotenv
from taxhelper.intake import IntakeOutcome, migrate_payload_category, process_extraction
from taxhelper.ledger import build_ledger_export, ledger_sheet_to_dict
from taxhelper.logger import configure_logging
from taxhelper.metrics import JsonlMetricsSink, MetricsCollector
from taxhelper.reports import (
    category_summary_to_dict,
    list_depreciation_candidates,
    receipt_counts,
    receipt_issues,
    summarize_by_category,
)
from taxhelper.review_queue import route_to_review_queue
from taxhelper_schemas.receipt_schema import ExpenseCategory, Receipt

logger = logging.getLogger(__name__)


def _bootstrap() -> Settings:
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    return settings


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def _write_output(payload: Any, out: str | None) -> None:
    text = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
    if out is None:
        sys.stdout.write(text + "\n")
        return
    out_path = Path(out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(text + "\n", encoding="utf-8")
    logger.info("Wrote %s", out_path)


def _load_receipts(
    path: Path,
    category_aliases: dict[str, ExpenseCategory] | None = None,
) -> tuple[list[Receipt], int]:
    raw = _read_json(path)
    if not isinstance(raw, list):
        raise ValueError(f"{path} must contain a JSON list of receipts")
    receipts: list[Receipt] = []
    rejected = 0
    for index, item in enumerate(raw):
        try:
            receipts.append(Receipt.model_validate(migrate_payload_category(item, category_aliases)))
        except ValidationError:
            rejected += 1
            logger.exception("Skipping malformed receipt at index %d in %s", index, path)
    return receipts, rejected


def _outcome_to_dict(outcome: IntakeOutcome) -> dict[str, Any]:
    return {
        "receipt_id": outcome.receipt_id,
        "status": outcome.status,
        "needs_review": outcome.decision.needs_review if outcome.decision else False,
        "reason_codes": list(outcome.decision.reason_codes) if outcome.decision else [],
        "validation": outcome.validation.to_dict() if outcome.validation else None,
        "receipt": outcome.receipt.model_dump(mode="json", by_alias=True) if outcome.receipt else None,
        "error": outcome.error,
    }


def run_intake(paths: list[str], out: str | None = None) -> int:
    settings = _bootstrap()
    aliases = load_category_aliases(settings.category_migrations_path)
    metrics = MetricsCollector()
    metrics_sink = JsonlMetricsSink(settings.metrics_path)

    results: list[dict[str, Any]] = []
    for raw_path in paths:
        path = Path(raw_path)
        try:
            payload = _read_json(path)
        except (OSError, json.JSONDecodeError):
            metrics.record_status("failed")
            logger.exception("Could not read extraction payload %s", path)
            continue

        outcome = process_extraction(
            payload,
            receipt_id=path.stem,
            file_name=path.name,
            settings=settings,
            category_aliases=aliases,
        )
        needs_review = bool(outcome.decision and outcome.decision.needs_review)
        metrics.record_status(outcome.status, needs_review=needs_review)
        if outcome.latency_ms is not None:
            metrics.observe_latency(outcome.latency_ms)

        if outcome.decision is not None and needs_review:
            route_to_review_queue(
                outcome.receipt_id,
                list(outcome.decision.reason_codes),
                queue_dir=settings.review_queue_dir,
                validation=outcome.validation,
                metadata={"file_name": path.name, "status": outcome.status},
            )
        elif outcome.decision is None:
            route_to_review_queue(
                outcome.receipt_id,
                ["schema_validation_failed"],
                queue_dir=settings.review_queue_dir,
                metadata={"file_name": path.name, "status": outcome.status, "error": outcome.error},
            )
        results.append(_outcome_to_dict(outcome))

    snapshot = metrics.snapshot()
    metrics_sink.emit_snapshot(snapshot, stage="intake")
    logger.info("Intake summary: %s", snapshot)
    _write_output(results, out)
    return 0 if snapshot["receipts_failed_total"] == 0 else 1


def run_ledger(
    receipts_path: str,
    *,
    period_from: date | None = None,
    period_to: date | None = None,
    out: str | None = None,
) -> int:
    settings = _bootstrap()
    metrics = MetricsCollector()
    metrics_sink = JsonlMetricsSink(settings.metrics_path)

    receipts, rejected = _load_receipts(
        Path(receipts_path),
        load_category_aliases(settings.category_migrations_path),
    )
    export = build_ledger_export(receipts, period_from=period_from, period_to=period_to)
    metrics.increment("ledger_faults_total", len(export.sheet.faults) + rejected)
    metrics_sink.emit_snapshot(metrics.snapshot(), stage="ledger")

    _write_output(
        {
            "exported_at": export.exported_at.isoformat(),
            "total_receipts": export.total_receipts,
            "receipts_outside_period": list(export.sheet.receipts_outside_period),
            "sheet": ledger_sheet_to_dict(export.sheet),
        },
        out,
    )
    return 0 if export.sheet.is_complete and rejected == 0 else 1


def run_report(receipts_path: str, *, on: date | None = None, out: str | None = None) -> int:
    settings = _bootstrap()
    receipts, rejected = _load_receipts(
        Path(receipts_path),
        load_category_aliases(settings.category_migrations_path),
    )
    candidates = list_depreciation_candidates(receipts, on=on, rules=settings.depreciation_rules)
    flagged = []
    for receipt in receipts:
        issues = receipt_issues(receipt, thresholds=settings.review_thresholds)
        if issues:
            flagged.append({"receipt_id": receipt.id, "issues": issues})

    _write_output(
        {
            "counts": receipt_counts(receipts),
            "rejected": rejected,
            "categories": [category_summary_to_dict(s) for s in summarize_by_category(receipts)],
            "depreciation_candidates": [
                {
                    "receipt_id": c.receipt_id,
                    "transaction_date": c.transaction_date,
                    "issuer_name": c.issuer_name,
                    "amount": c.amount,
                    "category": c.category.value,
                    "method": c.note.method.value,
                    "note": c.note.note,
                    "requires_registration": c.note.requires_registration,
                }
                for c in candidates
            ],
            "flagged": flagged,
        },
        out,
    )
    return 0


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Receipt validation and ledger aggregation")
    subparsers = parser.add_subparsers(dest="command", required=True)

    intake = subparsers.add_parser("intake", help="Validate extraction payloads into receipts")
    intake.add_argument("paths", nargs="+", help="Extraction JSON files")
    intake.add_argument("--out", default=None)

    ledger = subparsers.add_parser("ledger", help="Build the ledger sheet from stored receipts")
    ledger.add_argument("receipts", help="JSON list of receipts")
    ledger.add_argument("--from", dest="period_from", type=_iso_date, default=None)
    ledger.add_argument("--to", dest="period_to", type=_iso_date, default=None)
    ledger.add_argument("--out", default=None)

    report = subparsers.add_parser("report", help="Category summary, depreciation candidates and flagged receipts")
    report.add_argument("receipts", help="JSON list of receipts")
    report.add_argument("--on", type=_iso_date, default=None, help="Date for the small-asset limit")
    report.add_argument("--out", default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "intake":
        return run_intake(args.paths, out=args.out)
    if args.command == "ledger":
        return run_ledger(args.receipts, period_from=args.period_from, period_to=args.period_to, out=args.out)
    if args.command == "report":
        return run_report(args.receipts, on=args.on, out=args.out)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
