from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from taxhelper.validation import ValidationResult
from taxhelper_schemas.receipt_schema import ConfidenceScore


@dataclass(frozen=True)
class ReviewThresholds:
    overall: float = 0.75
    critical_field: float = 0.80


@dataclass(frozen=True)
class ReviewDecision:
    needs_review: bool
    reason_codes: tuple[str, ...]


def decide_review_status(
    confidence: ConfidenceScore | None,
    validation: ValidationResult,
    *,
    thresholds: ReviewThresholds = ReviewThresholds(),
) -> ReviewDecision:
    reasons: list[str] = []
    if confidence is None or confidence.overall < thresholds.overall:
        reasons.append("low_confidence")
    fields = confidence.fields if confidence is not None else None
    if fields is not None:
        if fields.t_number is not None and fields.t_number < thresholds.critical_field:
            reasons.append("low_t_number_confidence")
        if fields.total_amount is not None and fields.total_amount < thresholds.critical_field:
            reasons.append("low_total_amount_confidence")
    if validation.errors:
        reasons.append("validation_failed")
    if validation.warnings:
        reasons.append("validation_warnings")
    return ReviewDecision(needs_review=bool(reasons), reason_codes=tuple(reasons))


def needs_review(
    confidence: ConfidenceScore | None,
    validation: ValidationResult,
    *,
    thresholds: ReviewThresholds = ReviewThresholds(),
) -> bool:
    return decide_review_status(confidence, validation, thresholds=thresholds).needs_review


def route_to_review_queue(
    receipt_id: str,
    reason_codes: list[str],
    *,
    queue_dir: str | Path = "review_queue",
    validation: ValidationResult | None = None,
    metadata: dict[str, Any] | None = None,
) -> dict[str, Any]:
    target_dir = Path(queue_dir)
    target_dir.mkdir(parents=True, exist_ok=True)

    record: dict[str, Any] = {
        "receipt_id": receipt_id,
        "needs_review": True,
        "reason_codes": reason_codes,
        "created_at_utc": datetime.now(timezone.utc).isoformat(),
    }
    if validation is not None:
        record["validation"] = validation.to_dict()
    if metadata:
        record["metadata"] = metadata

    record_file = target_dir / f"{receipt_id}.json"
    record_file.write_text(json.dumps(record, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
    return record
