from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from taxhelper.config import Settings
from taxhelper.logger import log_receipt_event
from taxhelper.review_queue import ReviewDecision, decide_review_status
from taxhelper.state_machine import can_transition, transition_state, walk_states
from taxhelper.validation import ValidationResult, validate_receipt_data
from taxhelper_schemas.receipt_schema import (
    ExpenseCategory,
    ExtractionResult,
    ProcessingStatus,
    Receipt,
    migrate_category,
)

logger = logging.getLogger(__name__)

_CATEGORY_KEYS = ("suggestedCategory", "suggested_category")
_DATA_KEYS = ("extractedData", "extracted_data")


@dataclass(frozen=True)
class IntakeOutcome:
    receipt_id: str
    status: ProcessingStatus
    receipt: Receipt | None
    validation: ValidationResult | None
    decision: ReviewDecision | None
    error: str | None = None
    latency_ms: int | None = None


def migrate_payload_category(
    raw: dict[str, Any],
    category_aliases: dict[str, ExpenseCategory] | None,
) -> dict[str, Any]:
    if category_aliases is None or not isinstance(raw, dict):
        return raw
    for data_key in _DATA_KEYS:
        data = raw.get(data_key)
        if not isinstance(data, dict):
            continue
        for category_key in _CATEGORY_KEYS:
            if category_key in data:
                migrated = migrate_category(data[category_key], category_aliases)
                return {**raw, data_key: {**data, category_key: migrated.value}}
    return raw


def parse_extraction_result(
    raw: dict[str, Any],
    *,
    category_aliases: dict[str, ExpenseCategory] | None = None,
) -> ExtractionResult:
    return ExtractionResult.model_validate(migrate_payload_category(raw, category_aliases))


def process_extraction(
    raw: dict[str, Any],
    *,
    receipt_id: str | None = None,
    file_name: str | None = None,
    now: datetime | None = None,
    settings: Settings = Settings(),
    category_aliases: dict[str, ExpenseCategory] | None = None,
) -> IntakeOutcome:
    receipt_id = receipt_id or str(uuid4())
    timestamp = now or datetime.now(timezone.utc)
    started = time.monotonic()
    status = walk_states("pending", "processing")

    try:
        result = parse_extraction_result(raw, category_aliases=category_aliases)
    except ValidationError as exc:
        status = transition_state(status, "failed")
        latency_ms = int((time.monotonic() - started) * 1000)
        log_receipt_event(
            logger,
            logging.WARNING,
            "Extraction payload failed schema validation",
            receipt_id=receipt_id,
            stage="intake",
            status=status,
            outcome="schema_validation_failed",
            latency_ms=latency_ms,
        )
        return IntakeOutcome(
            receipt_id=receipt_id,
            status=status,
            receipt=None,
            validation=None,
            decision=None,
            error=str(exc),
            latency_ms=latency_ms,
        )

    validation = validate_receipt_data(
        result.extracted_data,
        amount_tolerance=settings.amount_tolerance,
        depreciation_rules=settings.depreciation_rules,
    )
    decision = decide_review_status(result.confidence, validation, thresholds=settings.review_thresholds)
    status = transition_state(status, "completed" if validation.is_valid else "manual")

    receipt = Receipt(
        id=receipt_id,
        created_at=timestamp,
        updated_at=timestamp,
        file_name=file_name,
        extracted_data=result.extracted_data,
        processing_status=status,
        confidence=result.confidence,
        needs_review=decision.needs_review,
    )
    latency_ms = int((time.monotonic() - started) * 1000)
    log_receipt_event(
        logger,
        logging.INFO,
        "Receipt accepted" if validation.is_valid else "Receipt requires manual entry",
        receipt_id=receipt_id,
        stage="intake",
        status=status,
        outcome=",".join(decision.reason_codes) or "clean",
        latency_ms=latency_ms,
    )
    return IntakeOutcome(
        receipt_id=receipt_id,
        status=status,
        receipt=receipt,
        validation=validation,
        decision=decision,
        latency_ms=latency_ms,
    )


def revalidate(
    receipt: Receipt,
    *,
    now: datetime | None = None,
    settings: Settings = Settings(),
) -> IntakeOutcome:
    validation = validate_receipt_data(
        receipt.extracted_data,
        amount_tolerance=settings.amount_tolerance,
        depreciation_rules=settings.depreciation_rules,
    )
    decision = decide_review_status(receipt.confidence, validation, thresholds=settings.review_thresholds)

    status = receipt.processing_status
    target = "completed" if validation.is_valid else "manual"
    if status != target and can_transition(status, target):
        status = transition_state(status, target)

    updated = receipt.model_copy(
        update={
            "processing_status": status,
            "needs_review": decision.needs_review,
            "updated_at": now or datetime.now(timezone.utc),
        }
    )
    log_receipt_event(
        logger,
        logging.INFO,
        "Receipt revalidated",
        receipt_id=receipt.id,
        stage="revalidate",
        status=status,
        outcome=",".join(decision.reason_codes) or "clean",
    )
    return IntakeOutcome(
        receipt_id=receipt.id,
        status=status,
        receipt=updated,
        validation=validation,
        decision=decision,
    )


def mark_manually_reviewed(
    receipt: Receipt,
    *,
    notes: str | None = None,
    now: datetime | None = None,
) -> Receipt:
    update: dict[str, Any] = {
        "is_manually_reviewed": True,
        "needs_review": False,
        "updated_at": now or datetime.now(timezone.utc),
    }
    if notes is not None:
        update["notes"] = notes
    return receipt.model_copy(update=update)
