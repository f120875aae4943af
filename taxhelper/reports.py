from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date
from typing import Any, Final, Iterable

from taxhelper.depreciation import DEFAULT_RULES, DepreciationNote, DepreciationRules, get_depreciation_note
from taxhelper.review_queue import ReviewThresholds
from taxhelper_schemas.receipt_schema import ExpenseCategory, Receipt

GRAND_TOTAL_CATEGORY: Final[str] = "合計"


@dataclass(frozen=True)
class CategorySummary:
    category: str
    count: int = 0
    tax8_subtotal: float = 0
    tax8_amount: float = 0
    tax8_total: float = 0
    tax10_subtotal: float = 0
    tax10_amount: float = 0
    tax10_total: float = 0
    total: float = 0

    def merge(self, other: "CategorySummary", *, category: str | None = None) -> "CategorySummary":
        return CategorySummary(
            category=category or self.category,
            count=self.count + other.count,
            tax8_subtotal=self.tax8_subtotal + other.tax8_subtotal,
            tax8_amount=self.tax8_amount + other.tax8_amount,
            tax8_total=self.tax8_total + other.tax8_total,
            tax10_subtotal=self.tax10_subtotal + other.tax10_subtotal,
            tax10_amount=self.tax10_amount + other.tax10_amount,
            tax10_total=self.tax10_total + other.tax10_total,
            total=self.total + other.total,
        )


def _summarize_receipt(receipt: Receipt) -> CategorySummary:
    data = receipt.extracted_data
    by_rate: dict[float, list[float]] = {8: [0, 0, 0], 10: [0, 0, 0]}
    for entry in data.tax_breakdown:
        bucket = by_rate.get(entry.tax_rate)
        if bucket is None:
            continue
        bucket[0] += entry.subtotal
        bucket[1] += entry.tax_amount
        bucket[2] += entry.total
    return CategorySummary(
        category=data.suggested_category.value,
        count=1,
        tax8_subtotal=by_rate[8][0],
        tax8_amount=by_rate[8][1],
        tax8_total=by_rate[8][2],
        tax10_subtotal=by_rate[10][0],
        tax10_amount=by_rate[10][1],
        tax10_total=by_rate[10][2],
        total=data.total_amount or 0,
    )


def summarize_by_category(receipts: Iterable[Receipt]) -> list[CategorySummary]:
    """Per-category totals split by tax rate, with a trailing grand-total row.

    Categories appear in enumeration order; only categories with at least one
    receipt are listed.
    """
    per_category: dict[str, CategorySummary] = {}
    for receipt in receipts:
        summary = _summarize_receipt(receipt)
        existing = per_category.get(summary.category)
        per_category[summary.category] = summary if existing is None else existing.merge(summary)

    ordered = [per_category[c.value] for c in ExpenseCategory if c.value in per_category]
    grand = CategorySummary(category=GRAND_TOTAL_CATEGORY)
    for summary in ordered:
        grand = grand.merge(summary, category=GRAND_TOTAL_CATEGORY)
    return [*ordered, grand]


@dataclass(frozen=True)
class DepreciationCandidate:
    receipt_id: str
    transaction_date: date | None
    issuer_name: str | None
    amount: float
    category: ExpenseCategory
    note: DepreciationNote


def list_depreciation_candidates(
    receipts: Iterable[Receipt],
    *,
    on: date | None = None,
    rules: DepreciationRules = DEFAULT_RULES,
) -> list[DepreciationCandidate]:
    candidates: list[DepreciationCandidate] = []
    for receipt in receipts:
        data = receipt.extracted_data
        if data.total_amount is None:
            continue
        # Acquisition date decides the small-asset limit unless overridden.
        note = get_depreciation_note(data.total_amount, on=on or data.transaction_date, rules=rules)
        if note is None:
            continue
        candidates.append(
            DepreciationCandidate(
                receipt_id=receipt.id,
                transaction_date=data.transaction_date,
                issuer_name=data.issuer_name,
                amount=data.total_amount,
                category=data.suggested_category,
                note=note,
            )
        )
    return sorted(candidates, key=lambda c: (c.transaction_date or date.min, c.receipt_id))


def receipt_issues(
    receipt: Receipt,
    *,
    thresholds: ReviewThresholds = ReviewThresholds(),
) -> list[str]:
    issues: list[str] = []
    t_number = (receipt.extracted_data.t_number or "").strip()
    if not t_number:
        issues.append("missing_t_number")

    confidence = receipt.confidence
    overall = confidence.overall if confidence is not None else 0
    if overall < thresholds.overall:
        issues.append("low_confidence")

    fields = confidence.fields if confidence is not None else None
    if fields is not None:
        if fields.total_amount is not None and fields.total_amount < thresholds.critical_field:
            issues.append("check_total_amount")
        if t_number and fields.t_number is not None and fields.t_number < thresholds.critical_field:
            issues.append("check_t_number")

    if receipt.notes and receipt.notes.strip():
        issues.append("has_notes")
    return issues


def receipt_counts(receipts: Iterable[Receipt]) -> dict[str, int]:
    snapshot = tuple(receipts)
    statuses = Counter(r.processing_status for r in snapshot)
    return {
        "total": len(snapshot),
        "pending": statuses.get("pending", 0),
        "processing": statuses.get("processing", 0),
        "completed": sum(1 for r in snapshot if r.processing_status == "completed" and not r.needs_review),
        "needs_review": sum(1 for r in snapshot if r.needs_review),
    }


def category_summary_to_dict(summary: CategorySummary) -> dict[str, Any]:
    return {
        "category": summary.category,
        "count": summary.count,
        "tax8": {
            "subtotal": summary.tax8_subtotal,
            "tax_amount": summary.tax8_amount,
            "total": summary.tax8_total,
        },
        "tax10": {
            "subtotal": summary.tax10_subtotal,
            "tax_amount": summary.tax10_amount,
            "total": summary.tax10_total,
        },
        "total": summary.total,
    }
