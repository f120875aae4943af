from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from itertools import groupby
from typing import Any, Callable, Final, Iterable, Sequence

from taxhelper.categories import (
    EXPENSE_COLUMNS,
    INCOME_COLUMNS,
    LEDGER_COLUMN_LABELS,
    LEDGER_COLUMN_ORDER,
    LedgerColumn,
    ledger_column_for,
)
from taxhelper.logger import log_receipt_event
from taxhelper_schemas.receipt_schema import ExtractedData, Receipt

logger = logging.getLogger(__name__)

LEDGER_TITLE: Final[str] = "帳簿の様式例（事業所得者用）"
GRAND_TOTAL_LABEL: Final[str] = "総計"
NO_DESCRIPTION: Final[str] = "（記載なし）"


class LedgerMappingError(ValueError):
    def __init__(self, receipt_id: str, reason: str, message: str) -> None:
        super().__init__(message)
        self.receipt_id = receipt_id
        self.reason = reason


@dataclass(frozen=True)
class LedgerRow:
    receipt_id: str
    transaction_date: date
    description: str
    amounts: dict[LedgerColumn, float]
    t_number: str | None = None

    def __post_init__(self) -> None:
        if len(self.amounts) != 1:
            raise ValueError(
                f"Ledger row {self.receipt_id} must populate exactly one column, got {len(self.amounts)}"
            )

    @property
    def year(self) -> int:
        return self.transaction_date.year

    @property
    def month(self) -> int:
        return self.transaction_date.month

    @property
    def day(self) -> int:
        return self.transaction_date.day

    @property
    def column(self) -> LedgerColumn:
        return next(iter(self.amounts))

    @property
    def amount(self) -> float:
        return next(iter(self.amounts.values()))


@dataclass(frozen=True)
class LedgerSubtotal:
    label: str
    period_from: date | None
    period_to: date | None
    columns: dict[LedgerColumn, float] = field(default_factory=dict)

    @property
    def total_income(self) -> float:
        return sum(self.columns.get(column, 0) for column in INCOME_COLUMNS)

    @property
    def total_expenses(self) -> float:
        return sum(self.columns.get(column, 0) for column in EXPENSE_COLUMNS)

    @property
    def net_amount(self) -> float:
        purchases = self.columns.get(LedgerColumn.PURCHASES, 0)
        return self.total_income - self.total_expenses - purchases


@dataclass(frozen=True)
class AggregationFault:
    receipt_id: str
    reason: str
    message: str


@dataclass(frozen=True)
class LedgerSheet:
    title: str
    period_from: date | None
    period_to: date | None
    rows: tuple[LedgerRow, ...]
    daily_subtotals: dict[str, LedgerSubtotal]
    monthly_subtotals: dict[str, LedgerSubtotal]
    grand_total: LedgerSubtotal
    faults: tuple[AggregationFault, ...] = ()

    @property
    def is_complete(self) -> bool:
        return not self.faults

    @property
    def receipts_outside_period(self) -> tuple[str, ...]:
        return tuple(
            row.receipt_id
            for row in self.rows
            if (self.period_from is not None and row.transaction_date < self.period_from)
            or (self.period_to is not None and row.transaction_date > self.period_to)
        )


@dataclass(frozen=True)
class LedgerExport:
    exported_at: datetime
    total_receipts: int
    sheet: LedgerSheet


def day_key(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def month_key(value: date) -> str:
    return value.strftime("%Y-%m")


def format_description(data: ExtractedData) -> str:
    parts: list[str] = []
    if data.issuer_name:
        parts.append(data.issuer_name)
    if data.description and data.description != data.issuer_name:
        parts.append(data.description)
    return " - ".join(parts) or NO_DESCRIPTION


def receipt_to_ledger_row(receipt: Receipt) -> LedgerRow:
    data = receipt.extracted_data
    if data.transaction_date is None:
        raise LedgerMappingError(
            receipt.id,
            "missing_transaction_date",
            f"Receipt {receipt.id} has no transaction date and cannot be keyed",
        )
    if data.total_amount is None:
        raise LedgerMappingError(
            receipt.id,
            "missing_total_amount",
            f"Receipt {receipt.id} has no total amount",
        )
    column = ledger_column_for(data.suggested_category)
    return LedgerRow(
        receipt_id=receipt.id,
        transaction_date=data.transaction_date,
        description=format_description(data),
        amounts={column: data.total_amount},
        t_number=data.t_number or None,
    )


def sort_rows(rows: Iterable[LedgerRow]) -> list[LedgerRow]:
    return sorted(rows, key=lambda row: (row.transaction_date, row.receipt_id))


def aggregate_rows(
    rows: Sequence[LedgerRow],
    *,
    label: str,
    period_from: date | None,
    period_to: date | None,
) -> LedgerSubtotal:
    sums: dict[LedgerColumn, float] = {}
    for row in rows:
        for column, value in row.amounts.items():
            sums[column] = sums.get(column, 0) + value
    ordered = {column: sums[column] for column in LEDGER_COLUMN_ORDER if column in sums}
    return LedgerSubtotal(label=label, period_from=period_from, period_to=period_to, columns=ordered)


def _group_subtotals(
    rows: Sequence[LedgerRow],
    key: Callable[[date], str],
    label: Callable[[date], str],
) -> dict[str, LedgerSubtotal]:
    subtotals: dict[str, LedgerSubtotal] = {}
    for group_key, group in groupby(rows, key=lambda row: key(row.transaction_date)):
        group_rows = list(group)
        first = group_rows[0].transaction_date
        subtotals[group_key] = aggregate_rows(
            group_rows,
            label=label(first),
            period_from=first,
            period_to=group_rows[-1].transaction_date,
        )
    return subtotals


def calculate_daily_subtotals(rows: Sequence[LedgerRow]) -> dict[str, LedgerSubtotal]:
    return _group_subtotals(
        sort_rows(rows),
        day_key,
        lambda d: f"{d.year}年{d.month}月{d.day}日 小計",
    )


def calculate_monthly_subtotals(rows: Sequence[LedgerRow]) -> dict[str, LedgerSubtotal]:
    return _group_subtotals(
        sort_rows(rows),
        month_key,
        lambda d: f"{d.year}年{d.month}月 合計",
    )


def calculate_grand_total(
    rows: Sequence[LedgerRow],
    *,
    period_from: date | None = None,
    period_to: date | None = None,
) -> LedgerSubtotal:
    ordered = sort_rows(rows)
    if ordered:
        period_from = ordered[0].transaction_date
        period_to = ordered[-1].transaction_date
    return aggregate_rows(ordered, label=GRAND_TOTAL_LABEL, period_from=period_from, period_to=period_to)


def build_ledger_sheet(
    receipts: Iterable[Receipt],
    *,
    period_from: date | None = None,
    period_to: date | None = None,
) -> LedgerSheet:
    snapshot = tuple(receipts)
    rows: list[LedgerRow] = []
    faults: list[AggregationFault] = []
    for receipt in snapshot:
        try:
            rows.append(receipt_to_ledger_row(receipt))
        except LedgerMappingError as exc:
            faults.append(AggregationFault(receipt_id=exc.receipt_id, reason=exc.reason, message=str(exc)))
            log_receipt_event(
                logger,
                logging.WARNING,
                str(exc),
                receipt_id=exc.receipt_id,
                stage="ledger",
                outcome=exc.reason,
            )

    ordered = tuple(sort_rows(rows))
    sheet = LedgerSheet(
        title=LEDGER_TITLE,
        period_from=period_from if period_from is not None else (ordered[0].transaction_date if ordered else None),
        period_to=period_to if period_to is not None else (ordered[-1].transaction_date if ordered else None),
        rows=ordered,
        daily_subtotals=calculate_daily_subtotals(ordered),
        monthly_subtotals=calculate_monthly_subtotals(ordered),
        grand_total=calculate_grand_total(ordered, period_from=period_from, period_to=period_to),
        faults=tuple(sorted(faults, key=lambda fault: fault.receipt_id)),
    )
    outside = sheet.receipts_outside_period
    if outside:
        logger.info("Ledger includes %d receipt(s) dated outside the requested period", len(outside))
    logger.info(
        "Built ledger sheet rows=%d days=%d months=%d faults=%d",
        len(sheet.rows),
        len(sheet.daily_subtotals),
        len(sheet.monthly_subtotals),
        len(sheet.faults),
    )
    return sheet


def build_ledger_export(
    receipts: Iterable[Receipt],
    *,
    period_from: date | None = None,
    period_to: date | None = None,
    exported_at: datetime | None = None,
) -> LedgerExport:
    snapshot = tuple(receipts)
    return LedgerExport(
        exported_at=exported_at or datetime.now(timezone.utc),
        total_receipts=len(snapshot),
        sheet=build_ledger_sheet(snapshot, period_from=period_from, period_to=period_to),
    )


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _subtotal_to_dict(subtotal: LedgerSubtotal) -> dict[str, Any]:
    return {
        "label": subtotal.label,
        "period": {"from": _iso(subtotal.period_from), "to": _iso(subtotal.period_to)},
        "columns": {column.value: value for column, value in subtotal.columns.items()},
        "total_income": subtotal.total_income,
        "total_expenses": subtotal.total_expenses,
        "net_amount": subtotal.net_amount,
    }


def ledger_sheet_to_dict(sheet: LedgerSheet) -> dict[str, Any]:
    return {
        "title": sheet.title,
        "period": {"from": _iso(sheet.period_from), "to": _iso(sheet.period_to)},
        "column_labels": {column.value: LEDGER_COLUMN_LABELS[column] for column in LEDGER_COLUMN_ORDER},
        "rows": [
            {
                "receipt_id": row.receipt_id,
                "year": row.year,
                "month": row.month,
                "day": row.day,
                "description": row.description,
                "t_number": row.t_number,
                "columns": {column.value: value for column, value in row.amounts.items()},
            }
            for row in sheet.rows
        ],
        "daily_subtotals": {key: _subtotal_to_dict(value) for key, value in sheet.daily_subtotals.items()},
        "monthly_subtotals": {key: _subtotal_to_dict(value) for key, value in sheet.monthly_subtotals.items()},
        "grand_total": _subtotal_to_dict(sheet.grand_total),
        "faults": [
            {"receipt_id": fault.receipt_id, "reason": fault.reason, "message": fault.message}
            for fault in sheet.faults
        ],
    }
