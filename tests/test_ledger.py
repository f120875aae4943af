from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from taxhelper.categories import LedgerColumn
from taxhelper.ledger import (
    GRAND_TOTAL_LABEL,
    NO_DESCRIPTION,
    LedgerMappingError,
    LedgerRow,
    build_ledger_export,
    build_ledger_sheet,
    calculate_daily_subtotals,
    calculate_grand_total,
    calculate_monthly_subtotals,
    format_description,
    ledger_sheet_to_dict,
    receipt_to_ledger_row,
)
from taxhelper_schemas.receipt_schema import Receipt

_NOW = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


def _receipt(
    receipt_id: str,
    day: str | None,
    amount: float | None,
    category: str = "消耗品費",
    issuer: str | None = "文具店",
    description: str = "",
) -> Receipt:
    return Receipt.model_validate(
        {
            "id": receipt_id,
            "createdAt": _NOW.isoformat(),
            "updatedAt": _NOW.isoformat(),
            "processingStatus": "completed",
            "extractedData": {
                "issuerName": issuer,
                "tNumber": "T1234567890123",
                "transactionDate": day,
                "description": description,
                "totalAmount": amount,
                "suggestedCategory": category,
            },
        }
    )


def _sample() -> list[Receipt]:
    return [
        _receipt("r-3", "2026-02-01", 5_000, "通信費", issuer="通信会社"),
        _receipt("r-2", "2026-01-15", 1_200, "旅費交通費", issuer="鉄道"),
        _receipt("r-1", "2026-01-15", 3_300),
        _receipt("r-4", "2026-01-20", 800, "未分類"),
        _receipt("r-5", "2026-02-01", 2_000),
    ]


def test_rows_are_sorted_by_date_then_receipt_id() -> None:
    sheet = build_ledger_sheet(_sample())
    assert [row.receipt_id for row in sheet.rows] == ["r-1", "r-2", "r-4", "r-3", "r-5"]


def test_rows_populate_exactly_one_column() -> None:
    sheet = build_ledger_sheet(_sample())
    columns = {row.receipt_id: row.column for row in sheet.rows}
    assert columns == {
        "r-1": LedgerColumn.CONSUMABLES,
        "r-2": LedgerColumn.TRAVEL,
        "r-3": LedgerColumn.COMMUNICATION,
        "r-4": LedgerColumn.MISC,
        "r-5": LedgerColumn.CONSUMABLES,
    }
    assert all(len(row.amounts) == 1 for row in sheet.rows)


def test_row_exposes_date_parts() -> None:
    row = receipt_to_ledger_row(_receipt("r-9", "2026-03-07", 100))
    assert (row.year, row.month, row.day) == (2026, 3, 7)
    assert row.amount == 100
    assert row.t_number == "T1234567890123"


@pytest.mark.parametrize("amounts", [{}, {LedgerColumn.MISC: 1.0, LedgerColumn.RENT: 2.0}])
def test_ledger_row_rejects_anything_but_one_column(amounts: dict) -> None:
    with pytest.raises(ValueError, match="exactly one column"):
        LedgerRow(receipt_id="x", transaction_date=date(2026, 1, 1), description="x", amounts=amounts)


def test_daily_and_monthly_subtotals_sum_rows() -> None:
    sheet = build_ledger_sheet(_sample())

    jan15 = sheet.daily_subtotals["2026-01-15"]
    assert jan15.label == "2026年1月15日 小計"
    assert jan15.columns == {LedgerColumn.TRAVEL: 1_200, LedgerColumn.CONSUMABLES: 3_300}

    february = sheet.monthly_subtotals["2026-02"]
    assert february.label == "2026年2月 合計"
    assert february.columns == {LedgerColumn.COMMUNICATION: 5_000, LedgerColumn.CONSUMABLES: 2_000}
    assert list(sheet.monthly_subtotals) == ["2026-01", "2026-02"]


def test_subtotal_columns_follow_ledger_order() -> None:
    sheet = build_ledger_sheet(_sample())
    assert list(sheet.grand_total.columns) == [
        LedgerColumn.TRAVEL,
        LedgerColumn.COMMUNICATION,
        LedgerColumn.CONSUMABLES,
        LedgerColumn.MISC,
    ]


def test_grand_total_equals_sum_of_days_and_rows() -> None:
    sheet = build_ledger_sheet(_sample())
    grand = sheet.grand_total
    assert grand.label == GRAND_TOTAL_LABEL
    for column, value in grand.columns.items():
        from_days = sum(s.columns.get(column, 0) for s in sheet.daily_subtotals.values())
        from_rows = sum(r.amounts.get(column, 0) for r in sheet.rows)
        assert value == from_days == from_rows
    assert grand.total_expenses == 12_300
    assert grand.total_income == 0
    assert grand.net_amount == -12_300
    assert (grand.period_from, grand.period_to) == (date(2026, 1, 15), date(2026, 2, 1))



def test_fractional_totals_agree_across_days_months_and_rows() -> None:
    receipts = [
        _receipt("j-1", "2026-01-05", 1000.5),
        _receipt("j-2", "2026-01-05", 250.25),
        _receipt("j-3", "2026-01-05", 300, "旅費交通費", issuer="鉄道"),
        _receipt("j-4", "2026-01-20", 99.99),
        _receipt("f-1", "2026-02-03", 1200, "旅費交通費", issuer="鉄道"),
        _receipt("f-2", "2026-02-03", 45.5, "旅費交通費", issuer="バス"),
        _receipt("f-3", "2026-02-03", 3000, "通信費", issuer="通信会社"),
        _receipt("f-4", "2026-02-28", 10.01, "雑費"),
    ]
    rows = [receipt_to_ledger_row(r) for r in receipts]

    daily = calculate_daily_subtotals(rows)
    monthly = calculate_monthly_subtotals(rows)
    grand = calculate_grand_total(rows)

    assert sorted(daily) == ["2026-01-05", "2026-01-20", "2026-02-03", "2026-02-28"]
    assert sorted(monthly) == ["2026-01", "2026-02"]
    assert daily["2026-01-05"].columns[LedgerColumn.CONSUMABLES] == pytest.approx(1250.75)
    assert monthly["2026-02"].columns[LedgerColumn.TRAVEL] == pytest.approx(1245.5)
    for column, value in grand.columns.items():
        from_days = sum(s.columns.get(column, 0) for s in daily.values())
        from_months = sum(s.columns.get(column, 0) for s in monthly.values())
        from_rows = sum(r.amounts.get(column, 0) for r in rows)
        assert value == pytest.approx(from_days)
        assert value == pytest.approx(from_months)
        assert value == pytest.approx(from_rows)
    assert grand.total_expenses == pytest.approx(sum(r.amount for r in rows))
    assert grand.total_expenses == pytest.approx(5906.25)


def test_aggregation_is_idempotent_and_order_independent() -> None:
    receipts = _sample()
    first = build_ledger_sheet(receipts)
    second = build_ledger_sheet(receipts)
    reversed_input = build_ledger_sheet(list(reversed(receipts)))
    assert first == second
    assert first == reversed_input


def test_income_and_purchases_drive_net_amount() -> None:
    rows = [
        LedgerRow("s-1", date(2026, 1, 5), "売上", {LedgerColumn.SALES: 50_000}),
        LedgerRow("s-2", date(2026, 1, 5), "雑収入", {LedgerColumn.MISC_INCOME: 1_000}),
        LedgerRow("p-1", date(2026, 1, 6), "仕入", {LedgerColumn.PURCHASES: 20_000}),
        LedgerRow("e-1", date(2026, 1, 6), "家賃", {LedgerColumn.RENT: 10_000}),
    ]
    total = calculate_grand_total(rows)
    assert total.total_income == 51_000
    assert total.total_expenses == 10_000
    assert total.net_amount == 21_000
    assert list(total.columns)[:3] == [LedgerColumn.SALES, LedgerColumn.PURCHASES, LedgerColumn.MISC_INCOME]

    assert set(calculate_daily_subtotals(rows)) == {"2026-01-05", "2026-01-06"}
    assert set(calculate_monthly_subtotals(rows)) == {"2026-01"}


def test_missing_date_or_total_becomes_fault_not_silent_drop() -> None:
    receipts = [
        *_sample(),
        _receipt("bad-date", None, 1_000),
        _receipt("bad-total", "2026-01-20", None),
    ]
    sheet = build_ledger_sheet(receipts)
    assert not sheet.is_complete
    assert [(f.receipt_id, f.reason) for f in sheet.faults] == [
        ("bad-date", "missing_transaction_date"),
        ("bad-total", "missing_total_amount"),
    ]
    assert len(sheet.rows) + len(sheet.faults) == len(receipts)


def test_receipt_to_ledger_row_raises_mapping_error() -> None:
    with pytest.raises(LedgerMappingError) as exc_info:
        receipt_to_ledger_row(_receipt("r-x", None, 100))
    assert exc_info.value.receipt_id == "r-x"
    assert exc_info.value.reason == "missing_transaction_date"


def test_out_of_period_rows_are_kept_and_reported() -> None:
    sheet = build_ledger_sheet(_sample(), period_from=date(2026, 1, 16), period_to=date(2026, 1, 31))
    assert len(sheet.rows) == 5
    assert sheet.receipts_outside_period == ("r-1", "r-2", "r-3", "r-5")
    assert (sheet.period_from, sheet.period_to) == (date(2026, 1, 16), date(2026, 1, 31))


def test_empty_input_builds_empty_sheet() -> None:
    sheet = build_ledger_sheet([])
    assert sheet.rows == ()
    assert sheet.daily_subtotals == {}
    assert sheet.grand_total.columns == {}
    assert sheet.period_from is None
    assert sheet.is_complete


@pytest.mark.parametrize(
    ("issuer", "description", "expected"),
    [
        ("文具店", "ボールペン", "文具店 - ボールペン"),
        ("文具店", "文具店", "文具店"),
        ("文具店", "", "文具店"),
        (None, "ボールペン", "ボールペン"),
        (None, "", NO_DESCRIPTION),
    ],
)
def test_format_description(issuer: str | None, description: str, expected: str) -> None:
    receipt = _receipt("r-d", "2026-01-01", 100, issuer=issuer, description=description)
    assert format_description(receipt.extracted_data) == expected


def test_export_and_dict_rendering() -> None:
    exported_at = datetime(2026, 6, 1, tzinfo=timezone.utc)
    export = build_ledger_export(_sample(), exported_at=exported_at)
    assert export.total_receipts == 5
    assert export.exported_at == exported_at

    payload = ledger_sheet_to_dict(export.sheet)
    assert payload["title"] == "帳簿の様式例（事業所得者用）"
    assert payload["period"] == {"from": "2026-01-15", "to": "2026-02-01"}
    assert payload["rows"][0] == {
        "receipt_id": "r-1",
        "year": 2026,
        "month": 1,
        "day": 15,
        "description": "文具店",
        "t_number": "T1234567890123",
        "columns": {"consumables": 3_300},
    }
    assert payload["column_labels"]["consumables"] == "消耗品費"
    assert payload["grand_total"]["total_expenses"] == 12_300
    assert payload["faults"] == []
