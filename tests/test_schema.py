from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from taxhelper_schemas.receipt_schema import (
    ConfidenceScore,
    ExpenseCategory,
    ExtractedData,
    ExtractionResult,
    Receipt,
)


def _valid_payload() -> dict:
    return {
        "extractedData": {
            "issuerName": "書店",
            "tNumber": "T1111111111111",
            "issuerAddress": "東京都千代田区1-1",
            "transactionDate": "2026-03-02",
            "items": [{"name": "技術書", "unitPrice": 3000, "taxRate": 10, "amount": 3000}],
            "subtotalExcludingTax": 3000,
            "taxBreakdown": [{"taxRate": 10, "subtotal": 3000, "taxAmount": 300, "total": 3300}],
            "totalAmount": 3300,
            "suggestedCategory": "新聞図書費",
            "categoryConfidence": 0.7,
            "paymentMethod": "cash",
        },
        "confidence": {"overall": 0.88, "fields": {"totalAmount": 0.95}},
    }


def test_camel_case_payload_parses() -> None:
    result = ExtractionResult.model_validate(_valid_payload())
    data = result.extracted_data
    assert data.issuer_name == "書店"
    assert data.items[0].quantity == 1
    assert data.tax_breakdown[0].tax_amount == 300
    assert data.suggested_category is ExpenseCategory.MISC
    assert result.confidence.fields.total_amount == 0.95
    assert result.confidence.fields.t_number is None


def test_snake_case_fields_are_accepted() -> None:
    data = ExtractedData(issuer_name="書店", total_amount=100)
    assert data.total_amount == 100
    assert data.suggested_category is ExpenseCategory.UNCATEGORIZED
    assert data.tax_breakdown == []


def test_dump_by_alias_round_trips_storage_shape() -> None:
    data = ExtractionResult.model_validate(_valid_payload()).extracted_data
    dumped = data.model_dump(mode="json", by_alias=True)
    assert dumped["issuerName"] == "書店"
    assert dumped["transactionDate"] == "2026-03-02"
    assert dumped["suggestedCategory"] == "雑費"


@pytest.mark.parametrize(
    ("path", "value"),
    [
        (("extractedData", "totalAmount"), "three thousand"),
        (("extractedData", "transactionDate"), "2026-13-45"),
        (("extractedData", "taxBreakdown"), "10%"),
        (("extractedData", "categoryConfidence"), 1.5),
        (("extractedData", "paymentMethod"), "cheque"),
        (("confidence", "overall"), -0.1),
    ],
)
def test_wrong_value_types_raise(path: tuple[str, str], value: object) -> None:
    payload = _valid_payload()
    payload[path[0]][path[1]] = value
    with pytest.raises(ValidationError) as exc_info:
        ExtractionResult.model_validate(payload)
    errors = exc_info.value.errors()
    assert any(path[1] in ".".join(map(str, e["loc"])) for e in errors)


def test_models_are_frozen() -> None:
    score = ConfidenceScore(overall=0.5)
    with pytest.raises(ValidationError):
        score.overall = 0.9


def test_receipt_requires_id() -> None:
    with pytest.raises(ValidationError):
        Receipt.model_validate(
            {
                "id": "",
                "createdAt": "2026-03-02T00:00:00Z",
                "updatedAt": "2026-03-02T00:00:00Z",
                "extractedData": {},
            }
        )


@pytest.mark.parametrize(
    "value",
    [
        "2026-01-15T15:30:00.000Z",
        "2026-01-16T00:30:00+09:00",
        "2026-01-15T15:30:00+00:00",
        "2026-01-16T00:30:00",
        "2026-01-16",
    ],
)
def test_transaction_timestamps_resolve_to_japan_local_date(value: str) -> None:
    data = ExtractedData.model_validate({"transactionDate": value})
    assert data.transaction_date == date(2026, 1, 16)


def test_aware_datetime_objects_are_converted_before_truncation() -> None:
    instant = datetime(2026, 1, 31, 16, 0, tzinfo=timezone.utc)
    data = ExtractedData(transaction_date=instant)
    assert data.transaction_date == date(2026, 2, 1)
