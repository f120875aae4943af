from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

# Japan has no daylight saving; receipts are dated in local time.
JST = timezone(timedelta(hours=9), "JST")


class ExpenseCategory(str, Enum):
    TAXES = "租税公課"
    PACKING = "荷造運賃"
    UTILITIES = "水道光熱費"
    TRAVEL = "旅費交通費"
    COMMUNICATION = "通信費"
    ADVERTISING = "広告宣伝費"
    ENTERTAINMENT = "接待交際費"
    INSURANCE = "損害保険料"
    REPAIRS = "修繕費"
    CONSUMABLES = "消耗品費"
    DEPRECIATION = "減価償却費"
    WELFARE = "福利厚生費"
    SALARIES = "給料賃金"
    OUTSOURCING = "外注工賃"
    INTEREST = "利子割引料"
    RENT = "地代家賃"
    BAD_DEBTS = "貸倒金"
    MISC = "雑費"
    UNCATEGORIZED = "未分類"


# Values written by earlier category enumerations.
LEGACY_CATEGORY_ALIASES: dict[str, ExpenseCategory] = {
    "交際費": ExpenseCategory.ENTERTAINMENT,
    "外注費": ExpenseCategory.OUTSOURCING,
    "保険料": ExpenseCategory.INSURANCE,
    "会議費": ExpenseCategory.MISC,
    "研修費": ExpenseCategory.MISC,
    "新聞図書費": ExpenseCategory.MISC,
}


def migrate_category(
    value: Any,
    aliases: dict[str, ExpenseCategory] | None = None,
) -> ExpenseCategory:
    if isinstance(value, ExpenseCategory):
        return value
    text = str(value or "").strip()
    try:
        return ExpenseCategory(text)
    except ValueError:
        pass
    active = aliases if aliases is not None else LEGACY_CATEGORY_ALIASES
    if text in active:
        return active[text]
    logger.warning("Unknown expense category %r migrated to %s", text, ExpenseCategory.UNCATEGORIZED.value)
    return ExpenseCategory.UNCATEGORIZED


PaymentMethod = Literal["cash", "credit_card", "debit", "electronic_money", "bank_transfer", "unknown"]
ProcessingStatus = Literal["pending", "processing", "completed", "failed", "manual"]


class _Schema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class TaxBreakdownEntry(_Schema):
    tax_rate: float
    subtotal: float
    tax_amount: float
    total: float


class ReceiptItem(_Schema):
    name: str
    quantity: float = 1
    unit_price: float = 0
    tax_rate: float | None = None
    amount: float = 0


class ExtractedData(_Schema):
    issuer_name: str | None = None
    t_number: str | None = None
    issuer_address: str | None = None
    issuer_phone: str | None = None
    transaction_date: date | None = None
    description: str = ""
    items: list[ReceiptItem] = Field(default_factory=list)
    subtotal_excluding_tax: float = 0
    tax_breakdown: list[TaxBreakdownEntry] = Field(default_factory=list)
    total_amount: float | None = None
    recipient_name: str | None = None
    suggested_category: ExpenseCategory = ExpenseCategory.UNCATEGORIZED
    category_confidence: float = Field(default=0, ge=0, le=1)
    payment_method: PaymentMethod | None = None

    @field_validator("suggested_category", mode="before")
    @classmethod
    def _migrate_legacy_category(cls, value: Any) -> ExpenseCategory:
        return migrate_category(value)

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _date_from_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str) and "T" in value:
            try:
                value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
            except ValueError:
                return value
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                value = value.astimezone(JST)
            return value.date()
        return value


class FieldConfidence(_Schema):
    issuer_name: float | None = Field(default=None, ge=0, le=1)
    t_number: float | None = Field(default=None, ge=0, le=1)
    transaction_date: float | None = Field(default=None, ge=0, le=1)
    total_amount: float | None = Field(default=None, ge=0, le=1)
    tax_breakdown: float | None = Field(default=None, ge=0, le=1)
    category: float | None = Field(default=None, ge=0, le=1)


class ConfidenceScore(_Schema):
    overall: float = Field(ge=0, le=1)
    fields: FieldConfidence | None = None


class ExtractionResult(_Schema):
    extracted_data: ExtractedData
    confidence: ConfidenceScore | None = None


class Receipt(_Schema):
    id: str = Field(min_length=1)
    created_at: datetime
    updated_at: datetime
    file_name: str | None = None
    extracted_data: ExtractedData
    processing_status: ProcessingStatus = "pending"
    confidence: ConfidenceScore | None = None
    is_manually_reviewed: bool = False
    needs_review: bool = False
    notes: str | None = None
