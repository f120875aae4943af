from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final

from taxhelper.depreciation import DEFAULT_RULES, DepreciationRules, requires_depreciation_consideration
from taxhelper_schemas.receipt_schema import ExtractedData

VALID_TAX_RATES: Final[frozenset[float]] = frozenset({8, 10})
DEFAULT_AMOUNT_TOLERANCE: Final[float] = 1.0

_T_NUMBER_RE = re.compile(r"^T\d{13}$")


class ErrorCode(str, Enum):
    MISSING_ISSUER_NAME = "missing_issuer_name"
    MISSING_TRANSACTION_DATE = "missing_transaction_date"
    NON_POSITIVE_TOTAL = "non_positive_total"
    INVALID_T_NUMBER = "invalid_t_number"
    INVALID_TAX_RATE = "invalid_tax_rate"


class WarningKind(str, Enum):
    MISSING_IDENTIFIER = "missing_identifier"
    TAX_CALCULATION_MISMATCH = "tax_calculation_mismatch"
    TOTAL_MISMATCH = "total_mismatch"
    DEPRECIATION_REQUIRED = "depreciation_required"


@dataclass(frozen=True)
class ErrorMessage:
    code: ErrorCode
    message: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class StructuredWarning:
    kind: WarningKind
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckResult:
    is_valid: bool
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: tuple[ErrorMessage, ...] = ()
    warnings: tuple[StructuredWarning, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": [
                {"code": e.code.value, "message": e.message, "params": dict(e.params)} for e in self.errors
            ],
            "warnings": [{"kind": w.kind.value, "params": dict(w.params)} for w in self.warnings],
        }


def validate_t_number(t_number: str | None) -> bool:
    if not t_number:
        return False
    return bool(_T_NUMBER_RE.fullmatch(t_number))


def check_tax_calculation(
    data: ExtractedData,
    *,
    amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
) -> CheckResult:
    total = data.total_amount or 0.0
    expected_tax = total - data.subtotal_excluding_tax
    actual_tax = sum(entry.tax_amount for entry in data.tax_breakdown)
    difference = abs(actual_tax - expected_tax)
    params = {"expected": expected_tax, "actual": actual_tax, "difference": difference}
    return CheckResult(is_valid=difference <= amount_tolerance, params=params)


def check_breakdown_totals(
    data: ExtractedData,
    *,
    amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
) -> CheckResult:
    total = data.total_amount or 0.0
    breakdown_total = sum(entry.total for entry in data.tax_breakdown)
    difference = abs(breakdown_total - total)
    params = {"expected": total, "actual": breakdown_total, "difference": difference}
    return CheckResult(is_valid=difference <= amount_tolerance, params=params)


def check_tax_rates(data: ExtractedData) -> CheckResult:
    for entry in data.tax_breakdown:
        if entry.tax_rate not in VALID_TAX_RATES:
            return CheckResult(
                is_valid=False,
                params={"rate": entry.tax_rate, "allowed": sorted(VALID_TAX_RATES)},
            )
    return CheckResult(is_valid=True)


def check_required_fields(data: ExtractedData) -> list[ErrorMessage]:
    errors: list[ErrorMessage] = []
    if not data.issuer_name or not data.issuer_name.strip():
        errors.append(ErrorMessage(ErrorCode.MISSING_ISSUER_NAME, "Issuer name is required"))
    if data.transaction_date is None:
        errors.append(ErrorMessage(ErrorCode.MISSING_TRANSACTION_DATE, "Transaction date is required"))
    if data.total_amount is None or data.total_amount <= 0:
        errors.append(
            ErrorMessage(
                ErrorCode.NON_POSITIVE_TOTAL,
                "Total amount must be greater than 0",
                {"total_amount": data.total_amount},
            )
        )
    return errors


def validate_receipt_data(
    data: ExtractedData,
    *,
    amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE,
    depreciation_rules: DepreciationRules = DEFAULT_RULES,
) -> ValidationResult:
    errors = check_required_fields(data)
    warnings: list[StructuredWarning] = []

    if data.t_number:
        if not validate_t_number(data.t_number):
            errors.append(
                ErrorMessage(
                    ErrorCode.INVALID_T_NUMBER,
                    "Invalid T-Number format. Must be T followed by 13 digits",
                    {"t_number": data.t_number},
                )
            )
    else:
        warnings.append(StructuredWarning(WarningKind.MISSING_IDENTIFIER, {"field": "t_number"}))

    if data.total_amount is not None:
        tax_calc = check_tax_calculation(data, amount_tolerance=amount_tolerance)
        if not tax_calc.is_valid:
            warnings.append(StructuredWarning(WarningKind.TAX_CALCULATION_MISMATCH, tax_calc.params))

        totals = check_breakdown_totals(data, amount_tolerance=amount_tolerance)
        if not totals.is_valid:
            warnings.append(StructuredWarning(WarningKind.TOTAL_MISMATCH, totals.params))

    rates = check_tax_rates(data)
    if not rates.is_valid:
        errors.append(
            ErrorMessage(
                ErrorCode.INVALID_TAX_RATE,
                f"Invalid tax rate: {rates.params['rate']}%. Must be 8% or 10%",
                rates.params,
            )
        )

    if requires_depreciation_consideration(data, depreciation_rules):
        warnings.append(
            StructuredWarning(
                WarningKind.DEPRECIATION_REQUIRED,
                {
                    "amount": data.total_amount,
                    "threshold": depreciation_rules.equipment_threshold,
                    "category": data.suggested_category.value,
                },
            )
        )

    return ValidationResult(is_valid=not errors, errors=tuple(errors), warnings=tuple(warnings))
