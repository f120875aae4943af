from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Final

from taxhelper_schemas.receipt_schema import LEGACY_CATEGORY_ALIASES, ExpenseCategory


class LedgerColumn(str, Enum):
    SALES = "sales"
    PURCHASES = "purchases"
    MISC_INCOME = "misc_income"
    TAXES = "taxes"
    PACKING = "packing"
    UTILITIES = "utilities"
    TRAVEL = "travel"
    COMMUNICATION = "communication"
    ADVERTISING = "advertising"
    ENTERTAINMENT = "entertainment"
    INSURANCE = "insurance"
    REPAIRS = "repairs"
    CONSUMABLES = "consumables"
    DEPRECIATION = "depreciation"
    WELFARE = "welfare"
    SALARIES = "salaries"
    OUTSOURCING = "outsourcing"
    INTEREST = "interest"
    RENT = "rent"
    BAD_DEBTS = "bad_debts"
    MISC = "misc"


INCOME_COLUMNS: Final[tuple[LedgerColumn, ...]] = (LedgerColumn.SALES, LedgerColumn.MISC_INCOME)

# Order of the NTA 青色申告決算書 expense lines (items 8-24, 31).
EXPENSE_COLUMNS: Final[tuple[LedgerColumn, ...]] = (
    LedgerColumn.TAXES,
    LedgerColumn.PACKING,
    LedgerColumn.UTILITIES,
    LedgerColumn.TRAVEL,
    LedgerColumn.COMMUNICATION,
    LedgerColumn.ADVERTISING,
    LedgerColumn.ENTERTAINMENT,
    LedgerColumn.INSURANCE,
    LedgerColumn.REPAIRS,
    LedgerColumn.CONSUMABLES,
    LedgerColumn.DEPRECIATION,
    LedgerColumn.WELFARE,
    LedgerColumn.SALARIES,
    LedgerColumn.OUTSOURCING,
    LedgerColumn.INTEREST,
    LedgerColumn.RENT,
    LedgerColumn.BAD_DEBTS,
    LedgerColumn.MISC,
)

LEDGER_COLUMN_ORDER: Final[tuple[LedgerColumn, ...]] = (
    LedgerColumn.SALES,
    LedgerColumn.PURCHASES,
    LedgerColumn.MISC_INCOME,
    *EXPENSE_COLUMNS,
)

CATEGORY_TO_LEDGER_COLUMN: Final[dict[ExpenseCategory, LedgerColumn]] = {
    ExpenseCategory.TAXES: LedgerColumn.TAXES,
    ExpenseCategory.PACKING: LedgerColumn.PACKING,
    ExpenseCategory.UTILITIES: LedgerColumn.UTILITIES,
    ExpenseCategory.TRAVEL: LedgerColumn.TRAVEL,
    ExpenseCategory.COMMUNICATION: LedgerColumn.COMMUNICATION,
    ExpenseCategory.ADVERTISING: LedgerColumn.ADVERTISING,
    ExpenseCategory.ENTERTAINMENT: LedgerColumn.ENTERTAINMENT,
    ExpenseCategory.INSURANCE: LedgerColumn.INSURANCE,
    ExpenseCategory.REPAIRS: LedgerColumn.REPAIRS,
    ExpenseCategory.CONSUMABLES: LedgerColumn.CONSUMABLES,
    ExpenseCategory.DEPRECIATION: LedgerColumn.DEPRECIATION,
    ExpenseCategory.WELFARE: LedgerColumn.WELFARE,
    ExpenseCategory.SALARIES: LedgerColumn.SALARIES,
    ExpenseCategory.OUTSOURCING: LedgerColumn.OUTSOURCING,
    ExpenseCategory.INTEREST: LedgerColumn.INTEREST,
    ExpenseCategory.RENT: LedgerColumn.RENT,
    ExpenseCategory.BAD_DEBTS: LedgerColumn.BAD_DEBTS,
    ExpenseCategory.MISC: LedgerColumn.MISC,
    ExpenseCategory.UNCATEGORIZED: LedgerColumn.MISC,
}

LEDGER_COLUMN_LABELS: Final[dict[LedgerColumn, str]] = {
    LedgerColumn.SALES: "売上",
    LedgerColumn.PURCHASES: "仕入",
    LedgerColumn.MISC_INCOME: "雑収入等",
    LedgerColumn.TAXES: "租税公課",
    LedgerColumn.PACKING: "荷造運賃",
    LedgerColumn.UTILITIES: "水道光熱費",
    LedgerColumn.TRAVEL: "旅費交通費",
    LedgerColumn.COMMUNICATION: "通信費",
    LedgerColumn.ADVERTISING: "広告宣伝費",
    LedgerColumn.ENTERTAINMENT: "接待交際費",
    LedgerColumn.INSURANCE: "損害保険料",
    LedgerColumn.REPAIRS: "修繕費",
    LedgerColumn.CONSUMABLES: "消耗品費",
    LedgerColumn.DEPRECIATION: "減価償却費",
    LedgerColumn.WELFARE: "福利厚生費",
    LedgerColumn.SALARIES: "給料賃金",
    LedgerColumn.OUTSOURCING: "外注工賃",
    LedgerColumn.INTEREST: "利子割引料",
    LedgerColumn.RENT: "地代家賃",
    LedgerColumn.BAD_DEBTS: "貸倒金",
    LedgerColumn.MISC: "雑費",
}

# Categories checked for high-value equipment purchases.
CONSUMABLE_CATEGORIES: Final[frozenset[ExpenseCategory]] = frozenset({ExpenseCategory.CONSUMABLES})


def ledger_column_for(category: ExpenseCategory | str) -> LedgerColumn:
    column = CATEGORY_TO_LEDGER_COLUMN.get(category)
    if column is None or column in INCOME_COLUMNS or column is LedgerColumn.PURCHASES:
        return LedgerColumn.MISC
    return column


def load_category_aliases(path: str | Path | None = None) -> dict[str, ExpenseCategory]:
    aliases = dict(LEGACY_CATEGORY_ALIASES)
    if path is None:
        return aliases
    rules_path = Path(path)
    if not rules_path.exists():
        return aliases
    payload = json.loads(rules_path.read_text(encoding="utf-8"))
    raw_aliases = payload.get("aliases", {})
    if not isinstance(raw_aliases, dict):
        raise ValueError(f"'aliases' must be an object in {rules_path}")
    for legacy, canonical in raw_aliases.items():
        try:
            aliases[str(legacy)] = ExpenseCategory(canonical)
        except ValueError as exc:
            raise ValueError(f"Unknown target category {canonical!r} for alias {legacy!r}") from exc
    return aliases
