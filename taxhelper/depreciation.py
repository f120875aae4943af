from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Final

from taxhelper.categories import CONSUMABLE_CATEGORIES
from taxhelper_schemas.receipt_schema import ExpenseCategory, ExtractedData


class DepreciationMethod(str, Enum):
    IMMEDIATE = "immediate"
    LUMPSUM = "lumpsum"
    STANDARD = "standard"


@dataclass(frozen=True)
class EffectiveAmount:
    effective_from: date
    amount: float


DEFAULT_EQUIPMENT_KEYWORDS: Final[tuple[str, ...]] = (
    "パソコン",
    "ノートpc",
    "pc",
    "computer",
    "laptop",
    "macbook",
    "imac",
    "ipad",
    "タブレット",
    "tablet",
    "モニター",
    "ディスプレイ",
    "monitor",
    "display",
    "プリンター",
    "複合機",
    "printer",
    "カメラ",
    "camera",
    "レンズ",
    "サーバー",
    "server",
    "デスク",
    "机",
    "desk",
    "チェア",
    "椅子",
    "chair",
    "エアコン",
    "冷蔵庫",
)

# Small-asset special rule (少額減価償却資産の特例), raised for acquisitions from 2026-04-01.
DEFAULT_SMALL_ASSET_LIMITS: Final[tuple[EffectiveAmount, ...]] = (
    EffectiveAmount(effective_from=date.min, amount=300_000),
    EffectiveAmount(effective_from=date(2026, 4, 1), amount=400_000),
)


@dataclass(frozen=True)
class DepreciationRules:
    equipment_threshold: float = 100_000
    lump_sum_ceiling: float = 200_000
    small_asset_limits: tuple[EffectiveAmount, ...] = DEFAULT_SMALL_ASSET_LIMITS
    equipment_keywords: tuple[str, ...] = DEFAULT_EQUIPMENT_KEYWORDS

    def __post_init__(self) -> None:
        if not self.small_asset_limits:
            raise ValueError("small_asset_limits must contain at least one entry")
        ordered = sorted(self.small_asset_limits, key=lambda entry: entry.effective_from)
        object.__setattr__(self, "small_asset_limits", tuple(ordered))

    def limit_for(self, on: date) -> float:
        """Small-asset limit in force on the given date.

        The table is ordered by effective date; the latest entry not after
        ``on`` wins. Dates before the first entry use the first entry.
        """
        current = self.small_asset_limits[0].amount
        for entry in self.small_asset_limits:
            if entry.effective_from > on:
                break
            current = entry.amount
        return current


DEFAULT_RULES = DepreciationRules()


@dataclass(frozen=True)
class DepreciationNote:
    method: DepreciationMethod
    note: str
    requires_registration: bool
    small_asset_limit: float


def is_depreciation_eligible(total: float | None, rules: DepreciationRules = DEFAULT_RULES) -> bool:
    if total is None:
        return False
    return total >= rules.equipment_threshold


def _mentions_equipment(data: ExtractedData, keywords: tuple[str, ...]) -> bool:
    texts = [data.description, *(item.name for item in data.items)]
    haystack = " ".join(t for t in texts if t).casefold()
    return any(keyword.casefold() in haystack for keyword in keywords)


def requires_depreciation_consideration(
    data: ExtractedData,
    rules: DepreciationRules = DEFAULT_RULES,
) -> bool:
    if not is_depreciation_eligible(data.total_amount, rules):
        return False
    if data.suggested_category in CONSUMABLE_CATEGORIES:
        return True
    if data.suggested_category is ExpenseCategory.UNCATEGORIZED:
        return _mentions_equipment(data, rules.equipment_keywords)
    return False


def get_depreciation_note(
    amount: float,
    *,
    on: date | None = None,
    rules: DepreciationRules = DEFAULT_RULES,
) -> DepreciationNote | None:
    if not is_depreciation_eligible(amount, rules):
        return None

    limit = rules.limit_for(on or date.today())
    if amount > limit:
        return DepreciationNote(
            method=DepreciationMethod.STANDARD,
            note="通常減価償却（耐用年数）: 要 固定資産台帳への登録",
            requires_registration=True,
            small_asset_limit=limit,
        )
    if amount > rules.lump_sum_ceiling:
        return DepreciationNote(
            method=DepreciationMethod.LUMPSUM,
            note="一括償却資産（3年均等償却）",
            requires_registration=False,
            small_asset_limit=limit,
        )
    return DepreciationNote(
        method=DepreciationMethod.IMMEDIATE,
        note="即時経費化可能（少額減価償却資産の特例）",
        requires_registration=False,
        small_asset_limit=limit,
    )
