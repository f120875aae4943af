from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from taxhelper.depreciation import DepreciationRules, EffectiveAmount
from taxhelper.review_queue import ReviewThresholds
from taxhelper.validation import DEFAULT_AMOUNT_TOLERANCE


def _parse_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw.strip().replace(",", "").replace("_", ""))
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ValueError(f"{name} must not be negative")
    return value


def _parse_ratio(name: str, default: float) -> float:
    value = _parse_float(name, default)
    if value > 1:
        raise ValueError(f"{name} must be between 0 and 1")
    return value


def _parse_date(name: str, default: date) -> date:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return date.fromisoformat(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an ISO date (YYYY-MM-DD), got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    equipment_threshold: float = 100_000
    small_asset_limit_before: float = 300_000
    small_asset_limit_after: float = 400_000
    small_asset_limit_cutover: date = date(2026, 4, 1)
    lump_sum_ceiling: float = 200_000
    amount_tolerance: float = DEFAULT_AMOUNT_TOLERANCE
    review_overall_threshold: float = 0.75
    review_critical_field_threshold: float = 0.80
    review_queue_dir: str = "review_queue"
    metrics_path: str = "logs/metrics.jsonl"
    category_migrations_path: str = "config/category_migrations.json"

    @property
    def depreciation_rules(self) -> DepreciationRules:
        return DepreciationRules(
            equipment_threshold=self.equipment_threshold,
            lump_sum_ceiling=self.lump_sum_ceiling,
            small_asset_limits=(
                EffectiveAmount(effective_from=date.min, amount=self.small_asset_limit_before),
                EffectiveAmount(effective_from=self.small_asset_limit_cutover, amount=self.small_asset_limit_after),
            ),
        )

    @property
    def review_thresholds(self) -> ReviewThresholds:
        return ReviewThresholds(
            overall=self.review_overall_threshold,
            critical_field=self.review_critical_field_threshold,
        )

    @classmethod
    def from_env(cls) -> "Settings":
        log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
        if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")

        equipment_threshold = _parse_float("EQUIPMENT_THRESHOLD", 100_000)
        limit_before = _parse_float("SMALL_ASSET_LIMIT_BEFORE", 300_000)
        limit_after = _parse_float("SMALL_ASSET_LIMIT_AFTER", 400_000)
        lump_sum_ceiling = _parse_float("LUMP_SUM_CEILING", 200_000)
        if lump_sum_ceiling < equipment_threshold:
            raise ValueError("LUMP_SUM_CEILING must not be lower than EQUIPMENT_THRESHOLD")

        return cls(
            log_level=log_level,
            equipment_threshold=equipment_threshold,
            small_asset_limit_before=limit_before,
            small_asset_limit_after=limit_after,
            small_asset_limit_cutover=_parse_date("SMALL_ASSET_LIMIT_CUTOVER", date(2026, 4, 1)),
            lump_sum_ceiling=lump_sum_ceiling,
            amount_tolerance=_parse_float("AMOUNT_TOLERANCE", DEFAULT_AMOUNT_TOLERANCE),
            review_overall_threshold=_parse_ratio("REVIEW_OVERALL_THRESHOLD", 0.75),
            review_critical_field_threshold=_parse_ratio("REVIEW_CRITICAL_FIELD_THRESHOLD", 0.80),
            review_queue_dir=os.getenv("REVIEW_QUEUE_DIR", "review_queue"),
            metrics_path=os.getenv("METRICS_PATH", "logs/metrics.jsonl"),
            category_migrations_path=os.getenv("CATEGORY_MIGRATIONS_PATH", "config/category_migrations.json"),
        )


def load_dotenv(path: str | Path = ".env") -> None:
    env_path = Path(path)
    if not env_path.exists():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        key, value = entry.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        os.environ.setdefault(key, value)
