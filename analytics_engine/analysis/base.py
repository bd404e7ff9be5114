"""
Shared analyzer plumbing: settings injection, rounding and record export.

Rounding is part of the report contract: 2 decimals for currency and
percentages, 4 for lift. Undefined values stay None through every helper.
"""

from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import structlog

from analytics_engine.config import AnalyticsSettings, get_settings

logger = structlog.get_logger(__name__)


class Analyzer:
    """Base class holding the analytics settings for one analyzer"""

    name = "analyzer"

    def __init__(self, config: Optional[AnalyticsSettings] = None):
        self.config = config or get_settings().analytics

    def _log_empty(self, start: datetime, end: datetime) -> None:
        logger.info("empty_window", analyzer=self.name, start=start.isoformat(), end=end.isoformat())

    def _log_done(self, rows: int, start: datetime, end: datetime) -> None:
        logger.info(
            f"{self.name} complete",
            rows=rows,
            start=start.isoformat(),
            end=end.isoformat(),
        )


def round_or_none(value: Optional[float], digits: int = 2) -> Optional[float]:
    if value is None:
        return None
    return round(value, digits)


def ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    """numerator / denominator, None when undefined"""
    if numerator is None or not denominator:
        return None
    return numerator / denominator


def percentage(numerator: Optional[float], denominator: Optional[float], digits: int = 2) -> Optional[float]:
    """100 * numerator / denominator rounded, None for a zero denominator"""
    value = ratio(numerator, denominator)
    return None if value is None else round(100.0 * value, digits)


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    return value


def to_records(rows: Iterable[Any]) -> List[Dict[str, Any]]:
    """Flatten result dataclasses into JSON-ready dicts"""
    records = []
    for row in rows:
        data = asdict(row) if is_dataclass(row) else dict(row)
        records.append({key: _plain(value) for key, value in data.items()})
    return records
