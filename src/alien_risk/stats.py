from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from alien_risk.risk_level import RISK_CATEGORIES, RISK_LEVELS
from alien_risk.snapshot import SNAPSHOT_SOURCES, RiskSnapshot


@dataclass(frozen=True, slots=True)
class RiskStats:
    total: int
    by_level: dict[str, int]
    by_category: dict[str, int]
    by_source: dict[str, int]
    average_risk_score: float

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "byLevel": dict(self.by_level),
            "byCategory": dict(self.by_category),
            "bySource": dict(self.by_source),
            "averageRiskScore": self.average_risk_score,
        }


def _round_half_up(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def compute_stats(snapshots: Iterable[RiskSnapshot]) -> RiskStats:
    by_level = {level: 0 for level in RISK_LEVELS}
    by_category = {category: 0 for category in RISK_CATEGORIES}
    by_source = {source: 0 for source in SNAPSHOT_SOURCES}
    total = 0
    score_sum = 0

    for snapshot in snapshots:
        total += 1
        score_sum += snapshot.risk.risk_score
        by_level[snapshot.risk.risk_level] = by_level.get(snapshot.risk.risk_level, 0) + 1
        by_category[snapshot.risk.category] = by_category.get(snapshot.risk.category, 0) + 1
        by_source[snapshot.source] = by_source.get(snapshot.source, 0) + 1

    average = _round_half_up(Decimal(score_sum) / Decimal(total)) if total else 0.0
    return RiskStats(
        total=total,
        by_level=by_level,
        by_category=by_category,
        by_source=by_source,
        average_risk_score=average,
    )
