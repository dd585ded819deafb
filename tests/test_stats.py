from __future__ import annotations

from datetime import datetime, timezone

from alien_risk.risk_level import RISK_CATEGORIES, RISK_LEVELS, classify
from alien_risk.snapshot import RiskSnapshot, SnapshotRisk
from alien_risk.stats import compute_stats


def _snapshot(
    snapshot_id: str,
    *,
    likelihood: int,
    impact: int,
    category: str = "INVASION",
    source: str = "local",
) -> RiskSnapshot:
    score = likelihood * impact
    created_at = datetime(2025, 1, 1, tzinfo=timezone.utc)
    return RiskSnapshot(
        id=snapshot_id,
        schema_version=1,
        risk=SnapshotRisk(
            title=snapshot_id,
            category=category,  # type: ignore[arg-type]
            likelihood=likelihood,
            impact=impact,
            risk_score=score,
            risk_level=classify(score),
        ),
        tags=(),
        note="",
        created_at=created_at,
        updated_at=created_at,
        source=source,  # type: ignore[arg-type]
    )


def test_empty_collection_has_zero_stats_and_every_key() -> None:
    stats = compute_stats([])

    assert stats.total == 0
    assert stats.average_risk_score == 0
    assert stats.by_level == {level: 0 for level in RISK_LEVELS}
    assert stats.by_category == {category: 0 for category in RISK_CATEGORIES}
    assert stats.by_source == {"local": 0, "remote": 0}


def test_counts_by_level_category_and_source() -> None:
    stats = compute_stats(
        [
            _snapshot("a", likelihood=5, impact=5, category="UFO_CRASH", source="remote"),
            _snapshot("b", likelihood=1, impact=2, category="UFO_CRASH"),
            _snapshot("c", likelihood=3, impact=4, category="MIND_CONTROL"),
        ]
    )

    assert stats.total == 3
    assert stats.by_level == {"LOW": 1, "MEDIUM": 0, "HIGH": 1, "CRITICAL": 1}
    assert stats.by_category["UFO_CRASH"] == 2
    assert stats.by_category["MIND_CONTROL"] == 1
    assert stats.by_category["QUANTUM_ANOMALY"] == 0
    assert stats.by_source == {"local": 2, "remote": 1}
    assert stats.average_risk_score == 13.0


def test_average_is_rounded_half_up_to_two_decimals() -> None:
    thirds = compute_stats(
        [
            _snapshot("a", likelihood=1, impact=1),
            _snapshot("b", likelihood=1, impact=2),
            _snapshot("c", likelihood=1, impact=2),
        ]
    )
    assert thirds.average_risk_score == 1.67

    eighths = [_snapshot(f"s{i}", likelihood=1, impact=1) for i in range(7)]
    eighths.append(_snapshot("s7", likelihood=1, impact=2))
    assert compute_stats(eighths).average_risk_score == 1.13


def test_json_dict_uses_camel_case_keys() -> None:
    payload = compute_stats([_snapshot("a", likelihood=2, impact=3)]).to_json_dict()
    assert set(payload) == {"total", "byLevel", "byCategory", "bySource", "averageRiskScore"}
    assert payload["averageRiskScore"] == 6.0
