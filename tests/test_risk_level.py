from __future__ import annotations

import itertools

import pytest

from alien_risk.risk_level import (
    MAX_RATING,
    MIN_RATING,
    RISK_LEVELS,
    category_label,
    classify,
    level_label,
    risk_score,
)


@pytest.mark.parametrize(
    ("score", "expected"),
    [
        (1, "LOW"),
        (4, "LOW"),
        (5, "MEDIUM"),
        (9, "MEDIUM"),
        (10, "HIGH"),
        (16, "HIGH"),
        (17, "CRITICAL"),
        (25, "CRITICAL"),
    ],
)
def test_classify_band_edges(score: int, expected: str) -> None:
    assert classify(score) == expected


@pytest.mark.parametrize("score", [0, -3, 26, 100])
def test_classify_out_of_range_falls_back_to_low(score: int) -> None:
    assert classify(score) == "LOW"


def test_classify_is_monotonic_over_all_ratings() -> None:
    ratings = range(MIN_RATING, MAX_RATING + 1)
    scores = sorted({risk_score(l, i) for l, i in itertools.product(ratings, ratings)})
    ranks = [RISK_LEVELS.index(classify(s)) for s in scores]
    assert ranks == sorted(ranks)
    assert classify(risk_score(5, 5)) == "CRITICAL"
    assert classify(risk_score(1, 2)) == "LOW"


def test_labels_fall_back_to_raw_value() -> None:
    assert category_label("QUANTUM_ANOMALY") == "Quantum anomaly"
    assert category_label("TIME_TRAVEL") == "TIME_TRAVEL"
    assert level_label("CRITICAL") == "Critical"
    assert level_label("EXTREME") == "EXTREME"
