from __future__ import annotations

from typing import Literal

RiskLevel = Literal["LOW", "MEDIUM", "HIGH", "CRITICAL"]
RiskCategory = Literal[
    "INVASION",
    "ABDUCTION",
    "VIRUS_XENO",
    "UFO_CRASH",
    "MIND_CONTROL",
    "QUANTUM_ANOMALY",
]

# Ordered from least to most severe.
RISK_LEVELS: tuple[RiskLevel, ...] = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
RISK_CATEGORIES: tuple[RiskCategory, ...] = (
    "INVASION",
    "ABDUCTION",
    "VIRUS_XENO",
    "UFO_CRASH",
    "MIND_CONTROL",
    "QUANTUM_ANOMALY",
)

MIN_RATING = 1
MAX_RATING = 5
MAX_SCORE = MAX_RATING * MAX_RATING

_LEVEL_BANDS: tuple[tuple[int, int, RiskLevel], ...] = (
    (1, 4, "LOW"),
    (5, 9, "MEDIUM"),
    (10, 16, "HIGH"),
    (17, MAX_SCORE, "CRITICAL"),
)

_CATEGORY_LABELS: dict[str, str] = {
    "INVASION": "Invasion",
    "ABDUCTION": "Abduction",
    "VIRUS_XENO": "Xenomorph virus",
    "UFO_CRASH": "UFO crash",
    "MIND_CONTROL": "Mind control",
    "QUANTUM_ANOMALY": "Quantum anomaly",
}


def risk_score(likelihood: int, impact: int) -> int:
    return likelihood * impact


def classify(score: int) -> RiskLevel:
    for low, high, level in _LEVEL_BANDS:
        if low <= score <= high:
            return level
    # Out-of-range scores fall back to the lowest band.
    return "LOW"


def category_label(category: str) -> str:
    return _CATEGORY_LABELS.get(category, category)


def level_label(level: str) -> str:
    if level not in RISK_LEVELS:
        return level
    return level.capitalize()
