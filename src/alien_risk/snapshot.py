from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Literal

from alien_risk.risk_level import (
    MAX_RATING,
    MIN_RATING,
    RISK_CATEGORIES,
    RISK_LEVELS,
    RiskCategory,
    RiskLevel,
    classify,
    risk_score,
)

SnapshotSource = Literal["local", "remote"]

SCHEMA_VERSION = 1
SNAPSHOT_SOURCES: tuple[SnapshotSource, ...] = ("local", "remote")

# Provenance values written by earlier releases of the web client.
_LEGACY_SOURCES: dict[str, SnapshotSource] = {"frontend": "local", "backend": "remote"}


class SnapshotValidationError(ValueError):
    pass


def parse_timestamp(value: Any, *, field: str) -> datetime:
    if not isinstance(value, str):
        raise SnapshotValidationError(
            f"{field}: expected ISO datetime string, got {type(value).__name__}"
        )
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError as e:
        raise SnapshotValidationError(f"{field}: invalid ISO datetime: {value!r}") from e
    if dt.tzinfo is None:
        raise SnapshotValidationError(f"{field}: datetime must be timezone-aware, got {value!r}")
    return dt


def _as_rating(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise SnapshotValidationError(f"{field}: expected int, got {type(value).__name__}")
    if not MIN_RATING <= value <= MAX_RATING:
        raise SnapshotValidationError(
            f"{field}: must be between {MIN_RATING} and {MAX_RATING}, got {value}"
        )
    return value


def _as_optional_str(value: Any, *, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise SnapshotValidationError(f"{field}: expected string, got {type(value).__name__}")
    return value


def _as_required_str(value: Any, *, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise SnapshotValidationError(f"{field}: required non-empty string")
    return value


def normalize_source(value: Any) -> SnapshotSource:
    if value in SNAPSHOT_SOURCES:
        return value
    if isinstance(value, str) and value in _LEGACY_SOURCES:
        return _LEGACY_SOURCES[value]
    raise SnapshotValidationError(
        f"source: expected one of {list(SNAPSHOT_SOURCES)}, got {value!r}"
    )


@dataclass(frozen=True, slots=True)
class RiskFormData:
    title: str
    category: RiskCategory
    likelihood: int
    impact: int
    description: str | None = None


@dataclass(frozen=True, slots=True)
class RemoteRecord:
    id: str


@dataclass(frozen=True, slots=True)
class SnapshotRisk:
    title: str
    category: RiskCategory
    likelihood: int
    impact: int
    risk_score: int
    risk_level: RiskLevel
    description: str | None = None
    remote_id: str | None = None

    @classmethod
    def from_form(cls, form: RiskFormData, *, remote_id: str | None = None) -> SnapshotRisk:
        score = risk_score(form.likelihood, form.impact)
        return cls(
            title=form.title,
            category=form.category,
            likelihood=form.likelihood,
            impact=form.impact,
            risk_score=score,
            risk_level=classify(score),
            description=form.description,
            remote_id=remote_id,
        )

    def rederived(self) -> SnapshotRisk:
        score = risk_score(self.likelihood, self.impact)
        return replace(self, risk_score=score, risk_level=classify(score))

    def is_consistent(self) -> bool:
        score = risk_score(self.likelihood, self.impact)
        return self.risk_score == score and self.risk_level == classify(score)

    def to_json_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "title": self.title,
            "category": self.category,
            "likelihood": self.likelihood,
            "impact": self.impact,
            "riskScore": self.risk_score,
            "riskLevel": self.risk_level,
        }
        if self.description is not None:
            payload["description"] = self.description
        if self.remote_id is not None:
            payload["remoteId"] = self.remote_id
        return payload

    @classmethod
    def from_json_dict(cls, data: Any) -> SnapshotRisk:
        if not isinstance(data, dict):
            raise SnapshotValidationError(f"risk: expected object, got {type(data).__name__}")

        title = _as_required_str(data.get("title"), field="risk.title")
        category = data.get("category")
        if category not in RISK_CATEGORIES:
            raise SnapshotValidationError(f"risk.category: unknown category {category!r}")
        risk_level = data.get("riskLevel")
        if risk_level not in RISK_LEVELS:
            raise SnapshotValidationError(f"risk.riskLevel: unknown level {risk_level!r}")

        score = data.get("riskScore")
        if isinstance(score, bool) or not isinstance(score, int):
            raise SnapshotValidationError(
                f"risk.riskScore: expected int, got {type(score).__name__}"
            )

        # Snapshots exported by the web client keyed the server id as "id".
        remote_raw = data.get("remoteId", data.get("id"))

        return cls(
            title=title,
            category=category,
            likelihood=_as_rating(data.get("likelihood"), field="risk.likelihood"),
            impact=_as_rating(data.get("impact"), field="risk.impact"),
            risk_score=score,
            risk_level=risk_level,
            description=_as_optional_str(data.get("description"), field="risk.description"),
            remote_id=_as_optional_str(remote_raw, field="risk.remoteId"),
        )


@dataclass(frozen=True, slots=True)
class RiskSnapshot:
    id: str
    schema_version: int
    risk: SnapshotRisk
    tags: tuple[str, ...]
    note: str
    created_at: datetime
    updated_at: datetime
    source: SnapshotSource

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "schemaVersion": self.schema_version,
            "risk": self.risk.to_json_dict(),
            "tags": list(self.tags),
            "note": self.note,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "source": self.source,
        }

    @classmethod
    def from_json_dict(cls, data: Any) -> RiskSnapshot:
        if not isinstance(data, dict):
            raise SnapshotValidationError(
                f"Expected dict for snapshot, got {type(data).__name__}"
            )

        snapshot_id = _as_required_str(data.get("id"), field="id")

        schema_version = data.get("schemaVersion", data.get("version"))
        if isinstance(schema_version, bool) or not isinstance(schema_version, int):
            raise SnapshotValidationError(
                f"schemaVersion: expected int, got {type(schema_version).__name__}"
            )
        if schema_version < 1:
            raise SnapshotValidationError(f"schemaVersion: expected a positive int, got {schema_version}")

        tags_raw = data.get("tags") or []
        if not isinstance(tags_raw, list) or not all(isinstance(t, str) for t in tags_raw):
            raise SnapshotValidationError("tags: expected list of strings")

        note = _as_optional_str(data.get("note"), field="note") or ""

        created_at = parse_timestamp(data.get("createdAt"), field="createdAt")
        updated_at = parse_timestamp(data.get("updatedAt"), field="updatedAt")
        if updated_at < created_at:
            raise SnapshotValidationError(
                f"updatedAt ({updated_at.isoformat()}) precedes createdAt ({created_at.isoformat()})"
            )

        return cls(
            id=snapshot_id,
            schema_version=schema_version,
            risk=SnapshotRisk.from_json_dict(data.get("risk")),
            tags=tuple(tags_raw),
            note=note,
            created_at=created_at,
            updated_at=updated_at,
            source=normalize_source(data.get("source")),
        )
