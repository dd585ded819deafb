from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import pytest

from alien_risk.snapshot import (
    RiskFormData,
    RiskSnapshot,
    SnapshotRisk,
    SnapshotValidationError,
)


def _payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": "snap-1",
        "schemaVersion": 1,
        "risk": {
            "title": "Crop circles near the reactor",
            "category": "UFO_CRASH",
            "likelihood": 3,
            "impact": 4,
            "riskScore": 12,
            "riskLevel": "HIGH",
        },
        "tags": ["field", "night"],
        "note": "Seen twice",
        "createdAt": "2025-03-01T10:00:00+00:00",
        "updatedAt": "2025-03-02T10:00:00+00:00",
        "source": "local",
    }
    payload.update(overrides)
    return payload


def test_snapshot_round_trips_through_json_dict() -> None:
    snapshot = RiskSnapshot.from_json_dict(_payload())
    assert snapshot.risk.risk_level == "HIGH"
    assert snapshot.tags == ("field", "night")
    assert snapshot.created_at == datetime(2025, 3, 1, 10, tzinfo=timezone.utc)
    assert RiskSnapshot.from_json_dict(snapshot.to_json_dict()) == snapshot


def test_optional_risk_fields_are_omitted_when_unset() -> None:
    data = RiskSnapshot.from_json_dict(_payload()).to_json_dict()
    assert "description" not in data["risk"]
    assert "remoteId" not in data["risk"]


def test_web_client_records_are_accepted() -> None:
    payload = _payload(
        version=1,
        createdAt="2025-03-01T10:00:00.000Z",
        updatedAt="2025-03-01T10:00:00.000Z",
        source="backend",
    )
    del payload["schemaVersion"]
    payload["risk"] = dict(payload["risk"], id="srv-42")

    snapshot = RiskSnapshot.from_json_dict(payload)
    assert snapshot.source == "remote"
    assert snapshot.risk.remote_id == "srv-42"
    assert snapshot.schema_version == 1


def test_naive_timestamps_are_rejected() -> None:
    with pytest.raises(SnapshotValidationError, match="timezone-aware"):
        RiskSnapshot.from_json_dict(_payload(createdAt="2025-03-01T10:00:00"))


def test_updated_before_created_is_rejected() -> None:
    with pytest.raises(SnapshotValidationError, match="precedes"):
        RiskSnapshot.from_json_dict(_payload(updatedAt="2025-02-01T10:00:00+00:00"))


def test_newer_schema_version_is_kept_as_is() -> None:
    snapshot = RiskSnapshot.from_json_dict(_payload(schemaVersion=2))
    assert snapshot.schema_version == 2
    assert snapshot.to_json_dict()["schemaVersion"] == 2


@pytest.mark.parametrize("version", [0, -1, "1", True, None])
def test_invalid_schema_version_is_rejected(version: Any) -> None:
    with pytest.raises(SnapshotValidationError, match="schemaVersion"):
        RiskSnapshot.from_json_dict(_payload(schemaVersion=version))


def test_boolean_ratings_are_rejected() -> None:
    payload = _payload()
    payload["risk"] = dict(payload["risk"], likelihood=True)
    with pytest.raises(SnapshotValidationError, match="risk.likelihood"):
        RiskSnapshot.from_json_dict(payload)


def test_unknown_source_is_rejected() -> None:
    with pytest.raises(SnapshotValidationError, match="source"):
        RiskSnapshot.from_json_dict(_payload(source="satellite"))


def test_risk_from_form_derives_score_and_level() -> None:
    risk = SnapshotRisk.from_form(
        RiskFormData(title="Mothership", category="INVASION", likelihood=5, impact=5),
        remote_id="srv-1",
    )
    assert risk.risk_score == 25
    assert risk.risk_level == "CRITICAL"
    assert risk.remote_id == "srv-1"
    assert risk.is_consistent()
