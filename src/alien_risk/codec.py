from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from alien_risk.snapshot import SCHEMA_VERSION, RiskSnapshot, SnapshotValidationError
from alien_risk.storage import PersistenceError, replace_file
from alien_risk.store import SnapshotStore

logger = logging.getLogger(__name__)

UNKNOWN_ID = "unknown id"


@dataclass(frozen=True, slots=True)
class ImportResult:
    accepted: bool
    imported_count: int
    rejections: tuple[str, ...] = ()

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "accepted": self.accepted,
            "importedCount": self.imported_count,
            "rejections": list(self.rejections),
        }


def _failed(message: str) -> ImportResult:
    return ImportResult(accepted=False, imported_count=0, rejections=(message,))


def build_export_envelope(snapshots: Sequence[RiskSnapshot], *, now: datetime) -> dict[str, Any]:
    return {
        "schemaVersion": SCHEMA_VERSION,
        "exportedAt": now.isoformat(),
        "count": len(snapshots),
        "data": [s.to_json_dict() for s in snapshots],
    }


def export_document(store: SnapshotStore, *, now: datetime | None = None) -> str:
    envelope = build_export_envelope(store.list_all(), now=now or store.now())
    return json.dumps(envelope, indent=2)


def export_to_file(store: SnapshotStore, path: Path, *, now: datetime | None = None) -> int:
    snapshots = store.list_all()
    envelope = build_export_envelope(snapshots, now=now or store.now())
    try:
        replace_file(path, json.dumps(envelope, indent=2) + "\n")
    except OSError as e:
        raise PersistenceError(f"Failed to write export file {path}: {e}") from e
    logger.info("Exported %d snapshot(s) to %s", len(snapshots), path)
    return len(snapshots)


def _record_label(record: dict[str, Any]) -> str:
    record_id = record.get("id")
    if isinstance(record_id, str) and record_id.strip():
        return record_id
    return UNKNOWN_ID


def _duplicate_label(record: dict[str, Any]) -> str:
    risk = record.get("risk")
    title = risk.get("title") if isinstance(risk, dict) else None
    if isinstance(title, str) and title.strip():
        return title
    return _record_label(record)


def _has_required_fields(record: dict[str, Any]) -> bool:
    if _record_label(record) == UNKNOWN_ID:
        return False
    if not isinstance(record.get("risk"), dict):
        return False
    # Files exported by the web client carry "version" instead of "schemaVersion".
    return record.get("schemaVersion", record.get("version")) is not None


def import_document(store: SnapshotStore, document: str | bytes) -> ImportResult:
    try:
        payload = json.loads(document)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        return _failed(f"Invalid JSON: {e}")

    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list):
        return _failed('Invalid export file: expected an array-valued "data" field')

    try:
        existing = store.read_records()
    except PersistenceError as e:
        return _failed(f"Existing store is unreadable, nothing imported: {e}")

    known_ids = {s.id for s in existing}
    rejections: list[str] = []
    added: list[RiskSnapshot] = []

    for record in data:
        if not isinstance(record, dict) or not _has_required_fields(record):
            label = _record_label(record) if isinstance(record, dict) else UNKNOWN_ID
            rejections.append(f"Invalid snapshot: {label}")
            continue

        record_id = record["id"]
        if record_id in known_ids:
            rejections.append(f"Duplicate snapshot skipped: {_duplicate_label(record)}")
            continue

        try:
            snapshot = RiskSnapshot.from_json_dict(record)
        except SnapshotValidationError as e:
            rejections.append(f"Invalid snapshot: {record_id} ({e})")
            continue
        if not snapshot.risk.is_consistent():
            rejections.append(
                f"Invalid snapshot: {record_id} (riskScore/riskLevel do not match likelihood x impact)"
            )
            continue

        known_ids.add(record_id)
        added.append(snapshot)

    if added:
        try:
            store.write_records([*existing, *added])
        except PersistenceError as e:
            rejections.append(f"Failed to save imported snapshots: {e}")
            return ImportResult(accepted=False, imported_count=0, rejections=tuple(rejections))

    logger.info("Imported %d snapshot(s), %d rejected", len(added), len(rejections))
    return ImportResult(
        accepted=bool(added),
        imported_count=len(added),
        rejections=tuple(rejections),
    )


def import_from_file(store: SnapshotStore, path: Path) -> ImportResult:
    try:
        document = path.read_bytes()
    except OSError as e:
        return _failed(f"Failed to read {path}: {e}")
    return import_document(store, document)
