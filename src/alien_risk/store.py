from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from alien_risk.paths import STORAGE_KEY, StorePaths
from alien_risk.query import FilterCriteria, filter_snapshots, search
from alien_risk.snapshot import (
    SCHEMA_VERSION,
    SNAPSHOT_SOURCES,
    RemoteRecord,
    RiskFormData,
    RiskSnapshot,
    SnapshotRisk,
    SnapshotSource,
    SnapshotValidationError,
)
from alien_risk.stats import RiskStats, compute_stats
from alien_risk.storage import FileStorage, PersistenceError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Never changed by update(); updated_at is always restamped by the store.
_PRESERVED_FIELDS = frozenset({"id", "schema_version", "created_at", "updated_at", "source"})
_PATCHABLE_FIELDS = frozenset({"risk", "tags", "note"})
_RISK_FIELDS = frozenset(
    {
        "title",
        "description",
        "category",
        "likelihood",
        "impact",
        "risk_score",
        "risk_level",
        "remote_id",
    }
)
_DERIVING_RISK_FIELDS = frozenset({"likelihood", "impact"})


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _generate_snapshot_id() -> str:
    return str(uuid.uuid4())


def _sorted_newest_first(snapshots: Iterable[RiskSnapshot]) -> list[RiskSnapshot]:
    return sorted(snapshots, key=lambda s: s.created_at, reverse=True)


def _as_tags(value: Any) -> tuple[str, ...]:
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise SnapshotValidationError("tags: expected a list of strings")
    tags = tuple(value)
    if not all(isinstance(t, str) for t in tags):
        raise SnapshotValidationError("tags: expected a list of strings")
    return tags


def _checked(snapshot: RiskSnapshot) -> RiskSnapshot:
    # A record that does not decode again would be dropped by list_all and
    # would make read_records fail for every later write.
    RiskSnapshot.from_json_dict(snapshot.to_json_dict())
    return snapshot


class SnapshotStore:
    def __init__(
        self,
        storage: FileStorage,
        *,
        key: str = STORAGE_KEY,
        clock: Clock | None = None,
    ) -> None:
        self.storage = storage
        self.key = key
        self._clock = clock or _utc_now

    @classmethod
    def open(cls, data_dir: Path, *, clock: Clock | None = None) -> SnapshotStore:
        paths = StorePaths(data_dir=data_dir)
        return cls(FileStorage(paths.storage_dir), clock=clock)

    def now(self) -> datetime:
        return self._clock()

    def read_records(self) -> list[RiskSnapshot]:
        """Strict read of the stored collection in physical order.

        Raises ``PersistenceError`` when the stored value cannot be read or
        decoded, so callers never overwrite data they could not load.
        """
        raw = self.storage.get_item(self.key)
        if raw is None or not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Stored collection {self.key!r} is not valid JSON: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(
                f"Stored collection {self.key!r}: expected JSON array, got {type(data).__name__}"
            )
        try:
            return [RiskSnapshot.from_json_dict(item) for item in data]
        except SnapshotValidationError as e:
            raise PersistenceError(f"Stored collection {self.key!r} has a malformed record: {e}") from e

    def write_records(self, snapshots: Sequence[RiskSnapshot]) -> None:
        payload = json.dumps([s.to_json_dict() for s in snapshots], indent=2)
        self.storage.set_item(self.key, payload)

    def list_all(self) -> list[RiskSnapshot]:
        try:
            raw = self.storage.get_item(self.key)
        except PersistenceError as e:
            logger.warning("Treating store as empty: %s", e)
            return []
        if raw is None or not raw.strip():
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Treating store as empty: %s is not valid JSON: %s", self.key, e)
            return []
        if not isinstance(data, list):
            logger.warning(
                "Treating store as empty: %s holds %s, expected array", self.key, type(data).__name__
            )
            return []

        snapshots: list[RiskSnapshot] = []
        for item in data:
            try:
                snapshots.append(RiskSnapshot.from_json_dict(item))
            except SnapshotValidationError as e:
                logger.warning("Skipping malformed stored snapshot: %s", e)
        return _sorted_newest_first(snapshots)

    def get_by_id(self, snapshot_id: str) -> RiskSnapshot | None:
        for snapshot in self.list_all():
            if snapshot.id == snapshot_id:
                return snapshot
        return None

    def create(
        self,
        form: RiskFormData,
        source: SnapshotSource = "local",
        remote_record: RemoteRecord | None = None,
        *,
        tags: Iterable[str] = (),
        note: str = "",
    ) -> RiskSnapshot:
        if source not in SNAPSHOT_SOURCES:
            raise SnapshotValidationError(
                f"source: expected one of {list(SNAPSHOT_SOURCES)}, got {source!r}"
            )
        now = self.now()
        snapshot = RiskSnapshot(
            id=_generate_snapshot_id(),
            schema_version=SCHEMA_VERSION,
            risk=SnapshotRisk.from_form(
                form, remote_id=remote_record.id if remote_record is not None else None
            ),
            tags=_as_tags(tags),
            note=note,
            created_at=now,
            updated_at=now,
            source=source,
        )
        _checked(snapshot)

        snapshots = self.read_records()
        snapshots.insert(0, snapshot)
        self.write_records(snapshots)
        logger.info(
            "Created snapshot %s (%s, score=%d)",
            snapshot.id,
            snapshot.risk.risk_level,
            snapshot.risk.risk_score,
        )
        return snapshot

    def save(self, snapshot: RiskSnapshot) -> RiskSnapshot:
        snapshots = self.read_records()
        for index, existing in enumerate(snapshots):
            if existing.id == snapshot.id:
                saved = _checked(
                    replace(snapshot, updated_at=max(self.now(), snapshot.created_at))
                )
                snapshots[index] = saved
                break
        else:
            saved = _checked(snapshot)
            snapshots.insert(0, saved)
        self.write_records(snapshots)
        return saved

    def _merge_risk(self, current: SnapshotRisk, value: Any) -> SnapshotRisk:
        if isinstance(value, SnapshotRisk):
            return value.rederived()
        if isinstance(value, RiskFormData):
            return SnapshotRisk.from_form(value, remote_id=current.remote_id)
        if not isinstance(value, Mapping):
            raise SnapshotValidationError(
                f"risk: expected SnapshotRisk, RiskFormData or mapping, got {type(value).__name__}"
            )

        unknown = set(value) - _RISK_FIELDS
        if unknown:
            raise SnapshotValidationError(f"risk: unknown fields {sorted(unknown)}")
        merged = replace(current, **value)
        if _DERIVING_RISK_FIELDS & set(value):
            # Ratings must decode before they are multiplied.
            merged = SnapshotRisk.from_json_dict(merged.to_json_dict()).rederived()
        return merged

    def _merge(self, current: RiskSnapshot, patch: Mapping[str, Any]) -> RiskSnapshot:
        unknown = set(patch) - _PATCHABLE_FIELDS - _PRESERVED_FIELDS
        if unknown:
            raise SnapshotValidationError(f"Unknown snapshot fields in update: {sorted(unknown)}")
        ignored = set(patch) & _PRESERVED_FIELDS
        if ignored:
            logger.debug("Ignoring preserved fields in update of %s: %s", current.id, sorted(ignored))

        changes: dict[str, Any] = {}
        if "risk" in patch:
            changes["risk"] = self._merge_risk(current.risk, patch["risk"])
        if "tags" in patch:
            changes["tags"] = _as_tags(patch["tags"])
        if "note" in patch:
            note = patch["note"]
            if not isinstance(note, str):
                raise SnapshotValidationError(f"note: expected string, got {type(note).__name__}")
            changes["note"] = note

        changes["updated_at"] = max(self.now(), current.created_at)
        return replace(current, **changes)

    def update(
        self, snapshot_id: str, patch: Mapping[str, Any] | None = None
    ) -> RiskSnapshot | None:
        snapshots = self.read_records()
        for index, current in enumerate(snapshots):
            if current.id == snapshot_id:
                break
        else:
            return None

        merged = _checked(self._merge(current, patch or {}))
        snapshots[index] = merged
        self.write_records(snapshots)
        logger.info("Updated snapshot %s fields=%s", snapshot_id, sorted(patch or {}))
        return merged

    def delete(self, snapshot_id: str) -> bool:
        return self.delete_many([snapshot_id]) == 1

    def delete_many(self, snapshot_ids: Iterable[str]) -> int:
        targets = set(snapshot_ids)
        if not targets:
            return 0
        try:
            snapshots = self.read_records()
            remaining = [s for s in snapshots if s.id not in targets]
            removed = len(snapshots) - len(remaining)
            if removed:
                self.write_records(remaining)
        except PersistenceError as e:
            logger.warning("Delete skipped, store left unchanged: %s", e)
            return 0
        logger.info("Deleted %d snapshot(s)", removed)
        return removed

    def clear(self) -> None:
        try:
            self.storage.remove_item(self.key)
        except PersistenceError as e:
            logger.warning("Clear skipped: %s", e)
            return
        logger.info("Cleared snapshot store %s", self.key)

    def search(self, query: str) -> list[RiskSnapshot]:
        return search(self.list_all(), query)

    def filter(self, criteria: FilterCriteria) -> list[RiskSnapshot]:
        return filter_snapshots(self.list_all(), criteria)

    def stats(self) -> RiskStats:
        return compute_stats(self.list_all())
