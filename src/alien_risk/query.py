from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any

from alien_risk.snapshot import RiskSnapshot, SnapshotValidationError, parse_timestamp

DateBound = datetime | date | str

# Select widgets in the history view post "all" for an unset criterion.
_UNSET_VALUES = (None, "", "all")


def _matches_text(snapshot: RiskSnapshot, needle: str) -> bool:
    risk = snapshot.risk
    if needle in risk.title.casefold():
        return True
    if risk.description and needle in risk.description.casefold():
        return True
    if snapshot.note and needle in snapshot.note.casefold():
        return True
    return any(needle in tag.casefold() for tag in snapshot.tags)


def search(snapshots: Iterable[RiskSnapshot], query: str) -> list[RiskSnapshot]:
    items = list(snapshots)
    needle = query.strip().casefold()
    if not needle:
        return items
    return [s for s in items if _matches_text(s, needle)]


def _is_date_only(value: str) -> bool:
    return len(value) == 10 and value[4] == "-" and value[7] == "-"


def _to_bound(value: DateBound, *, field: str, end_of_day: bool) -> datetime:
    if isinstance(value, str):
        text = value.strip()
        if _is_date_only(text):
            try:
                value = date.fromisoformat(text)
            except ValueError as e:
                raise SnapshotValidationError(f"{field}: invalid date: {value!r}") from e
        else:
            try:
                return parse_timestamp(text, field=field)
            except SnapshotValidationError:
                # Naive timestamps are read as UTC.
                try:
                    return datetime.fromisoformat(text).replace(tzinfo=timezone.utc)
                except ValueError as e:
                    raise SnapshotValidationError(f"{field}: invalid datetime: {value!r}") from e

    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    clock = time.max if end_of_day else time.min
    return datetime.combine(value, clock, tzinfo=timezone.utc)


@dataclass(frozen=True, slots=True)
class FilterCriteria:
    category: str | None = None
    level: str | None = None
    source: str | None = None
    date_from: DateBound | None = None
    date_to: DateBound | None = None

    def is_empty(self) -> bool:
        return all(
            v is None
            for v in (self.category, self.level, self.source, self.date_from, self.date_to)
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> FilterCriteria:
        def pick(*keys: str) -> Any:
            for key in keys:
                value = data.get(key)
                if value not in _UNSET_VALUES:
                    return value
            return None

        return cls(
            category=pick("category"),
            level=pick("level"),
            source=pick("source"),
            date_from=pick("date_from", "dateFrom"),
            date_to=pick("date_to", "dateTo"),
        )


def filter_snapshots(
    snapshots: Iterable[RiskSnapshot], criteria: FilterCriteria
) -> list[RiskSnapshot]:
    items = list(snapshots)
    if criteria.is_empty():
        return items

    if criteria.category is not None:
        items = [s for s in items if s.risk.category == criteria.category]
    if criteria.level is not None:
        items = [s for s in items if s.risk.risk_level == criteria.level]
    if criteria.source is not None:
        items = [s for s in items if s.source == criteria.source]
    if criteria.date_from is not None:
        lower = _to_bound(criteria.date_from, field="date_from", end_of_day=False)
        items = [s for s in items if s.created_at >= lower]
    if criteria.date_to is not None:
        upper = _to_bound(criteria.date_to, field="date_to", end_of_day=True)
        items = [s for s in items if s.created_at <= upper]
    return items
