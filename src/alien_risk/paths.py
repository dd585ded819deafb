from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

STORAGE_KEY = "alien-risk:v1:calculations"


def default_data_dir() -> Path:
    override = os.environ.get("ALIEN_RISK_DATA_DIR")
    if override:
        return Path(override).expanduser()

    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    if xdg_data_home:
        return Path(xdg_data_home).expanduser() / "alien-risk"

    return Path.home() / ".local" / "share" / "alien-risk"


def key_filename(key: str) -> str:
    return key.replace(":", ".").replace("/", "_") + ".json"


@dataclass(frozen=True, slots=True)
class StorePaths:
    data_dir: Path

    @property
    def storage_dir(self) -> Path:
        return self.data_dir / "storage"

    @property
    def exports_dir(self) -> Path:
        return self.data_dir / "exports"

    def storage_path(self, key: str = STORAGE_KEY) -> Path:
        return self.storage_dir / key_filename(key)

    def export_path(self, *, day: date | datetime) -> Path:
        if isinstance(day, datetime):
            day = day.date()
        date_str = day.strftime("%Y-%m-%d")
        return self.exports_dir / f"alien-risk-history-{date_str}.json"
