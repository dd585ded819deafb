from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from alien_risk.paths import key_filename

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    pass


def replace_file(path: Path, content: str) -> None:
    """Swap ``content`` into ``path`` through a sibling temp file.

    Readers see the old file or the new one, never a partial write. The temp
    file is removed when anything fails before the rename.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, staged = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(staged, path)
    except Exception:
        Path(staged).unlink(missing_ok=True)
        raise


class FileStorage:
    """Key/value storage where each key owns one file under ``root``.

    Values are opaque strings stored as given; writes replace the whole
    value atomically.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def path_for(self, key: str) -> Path:
        return self.root / key_filename(key)

    def get_item(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read {path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        path = self.path_for(key)
        try:
            replace_file(path, value)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path}: {e}") from e
        logger.debug("Wrote %d bytes to %s", len(value), path)

    def remove_item(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise PersistenceError(f"Failed to remove {path}: {e}") from e
