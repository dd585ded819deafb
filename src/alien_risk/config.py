from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("config/alien_risk.toml")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
DEFAULT_LOG_LEVEL = "WARNING"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True, slots=True)
class StoreSettings:
    data_dir: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL


def _toml_load(path: Path) -> dict[str, Any]:
    try:
        import tomllib  # pyright: ignore[reportMissingImports]
    except ModuleNotFoundError:  # pragma: no cover
        import tomli as tomllib  # type: ignore[no-redef]

    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}") from e
    except Exception as e:  # tomllib.TOMLDecodeError is not public across tomli/tomllib
        raise ConfigError(f"Failed to parse TOML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected TOML document to be a table in {path}")
    return data


def _as_str(value: Any, *, field: str, errors: list[str]) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        errors.append(f"{field}: expected string, got {type(value).__name__}")
        return None
    if not value.strip():
        errors.append(f"{field}: must be non-empty")
        return None
    return value


def load_settings(config_path: Path) -> StoreSettings:
    data = _toml_load(config_path)
    errors: list[str] = []

    allowed_top_level = {"store"}
    unknown_top_level = set(data) - allowed_top_level
    if unknown_top_level:
        errors.append(
            f"Top-level: unknown keys {sorted(unknown_top_level)} "
            f"(allowed: {sorted(allowed_top_level)})"
        )

    store_table = data.get("store", {})
    if not isinstance(store_table, dict):
        errors.append("store: expected a table ([store])")
        raise ConfigError("Invalid config:\n- " + "\n- ".join(errors))

    allowed_store_keys = {"data_dir", "log_level"}
    unknown_store_keys = set(store_table) - allowed_store_keys
    if unknown_store_keys:
        errors.append(
            f"store: unknown keys {sorted(unknown_store_keys)} (allowed: {sorted(allowed_store_keys)})"
        )

    data_dir = _as_str(store_table.get("data_dir"), field="store.data_dir", errors=errors)
    log_level = _as_str(store_table.get("log_level"), field="store.log_level", errors=errors)
    if log_level is not None and log_level.upper() not in LOG_LEVELS:
        errors.append(f"store.log_level: expected one of {list(LOG_LEVELS)}, got {log_level!r}")

    if errors:
        raise ConfigError("Invalid config:\n- " + "\n- ".join(errors))

    resolved_dir = None
    if data_dir is not None:
        resolved_dir = Path(data_dir).expanduser()
        if not resolved_dir.is_absolute():
            resolved_dir = config_path.parent / resolved_dir
    return StoreSettings(
        data_dir=resolved_dir,
        log_level=log_level.upper() if log_level is not None else DEFAULT_LOG_LEVEL,
    )


def load_settings_if_present(config_path: Path | None) -> StoreSettings:
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return StoreSettings()
        config_path = DEFAULT_CONFIG_PATH
    return load_settings(config_path)
