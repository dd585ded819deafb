from __future__ import annotations

from pathlib import Path

import pytest

from alien_risk.config import ConfigError, StoreSettings, load_settings, load_settings_if_present


def _write(path: Path, *lines: str) -> Path:
    path.write_text("\n".join([*lines, ""]), encoding="utf-8")
    return path


def test_load_settings_reads_store_table(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "alien_risk.toml",
        "[store]",
        f"data_dir = {str(tmp_path / 'data')!r}",
        'log_level = "info"',
    )
    settings = load_settings(path)
    assert settings == StoreSettings(data_dir=tmp_path / "data", log_level="INFO")


def test_relative_data_dir_is_resolved_against_config_file(tmp_path: Path) -> None:
    path = _write(tmp_path / "alien_risk.toml", "[store]", 'data_dir = "snapshots"')
    assert load_settings(path).data_dir == tmp_path / "snapshots"


def test_invalid_config_reports_every_problem(tmp_path: Path) -> None:
    path = _write(
        tmp_path / "alien_risk.toml",
        "[store]",
        'log_level = "LOUD"',
        "retention_days = 3",
        "[ui]",
        'theme = "neon"',
    )
    with pytest.raises(ConfigError) as excinfo:
        load_settings(path)
    message = str(excinfo.value)
    assert "Top-level: unknown keys ['ui']" in message
    assert "store: unknown keys ['retention_days']" in message
    assert "store.log_level" in message


def test_missing_and_malformed_files_raise(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        load_settings(tmp_path / "missing.toml")

    broken = _write(tmp_path / "broken.toml", "[store", "data_dir = ")
    with pytest.raises(ConfigError, match="Failed to parse TOML"):
        load_settings(broken)


def test_defaults_apply_when_no_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    assert load_settings_if_present(None) == StoreSettings()

    config_dir = tmp_path / "config"
    config_dir.mkdir()
    _write(config_dir / "alien_risk.toml", "[store]", 'log_level = "DEBUG"')
    assert load_settings_if_present(None).log_level == "DEBUG"
