import io
import json
import logging
from pathlib import Path

import pytest

from mixdrop_save.config import EngineConfig, load_config
from mixdrop_save.errors import ConfigError
from mixdrop_save.logging_config import configure_logging
from mixdrop_save.paths import default_save_root


def test_defaults():
    config = EngineConfig()
    assert config.save_file_name == "MixDrop_SaveData.json"
    assert config.backup_dir_name == "MixDrop_Backups"
    assert config.cloud_key == "MixDrop_CloudSaveData"
    assert config.max_backup_files == 3
    assert config.current_data_version == "1.0.0"
    assert config.compress_data and config.encrypt_data
    assert not config.enable_cloud_sync


@pytest.mark.parametrize("requested,expected", [(0, 1), (-5, 1), (4, 4), (50, 10)])
def test_max_backup_files_is_clamped(requested, expected):
    assert EngineConfig(max_backup_files=requested).max_backup_files == expected


def test_non_semver_version_warns(caplog):
    EngineConfig(current_data_version="v2")
    assert any("semantic versioning" in rec.message for rec in caplog.records)


def test_paths_follow_save_dir(tmp_path: Path):
    config = EngineConfig(save_dir=tmp_path)
    assert config.save_path == tmp_path / "MixDrop_SaveData.json"
    assert config.backup_dir == tmp_path / "MixDrop_Backups"


def test_env_overrides_save_root(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("MIXDROP_SAVE_DIR", str(tmp_path))
    assert default_save_root() == tmp_path.resolve()
    assert EngineConfig().save_path.parent == tmp_path.resolve()


def test_default_save_root_uses_platform_dir():
    assert "MixDrop" in str(default_save_root())


def test_to_dict_omits_key(tmp_path: Path):
    data = EngineConfig(save_dir=tmp_path, encryption_key="secret").to_dict()
    assert "encryption_key" not in data
    assert data["save_dir"] == str(tmp_path)


def test_load_config_valid(tmp_path: Path):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"save_dir": str(tmp_path), "max_backup_files": 5, "encrypt_data": False}))
    config = load_config(path)
    assert config.max_backup_files == 5
    assert config.encrypt_data is False
    assert config.save_dir == tmp_path


def test_load_config_schema_errors_are_readable(tmp_path: Path):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"max_backup_files": "three", "colour": "blue"}))
    with pytest.raises(ConfigError) as ei:
        load_config(path)
    message = str(ei.value)
    assert "Config validation failed" in message
    assert "max_backup_files" in message
    assert "colour" in message


def test_load_config_missing_or_malformed(tmp_path: Path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.json")
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(ConfigError):
        load_config(bad)


def test_configure_logging_honours_env(monkeypatch):
    monkeypatch.setenv("MIXDROP_LOG_LEVEL", "debug")
    stream = io.StringIO()
    package_logger = configure_logging(stream=stream)
    assert package_logger.name == "mixdrop_save"
    assert package_logger.level == logging.DEBUG

    logging.getLogger("mixdrop_save.store").debug("backup rotated")
    assert "[DEBUG] [mixdrop] mixdrop_save.store: backup rotated" in stream.getvalue()


def test_configure_logging_installs_one_handler(monkeypatch):
    monkeypatch.setenv("MIXDROP_LOG_LEVEL", "not-a-level")
    package_logger = configure_logging(logging.WARNING, stream=io.StringIO())
    configure_logging(logging.ERROR, stream=io.StringIO())
    assert package_logger.level == logging.ERROR
    assert sum(1 for h in package_logger.handlers if getattr(h, "_mixdrop_handler", False)) == 1
