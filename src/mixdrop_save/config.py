from __future__ import annotations

import dataclasses
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from jsonschema import Draft202012Validator

from .errors import ConfigError
from .paths import default_save_root

logger = logging.getLogger(__name__)

SAVE_FILE_NAME = "MixDrop_SaveData.json"
BACKUP_DIRECTORY_NAME = "MixDrop_Backups"
CLOUD_SAVE_KEY = "MixDrop_CloudSaveData"
CURRENT_DATA_VERSION = "1.0.0"

MIN_BACKUP_FILES = 1
MAX_BACKUP_FILES = 10

ENV_ENCRYPTION_KEY = "MIXDROP_ENCRYPTION_KEY"

SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "save_dir": {"type": "string", "minLength": 1},
        "save_file_name": {"type": "string", "minLength": 1},
        "backup_dir_name": {"type": "string", "minLength": 1},
        "cloud_key": {"type": "string", "minLength": 1},
        "compress_data": {"type": "boolean"},
        "encrypt_data": {"type": "boolean"},
        "encryption_key": {"type": ["string", "null"]},
        "enable_cloud_sync": {"type": "boolean"},
        "max_backup_files": {"type": "integer"},
        "current_data_version": {"type": "string", "minLength": 1},
        "auto_migrate": {"type": "boolean"},
        "backup_before_migration": {"type": "boolean"},
        "validate_on_load": {"type": "boolean"},
    },
}


def _clamp(value: int, min_value: int, max_value: int) -> int:
    return max(min_value, min(max_value, value))


@dataclass
class EngineConfig:
    """Settings for a SaveDataEngine.

    ``save_dir=None`` resolves to the platform user data directory, or to
    ``MIXDROP_SAVE_DIR`` when set. ``MIXDROP_ENCRYPTION_KEY`` overrides the key.
    """

    save_dir: Optional[Path] = None
    save_file_name: str = SAVE_FILE_NAME
    backup_dir_name: str = BACKUP_DIRECTORY_NAME
    cloud_key: str = CLOUD_SAVE_KEY

    compress_data: bool = True
    encrypt_data: bool = True
    encryption_key: Optional[str] = field(default=None, repr=False)
    enable_cloud_sync: bool = False
    max_backup_files: int = 3

    current_data_version: str = CURRENT_DATA_VERSION
    auto_migrate: bool = True
    backup_before_migration: bool = True
    validate_on_load: bool = True

    def __post_init__(self) -> None:
        if self.save_dir is not None:
            self.save_dir = Path(self.save_dir).expanduser()
        self.validate()

    def validate(self) -> None:
        """Normalize values to usable ranges."""
        clamped = _clamp(int(self.max_backup_files), MIN_BACKUP_FILES, MAX_BACKUP_FILES)
        if clamped != self.max_backup_files:
            logger.warning(
                "max_backup_files=%s out of range; using %s", self.max_backup_files, clamped
            )
        self.max_backup_files = clamped
        if not SEMVER_PATTERN.match(self.current_data_version):
            logger.warning(
                "Warning: Current data version '%s' does not follow semantic versioning (e.g., 1.0.0)",
                self.current_data_version,
            )

    # ------------------------ Paths ------------------------
    @property
    def resolved_save_dir(self) -> Path:
        return self.save_dir if self.save_dir is not None else default_save_root()

    @property
    def save_path(self) -> Path:
        return self.resolved_save_dir / self.save_file_name

    @property
    def backup_dir(self) -> Path:
        return self.resolved_save_dir / self.backup_dir_name

    @property
    def cloud_prefs_path(self) -> Path:
        return self.resolved_save_dir / "MixDrop_CloudPrefs.json"

    def effective_encryption_key(self) -> Optional[str]:
        return os.getenv(ENV_ENCRYPTION_KEY) or self.encryption_key

    # ------------------------ Loading ------------------------
    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["save_dir"] = str(self.save_dir) if self.save_dir is not None else None
        data.pop("encryption_key", None)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EngineConfig":
        allowed = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - allowed)
        if unknown:
            logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
        filtered = {k: v for k, v in data.items() if k in allowed}
        return cls(**filtered)


def _format_schema_errors(path: Path, errors) -> str:
    lines = [f"Config validation failed for {path}:"]
    for err in errors:
        where = ".".join(str(p) for p in err.absolute_path) or "$"
        lines.append(f" - At {where}: {err.message}")
    return "\n".join(lines)


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Read and validate a JSON engine configuration file.

    Raises:
        ConfigError: if the file is missing, is not valid JSON, or violates
            ``CONFIG_SCHEMA``.
    """
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {p}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse config at {p} (line {exc.lineno}, column {exc.colno}): {exc.msg}") from exc

    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        raise ConfigError(_format_schema_errors(p, errors))

    config = EngineConfig.from_dict(data)
    logger.info("Loaded engine config from %s", p)
    return config
