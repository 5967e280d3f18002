from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Generic, List, Optional, TypeVar

from .errors import FailureKind

if TYPE_CHECKING:
    from .document import DocumentObject
    from .migration import MigrationResult
    from .validation import ValidationResult

T = TypeVar("T")

# Timestamp reported for files or remote slots with no known modification time
MIN_TIMESTAMP = datetime.min

_SIZE_UNITS = ("B", "KB", "MB", "GB")


@dataclass(frozen=True)
class BackupRecord:
    """A backup file as seen on disk at listing time."""

    file_name: str
    file_path: Path
    size_bytes: int
    last_modified: datetime

    @property
    def formatted_size(self) -> str:
        size = float(self.size_bytes)
        order = 0
        while size >= 1024 and order < len(_SIZE_UNITS) - 1:
            order += 1
            size /= 1024
        text = f"{size:.2f}".rstrip("0").rstrip(".")
        return f"{text} {_SIZE_UNITS[order]}"

    @property
    def formatted_last_modified(self) -> str:
        return self.last_modified.strftime("%Y-%m-%d %H:%M:%S")


@dataclass
class StoreResult(Generic[T]):
    """Outcome of a persistence store operation. Failures never raise past the store."""

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "StoreResult[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: str, kind: FailureKind = FailureKind.IO_ERROR) -> "StoreResult[T]":
        return cls(success=False, error=error, kind=kind)

    @property
    def not_found(self) -> bool:
        return self.kind is FailureKind.NOT_FOUND


class SyncDirection(str, Enum):
    NONE = "none"
    PUSH = "push"
    PULL = "pull"


@dataclass
class SyncResult:
    success: bool
    direction: SyncDirection = SyncDirection.NONE
    message: str = ""


@dataclass
class SaveResult:
    success: bool
    path: Optional[Path] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None
    backup: Optional[BackupRecord] = None
    cloud_pushed: bool = False
    warnings: List[str] = field(default_factory=list)


class LoadSource(str, Enum):
    LOCAL = "local"
    CLOUD = "cloud"
    BACKUP = "backup"
    DEFAULT = "default"


@dataclass
class LoadResult:
    success: bool
    document: Optional["DocumentObject"] = None
    source: Optional[LoadSource] = None
    error: Optional[str] = None
    kind: Optional[FailureKind] = None
    backup_used: Optional[BackupRecord] = None
    validation: Optional["ValidationResult"] = None
    migration: Optional["MigrationResult"] = None


@dataclass
class ValidateAndMigrateResult:
    validation: "ValidationResult"
    migration: "MigrationResult"
    document: "DocumentObject"

    def __iter__(self):
        # Allows ``validation, migration, doc = engine.validate_and_migrate(...)``
        return iter((self.validation, self.migration, self.document))


@dataclass
class SaveFileInfo:
    save_file_path: Path
    exists: bool
    size_bytes: int
    last_modified: datetime
    backup_dir: Path
    encryption_enabled: bool
    compression_enabled: bool
    cloud_sync_enabled: bool
    backups: List[BackupRecord] = field(default_factory=list)

    def describe(self) -> str:
        lines = [
            f"Save File Path: {self.save_file_path}",
            f"Save File Exists: {self.exists}",
            f"Save File Size: {self.size_bytes} bytes",
            f"Save File Last Modified: {self.last_modified if self.exists else 'n/a'}",
            f"Backup Directory: {self.backup_dir}",
            f"Encryption Enabled: {self.encryption_enabled}",
            f"Compression Enabled: {self.compression_enabled}",
            f"Cloud Sync Enabled: {self.cloud_sync_enabled}",
            "",
            "Backup Files:",
        ]
        if not self.backups:
            lines.append("  No backup files found.")
        for record in self.backups:
            lines.append(f"  {record.file_name}: {record.formatted_size}, {record.formatted_last_modified}")
        return "\n".join(lines)
