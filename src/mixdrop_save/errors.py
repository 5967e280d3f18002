from __future__ import annotations

import errno
from enum import Enum


class SaveDataError(Exception):
    """Base exception for save-data lifecycle errors."""


class DecodeError(SaveDataError):
    """Raised when a framed payload cannot be decrypted, decompressed or parsed."""


class DocumentParseError(DecodeError):
    """Raised when document text is malformed."""


class EncryptionKeyError(SaveDataError):
    """Raised when an encryption key is not 16, 24 or 32 bytes long."""


class MigrationError(SaveDataError):
    """Raised when a migration transform produces an unusable document."""


class ConfigError(SaveDataError):
    """Raised when an engine configuration file is invalid."""


class FailureKind(str, Enum):
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    DISK_FULL = "disk_full"
    IO_ERROR = "io_error"
    DECODE = "decode"
    VALIDATION = "validation"
    MIGRATION = "migration"
    NOT_INITIALIZED = "not_initialized"
    INVALID_INPUT = "invalid_input"
    CLOUD = "cloud"

    @classmethod
    def from_exception(cls, exc: BaseException) -> "FailureKind":
        """Classify an exception raised by a pipeline stage."""
        if isinstance(exc, FileNotFoundError):
            return cls.NOT_FOUND
        if isinstance(exc, PermissionError):
            return cls.PERMISSION_DENIED
        if isinstance(exc, OSError):
            if exc.errno in (errno.ENOSPC, getattr(errno, "EDQUOT", errno.ENOSPC)):
                return cls.DISK_FULL
            return cls.IO_ERROR
        if isinstance(exc, DecodeError):
            return cls.DECODE
        if isinstance(exc, MigrationError):
            return cls.MIGRATION
        if isinstance(exc, (TypeError, ValueError)):
            return cls.INVALID_INPUT
        return cls.IO_ERROR
