from importlib.metadata import version, PackageNotFoundError

from .config import EngineConfig, load_config
from .document import DocumentArray, DocumentObject, parse, serialize
from .engine import SaveDataEngine
from .errors import FailureKind, SaveDataError
from .models import BackupRecord, LoadResult, LoadSource, SaveResult, SyncResult
from .registry import MigrationRule, SchemaRegistry, ValidationRule

__all__ = [
    "__version__",
    "BackupRecord",
    "DocumentArray",
    "DocumentObject",
    "EngineConfig",
    "FailureKind",
    "LoadResult",
    "LoadSource",
    "MigrationRule",
    "SaveDataEngine",
    "SaveDataError",
    "SaveResult",
    "SchemaRegistry",
    "SyncResult",
    "ValidationRule",
    "load_config",
    "parse",
    "serialize",
]

try:
    __version__ = version("mixdrop-savedata")
except PackageNotFoundError:  # pragma: no cover - during tests without packaging
    __version__ = "0.0.0"
