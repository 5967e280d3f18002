from __future__ import annotations

import logging
import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from .errors import FailureKind
from .fs import atomic_copy, atomic_write_text, ensure_dir, read_text
from .models import MIN_TIMESTAMP, BackupRecord, StoreResult

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

BACKUP_PREFIX = "Backup_"
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# Backup_<yyyyMMdd_HHmmss>[-<n>]_<original file name>; -<n> only appears when
# several backups of one file are taken within the same second.
_BACKUP_NAME = re.compile(r"^Backup_(\d{8}_\d{6})(?:-(\d+))?_(.+)$")

_path_locks: Dict[str, threading.RLock] = {}
_path_locks_guard = threading.Lock()


def path_lock(path: PathLike) -> threading.RLock:
    """Return the process-wide re-entrant lock guarding ``path``."""
    key = str(Path(path).expanduser().resolve())
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = _path_locks[key] = threading.RLock()
        return lock


class SaveStore:
    """File persistence for save payloads with rotating backups.

    Every operation returns a result or a neutral value; ``OSError`` never
    escapes the store.
    """

    def __init__(
        self,
        backup_dir: PathLike,
        max_backup_files: int = 3,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if max_backup_files < 1:
            raise ValueError("max_backup_files must be at least 1")
        self.backup_dir = Path(backup_dir)
        self.max_backup_files = max_backup_files
        self._clock = clock or datetime.now

    def lock_for(self, path: PathLike) -> threading.RLock:
        return path_lock(path)

    # Files

    def write(self, path: PathLike, text: str, backup_first: bool = False) -> StoreResult[Optional[BackupRecord]]:
        """Atomically replace ``path`` with ``text``.

        When ``backup_first`` is set and the file exists it is copied into the
        backup directory first; the write is abandoned if that copy fails. The
        result value is the backup created, if any.
        """
        path = Path(path)
        with self.lock_for(path):
            backup: Optional[BackupRecord] = None
            if backup_first and path.is_file():
                created = self.create_backup(path)
                if not created.success:
                    return StoreResult.fail(
                        f"Backup before write failed, {path} left untouched: {created.error}",
                        created.kind or FailureKind.IO_ERROR,
                    )
                backup = created.value
            try:
                atomic_write_text(path, text)
            except OSError as exc:
                logger.error("Failed to write %s: %s", path, exc)
                return StoreResult.fail(f"Failed to write {path}: {exc}", FailureKind.from_exception(exc))
            logger.debug("Wrote %d characters to %s", len(text), path)
            return StoreResult.ok(backup)

    def read(self, path: PathLike) -> StoreResult[str]:
        path = Path(path)
        with self.lock_for(path):
            try:
                return StoreResult.ok(read_text(path))
            except FileNotFoundError:
                return StoreResult.fail(f"File not found: {path}", FailureKind.NOT_FOUND)
            except UnicodeDecodeError as exc:
                logger.error("File %s is not valid UTF-8: %s", path, exc)
                return StoreResult.fail(f"File {path} is not valid UTF-8 text", FailureKind.DECODE)
            except OSError as exc:
                logger.error("Failed to read %s: %s", path, exc)
                return StoreResult.fail(f"Failed to read {path}: {exc}", FailureKind.from_exception(exc))

    def exists(self, path: PathLike) -> bool:
        return Path(path).is_file()

    def size(self, path: PathLike) -> int:
        try:
            return Path(path).stat().st_size
        except OSError:
            return 0

    def last_modified(self, path: PathLike) -> datetime:
        """Modification time of ``path``, or ``MIN_TIMESTAMP`` if unavailable."""
        try:
            return datetime.fromtimestamp(Path(path).stat().st_mtime)
        except OSError:
            return MIN_TIMESTAMP

    def delete(self, path: PathLike) -> StoreResult[bool]:
        path = Path(path)
        with self.lock_for(path):
            try:
                path.unlink()
            except FileNotFoundError:
                return StoreResult.ok(False)
            except OSError as exc:
                logger.error("Failed to delete %s: %s", path, exc)
                return StoreResult.fail(f"Failed to delete {path}: {exc}", FailureKind.from_exception(exc))
            logger.info("Deleted %s", path)
            return StoreResult.ok(True)

    # Backups

    def create_backup(self, path: PathLike) -> StoreResult[BackupRecord]:
        """Copy ``path`` into the backup directory, then rotate old backups."""
        path = Path(path)
        with self.lock_for(path):
            if not path.is_file():
                logger.warning("No save file to back up at %s", path)
                return StoreResult.fail(f"No file to back up at {path}", FailureKind.NOT_FOUND)
            try:
                ensure_dir(self.backup_dir)
                dest = self._next_backup_path(path)
                atomic_copy(path, dest)
                record = self._record(dest)
            except OSError as exc:
                logger.error("Failed to create backup of %s: %s", path, exc)
                return StoreResult.fail(f"Failed to create backup of {path}: {exc}", FailureKind.from_exception(exc))
            logger.info("Backup created at %s", dest)
            self.prune_backups(path)
            return StoreResult.ok(record)

    def list_backups(self, path: PathLike) -> List[BackupRecord]:
        """Backups of ``path``, newest first."""
        return [record for record, _ in reversed(self._scan(Path(path)))]

    def newest_backup(self, path: PathLike) -> Optional[BackupRecord]:
        backups = self.list_backups(path)
        return backups[0] if backups else None

    def restore_backup(self, backup_path: PathLike, path: PathLike) -> StoreResult[Optional[BackupRecord]]:
        """Replace ``path`` with the contents of ``backup_path``.

        The current file, if any, is backed up first. The backup being
        restored is read before that so rotation cannot remove it mid-restore.
        """
        backup_path = Path(backup_path)
        path = Path(path)
        with self.lock_for(path):
            if not backup_path.is_file():
                logger.error("Backup file not found: %s", backup_path)
                return StoreResult.fail(f"Backup file not found: {backup_path}", FailureKind.NOT_FOUND)
            contents = self.read(backup_path)
            if not contents.success:
                return StoreResult.fail(contents.error or "Failed to read backup", contents.kind or FailureKind.IO_ERROR)
            result = self.write(path, contents.value or "", backup_first=True)
            if result.success:
                logger.info("Backup restored from %s", backup_path)
            return result

    def prune_backups(self, path: PathLike) -> List[Path]:
        """Delete the oldest backups of ``path`` beyond ``max_backup_files``."""
        scanned = self._scan(Path(path))
        excess = len(scanned) - self.max_backup_files
        deleted: List[Path] = []
        for record, _ in scanned[:max(excess, 0)]:
            try:
                record.file_path.unlink()
            except OSError as exc:
                logger.error("Failed to delete old backup %s: %s", record.file_path, exc)
                continue
            deleted.append(record.file_path)
            logger.info("Deleted old backup file: %s", record.file_name)
        return deleted

    def delete_backups(self, path: PathLike) -> int:
        removed = 0
        for record in self.list_backups(path):
            try:
                record.file_path.unlink()
                removed += 1
            except OSError as exc:
                logger.error("Failed to delete backup file %s: %s", record.file_name, exc)
        return removed

    # Internal helpers

    def _next_backup_path(self, path: Path) -> Path:
        stamp = self._clock().strftime(BACKUP_TIMESTAMP_FORMAT)
        # Sequence numbers only grow within a second, even after pruning frees a name.
        seqs = [key[2] for _, key in self._scan(path) if key[1] == stamp]
        seq = max(seqs) + 1 if seqs else 0
        candidate = self._backup_name(stamp, seq, path)
        while candidate.exists():
            seq += 1
            candidate = self._backup_name(stamp, seq, path)
        return candidate

    def _backup_name(self, stamp: str, seq: int, path: Path) -> Path:
        suffix = f"-{seq}" if seq else ""
        return self.backup_dir / f"{BACKUP_PREFIX}{stamp}{suffix}_{path.name}"

    def _scan(self, path: Path) -> List[Tuple[BackupRecord, Tuple[int, str, int]]]:
        """Backups of ``path`` sorted oldest first.

        Ordered by modification time; the name stamp and sequence number break
        ties on file systems with coarse timestamps.
        """
        found: List[Tuple[BackupRecord, Tuple[int, str, int]]] = []
        try:
            if not self.backup_dir.is_dir():
                return found
            candidates = list(self.backup_dir.iterdir())
        except OSError as exc:
            logger.error("Failed to list backups in %s: %s", self.backup_dir, exc)
            return found
        for entry in candidates:
            match = _BACKUP_NAME.match(entry.name)
            if not match or match.group(3) != path.name:
                continue
            try:
                stat = entry.stat()
            except OSError:
                continue
            if not entry.is_file():
                continue
            record = BackupRecord(
                file_name=entry.name,
                file_path=entry,
                size_bytes=stat.st_size,
                last_modified=datetime.fromtimestamp(stat.st_mtime),
            )
            found.append((record, (stat.st_mtime_ns, match.group(1), int(match.group(2) or 0))))
        found.sort(key=lambda item: item[1])
        return found

    @staticmethod
    def _record(path: Path) -> BackupRecord:
        stat = path.stat()
        return BackupRecord(
            file_name=path.name,
            file_path=path,
            size_bytes=stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime),
        )
