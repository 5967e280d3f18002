from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from .fs import atomic_write_text
from .models import MIN_TIMESTAMP, SyncDirection, SyncResult
from .store import PathLike, SaveStore

logger = logging.getLogger(__name__)


class CloudSlot(ABC):
    """A single opaque string value held remotely under a fixed key."""

    def __init__(self, key: str) -> None:
        self.key = key

    @abstractmethod
    def get(self) -> Optional[str]:
        """Return the stored value, or ``None`` when the slot is empty."""

    @abstractmethod
    def put(self, value: str) -> None:
        """Store ``value``, replacing any previous one."""

    @abstractmethod
    def clear(self) -> None:
        """Remove the stored value if present."""

    def last_modified(self) -> datetime:
        """When the remote value last changed.

        Backends without a timestamp API report ``MIN_TIMESTAMP``, so the
        remote copy is never considered newer than a local file.
        """
        return MIN_TIMESTAMP


class InMemoryCloudSlot(CloudSlot):
    """Slot kept in process memory.

    With ``track_timestamps`` the slot records the time of each ``put`` and
    reports it from ``last_modified``.
    """

    def __init__(self, key: str = "MixDrop_CloudSaveData", track_timestamps: bool = False) -> None:
        super().__init__(key)
        self.track_timestamps = track_timestamps
        self._value: Optional[str] = None
        self._modified: datetime = MIN_TIMESTAMP

    def get(self) -> Optional[str]:
        return self._value

    def put(self, value: str) -> None:
        self._value = value
        if self.track_timestamps:
            self._modified = datetime.now()

    def clear(self) -> None:
        self._value = None
        self._modified = MIN_TIMESTAMP

    def set_last_modified(self, when: datetime) -> None:
        self._modified = when

    def last_modified(self) -> datetime:
        return self._modified if self.track_timestamps else MIN_TIMESTAMP


class FileCloudSlot(CloudSlot):
    """Slot stored in a JSON key-value preferences file.

    Several keys may share one file; only ``self.key`` is touched.
    """

    def __init__(self, prefs_path: PathLike, key: str = "MixDrop_CloudSaveData") -> None:
        super().__init__(key)
        self.prefs_path = Path(prefs_path)

    def _read_all(self) -> Dict[str, str]:
        if not self.prefs_path.exists():
            return {}
        data = json.loads(self.prefs_path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Preferences file {self.prefs_path} is malformed: not an object")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        atomic_write_text(self.prefs_path, json.dumps(data, indent=2, sort_keys=True))

    def get(self) -> Optional[str]:
        value = self._read_all().get(self.key)
        return value if isinstance(value, str) else None

    def put(self, value: str) -> None:
        data = self._read_all()
        data[self.key] = value
        self._write_all(data)

    def clear(self) -> None:
        data = self._read_all()
        if data.pop(self.key, None) is not None:
            self._write_all(data)


class CloudMirror:
    """Mirrors the local save file into a cloud slot with last-write-wins sync."""

    def __init__(self, slot: CloudSlot, store: SaveStore) -> None:
        self.slot = slot
        self.store = store

    def pull(self) -> Optional[str]:
        """Return the remote payload, or ``None`` when empty or unreachable."""
        try:
            data = self.slot.get()
        except Exception as exc:  # noqa: BLE001 - any backend failure means "nothing pulled"
            logger.error("Failed to load from cloud slot %s: %s", self.slot.key, exc)
            return None
        if not data:
            return None
        logger.info("Data loaded from cloud slot %s", self.slot.key)
        return data

    def push(self, payload: str) -> bool:
        try:
            self.slot.put(payload)
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to save to cloud slot %s: %s", self.slot.key, exc)
            return False
        logger.info("Data saved to cloud slot %s", self.slot.key)
        return True

    def clear(self) -> bool:
        try:
            self.slot.clear()
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to clear cloud slot %s: %s", self.slot.key, exc)
            return False
        return True

    def remote_last_modified(self) -> datetime:
        try:
            return self.slot.last_modified()
        except Exception as exc:  # noqa: BLE001
            logger.error("Failed to query cloud timestamp for %s: %s", self.slot.key, exc)
            return MIN_TIMESTAMP

    def sync(self, path: PathLike) -> SyncResult:
        """Reconcile ``path`` with the slot; the strictly newer side wins.

        Contents are never merged. Equal timestamps are a no-op.
        """
        with self.store.lock_for(path):
            local_modified = self.store.last_modified(path)
            remote_modified = self.remote_last_modified()

            if local_modified > remote_modified:
                local = self.store.read(path)
                if not local.success or not local.value:
                    return SyncResult(False, SyncDirection.PUSH, local.error or "Local save file is empty")
                if not self.push(local.value):
                    return SyncResult(False, SyncDirection.PUSH, "Failed to push local save to cloud")
                return SyncResult(True, SyncDirection.PUSH, "Local save is newer; pushed to cloud")

            if remote_modified > local_modified:
                remote = self.pull()
                if not remote:
                    return SyncResult(False, SyncDirection.PULL, "Cloud save is newer but empty or unreachable")
                written = self.store.write(path, remote)
                if not written.success:
                    return SyncResult(False, SyncDirection.PULL, written.error or "Failed to write cloud save locally")
                return SyncResult(True, SyncDirection.PULL, "Cloud save is newer; pulled to local")

            return SyncResult(True, SyncDirection.NONE, "Local and cloud saves are in sync")
