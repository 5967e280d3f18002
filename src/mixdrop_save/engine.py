"""Save, load and schema-evolution facade over the save-data pipeline."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union

from . import events as ev
from .cloud import CloudMirror, CloudSlot, FileCloudSlot
from .codec import PayloadCodec
from .config import EngineConfig
from .crypto import SaveCipher, is_valid_key, key_bytes
from .document import DocumentObject, get_data_version, parse_object, serialize, stamp_version, to_document
from .errors import DecodeError, FailureKind, SaveDataError
from .events import EventBus
from .fs import ensure_dir
from .migration import MigrationPlanner, MigrationResult
from .models import (
    MIN_TIMESTAMP,
    BackupRecord,
    LoadResult,
    LoadSource,
    SaveFileInfo,
    SaveResult,
    StoreResult,
    SyncDirection,
    SyncResult,
    ValidateAndMigrateResult,
)
from .registry import SchemaRegistry
from .rules import register_builtin_rules
from .store import SaveStore
from .validation import ValidationResult, Validator

logger = logging.getLogger(__name__)

NOT_INITIALIZED_MESSAGE = "Save data engine is not initialized; call init() first"


class SaveDataEngine:
    """Composes the document model, codec, store, cloud mirror and schema rules.

    Typical use::

        engine = SaveDataEngine(EngineConfig(save_dir=path))
        engine.init()
        engine.save({"version": "1.0.0", "levels": [...]})
        result = engine.load()

    ``init()`` must complete before any other call. Public operations return
    result objects; failures are described by ``error`` and ``kind`` rather
    than raised.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        store: Optional[SaveStore] = None,
        cloud_slot: Optional[CloudSlot] = None,
        registry: Optional[SchemaRegistry] = None,
        events: Optional[EventBus] = None,
        builtin_rules: bool = True,
    ) -> None:
        self.config = config or EngineConfig()
        self.registry = registry or SchemaRegistry()
        if builtin_rules:
            register_builtin_rules(self.registry)
        self.events = events or EventBus()
        self.planner = MigrationPlanner(self.registry)
        self.validator = Validator(self.registry)

        self.store = store
        self.mirror: Optional[CloudMirror] = None
        self.codec = PayloadCodec(compress=self.config.compress_data)
        self.save_path: Path = self.config.save_path
        self.backup_dir: Path = self.config.backup_dir

        self._cloud_slot = cloud_slot
        self._initialized = False
        self._pending: Optional[DocumentObject] = None

    # ------------------------ Lifecycle ------------------------
    @property
    def initialized(self) -> bool:
        return self._initialized

    def init(self) -> bool:
        """Resolve paths, prepare directories and pick the codec for this session.

        Safe to call more than once. Returns False when the save directories
        cannot be created.
        """
        if self._initialized:
            return True

        self.save_path = self.config.save_path
        self.backup_dir = self.config.backup_dir
        try:
            ensure_dir(self.save_path.parent)
            ensure_dir(self.backup_dir)
        except OSError as exc:
            logger.error("Failed to prepare save directories under %s: %s", self.save_path.parent, exc)
            return False

        if self.store is None:
            self.store = SaveStore(self.backup_dir, self.config.max_backup_files)
        self.codec = PayloadCodec(compress=self.config.compress_data, cipher=self._session_cipher())

        if self.config.enable_cloud_sync:
            slot = self._cloud_slot or FileCloudSlot(self.config.cloud_prefs_path, self.config.cloud_key)
            self.mirror = CloudMirror(slot, self.store)

        self._initialized = True
        logger.info(
            "Save data engine initialized at %s (encryption=%s, compression=%s, cloud=%s)",
            self.save_path,
            self.encryption_enabled,
            self.compression_enabled,
            self.mirror is not None,
        )
        return True

    def shutdown(self) -> None:
        if not self._initialized:
            return
        if self._pending is not None:
            self.flush()
        self._initialized = False
        logger.info("Save data engine shut down")

    def _session_cipher(self) -> Optional[SaveCipher]:
        if not self.config.encrypt_data:
            return None
        key = self.config.effective_encryption_key()
        if not is_valid_key(key):
            logger.warning(
                "Invalid encryption key length %d (must be 16, 24 or 32 bytes); encryption disabled",
                len(key_bytes(key)),
            )
            return None
        return SaveCipher(key)  # type: ignore[arg-type]

    @property
    def encryption_enabled(self) -> bool:
        return self.codec.encrypts

    @property
    def compression_enabled(self) -> bool:
        return self.codec.compress

    @property
    def cloud_sync_enabled(self) -> bool:
        return self.mirror is not None

    # ------------------------ Events ------------------------
    def subscribe(self, event_name: str, callback) -> None:
        self.events.subscribe(event_name, callback)

    def unsubscribe(self, event_name: str, callback) -> bool:
        return self.events.unsubscribe(event_name, callback)

    # ------------------------ Save ------------------------
    def save(self, domain_object: Any, create_backup: bool = True) -> SaveResult:
        """Serialize, frame and persist ``domain_object``.

        A missing version field is filled with the current data version. A
        failed cloud push does not fail the save; it is reported in
        ``warnings`` and ``cloud_pushed``.
        """
        if not self._initialized:
            return self._save_failed(NOT_INITIALIZED_MESSAGE, FailureKind.NOT_INITIALIZED)

        try:
            doc = to_document(domain_object)
            if get_data_version(doc) is None:
                stamp_version(doc, self.config.current_data_version)
            payload = self.codec.encode(serialize(doc))
        except (SaveDataError, TypeError, ValueError) as exc:
            logger.error("Failed to encode save data: %s", exc)
            return self._save_failed(f"Failed to encode save data: {exc}", FailureKind.from_exception(exc))

        with self.store.lock_for(self.save_path):
            written = self.store.write(self.save_path, payload, backup_first=create_backup)
            if not written.success:
                return self._save_failed(written.error or "Failed to write save file", written.kind or FailureKind.IO_ERROR)

            result = SaveResult(success=True, path=self.save_path, backup=written.value)
            if self.mirror is not None:
                result.cloud_pushed = self.mirror.push(payload)
                if not result.cloud_pushed:
                    result.warnings.append("Saved locally but failed to push to cloud")
                    logger.warning("Saved locally but failed to push to cloud")

        if self._pending is not None and self._pending == doc:
            self._pending = None
        logger.info("Game data saved successfully to %s", self.save_path)
        self.events.publish(
            ev.SAVE_SUCCEEDED,
            {"path": str(self.save_path), "backup": written.value, "cloud_pushed": result.cloud_pushed},
        )
        return result

    def _save_failed(self, error: str, kind: FailureKind) -> SaveResult:
        self.events.publish(ev.SAVE_FAILED, {"error": error, "kind": kind})
        return SaveResult(success=False, path=self.save_path, error=error, kind=kind)

    # ------------------------ Load ------------------------
    def load(self, load_from_cloud_if_missing: bool = True, default: Any = None) -> LoadResult:
        """Read, unframe and parse the save file.

        A missing file falls back to the cloud mirror, then to ``default`` (an
        empty document at the current version when not given). A corrupt or
        unreadable file falls back to the newest backup; the file itself is
        left as is.
        """
        if not self._initialized:
            return self._load_failed(NOT_INITIALIZED_MESSAGE, FailureKind.NOT_INITIALIZED)

        with self.store.lock_for(self.save_path):
            result = self._load_payload(load_from_cloud_if_missing, default)
            if not result.success:
                return self._load_failed(result.error or "Failed to load save data", result.kind or FailureKind.DECODE)

            if self.config.validate_on_load and result.source is not LoadSource.DEFAULT:
                checked = self._validate_and_migrate(
                    result.document,
                    snapshot=result.source is LoadSource.LOCAL,
                )
                result.validation, result.migration, result.document = checked
                if not checked.validation.is_valid or not checked.migration.success:
                    logger.warning("Loaded save data did not pass validation or migration")

        logger.info("Game data loaded successfully from %s", result.source.value)
        self.events.publish(
            ev.LOAD_SUCCEEDED,
            {"path": str(self.save_path), "source": result.source, "backup": result.backup_used},
        )
        return result

    def _load_payload(self, load_from_cloud_if_missing: bool, default: Any) -> LoadResult:
        read = self.store.read(self.save_path)
        source = LoadSource.LOCAL

        if read.not_found:
            payload = None
            if load_from_cloud_if_missing and self.mirror is not None:
                payload = self.mirror.pull()
            if not payload:
                logger.info("No save file found, using default data")
                return LoadResult(success=True, document=self._default_document(default), source=LoadSource.DEFAULT)
            stored = self.store.write(self.save_path, payload)
            if not stored.success:
                logger.warning("Could not write cloud save locally: %s", stored.error)
            source = LoadSource.CLOUD
        elif not read.success:
            logger.error("Failed to read save file %s: %s", self.save_path, read.error)
            return self._load_from_backup(read.error or "Save file is unreadable")
        else:
            payload = read.value or ""

        try:
            return LoadResult(success=True, document=self._decode(payload), source=source)
        except DecodeError as exc:
            logger.error("Failed to decode save data from %s: %s", source.value, exc)
            return self._load_from_backup(str(exc))

    def _load_from_backup(self, primary_error: str) -> LoadResult:
        backup = self.store.newest_backup(self.save_path)
        if backup is None:
            return LoadResult(
                success=False,
                error=f"Save data is corrupt and no backup is available: {primary_error}",
                kind=FailureKind.DECODE,
            )
        logger.warning("Attempting to load from backup %s", backup.file_name)
        read = self.store.read(backup.file_path)
        if not read.success:
            return LoadResult(
                success=False,
                error=f"Save data is corrupt and backup could not be read: {read.error}",
                kind=read.kind,
            )
        try:
            doc = self._decode(read.value or "")
        except DecodeError as exc:
            logger.error("Backup %s is also unreadable: %s", backup.file_name, exc)
            return LoadResult(
                success=False,
                error=f"Save data and newest backup are both corrupt: {primary_error}; {exc}",
                kind=FailureKind.DECODE,
            )
        logger.info("Successfully loaded from backup %s", backup.file_name)
        return LoadResult(success=True, document=doc, source=LoadSource.BACKUP, backup_used=backup)

    def _decode(self, payload: str) -> DocumentObject:
        return parse_object(self.codec.decode(payload))

    def _default_document(self, default: Any) -> DocumentObject:
        doc = DocumentObject() if default is None else to_document(default)
        if get_data_version(doc) is None:
            stamp_version(doc, self.config.current_data_version)
        return doc

    def _load_failed(self, error: str, kind: FailureKind) -> LoadResult:
        logger.error("Failed to load game data: %s", error)
        self.events.publish(ev.LOAD_FAILED, {"error": error, "kind": kind})
        return LoadResult(success=False, error=error, kind=kind)

    # ------------------------ Validation & migration ------------------------
    def validate(self, document: Union[DocumentObject, str, Any], version: Optional[str] = None) -> ValidationResult:
        """Run the registered validation rules; ``version`` defaults to the document's own."""
        if not isinstance(document, str):
            try:
                document = to_document(document)
            except (SaveDataError, TypeError, ValueError) as exc:
                result = ValidationResult()
                result.add_error(f"Invalid document format: {exc}")
                return result
            if version is None:
                version = get_data_version(document)
        elif version is None:
            try:
                version = get_data_version(parse_object(document))
            except DecodeError:
                pass  # reported by the validator's own parse check
        return self.validator.validate(document, version)

    def migrate(
        self,
        document: Any,
        from_version: Optional[str] = None,
        to_version: Optional[str] = None,
    ) -> Tuple[MigrationResult, DocumentObject]:
        target = to_version or self.config.current_data_version
        try:
            doc = to_document(document)
        except (SaveDataError, TypeError, ValueError) as exc:
            result = MigrationResult(success=False, from_version=from_version, to_version=target)
            result.add_message(f"Invalid document format: {exc}")
            self.events.publish(
                ev.MIGRATION_FAILED,
                {"from": from_version, "to": target, "messages": list(result.messages)},
            )
            return result, DocumentObject()
        source = from_version or get_data_version(doc)
        if source is None:
            result = MigrationResult(success=False, to_version=target)
            result.add_message("No data version found; cannot plan a migration.")
            return result, doc
        result, migrated = self.planner.migrate(doc, source, target)
        self.events.publish(
            ev.MIGRATION_SUCCEEDED if result.success else ev.MIGRATION_FAILED,
            {"from": source, "to": target, "messages": list(result.messages)},
        )
        return result, migrated

    def validate_and_migrate(
        self,
        document: Any,
        declared_version: Optional[str] = None,
        target_version: Optional[str] = None,
        auto_migrate: Optional[bool] = None,
    ) -> ValidateAndMigrateResult:
        """Validate ``document`` and bring it up to ``target_version``.

        Hard validation errors stop before any migration. After a migration the
        result document is validated again and both passes are merged.
        """
        if not self._initialized:
            validation = ValidationResult()
            validation.add_error(NOT_INITIALIZED_MESSAGE)
            migration = MigrationResult(success=False)
            migration.add_message(NOT_INITIALIZED_MESSAGE)
            return ValidateAndMigrateResult(validation, migration, DocumentObject())
        with self.store.lock_for(self.save_path):
            return self._validate_and_migrate(document, declared_version, target_version, auto_migrate, snapshot=True)

    def _validate_and_migrate(
        self,
        document: Any,
        declared_version: Optional[str] = None,
        target_version: Optional[str] = None,
        auto_migrate: Optional[bool] = None,
        snapshot: bool = True,
    ) -> ValidateAndMigrateResult:
        target = target_version or self.config.current_data_version
        auto = self.config.auto_migrate if auto_migrate is None else auto_migrate

        try:
            doc = to_document(document)
        except (SaveDataError, TypeError, ValueError) as exc:
            validation = ValidationResult()
            validation.add_error(f"Invalid document format: {exc}")
            migration = MigrationResult(success=False, to_version=target)
            migration.add_message("Validation failed; migration not attempted.")
            self.events.publish(ev.VALIDATION_FAILED, {"errors": list(validation.errors)})
            return ValidateAndMigrateResult(validation, migration, DocumentObject())

        declared = declared_version or get_data_version(doc)
        validation = self.validator.validate(doc, declared)
        if not validation.is_valid:
            self.events.publish(ev.VALIDATION_FAILED, {"errors": list(validation.errors)})
            migration = MigrationResult(success=False, from_version=declared, to_version=target)
            migration.add_message("Validation failed; migration not attempted.")
            return ValidateAndMigrateResult(validation, migration, doc)
        self.events.publish(ev.VALIDATION_SUCCEEDED, {"warnings": list(validation.warnings)})

        if declared is None:
            migration = MigrationResult(success=True, to_version=target)
            migration.add_message("No data version found; migration skipped.")
            return ValidateAndMigrateResult(validation, migration, doc)
        if declared == target:
            migration = MigrationResult(success=True, from_version=declared, to_version=target)
            migration.add_message("Data is already at the target version. No migration needed.")
            return ValidateAndMigrateResult(validation, migration, doc)
        if not auto:
            migration = MigrationResult(success=True, from_version=declared, to_version=declared)
            migration.add_message(f"Automatic migration disabled; data remains at version {declared}.")
            return ValidateAndMigrateResult(validation, migration, doc)

        if snapshot and self.config.backup_before_migration and len(self.planner.plan_path(declared, target)) > 1:
            warning = self._snapshot_before_migration()
            if warning:
                validation.add_warning(warning)

        migration, migrated = self.migrate(doc, declared, target)
        revalidation = self.validator.validate(migrated, get_data_version(migrated))
        validation.merge(revalidation)
        if not revalidation.is_valid:
            self.events.publish(ev.VALIDATION_FAILED, {"errors": list(revalidation.errors)})
        return ValidateAndMigrateResult(validation, migration, migrated)

    def _snapshot_before_migration(self) -> Optional[str]:
        """Back up the save file unless the newest backup already holds the same bytes.

        Returns a warning message when the backup could not be taken.
        """
        current = self.store.read(self.save_path)
        if not current.success:
            return None
        newest = self.store.newest_backup(self.save_path)
        if newest is not None:
            previous = self.store.read(newest.file_path)
            if previous.success and previous.value == current.value:
                logger.debug("Newest backup %s already matches the save file", newest.file_name)
                return None
        backup = self.store.create_backup(self.save_path)
        if not backup.success:
            return f"Backup before migration failed: {backup.error}"
        return None

    # ------------------------ Autosave ------------------------
    @property
    def has_pending_changes(self) -> bool:
        return self._pending is not None

    def mark_changed(self, document: Any) -> bool:
        """Remember ``document`` as the latest unsaved state; ``flush`` persists it.

        Returns False, keeping any earlier pending state, when ``document``
        cannot be converted to a save document.
        """
        try:
            self._pending = to_document(document)
        except (SaveDataError, TypeError, ValueError) as exc:
            logger.error("Ignoring change that is not valid save data: %s", exc)
            return False
        return True

    def flush(self, create_backup: bool = True) -> Optional[SaveResult]:
        if self._pending is None:
            return None
        result = self.save(self._pending, create_backup=create_backup)
        if result.success:
            self._pending = None
        return result

    # ------------------------ Cloud ------------------------
    def sync(self) -> SyncResult:
        if not self._initialized:
            return SyncResult(False, SyncDirection.NONE, NOT_INITIALIZED_MESSAGE)
        if self.mirror is None:
            return SyncResult(False, SyncDirection.NONE, "Cloud sync is disabled")
        result = self.mirror.sync(self.save_path)
        logger.info("Cloud sync finished: %s", result.message)
        self.events.publish(
            ev.CLOUD_SYNC_COMPLETED,
            {"success": result.success, "direction": result.direction, "message": result.message},
        )
        return result

    # ------------------------ Save file management ------------------------
    def save_file_exists(self) -> bool:
        return self._initialized and self.store.exists(self.save_path)

    def save_file_size(self) -> int:
        return self.store.size(self.save_path) if self._initialized else 0

    def save_file_last_modified(self) -> datetime:
        return self.store.last_modified(self.save_path) if self._initialized else MIN_TIMESTAMP

    def list_backups(self) -> List[BackupRecord]:
        return self.store.list_backups(self.save_path) if self._initialized else []

    def create_backup(self) -> StoreResult[BackupRecord]:
        if not self._initialized:
            return StoreResult.fail(NOT_INITIALIZED_MESSAGE, FailureKind.NOT_INITIALIZED)
        return self.store.create_backup(self.save_path)

    def restore_backup(self, backup: Union[BackupRecord, str, Path]) -> StoreResult[Optional[BackupRecord]]:
        """Replace the save file with ``backup``; the current file is backed up first."""
        if not self._initialized:
            return StoreResult.fail(NOT_INITIALIZED_MESSAGE, FailureKind.NOT_INITIALIZED)
        backup_path = backup.file_path if isinstance(backup, BackupRecord) else Path(backup)
        if not backup_path.is_absolute() and backup_path.parent == Path("."):
            backup_path = self.backup_dir / backup_path
        return self.store.restore_backup(backup_path, self.save_path)

    def delete_save(self, include_backups: bool = False, include_cloud: bool = False) -> StoreResult[bool]:
        """Delete the save file, and optionally its backups and the cloud copy.

        The value is True when the save file existed and was removed.
        """
        if not self._initialized:
            return StoreResult.fail(NOT_INITIALIZED_MESSAGE, FailureKind.NOT_INITIALIZED)
        with self.store.lock_for(self.save_path):
            deleted = self.store.delete(self.save_path)
            if not deleted.success:
                return deleted
            if include_backups:
                removed = self.store.delete_backups(self.save_path)
                logger.info("Deleted %d backup file(s)", removed)
            if include_cloud and self.mirror is not None and not self.mirror.clear():
                return StoreResult.fail("Save deleted locally but cloud copy could not be cleared", FailureKind.CLOUD)
            self._pending = None
            return deleted

    def save_file_info(self) -> SaveFileInfo:
        exists = self.save_file_exists()
        return SaveFileInfo(
            save_file_path=self.save_path,
            exists=exists,
            size_bytes=self.save_file_size() if exists else 0,
            last_modified=self.save_file_last_modified() if exists else MIN_TIMESTAMP,
            backup_dir=self.backup_dir,
            encryption_enabled=self.encryption_enabled,
            compression_enabled=self.compression_enabled,
            cloud_sync_enabled=self.cloud_sync_enabled,
            backups=self.list_backups(),
        )
