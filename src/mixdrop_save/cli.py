from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from .config import EngineConfig, load_config
from .document import get_data_version, serialize
from .engine import SaveDataEngine
from .errors import ConfigError
from .logging_config import configure_logging

logger = logging.getLogger(__name__)


def _build_engine(args: argparse.Namespace) -> Optional[SaveDataEngine]:
    try:
        config = load_config(args.config) if args.config else EngineConfig()
    except ConfigError as e:
        print(f"ERROR: {e}")
        return None
    if args.save_dir:
        config.save_dir = Path(args.save_dir).expanduser()
    if args.key is not None:
        config.encryption_key = args.key
    if args.cloud:
        config.enable_cloud_sync = True
    engine = SaveDataEngine(config)
    if not engine.init():
        print(f"ERROR: cannot prepare save directory {config.resolved_save_dir}")
        return None
    return engine


def _cmd_info(engine: SaveDataEngine, args: argparse.Namespace) -> int:
    print(engine.save_file_info().describe())
    return 0


def _cmd_backups(engine: SaveDataEngine, args: argparse.Namespace) -> int:
    backups = engine.list_backups()
    if not backups:
        print("No backup files found.")
        return 0
    for record in backups:
        print(f"{record.file_name}\t{record.formatted_size}\t{record.formatted_last_modified}")
    return 0


def _cmd_restore(engine: SaveDataEngine, args: argparse.Namespace) -> int:
    if args.backup:
        target = args.backup
    else:
        newest = engine.list_backups()
        if not newest:
            print("ERROR: no backup files found")
            return 1
        target = newest[0].file_path
    result = engine.restore_backup(target)
    if not result.success:
        print(f"ERROR: {result.error}")
        return 1
    print(f"Restored {Path(target).name}")
    return 0


def _cmd_rules(engine: SaveDataEngine, args: argparse.Namespace) -> int:
    print("=== Migration Rules ===")
    print(engine.registry.describe_migrations())
    print()
    print("=== Validation Rules ===")
    print(engine.registry.describe_validations())
    return 0


def _load_document(engine: SaveDataEngine, args: argparse.Namespace):
    if getattr(args, "file", None):
        return Path(args.file).read_text(encoding="utf-8")
    engine.config.validate_on_load = False
    loaded = engine.load(load_from_cloud_if_missing=False)
    if not loaded.success:
        print(f"ERROR: {loaded.error}")
        return None
    return loaded.document


def _cmd_validate(engine: SaveDataEngine, args: argparse.Namespace) -> int:
    document = _load_document(engine, args)
    if document is None:
        return 1
    result = engine.validate(document, args.version)
    for warning in result.warnings:
        print(f"WARNING: {warning}")
    for error in result.errors:
        print(f"INVALID: {error}")
    if result.is_valid:
        print("OK")
    return 0 if result.is_valid else 1


def _cmd_migrate(engine: SaveDataEngine, args: argparse.Namespace) -> int:
    document = _load_document(engine, args)
    if document is None:
        return 1
    validation, migration, migrated = engine.validate_and_migrate(
        document, declared_version=args.source, target_version=args.target, auto_migrate=True
    )
    for message in validation.errors:
        print(f"INVALID: {message}")
    for message in migration.messages:
        print(message)
    if not validation.is_valid or not migration.success:
        return 1
    if args.dry_run:
        print(serialize(migrated))
        return 0
    if args.file:
        Path(args.file).write_text(serialize(migrated), encoding="utf-8")
        print(f"Wrote {args.file} at version {get_data_version(migrated)}")
        return 0
    saved = engine.save(migrated)
    if not saved.success:
        print(f"ERROR: {saved.error}")
        return 1
    print(f"Saved data at version {get_data_version(migrated)}")
    return 0


def _cmd_delete(engine: SaveDataEngine, args: argparse.Namespace) -> int:
    result = engine.delete_save(include_backups=args.backups, include_cloud=args.delete_cloud)
    if not result.success:
        print(f"ERROR: {result.error}")
        return 1
    print("Save file deleted." if result.value else "No save file to delete.")
    return 0


def _cmd_sync(engine: SaveDataEngine, args: argparse.Namespace) -> int:
    result = engine.sync()
    print(f"{result.direction.value}: {result.message}")
    return 0 if result.success else 1


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mixdrop-save", description="MixDrop save data tools")
    p.add_argument("--save-dir", help="Directory holding the save file (default: platform data dir)")
    p.add_argument("--config", help="JSON engine configuration file")
    p.add_argument("--key", help="Encryption key (16, 24 or 32 bytes)", default=None)
    p.add_argument("--cloud", action="store_true", help="Enable the cloud mirror")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("info", help="Show save file information").set_defaults(func=_cmd_info)
    sub.add_parser("backups", help="List backup files, newest first").set_defaults(func=_cmd_backups)

    r = sub.add_parser("restore", help="Restore the save file from a backup")
    r.add_argument("backup", nargs="?", help="Backup file name or path (default: newest)")
    r.set_defaults(func=_cmd_restore)

    sub.add_parser("rules", help="List migration and validation rules").set_defaults(func=_cmd_rules)

    v = sub.add_parser("validate", help="Validate the save file or a plain document file")
    v.add_argument("--file", help="Plain (unframed) document file to validate instead of the save")
    v.add_argument("--version", help="Version to validate against (default: the document's own)")
    v.set_defaults(func=_cmd_validate)

    m = sub.add_parser("migrate", help="Validate and migrate save data to a target version")
    m.add_argument("--file", help="Plain (unframed) document file to migrate in place")
    m.add_argument("--from", dest="source", help="Declared source version (default: the document's own)")
    m.add_argument("--to", dest="target", help="Target version (default: current data version)")
    m.add_argument("--dry-run", action="store_true", help="Print the migrated document without writing it")
    m.set_defaults(func=_cmd_migrate)

    d = sub.add_parser("delete", help="Delete the save file")
    d.add_argument("--backups", action="store_true", help="Also delete backup files")
    d.add_argument("--include-cloud", dest="delete_cloud", action="store_true", help="Also clear the cloud copy")
    d.set_defaults(func=_cmd_delete)

    sub.add_parser("sync", help="Reconcile the save file with the cloud mirror").set_defaults(func=_cmd_sync)

    return p


def main(argv: list[str] | None = None) -> int:
    configure_logging(logging.WARNING)
    parser = build_parser()
    args = parser.parse_args(argv)
    engine = _build_engine(args)
    if engine is None:
        return 2
    try:
        return args.func(engine, args)
    finally:
        engine.shutdown()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
