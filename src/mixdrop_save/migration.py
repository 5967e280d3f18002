from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .document import DocumentObject, stamp_version
from .errors import MigrationError
from .registry import SchemaRegistry

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    success: bool = True
    from_version: Optional[str] = None
    to_version: Optional[str] = None
    messages: List[str] = field(default_factory=list)

    def add_message(self, message: str) -> None:
        self.messages.append(message)


class MigrationPlanner:
    """Plans and applies version-to-version migrations over a SchemaRegistry."""

    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry

    def plan_path(self, from_version: str, to_version: str) -> List[str]:
        """Shortest sequence of versions from ``from_version`` to ``to_version``.

        Returns ``[from_version]`` when both are equal and ``[]`` when the
        target is unreachable.
        """
        if from_version == to_version:
            return [from_version]

        graph = self.registry.adjacency()
        parent: Dict[str, str] = {}
        seen = {from_version}
        q = deque([from_version])
        while q:
            current = q.popleft()
            if current == to_version:
                path = [current]
                while current != from_version:
                    current = parent[current]
                    path.append(current)
                path.reverse()
                logger.debug("Migration path %s -> %s: %s", from_version, to_version, path)
                return path
            for neighbor in graph.get(current, []):
                if neighbor not in seen:
                    seen.add(neighbor)
                    parent[neighbor] = current
                    q.append(neighbor)
        logger.debug("No migration path from %s to %s", from_version, to_version)
        return []

    def apply_path(self, doc: DocumentObject, path: Sequence[str]) -> Tuple[MigrationResult, DocumentObject]:
        """Run the rule for each consecutive pair in ``path``.

        A failing required rule stops the run and leaves the last successfully
        produced document. A failing optional rule is skipped and the next step
        runs against the unchanged document. After a run without required
        failures the final version is stamped onto the document.
        """
        result = MigrationResult(
            from_version=path[0] if path else None,
            to_version=path[-1] if path else None,
        )
        current_doc = doc.copy()
        if len(path) < 2:
            return result, current_doc

        current_version = path[0]
        for source_version, target_version in zip(path, path[1:]):
            rule = self.registry.migration_for(source_version, target_version)
            if rule is None:
                result.add_message(f"No migration rule found for {source_version} to {target_version}")
                continue
            result.add_message(f"Migrating from {source_version} to {target_version}: {rule.description}")
            try:
                migrated = rule.transform(current_doc.copy())
                if not isinstance(migrated, DocumentObject):
                    raise MigrationError(
                        f"transform returned {type(migrated).__name__}, expected DocumentObject"
                    )
            except Exception as exc:  # noqa: BLE001 - transforms are caller code
                message = f"Migration from {source_version} to {target_version} failed: {exc}"
                if rule.is_required:
                    logger.error(message)
                    result.success = False
                    result.add_message(message)
                    break
                logger.warning(message)
                result.add_message(f"Warning: {message}")
                continue
            current_doc = migrated
            current_version = target_version

        if result.success:
            stamp_version(current_doc, path[-1])
            result.add_message(f"Migration completed successfully. Data updated to version {path[-1]}.")
        else:
            logger.error("Migration stopped at version %s", current_version)
        return result, current_doc

    def migrate(self, doc: DocumentObject, from_version: str, to_version: str) -> Tuple[MigrationResult, DocumentObject]:
        if from_version == to_version:
            result = MigrationResult(from_version=from_version, to_version=to_version)
            result.add_message("Data is already at the target version. No migration needed.")
            return result, doc.copy()

        path = self.plan_path(from_version, to_version)
        if not path:
            result = MigrationResult(from_version=from_version, to_version=to_version)
            result.add_message("No migration path found. Data may already be at the target version.")
            return result, doc.copy()

        result, migrated = self.apply_path(doc, path)
        if result.success:
            logger.info("Migrated save data from %s to %s", from_version, to_version)
        return result, migrated
