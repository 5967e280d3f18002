from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .document import DocumentObject

logger = logging.getLogger(__name__)

Transform = Callable[[DocumentObject], DocumentObject]
Predicate = Callable[[DocumentObject], bool]


@dataclass(frozen=True)
class MigrationRule:
    """Transform between two schema versions, identified by (from_version, to_version)."""

    from_version: str
    to_version: str
    description: str
    is_required: bool
    transform: Transform

    @property
    def key(self) -> Tuple[str, str]:
        return (self.from_version, self.to_version)


@dataclass(frozen=True)
class ValidationRule:
    """Named predicate over a document. ``applies_to_version=None`` means all versions."""

    name: str
    description: str
    is_required: bool
    predicate: Predicate
    applies_to_version: Optional[str] = None

    def applies_to(self, version: Optional[str]) -> bool:
        return self.applies_to_version is None or self.applies_to_version == version


class SchemaRegistry:
    """Keyed store of migration and validation rules.

    Registration is expected to finish before the rules are read concurrently.
    Registering an existing key replaces the earlier rule.
    """

    def __init__(self) -> None:
        self._migrations: Dict[Tuple[str, str], MigrationRule] = {}
        self._validations: Dict[str, ValidationRule] = {}

    def register_migration(self, rule: MigrationRule) -> None:
        if rule.key in self._migrations:
            logger.debug("Replacing migration rule %s -> %s", *rule.key)
        self._migrations[rule.key] = rule

    def register_validation(self, rule: ValidationRule) -> None:
        if rule.name in self._validations:
            logger.debug("Replacing validation rule %s", rule.name)
        self._validations[rule.name] = rule

    def add_migration(
        self,
        from_version: str,
        to_version: str,
        description: str,
        is_required: bool,
        transform: Transform,
    ) -> MigrationRule:
        rule = MigrationRule(from_version, to_version, description, is_required, transform)
        self.register_migration(rule)
        return rule

    def add_validation(
        self,
        name: str,
        description: str,
        is_required: bool,
        predicate: Predicate,
        applies_to_version: Optional[str] = None,
    ) -> ValidationRule:
        rule = ValidationRule(name, description, is_required, predicate, applies_to_version)
        self.register_validation(rule)
        return rule

    def get_migrations(self) -> Dict[Tuple[str, str], MigrationRule]:
        return dict(self._migrations)

    def get_validations(self) -> Dict[str, ValidationRule]:
        return dict(self._validations)

    def migration_for(self, from_version: str, to_version: str) -> Optional[MigrationRule]:
        return self._migrations.get((from_version, to_version))

    def adjacency(self) -> Dict[str, List[str]]:
        """Version graph built from migration edges, in registration order."""
        graph: Dict[str, List[str]] = {}
        for from_version, to_version in self._migrations:
            graph.setdefault(from_version, []).append(to_version)
        return graph

    def describe_migrations(self) -> str:
        lines = []
        for rule in self._migrations.values():
            lines.append(f"{rule.from_version} -> {rule.to_version}: {rule.description}")
            lines.append(f"  Required: {rule.is_required}")
        return "\n".join(lines) if lines else "No migration rules registered."

    def describe_validations(self) -> str:
        lines = []
        for rule in self._validations.values():
            lines.append(f"{rule.name}: {rule.description}")
            lines.append(f"  Required: {rule.is_required}")
            lines.append(f"  Applies to: {rule.applies_to_version or 'All versions'}")
        return "\n".join(lines) if lines else "No validation rules registered."
