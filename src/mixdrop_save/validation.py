from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from .document import DocumentObject, parse_object
from .errors import DocumentParseError
from .registry import SchemaRegistry

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Errors block migration; warnings are advisory and never invalidate."""

    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def merge(self, other: "ValidationResult") -> None:
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        self.is_valid = self.is_valid and other.is_valid


class Validator:
    def __init__(self, registry: SchemaRegistry) -> None:
        self.registry = registry

    def validate(self, document: Union[DocumentObject, str], version: Optional[str]) -> ValidationResult:
        """Evaluate every rule that applies to ``version`` against ``document``.

        Text input is parsed first; malformed text yields a single error.
        """
        result = ValidationResult()
        if isinstance(document, str):
            try:
                document = parse_object(document)
            except DocumentParseError as exc:
                result.add_error(f"Invalid document format: {exc}")
                return result
        elif not isinstance(document, DocumentObject):
            result.add_error(f"Invalid document format: expected an object, got {type(document).__name__}")
            return result

        for rule in self.registry.get_validations().values():
            if not rule.applies_to(version):
                continue
            try:
                passed = bool(rule.predicate(document.copy()))
                message = None if passed else f"Validation failed: {rule.description}"
            except Exception as exc:  # noqa: BLE001 - predicates are caller code
                message = f"Validation error for rule '{rule.name}': {exc}"
            if message is None:
                continue
            if rule.is_required:
                result.add_error(message)
            else:
                result.add_warning(message)

        if result.is_valid:
            logger.debug("Validation passed with %d warning(s)", len(result.warnings))
        else:
            logger.warning("Validation failed: %s", "; ".join(result.errors))
        return result
