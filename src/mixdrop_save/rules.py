"""Built-in migration and validation rules for player progress documents."""

from __future__ import annotations

import math
import uuid
from typing import List

from .document import VERSION_KEYS, DocumentArray, DocumentObject, stamp_version
from .registry import SchemaRegistry

STARS_MIN = 0
STARS_MAX = 3


def _levels(doc: DocumentObject) -> List[DocumentObject]:
    """Level entries of ``doc``; raises if ``levels`` is present but not an array of objects."""
    levels = doc.get("levels")
    if levels is None:
        return []
    if not isinstance(levels, DocumentArray):
        raise TypeError("'levels' must be an array")
    entries = levels.objects()
    if len(entries) != levels.length():
        raise TypeError("every 'levels' element must be an object")
    return entries


# ---------------------------
# Migrations
# ---------------------------

def migrate_0_9_0_to_1_0_0(doc: DocumentObject) -> DocumentObject:
    """Add the version field and rename level fields.

    ``id``/``stars``/``bestTime`` become ``levelId``/``starsAchieved``/``bestTimeSeconds``.
    """
    stamp_version(doc, "1.0.0")
    for level in _levels(doc):
        if not level.contains_key("levelId"):
            level.set("levelId", level.get_str("id") if level.contains_key("id") else str(uuid.uuid4()))
        if not level.contains_key("starsAchieved"):
            level.set("starsAchieved", level.get_str("stars", "0") if level.contains_key("stars") else "0")
        if not level.contains_key("bestTimeSeconds"):
            level.set("bestTimeSeconds", level.get_str("bestTime", "0") if level.contains_key("bestTime") else "0")
        for legacy in ("id", "stars", "bestTime"):
            level.remove(legacy)
    return doc


# ---------------------------
# Validations
# ---------------------------

def has_version_field(doc: DocumentObject) -> bool:
    return any(doc.contains_key(key) for key in VERSION_KEYS)


def levels_have_ids(doc: DocumentObject) -> bool:
    return all(level.contains_key("levelId") for level in _levels(doc))


def level_ids_unique(doc: DocumentObject) -> bool:
    seen = set()
    for level in _levels(doc):
        if not level.contains_key("levelId"):
            continue
        level_id = level.get_str("levelId")
        if level_id in seen:
            return False
        seen.add(level_id)
    return True


def numeric_fields_in_range(doc: DocumentObject) -> bool:
    for level in _levels(doc):
        if level.contains_key("starsAchieved"):
            try:
                stars = int(level.get_str("starsAchieved"))
            except ValueError:
                return False
            if not STARS_MIN <= stars <= STARS_MAX:
                return False
        if level.contains_key("bestTimeSeconds"):
            try:
                seconds = float(level.get_str("bestTimeSeconds"))
            except ValueError:
                return False
            if not math.isfinite(seconds) or seconds < 0:
                return False
    return True


def register_builtin_rules(registry: SchemaRegistry) -> None:
    registry.add_migration(
        "0.9.0",
        "1.0.0",
        "Add version field and restructure level data",
        True,
        migrate_0_9_0_to_1_0_0,
    )

    registry.add_validation(
        "RequiredFields",
        "Check that a version field exists",
        True,
        has_version_field,
    )
    registry.add_validation(
        "LevelIds",
        "Check that every level entry carries a levelId",
        True,
        levels_have_ids,
    )
    registry.add_validation(
        "UniqueLevelIds",
        "Check that all level IDs are unique",
        True,
        level_ids_unique,
    )
    registry.add_validation(
        "NumericRanges",
        "Check that numeric values are within expected ranges",
        False,
        numeric_fields_in_range,
    )
