"""Minimal structured-document model used for save data.

A document is a tree of three value kinds:

- ``DocumentObject``: ordered string-keyed members
- ``DocumentArray``: ordered elements
- ``str``: every leaf is a string; numbers and booleans are carried as text
  and callers parse/format them themselves

The text format looks like JSON but is deliberately narrower so that files
written by earlier builds keep loading byte-for-byte:

- leaves are always serialized quoted and are never escaped
- a ``"`` character always toggles quoted state while splitting, so escaped
  quotes (``\\"``) inside strings are not supported
- bare tokens such as ``2``, ``120.5`` or ``true`` are read as strings

``parse(serialize(doc)) == doc`` holds for every document whose strings do not
contain a double quote.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, is_dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import DocumentParseError

VERSION_KEYS: Tuple[str, ...] = ("version", "dataVersion", "saveVersion")

_OPENERS = "{["
_CLOSERS = "}]"


class DocumentObject:
    """Ordered mapping node of a save document."""

    __slots__ = ("_members",)

    def __init__(self, members: Optional[Mapping[str, "Value"]] = None) -> None:
        self._members: Dict[str, Value] = {}
        if members:
            for key, value in members.items():
                self.set(key, value)

    def get(self, key: str, default: Optional["Value"] = None) -> Optional["Value"]:
        return self._members.get(key, default)

    def get_str(self, key: str, default: str = "") -> str:
        """Return the member as a string leaf, or ``default`` when absent or not a leaf."""
        value = self._members.get(key)
        return value if isinstance(value, str) else default

    def set(self, key: str, value: "Value") -> None:
        if not isinstance(key, str):
            raise TypeError(f"Document keys must be strings, got {type(key).__name__}")
        self._members[key] = _check_value(value)

    def remove(self, key: str) -> bool:
        """Remove ``key`` if present; returns whether anything was removed."""
        return self._members.pop(key, None) is not None

    def contains_key(self, key: str) -> bool:
        return key in self._members

    def keys(self) -> List[str]:
        return list(self._members.keys())

    def items(self) -> List[Tuple[str, "Value"]]:
        return list(self._members.items())

    def copy(self) -> "DocumentObject":
        return copy.deepcopy(self)

    def to_python(self) -> Dict[str, Any]:
        return {k: _to_python(v) for k, v in self._members.items()}

    def __getitem__(self, key: str) -> "Value":
        return self._members[key]

    def __setitem__(self, key: str, value: "Value") -> None:
        self.set(key, value)

    def __contains__(self, key: object) -> bool:
        return key in self._members

    def __iter__(self) -> Iterator[str]:
        return iter(self._members)

    def __len__(self) -> int:
        return len(self._members)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentObject):
            return NotImplemented
        return self._members == other._members

    def __deepcopy__(self, memo: Dict[int, Any]) -> "DocumentObject":
        clone = DocumentObject()
        clone._members = {k: copy.deepcopy(v, memo) for k, v in self._members.items()}
        return clone

    def __repr__(self) -> str:
        return f"DocumentObject({self._members!r})"


class DocumentArray:
    """Ordered sequence node of a save document."""

    __slots__ = ("_elements",)

    def __init__(self, elements: Optional[Sequence["Value"]] = None) -> None:
        self._elements: List[Value] = []
        for element in elements or ():
            self.append(element)

    def at(self, index: int) -> "Value":
        if index < 0 or index >= len(self._elements):
            raise IndexError(f"Array index {index} out of range (length {len(self._elements)})")
        return self._elements[index]

    def length(self) -> int:
        return len(self._elements)

    def append(self, value: "Value") -> None:
        self._elements.append(_check_value(value))

    def objects(self) -> List[DocumentObject]:
        """Return the elements that are objects, skipping leaves and nested arrays."""
        return [e for e in self._elements if isinstance(e, DocumentObject)]

    def copy(self) -> "DocumentArray":
        return copy.deepcopy(self)

    def to_python(self) -> List[Any]:
        return [_to_python(v) for v in self._elements]

    def __getitem__(self, index: int) -> "Value":
        return self._elements[index]

    def __iter__(self) -> Iterator["Value"]:
        return iter(self._elements)

    def __len__(self) -> int:
        return len(self._elements)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentArray):
            return NotImplemented
        return self._elements == other._elements

    def __deepcopy__(self, memo: Dict[int, Any]) -> "DocumentArray":
        clone = DocumentArray()
        clone._elements = [copy.deepcopy(v, memo) for v in self._elements]
        return clone

    def __repr__(self) -> str:
        return f"DocumentArray({self._elements!r})"


Value = Union[DocumentObject, DocumentArray, str]
Document = Union[DocumentObject, DocumentArray]


def _check_value(value: Any) -> Value:
    if isinstance(value, (DocumentObject, DocumentArray, str)):
        return value
    raise TypeError(
        f"Document values must be DocumentObject, DocumentArray or str, got {type(value).__name__}"
    )


def _to_python(value: Value) -> Any:
    if isinstance(value, (DocumentObject, DocumentArray)):
        return value.to_python()
    return value


# ---------------------------
# Parsing
# ---------------------------

def parse(text: str) -> Document:
    """Parse document text into an object or array tree.

    Raises:
        DocumentParseError: if the text is empty, unbalanced, or its root is a leaf.
    """
    if not isinstance(text, str) or not text.strip():
        raise DocumentParseError("Document text is empty")
    value = _parse_value(text.strip())
    if isinstance(value, str):
        raise DocumentParseError("Document root must be an object or an array")
    return value


def parse_object(text: str) -> DocumentObject:
    doc = parse(text)
    if not isinstance(doc, DocumentObject):
        raise DocumentParseError("Document root must be an object")
    return doc


def _parse_value(text: str) -> Value:
    if text.startswith("{"):
        if not text.endswith("}"):
            raise DocumentParseError("Object is missing its closing '}'")
        return _parse_object_body(text[1:-1])
    if text.startswith("["):
        if not text.endswith("]"):
            raise DocumentParseError("Array is missing its closing ']'")
        return DocumentArray([_parse_value(part.strip()) for part in _split_members(text[1:-1], ",")])
    return _parse_leaf(text)


def _parse_object_body(body: str) -> DocumentObject:
    obj = DocumentObject()
    for member in _split_members(body, ","):
        pair = split_top_level(member, ":")
        if len(pair) != 2:
            raise DocumentParseError(f"Malformed object member: {member.strip()!r}")
        key = _parse_leaf(pair[0].strip())
        obj.set(key, _parse_value(pair[1].strip()))
    return obj


def _parse_leaf(token: str) -> str:
    if not token:
        raise DocumentParseError("Missing value")
    if token[0] in _CLOSERS or token[0] in _OPENERS:
        raise DocumentParseError(f"Unexpected bracket in value: {token!r}")
    if token.startswith('"'):
        if len(token) < 2 or not token.endswith('"'):
            raise DocumentParseError(f"Unterminated string: {token!r}")
        return token[1:-1]
    return token


def _split_members(body: str, delimiter: str) -> List[str]:
    if not body.strip():
        return []
    parts = split_top_level(body, delimiter)
    if any(not part.strip() for part in parts):
        raise DocumentParseError("Empty element in container")
    return parts


def split_top_level(text: str, delimiter: str) -> List[str]:
    """Split ``text`` on ``delimiter`` occurrences outside quotes and nested containers.

    Escaped quotes are not recognised; every ``"`` toggles quoted state.
    """
    parts: List[str] = []
    current: List[str] = []
    in_quotes = False
    depth = 0
    for ch in text:
        if ch == '"':
            in_quotes = not in_quotes
        elif not in_quotes:
            if ch in _OPENERS:
                depth += 1
            elif ch in _CLOSERS:
                depth -= 1
                if depth < 0:
                    raise DocumentParseError(f"Unbalanced '{ch}'")
            elif ch == delimiter and depth == 0:
                parts.append("".join(current))
                current = []
                continue
        current.append(ch)
    if in_quotes:
        raise DocumentParseError("Unterminated string")
    if depth != 0:
        raise DocumentParseError("Unbalanced brackets")
    parts.append("".join(current))
    return parts


# ---------------------------
# Serialization
# ---------------------------

def serialize(value: Value) -> str:
    """Serialize a document tree to compact text."""
    if isinstance(value, DocumentObject):
        members = ",".join(f'"{key}":{serialize(item)}' for key, item in value.items())
        return "{" + members + "}"
    if isinstance(value, DocumentArray):
        return "[" + ",".join(serialize(item) for item in value) + "]"
    if isinstance(value, str):
        return f'"{value}"'
    raise TypeError(f"Cannot serialize {type(value).__name__}")


# ---------------------------
# Conversion from plain Python values
# ---------------------------

def from_python(value: Any) -> Value:
    """Convert nested dicts/lists/scalars into document nodes.

    Scalars are formatted as text: booleans become ``true``/``false``, ``None``
    becomes ``null``, numbers use ``str()``.
    """
    if isinstance(value, (DocumentObject, DocumentArray)):
        return value.copy()
    if isinstance(value, Mapping):
        return DocumentObject({str(k): from_python(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return DocumentArray([from_python(v) for v in value])
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise TypeError(f"Cannot convert {type(value).__name__} to a document value")


def to_document(obj: Any) -> DocumentObject:
    """Turn a domain object into a document object.

    Accepts a ``DocumentObject``, document text, a mapping, an object exposing
    ``to_dict()``, or a dataclass instance.
    """
    if isinstance(obj, DocumentObject):
        return obj.copy()
    if isinstance(obj, str):
        return parse_object(obj)
    if hasattr(obj, "to_dict") and callable(obj.to_dict):
        obj = obj.to_dict()
    elif is_dataclass(obj) and not isinstance(obj, type):
        obj = asdict(obj)
    value = from_python(obj)
    if not isinstance(value, DocumentObject):
        raise TypeError(f"Save data must convert to an object, got {type(obj).__name__}")
    return value


# ---------------------------
# Version field helpers
# ---------------------------

def get_data_version(doc: DocumentObject) -> Optional[str]:
    """Return the first version-like field of ``doc``, or ``None``."""
    for key in VERSION_KEYS:
        if doc.contains_key(key):
            return doc.get_str(key) or None
    return None


def stamp_version(doc: DocumentObject, version: str) -> DocumentObject:
    """Write ``version`` into the first existing version field, adding ``version`` if none exists."""
    for key in VERSION_KEYS:
        if doc.contains_key(key):
            doc.set(key, version)
            return doc
    doc.set("version", version)
    return doc
