"""
Data types for the ClickUp search and content pipeline.
"""

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Union


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

# A record is the raw JSON object returned by ClickUp (task, doc, space).
# The only guaranteed key is a string "id".
Record = dict[str, Any]


@dataclass(frozen=True)
class FieldSpec:
    """A searchable field: dotted path into a record plus a static weight.

    A path segment that lands on a list collects the remainder of the path
    from every element, so ``tags.name`` yields every tag name.
    """
    path: str
    weight: float


TASK_FIELDS = (
    FieldSpec("name", 0.7),
    FieldSpec("id", 0.6),
    FieldSpec("text_content", 0.5),
    FieldSpec("tags.name", 0.4),
    FieldSpec("assignees.username", 0.4),
    FieldSpec("list.name", 0.3),
    FieldSpec("folder.name", 0.2),
    FieldSpec("space.name", 0.1),
)

DOCUMENT_FIELDS = (
    FieldSpec("name", 0.7),
    FieldSpec("id", 0.6),
    FieldSpec("space.name", 0.3),
)

SPACE_FIELDS = (
    FieldSpec("name", 0.7),
    FieldSpec("id", 0.6),
)


def field_values(record: Record, path: str) -> list[str]:
    """Collect every string reachable from ``record`` along ``path``."""
    values: list[str] = []

    def walk(node: Any, parts: list[str]) -> None:
        if node is None:
            return
        if isinstance(node, list):
            for element in node:
                walk(element, parts)
            return
        if not parts:
            if isinstance(node, (str, int, float)) and not isinstance(node, bool):
                text = str(node)
                if text:
                    values.append(text)
            return
        if isinstance(node, dict):
            walk(node.get(parts[0]), parts[1:])

    walk(record, path.split("."))
    return values


@dataclass
class ScoredMatch:
    """A record with its relevance score (lower is better).

    ``terms`` lists the search terms that matched the record.
    """
    record: Record
    score: float
    terms: list[str] = field(default_factory=list)

    @property
    def id(self) -> str:
        return str(self.record.get("id", ""))


# ---------------------------------------------------------------------------
# Identifiers and filter keys
# ---------------------------------------------------------------------------

# ClickUp task ids: 6-9 alphanumeric characters, e.g. "86b2x4k1q"
_TASK_ID_RE = re.compile(r"^[a-z0-9]{6,9}$", re.IGNORECASE)

# ClickUp doc ids: "<alnum>-<digits>", e.g. "8cdu22c-13133"
_DOCUMENT_ID_RE = re.compile(r"^[a-z0-9]{4,12}-\d{1,12}$", re.IGNORECASE)


def is_task_id(value: str) -> bool:
    """Check if a string looks like a ClickUp task id."""
    return bool(_TASK_ID_RE.match(value))


def is_document_id(value: str) -> bool:
    """Check if a string looks like a ClickUp document id."""
    return bool(_DOCUMENT_ID_RE.match(value))


def make_filter_key(**filters: Optional[Iterable[Any]]) -> str:
    """Canonical, order-independent cache key for a set of filter arrays.

    Missing arrays count as empty; values are stringified, de-duplicated
    and sorted, so ``space_ids=["b", "a"]`` and ``space_ids=["a", "b", "a"]``
    produce the same key.
    """
    normalized = {
        name: sorted({str(v) for v in (values or [])})
        for name, values in filters.items()
    }
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"))


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TextBlock:
    """Literal text content."""
    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImageBlock:
    """A materialized image: base64 payload plus MIME type."""
    data: str
    mime_type: str = "image/png"

    def to_dict(self) -> dict[str, Any]:
        return {"type": "image", "data": self.data, "mimeType": self.mime_type}


@dataclass(frozen=True)
class InlineImage:
    """Image data carried in a ``data:`` URI."""
    mime_type: str
    base64_data: str


@dataclass(frozen=True)
class ImageReference:
    """An image not yet downloaded.

    ``urls`` are candidate sources ordered largest to smallest. ``inline``
    is set instead when the image came embedded as a data URI.
    """
    urls: tuple[str, ...] = ()
    alt: str = ""
    inline: Optional[InlineImage] = None


ContentBlock = Union[TextBlock, ImageBlock]
PendingBlock = Union[TextBlock, ImageBlock, ImageReference]


def serialized_size(blocks: Iterable[ContentBlock]) -> int:
    """Byte size of the JSON serialization of resolved blocks."""
    payload = json.dumps([b.to_dict() for b in blocks], ensure_ascii=False)
    return len(payload.encode("utf-8"))


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def timestamp_to_iso(timestamp: Union[str, int, float, None]) -> str:
    """Format a ClickUp millisecond timestamp as local time, minute precision.

    Returns an empty string for missing or invalid input.
    """
    if timestamp in (None, ""):
        return ""
    try:
        dt = datetime.fromtimestamp(int(timestamp) / 1000).astimezone()
    except (TypeError, ValueError, OverflowError, OSError):
        return ""
    return dt.isoformat(timespec="minutes")


def timestamp_value(timestamp: Union[str, int, float, None]) -> int:
    """Millisecond timestamp as an int for sorting; 0 when missing."""
    try:
        return int(timestamp or 0)
    except (TypeError, ValueError):
        return 0
