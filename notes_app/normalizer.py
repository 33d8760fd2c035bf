"""Conversion of partial, untrusted note input into canonical notes.

``normalize_note`` is the only way a ``Note`` gets built. It never fails:
missing or wrong-shaped fields fall back to safe defaults. The clock and
the id factory are its only non-deterministic inputs, and both can be
injected.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from .models import Note

Clock = Callable[[], str]
IdFactory = Callable[[], str]

NoteInput = BaseModel | Mapping[str, Any] | None


def utc_now() -> str:
    """Current UTC time as ISO-8601 with millisecond precision."""
    stamp = datetime.now(UTC).isoformat(timespec="milliseconds")
    return stamp.replace("+00:00", "Z")


def new_note_id() -> str:
    return str(uuid4())


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def normalize_tags(tags: Any) -> list[str]:
    """Strip, drop empties and dedupe (case-sensitive, first seen wins)."""
    if not isinstance(tags, (list, tuple)):
        return []
    seen: dict[str, None] = {}
    for tag in tags:
        if tag is None:
            continue
        cleaned = str(tag).strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


def parse_tag_input(raw: str | None, existing: Iterable[str] = ()) -> list[str]:
    """Merge comma-separated tag entry text into an existing tag list.

    ``parse_tag_input("a, b,", ["x"])`` returns ``["x", "a", "b"]``.
    """
    tags = normalize_tags(list(existing))
    if not raw:
        return tags
    for part in raw.split(","):
        cleaned = part.strip()
        if cleaned and cleaned not in tags:
            tags.append(cleaned)
    return tags


NOTE_FIELDS = (
    "id",
    "title",
    "content",
    "tags",
    "favorite",
    "created_at",
    "updated_at",
)


def draft_fields(data: NoteInput) -> dict[str, Any]:
    """Extract the note fields present in ``data``, keyed by python name.

    Mappings may use either python names or wire (camelCase) names. Unset
    fields of a pydantic draft are left out.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_none=True)
    if not isinstance(data, Mapping):
        return {}
    fields: dict[str, Any] = {}
    for name in NOTE_FIELDS:
        if name in data:
            fields[name] = data[name]
        elif to_camel(name) in data:
            fields[name] = data[to_camel(name)]
    return fields


def _text(value: Any) -> str:
    return str(value) if value else ""


def normalize_note(
    data: NoteInput = None,
    *,
    clock: Clock = utc_now,
    id_factory: IdFactory = new_note_id,
) -> Note:
    """Build a canonical ``Note`` from a draft, a note or a plain mapping."""
    fields = draft_fields(data)
    now = clock()

    note_id = fields.get("id")
    created_at = fields.get("created_at")
    updated_at = fields.get("updated_at")

    return Note(
        id=str(note_id) if note_id else id_factory(),
        title=_text(fields.get("title")).strip(),
        content=_text(fields.get("content")),
        tags=normalize_tags(fields.get("tags")),
        favorite=bool(fields.get("favorite")),
        created_at=str(created_at) if created_at else now,
        updated_at=str(updated_at) if updated_at else now,
    )
