"""Pydantic models for the note store."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SNIPPET_LENGTH = 80
UNTITLED = "Untitled"


class _WireModel(BaseModel):
    """Python names in code, camelCase names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Note(_WireModel):
    """A single canonical note. Only the normalizer should build these."""

    id: str = Field(..., description="Opaque unique identifier")
    title: str = Field(..., description="Stripped title, may be empty")
    content: str = Field(..., description="Free text body")
    tags: list[str] = Field(..., description="Distinct non-empty tags")
    favorite: bool = Field(..., description="Favorite flag")
    created_at: str = Field(..., description="ISO-8601 creation timestamp")
    updated_at: str = Field(..., description="ISO-8601 last update timestamp")

    @property
    def display_title(self) -> str:
        """Title to render in lists."""
        return self.title or UNTITLED

    @property
    def snippet(self) -> str:
        """Single-line preview of the content."""
        return self.content[:SNIPPET_LENGTH].replace("\n", " ")


class NoteDraft(_WireModel):
    """Partial note input: every field is optional."""

    id: str | None = None
    title: str | None = None
    content: str | None = None
    tags: list[str] | None = None
    favorite: bool | None = None
    created_at: str | None = None
    updated_at: str | None = None


class NoteEnvelope(BaseModel):
    """Container for all notes, used for JSON serialization."""

    notes: list[Note] = Field(default_factory=list)


class TagCount(BaseModel):
    """A distinct tag and the number of notes carrying it."""

    tag: str
    count: int


class ListOptions(BaseModel):
    """Filters accepted by ``NoteStore.list_notes``; they compose with AND."""

    tag: str | None = None
    favorites: bool = False
    query: str | None = None
