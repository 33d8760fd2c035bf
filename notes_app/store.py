"""Note store: the single owner of collection-level operations.

Every operation re-reads the envelope through ``NoteStorage`` so nothing
is cached between calls. Mutations hold one re-entrant lock for the whole
read-normalize-write sequence.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from .config import Settings, settings
from .metrics import NOTE_OPERATIONS
from .models import ListOptions, Note, TagCount
from .normalizer import (
    Clock,
    IdFactory,
    NoteInput,
    draft_fields,
    new_note_id,
    normalize_note,
    parse_timestamp,
    utc_now,
)
from .storage import FileSlotBackend, NoteStorage

logger = logging.getLogger("notes_app.store")


def _text_key(value: str) -> tuple[str, str]:
    """Case-insensitive ordering; lowercase first among case variants."""
    return (value.casefold(), value.swapcase())


def _sort_key(note: Note) -> tuple[float, tuple[str, str]]:
    parsed = parse_timestamp(note.updated_at)
    stamp = parsed.timestamp() if parsed else float("-inf")
    return (-stamp, _text_key(note.title))


def sort_notes(notes: Iterable[Note]) -> list[Note]:
    """Most recently updated first, then by title."""
    return sorted(notes, key=_sort_key)


class NoteStore:
    """CRUD, favorites, filtered listing and tag aggregation over notes."""

    def __init__(
        self,
        storage: NoteStorage,
        *,
        clock: Clock = utc_now,
        id_factory: IdFactory = new_note_id,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._id_factory = id_factory
        self._lock = threading.RLock()

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> NoteStore:
        """Build a file-backed store from application settings."""
        config = config or settings
        backend = FileSlotBackend(config.storage_dir)
        return cls(NoteStorage(backend, key=config.storage_key))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_note(self, initial: NoteInput = None) -> Note:
        """Create and persist a new note. A supplied id is ignored."""
        fields = draft_fields(initial)
        fields.pop("id", None)
        note = self._normalize(fields)
        with self._lock:
            envelope = self._storage.load()
            envelope.notes.append(note)
            self._storage.save(envelope)
        NOTE_OPERATIONS.labels(operation="create", status="ok").inc()
        logger.info("Created note %s '%s'", note.id, note.title)
        return note

    def update_note(self, note_id: str, fields: NoteInput = None) -> Note | None:
        """Merge ``fields`` into a note. Returns None if it does not exist.

        The id and ``created_at`` of the stored note always win, and
        ``updated_at`` is refreshed regardless of what the caller passed.
        """
        with self._lock:
            envelope = self._storage.load()
            index = _find_index(envelope.notes, note_id)
            if index is None:
                NOTE_OPERATIONS.labels(operation="update", status="not_found").inc()
                return None
            existing = envelope.notes[index]
            merged = {
                **existing.model_dump(),
                **draft_fields(fields),
                "id": note_id,
                "created_at": existing.created_at,
                "updated_at": self._clock(),
            }
            note = self._normalize(merged)
            envelope.notes[index] = note
            self._storage.save(envelope)
        NOTE_OPERATIONS.labels(operation="update", status="ok").inc()
        logger.info("Updated note %s", note.id)
        return note

    def delete_note(self, note_id: str) -> bool:
        """Remove a note. Returns whether anything was removed."""
        with self._lock:
            envelope = self._storage.load()
            remaining = [n for n in envelope.notes if n.id != note_id]
            if len(remaining) == len(envelope.notes):
                NOTE_OPERATIONS.labels(operation="delete", status="not_found").inc()
                return False
            envelope.notes = remaining
            self._storage.save(envelope)
        NOTE_OPERATIONS.labels(operation="delete", status="ok").inc()
        logger.info("Deleted note %s", note_id)
        return True

    def toggle_favorite(self, note_id: str) -> Note | None:
        """Flip the favorite flag of a note."""
        with self._lock:
            note = self.get_note(note_id)
            if note is None:
                NOTE_OPERATIONS.labels(operation="toggle_favorite", status="not_found").inc()
                return None
            return self.update_note(note_id, {"favorite": not note.favorite})

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_note(self, note_id: str) -> Note | None:
        """Return the note with ``note_id``, or None."""
        envelope = self._storage.load()
        index = _find_index(envelope.notes, note_id)
        if index is None:
            NOTE_OPERATIONS.labels(operation="get", status="not_found").inc()
            return None
        NOTE_OPERATIONS.labels(operation="get", status="ok").inc()
        return envelope.notes[index]

    def list_notes(
        self,
        options: ListOptions | Mapping[str, Any] | None = None,
        **filters: Any,
    ) -> list[Note]:
        """Return sorted notes matching every given filter.

        Filters can come as a ``ListOptions``, a mapping, or keywords
        (``tag``, ``favorites``, ``query``); keywords override the others.
        """
        opts = _resolve_options(options, filters)
        notes = self._storage.load().notes

        if opts.favorites:
            notes = [n for n in notes if n.favorite]

        tag = (opts.tag or "").strip().lower()
        if tag:
            notes = [n for n in notes if any(t.lower() == tag for t in n.tags)]

        query = (opts.query or "").strip().lower()
        if query:
            notes = [
                n
                for n in notes
                if query in n.title.lower() or query in n.content.lower()
            ]

        NOTE_OPERATIONS.labels(operation="list", status="ok").inc()
        return sort_notes(notes)

    def list_tags(self) -> list[TagCount]:
        """Distinct tags with the number of notes carrying each."""
        counts: dict[str, int] = {}
        for note in self._storage.load().notes:
            for tag in {t.strip() for t in note.tags}:
                if tag:
                    counts[tag] = counts.get(tag, 0) + 1
        NOTE_OPERATIONS.labels(operation="list_tags", status="ok").inc()
        return [
            TagCount(tag=tag, count=counts[tag])
            for tag in sorted(counts, key=_text_key)
        ]

    @property
    def count(self) -> int:
        """Number of stored notes."""
        return len(self._storage.load().notes)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _normalize(self, fields: Mapping[str, Any]) -> Note:
        return normalize_note(fields, clock=self._clock, id_factory=self._id_factory)


def _find_index(notes: list[Note], note_id: str) -> int | None:
    for index, note in enumerate(notes):
        if note.id == note_id:
            return index
    return None


def _resolve_options(
    options: ListOptions | Mapping[str, Any] | None,
    filters: Mapping[str, Any],
) -> ListOptions:
    if isinstance(options, ListOptions):
        return options.model_copy(update=dict(filters)) if filters else options
    return ListOptions.model_validate({**(options or {}), **filters})
