"""Persistence layer for the note store.

The whole collection lives as one JSON blob under a single named slot of a
key-value backend. Reads never fail: a missing, unreadable or malformed
blob degrades to an empty envelope.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

from .config import settings
from .metrics import STORAGE_LOAD_FAILURES
from .models import Note, NoteEnvelope
from .normalizer import normalize_note

logger = logging.getLogger("notes_app.storage")

REPAIRED_ID_NAMESPACE = uuid.UUID("6f1c2d0e-8a4b-4c1e-9f3a-2b7d5e9c4a10")
REPAIRED_TIMESTAMP = "1970-01-01T00:00:00.000Z"


class StorageError(Exception):
    """The durable medium could not be written."""


class SlotBackend(Protocol):
    """Minimal key-value interface the adapter needs."""

    def read(self, key: str) -> str | None: ...

    def write(self, key: str, raw: str) -> None: ...


class MemorySlotBackend:
    """Dict-backed slots, for tests and embedding."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._slots: dict[str, str] = dict(initial or {})

    def read(self, key: str) -> str | None:
        return self._slots.get(key)

    def write(self, key: str, raw: str) -> None:
        self._slots[key] = raw


class FileSlotBackend:
    """One ``<key>.json`` file per slot inside a directory."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self._directory / f"{key}.json"

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def write(self, key: str, raw: str) -> None:
        """Write through a fsynced temp file, then replace the target."""
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.parent / f".{path.name}.tmp-{uuid.uuid4().hex}"
        try:
            with open(tmp_path, "w", encoding="utf-8", newline="") as fh:
                fh.write(raw)
                fh.flush()
                os.fsync(fh.fileno())
            tmp_path.replace(path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()


class NoteStorage:
    """Loads and saves the note envelope under one fixed slot."""

    def __init__(self, backend: SlotBackend, key: str | None = None) -> None:
        self._backend = backend
        self._key = key or settings.storage_key

    @property
    def key(self) -> str:
        return self._key

    def load(self) -> NoteEnvelope:
        """Read the envelope. Never raises; bad data yields no notes."""
        try:
            raw = self._backend.read(self._key)
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read slot %s: %s, starting fresh", self._key, exc)
            STORAGE_LOAD_FAILURES.labels(reason="unreadable").inc()
            return NoteEnvelope()

        if not raw:
            logger.debug("Slot %s is empty, starting fresh", self._key)
            return NoteEnvelope()

        try:
            payload = json.loads(raw)
        except ValueError as exc:
            logger.warning("Slot %s holds invalid JSON: %s, starting fresh", self._key, exc)
            STORAGE_LOAD_FAILURES.labels(reason="invalid_json").inc()
            return NoteEnvelope()

        if not isinstance(payload, dict) or not isinstance(payload.get("notes"), list):
            logger.warning("Slot %s has no notes list, starting fresh", self._key)
            STORAGE_LOAD_FAILURES.labels(reason="bad_shape").inc()
            return NoteEnvelope()

        notes = _coerce_notes(payload["notes"])
        dropped = len(payload["notes"]) - len(notes)
        if dropped:
            logger.warning("Dropped %d malformed notes from slot %s", dropped, self._key)
        logger.debug("Loaded %d notes from slot %s", len(notes), self._key)
        return NoteEnvelope(notes=notes)

    def save(self, envelope: NoteEnvelope | Mapping[str, Any]) -> None:
        """Serialize and write the envelope, replacing the previous blob."""
        if not isinstance(envelope, NoteEnvelope):
            notes = envelope.get("notes")
            envelope = NoteEnvelope(
                notes=_coerce_notes(notes) if isinstance(notes, list) else []
            )
        raw = envelope.model_dump_json(indent=2, by_alias=True)
        try:
            self._backend.write(self._key, raw)
        except OSError as exc:
            logger.error("Failed to write slot %s: %s", self._key, exc)
            raise StorageError(f"could not save notes to slot {self._key!r}") from exc


def _coerce_notes(entries: list[Any]) -> list[Note]:
    """Normalize object entries; drop non-objects and repeated ids."""
    notes: list[Note] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        if isinstance(entry, Note):
            note = entry
        elif isinstance(entry, Mapping):
            note = _repair_entry(index, entry)
        else:
            continue
        if note.id in seen:
            continue
        seen.add(note.id)
        notes.append(note)
    return notes


def _repair_entry(index: int, entry: Mapping[str, Any]) -> Note:
    """Normalize a stored entry so repeated loads give the same note.

    A missing id is derived from the entry's position and content, and
    missing timestamps fall back to a fixed instant.
    """
    fingerprint = json.dumps(entry, sort_keys=True, default=str)
    derived_id = str(uuid.uuid5(REPAIRED_ID_NAMESPACE, f"{index}:{fingerprint}"))
    return normalize_note(
        entry,
        clock=lambda: REPAIRED_TIMESTAMP,
        id_factory=lambda: derived_id,
    )
