"""Unit tests for notes_app.storage: slot backends and the envelope adapter."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from notes_app.models import NoteEnvelope
from notes_app.normalizer import normalize_note
from notes_app.storage import (
    FileSlotBackend,
    MemorySlotBackend,
    NoteStorage,
    StorageError,
)

KEY = "notes_app_v1"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _storage_with(raw: str | None) -> NoteStorage:
    """Return a NoteStorage whose slot holds ``raw``."""
    initial = {} if raw is None else {KEY: raw}
    return NoteStorage(MemorySlotBackend(initial), key=KEY)


def _note_dict(note_id: str, **overrides) -> dict:
    data = {
        "id": note_id,
        "title": f"Note {note_id}",
        "content": "body",
        "tags": ["x"],
        "favorite": False,
        "createdAt": "2024-01-01T00:00:00.000Z",
        "updatedAt": "2024-01-02T00:00:00.000Z",
    }
    data.update(overrides)
    return data


@pytest.fixture()
def file_storage(tmp_path: Path) -> NoteStorage:
    """Return a NoteStorage backed by a temp directory."""
    return NoteStorage(FileSlotBackend(tmp_path), key=KEY)


# ---------------------------------------------------------------------------
# load()
# ---------------------------------------------------------------------------


class TestLoad:
    def test_missing_slot_is_empty(self) -> None:
        assert _storage_with(None).load().notes == []

    @pytest.mark.parametrize(
        "raw",
        [
            "",
            "not json",
            "[]",
            "null",
            '"text"',
            "{}",
            '{"notes": null}',
            '{"notes": {}}',
            '{"notes": "abc"}',
        ],
    )
    def test_malformed_blob_is_empty(self, raw: str) -> None:
        assert _storage_with(raw).load() == NoteEnvelope()

    def test_well_formed_blob(self) -> None:
        raw = json.dumps({"notes": [_note_dict("a"), _note_dict("b")]})
        envelope = _storage_with(raw).load()
        assert [n.id for n in envelope.notes] == ["a", "b"]
        assert envelope.notes[0].updated_at == "2024-01-02T00:00:00.000Z"

    def test_non_object_entries_dropped(self) -> None:
        raw = json.dumps({"notes": [_note_dict("a"), 42, "x", None, [1]]})
        envelope = _storage_with(raw).load()
        assert [n.id for n in envelope.notes] == ["a"]

    def test_partial_entries_normalized(self) -> None:
        raw = json.dumps({"notes": [{"title": "  loose ", "tags": ["t", "t"]}]})
        note = _storage_with(raw).load().notes[0]
        assert note.id
        assert note.title == "loose"
        assert note.tags == ["t"]
        assert note.favorite is False

    def test_duplicate_ids_keep_first(self) -> None:
        raw = json.dumps(
            {"notes": [_note_dict("a", title="first"), _note_dict("a", title="second")]}
        )
        notes = _storage_with(raw).load().notes
        assert len(notes) == 1
        assert notes[0].title == "first"

    def test_read_error_absorbed(self) -> None:
        backend = MagicMock()
        backend.read.side_effect = PermissionError("denied")
        assert NoteStorage(backend, key=KEY).load().notes == []

    def test_invalid_utf8_file_is_empty(self, tmp_path: Path) -> None:
        (tmp_path / f"{KEY}.json").write_bytes(b'{"notes": [\xff\xfe]}')
        assert NoteStorage(FileSlotBackend(tmp_path), key=KEY).load().notes == []

    def test_repaired_entries_are_stable_across_loads(self) -> None:
        raw = json.dumps({"notes": [{"title": "legacy"}, {"title": "legacy"}]})
        storage = _storage_with(raw)
        first = storage.load().notes
        second = storage.load().notes
        assert first == second
        assert len({n.id for n in first}) == 2
        assert first[0].created_at == first[0].updated_at == "1970-01-01T00:00:00.000Z"


# ---------------------------------------------------------------------------
# save()
# ---------------------------------------------------------------------------


class TestSave:
    def test_wire_format_uses_camel_case(self) -> None:
        backend = MemorySlotBackend()
        storage = NoteStorage(backend, key=KEY)
        storage.save(NoteEnvelope(notes=[normalize_note(_note_dict("a"))]))
        data = json.loads(backend.read(KEY))
        assert data == {"notes": [_note_dict("a")]}

    def test_non_list_notes_coerced(self) -> None:
        backend = MemorySlotBackend()
        NoteStorage(backend, key=KEY).save({"notes": None})
        assert json.loads(backend.read(KEY)) == {"notes": []}

    def test_raw_mapping_entries_normalized(self) -> None:
        backend = MemorySlotBackend()
        NoteStorage(backend, key=KEY).save({"notes": [_note_dict("a"), "junk"]})
        data = json.loads(backend.read(KEY))
        assert [n["id"] for n in data["notes"]] == ["a"]

    def test_overwrites_previous_value(self) -> None:
        backend = MemorySlotBackend()
        storage = NoteStorage(backend, key=KEY)
        storage.save({"notes": [_note_dict("a")]})
        storage.save({"notes": [_note_dict("b")]})
        assert [n.id for n in storage.load().notes] == ["b"]

    def test_write_error_raises_storage_error(self) -> None:
        backend = MagicMock()
        backend.write.side_effect = OSError("disk full")
        with pytest.raises(StorageError):
            NoteStorage(backend, key=KEY).save(NoteEnvelope())


# ---------------------------------------------------------------------------
# Round trip & file backend
# ---------------------------------------------------------------------------


class TestRoundTrip:
    def test_save_of_load_is_noop(self) -> None:
        raw = json.dumps({"notes": [_note_dict("a"), _note_dict("b", favorite=True)]})
        backend = MemorySlotBackend({KEY: raw})
        storage = NoteStorage(backend, key=KEY)
        storage.save(storage.load())
        assert json.loads(backend.read(KEY)) == json.loads(raw)

    def test_n_notes_come_back(self, file_storage: NoteStorage) -> None:
        notes = [normalize_note(_note_dict(str(i))) for i in range(5)]
        file_storage.save(NoteEnvelope(notes=notes))
        loaded = file_storage.load().notes
        assert {n.id for n in loaded} == {n.id for n in notes}


class TestFileSlotBackend:
    def test_missing_file_reads_none(self, tmp_path: Path) -> None:
        assert FileSlotBackend(tmp_path).read("nothing") is None

    def test_write_creates_directory(self, tmp_path: Path) -> None:
        backend = FileSlotBackend(tmp_path / "nested" / "dir")
        backend.write("slot", "{}")
        assert backend.path_for("slot").read_text(encoding="utf-8") == "{}"

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        backend = FileSlotBackend(tmp_path)
        backend.write("slot", "one")
        backend.write("slot", "two")
        assert [p.name for p in tmp_path.iterdir()] == ["slot.json"]
        assert backend.read("slot") == "two"

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        NoteStorage(FileSlotBackend(tmp_path), key=KEY).save({"notes": [_note_dict("a")]})
        reloaded = NoteStorage(FileSlotBackend(tmp_path), key=KEY).load()
        assert [n.id for n in reloaded.notes] == ["a"]
