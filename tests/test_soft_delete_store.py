"""
tests/test_soft_delete_store.py -- Unit tests for core.store.SoftDeleteStore.

The store is exercised through a throwaway `notes` table so the tests pin
down the generic contract rather than any one resource:

  - create assigns id and timestamps and never writes a tombstone
  - every read path hides tombstoned records; hard_delete ignores the tombstone
  - find_many: mapping and clause filters, ordering, offset/limit, total
  - update refreshes updated_at and returns None for dead or missing ids
  - relation expansion replaces the named field
  - driver outages surface as PersistenceUnavailable
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

import pytest
from sqlalchemy import Column, MetaData, String, Table, select

from core.errors import PersistenceUnavailable
from core.store import ID_LENGTH, Page, SoftDeleteStore, create_store_engine, soft_delete_columns

_metadata = MetaData()

_notes = Table(
    "notes",
    _metadata,
    *soft_delete_columns(),
    Column("body", String(100), nullable=False),
    Column("author", String(40), nullable=False),
)

_tags = Table(
    "note_tags",
    _metadata,
    Column("note_id", String(ID_LENGTH), nullable=False),
    Column("tag", String(40), nullable=False),
)


@dataclass
class Note:
    body: str
    author: str
    tags: tuple[str, ...] = ()
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    tombstoned: bool = False


def _encode(fields: Mapping[str, Any]) -> dict:
    values = {k: v for k, v in fields.items() if k in _notes.c}
    if "tombstoned" in values:
        values["tombstoned"] = 1 if values["tombstoned"] else 0
    return values


def _decode(row) -> Note:
    return Note(
        id=row.id,
        body=row.body,
        author=row.author,
        created_at=row.created_at,
        updated_at=row.updated_at,
        tombstoned=bool(row.tombstoned),
    )


def _load_tags(conn, ids):
    found = {note_id: [] for note_id in ids}
    for row in conn.execute(select(_tags).where(_tags.c.note_id.in_(list(ids)))):
        found[row.note_id].append(row.tag)
    return {note_id: tuple(sorted(tags)) for note_id, tags in found.items()}


@pytest.fixture
def engine():
    engine = create_store_engine(f"sqlite:///file:notes_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    _metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def notes(engine) -> SoftDeleteStore[Note]:
    return SoftDeleteStore(engine, _notes, decode=_decode, encode=_encode, relations={"tags": _load_tags})


class TestCreate:
    def test_assigns_hex_id_and_timestamps(self, notes):
        note = notes.create(Note(body="hello", author="ann"))
        assert len(note.id) == 24
        int(note.id, 16)
        assert note.created_at
        assert note.updated_at == note.created_at
        assert note.tombstoned is False

    def test_incoming_tombstone_is_ignored(self, notes):
        note = notes.create(Note(body="x", author="ann", tombstoned=True))
        assert note.tombstoned is False
        assert notes.find_by_id(note.id) is not None

    def test_ids_are_unique(self, notes):
        ids = {notes.create(Note(body=str(i), author="ann")).id for i in range(20)}
        assert len(ids) == 20

    def test_returns_the_stored_row_not_the_input(self, engine):
        def lowercase_author(fields):
            values = _encode(fields)
            if "author" in values:
                values["author"] = values["author"].lower()
            return values

        store = SoftDeleteStore(engine, _notes, decode=_decode, encode=lowercase_author)
        note = store.create(Note(body="x", author="Ann"))
        assert note.author == "ann"
        assert note == store.find_by_id(note.id)


class TestTombstones:
    def test_soft_deleted_record_is_invisible_everywhere(self, notes):
        note = notes.create(Note(body="gone", author="ann"))
        notes.create(Note(body="kept", author="ann"))

        assert notes.soft_delete(note.id) is True

        assert notes.find_by_id(note.id) is None
        assert notes.find_one({"body": "gone"}) is None
        page = notes.find_many({"author": "ann"})
        assert [n.body for n in page.items] == ["kept"]
        assert page.total == 1
        assert notes.count() == 1

    def test_soft_delete_twice_reports_false(self, notes):
        note = notes.create(Note(body="x", author="ann"))
        assert notes.soft_delete(note.id) is True
        assert notes.soft_delete(note.id) is False

    def test_update_of_tombstoned_record_returns_none(self, notes):
        note = notes.create(Note(body="x", author="ann"))
        notes.soft_delete(note.id)
        assert notes.update(note.id, {"body": "y"}) is None

    def test_hard_delete_removes_tombstoned_row(self, notes, engine):
        note = notes.create(Note(body="x", author="ann"))
        notes.soft_delete(note.id)
        assert notes.hard_delete(note.id) is True
        with engine.connect() as conn:
            assert conn.execute(select(_notes).where(_notes.c.id == note.id)).fetchone() is None

    def test_missing_id_is_none(self, notes):
        assert notes.find_by_id("0" * 24) is None


class TestFindMany:
    def test_default_order_is_creation_order(self, notes):
        created = [notes.create(Note(body=f"n{i}", author="ann")) for i in range(3)]
        page = notes.find_many()
        assert [n.id for n in page.items] == [n.id for n in created]

    def test_descending(self, notes):
        created = [notes.create(Note(body=f"n{i}", author="ann")) for i in range(3)]
        page = notes.find_many(descending=True)
        assert [n.id for n in page.items] == [n.id for n in reversed(created)]

    def test_offset_and_limit_with_unpaginated_total(self, notes):
        for i in range(5):
            notes.create(Note(body=f"n{i}", author="ann"))
        page = notes.find_many(page=Page(offset=1, limit=2))
        assert [n.body for n in page.items] == ["n1", "n2"]
        assert page.total == 5

    def test_limit_minus_one_is_unbounded(self, notes):
        for i in range(4):
            notes.create(Note(body=f"n{i}", author="ann"))
        assert len(notes.find_many(page=Page(offset=0, limit=-1)).items) == 4

    def test_sequence_value_means_in(self, notes):
        notes.create(Note(body="a", author="ann"))
        notes.create(Note(body="b", author="bob"))
        notes.create(Note(body="c", author="cat"))
        page = notes.find_many({"author": ["ann", "cat"]})
        assert sorted(n.body for n in page.items) == ["a", "c"]

    def test_clause_filter(self, notes):
        notes.create(Note(body="alpha", author="ann"))
        notes.create(Note(body="beta", author="ann"))
        page = notes.find_many(_notes.c.body.like("al%"))
        assert [n.body for n in page.items] == ["alpha"]


class TestUpdate:
    def test_patch_applies_and_refreshes_updated_at(self, notes):
        note = notes.create(Note(body="x", author="ann"))
        updated = notes.update(note.id, {"body": "y"})
        assert updated.body == "y"
        assert updated.author == "ann"
        assert updated.created_at == note.created_at
        assert updated.updated_at > note.updated_at

    def test_empty_patch_still_refreshes_updated_at(self, notes):
        note = notes.create(Note(body="x", author="ann"))
        updated = notes.update(note.id, {})
        assert updated.updated_at > note.updated_at

    def test_touch_advances_updated_at_only(self, notes):
        note = notes.create(Note(body="x", author="ann"))
        assert notes.touch(note.id) is True
        refreshed = notes.find_by_id(note.id)
        assert refreshed.body == "x"
        assert refreshed.updated_at > note.updated_at


class TestRelations:
    def test_expand_replaces_field(self, notes, engine):
        note = notes.create(Note(body="x", author="ann"))
        with engine.connect() as conn:
            conn.execute(_tags.insert(), [{"note_id": note.id, "tag": "b"}, {"note_id": note.id, "tag": "a"}])
            conn.commit()
        assert notes.find_by_id(note.id).tags == ()
        assert notes.find_by_id(note.id, expand=("tags",)).tags == ("a", "b")

    def test_unknown_relation_raises(self, notes):
        note = notes.create(Note(body="x", author="ann"))
        with pytest.raises(ValueError):
            notes.find_by_id(note.id, expand=("comments",))


class TestUnavailable:
    def test_unreachable_database_raises_persistence_unavailable(self, tmp_path):
        missing = tmp_path / "no-such-dir" / "db.sqlite"
        engine = create_store_engine(f"sqlite:///{missing}")
        store = SoftDeleteStore(engine, _notes, decode=_decode, encode=_encode)
        with pytest.raises(PersistenceUnavailable):
            store.find_by_id("0" * 24)
        engine.dispose()
