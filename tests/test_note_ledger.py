"""
Tests for NoteLedger and MetadataStore.
"""

import pytest

from perpsync.ledger.metadata import MAX_METADATA_BYTES, MetadataStore
from perpsync.ledger.models import UnspentNote
from perpsync.ledger.notes import NoteLedger

from conftest import owner, pid

RECEIVER_A = "0x" + "aa" * 32
RECEIVER_B = "0x" + "bb" * 32


def make_note(n: int, receiver: str = RECEIVER_A) -> UnspentNote:
    return UnspentNote(note_id=pid(n), note_nonce=n, receiver_hash=receiver, value=str(n * 1000))


@pytest.fixture
def notes(store):
    return NoteLedger(store)


class TestUnspentNotes:

    def test_add_and_get(self, notes):
        notes.add_unspent_note(make_note(1))
        notes.add_unspent_note(make_note(2))

        got = notes.get_unspent_notes(RECEIVER_A)
        assert [n.note_id for n in got] == [pid(1), pid(2)]
        assert got[0].value == "1000"

    def test_buckets_are_keyed_by_receiver_hash(self, notes):
        notes.add_unspent_note(make_note(1, RECEIVER_A))
        notes.add_unspent_note(make_note(2, RECEIVER_B))

        assert [n.note_id for n in notes.get_unspent_notes(RECEIVER_B)] == [pid(2)]

    def test_duplicate_create_appends_twice(self, notes):
        notes.add_unspent_note(make_note(1))
        notes.add_unspent_note(make_note(1))

        assert len(notes.get_unspent_notes(RECEIVER_A)) == 2

    def test_remove_finds_note_in_any_bucket(self, notes):
        notes.add_unspent_note(make_note(1, RECEIVER_A))
        notes.add_unspent_note(make_note(2, RECEIVER_B))

        assert notes.remove_unspent_note(pid(2)) is True

        assert notes.get_unspent_notes(RECEIVER_B) == []
        assert [n.note_id for n in notes.get_unspent_notes(RECEIVER_A)] == [pid(1)]

    def test_remove_unknown_note_leaves_buckets_unchanged(self, notes):
        notes.add_unspent_note(make_note(1, RECEIVER_A))
        notes.add_unspent_note(make_note(2, RECEIVER_B))

        assert notes.remove_unspent_note(pid(99)) is False

        assert [n.note_id for n in notes.get_unspent_notes(RECEIVER_A)] == [pid(1)]
        assert [n.note_id for n in notes.get_unspent_notes(RECEIVER_B)] == [pid(2)]

    def test_remove_on_empty_ledger(self, notes):
        assert notes.remove_unspent_note(pid(1)) is False

    def test_claim_before_create_is_noop(self, notes):
        notes.remove_unspent_note(pid(3))
        notes.add_unspent_note(make_note(3))

        assert [n.note_id for n in notes.get_unspent_notes(RECEIVER_A)] == [pid(3)]

    def test_unknown_receiver_has_no_notes(self, notes):
        assert notes.get_unspent_notes("0x" + "cc" * 32) == []


class TestMetadataStore:

    def test_roundtrip(self, store):
        meta = MetadataStore(store)
        meta.set(owner(1), b"\x01\x02ciphertext")

        assert meta.get(owner(1)) == b"\x01\x02ciphertext"
        assert meta.get(owner(2)) is None

    def test_rejects_oversized_blob(self, store):
        meta = MetadataStore(store)
        with pytest.raises(ValueError):
            meta.set(owner(1), b"x" * (MAX_METADATA_BYTES + 1))
