"""
NoteLedger: unspent notes bucketed by receiver hash.

The bucket key is the receiver hash rather than an owner identity, so the
store never links a note to its owner.
"""

from __future__ import annotations

import json
import logging
from typing import List, Union

from perpsync.ledger.kv import KeyValueStore
from perpsync.ledger.models import UnspentNote, hex32, key_bytes

log = logging.getLogger("perpsync")


class NoteLedger:
    def __init__(self, store: KeyValueStore) -> None:
        self.unspent_notes = store.tree("unspent_notes")

    def add_unspent_note(self, note: UnspentNote) -> None:
        """Append to the receiver's bucket. Duplicate deliveries append again."""
        bucket = key_bytes(note.receiver_hash)
        notes = self.get_unspent_notes(bucket)
        notes.append(note)
        self.unspent_notes.put(bucket, _dump(notes))
        log.debug(json.dumps({"event": "note_added", "note_id": note.note_id}))

    def remove_unspent_note(self, note_id: Union[bytes, str]) -> bool:
        """
        Remove a claimed note.

        Scans every bucket and stops at the first one holding the id; all
        copies of the id in that bucket are dropped. Returns False when no
        bucket holds it (claim seen before create, or already removed).
        """
        target = hex32(note_id)
        for key, value in self.unspent_notes.iterate():
            notes = [UnspentNote.from_dict(d) for d in json.loads(value)]
            kept = [n for n in notes if n.note_id != target]
            if len(kept) < len(notes):
                self.unspent_notes.put(key, _dump(kept))
                log.debug(json.dumps({"event": "note_removed", "note_id": target, "remaining": len(kept)}))
                return True
        return False

    def get_unspent_notes(self, receiver_hash: Union[bytes, str]) -> List[UnspentNote]:
        data = self.unspent_notes.get(key_bytes(receiver_hash))
        if data is None:
            return []
        return [UnspentNote.from_dict(d) for d in json.loads(data)]


def _dump(notes: List[UnspentNote]) -> bytes:
    return json.dumps([n.to_dict() for n in notes], separators=(",", ":")).encode()
