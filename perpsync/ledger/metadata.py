"""
Opaque per-owner metadata (client-encrypted blobs).
"""

from __future__ import annotations

from typing import Optional, Union

from perpsync.ledger.kv import KeyValueStore
from perpsync.ledger.models import key_bytes

MAX_METADATA_BYTES = 4096


class MetadataStore:
    def __init__(self, store: KeyValueStore) -> None:
        self.user_metadata = store.tree("user_metadata")

    def set(self, owner: Union[bytes, str], blob: bytes) -> None:
        if len(blob) > MAX_METADATA_BYTES:
            raise ValueError(f"metadata blob exceeds {MAX_METADATA_BYTES} bytes")
        self.user_metadata.put(key_bytes(owner), blob)

    def get(self, owner: Union[bytes, str]) -> Optional[bytes]:
        return self.user_metadata.get(key_bytes(owner))
