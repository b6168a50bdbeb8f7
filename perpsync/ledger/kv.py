"""
Key-value persistence for the ledgers.

A store is a set of named trees; each tree maps bytes keys to bytes values
and supports single-key operations only. There are no multi-key
transactions: a ledger mutation that touches several keys is a sequence
of independent writes.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterator, Optional, Protocol, Tuple

from perpsync.infra.errors import PersistenceError

log = logging.getLogger("perpsync")


class Tree(Protocol):
    def get(self, key: bytes) -> Optional[bytes]: ...

    def put(self, key: bytes, value: bytes) -> None: ...

    def delete(self, key: bytes) -> None: ...

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]: ...


class KeyValueStore(Protocol):
    def tree(self, name: str) -> Tree: ...


class MemoryTree:
    def __init__(self) -> None:
        self._data: Dict[bytes, bytes] = {}

    def get(self, key: bytes) -> Optional[bytes]:
        return self._data.get(bytes(key))

    def put(self, key: bytes, value: bytes) -> None:
        self._data[bytes(key)] = bytes(value)

    def delete(self, key: bytes) -> None:
        self._data.pop(bytes(key), None)

    def iterate(self, prefix: bytes = b"") -> Iterator[Tuple[bytes, bytes]]:
        # snapshot so callers may write while iterating
        items = [(k, v) for k, v in sorted(self._data.items()) if k.startswith(prefix)]
        return iter(items)


class MemoryStore:
    """Volatile store, used by tests and dry runs."""

    def __init__(self) -> None:
        self._trees: Dict[str, MemoryTree] = {}

    def tree(self, name: str) -> MemoryTree:
        tree = self._trees.get(name)
        if tree is None:
            tree = MemoryTree()
            self._trees[name] = tree
        return tree


class JsonFileTree(MemoryTree):
    """
    One JSON file per tree, rewritten atomically (tmp file then replace)
    after every write. Keys and values are stored hex encoded.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = path
        self.tmp = path.with_suffix(".tmp")
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            raw = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"cannot read {self.path}: {exc}") from exc
        self._data = {bytes.fromhex(k): bytes.fromhex(v) for k, v in raw.items()}

    def _flush(self) -> None:
        payload = {k.hex(): v.hex() for k, v in self._data.items()}
        try:
            self.tmp.write_text(json.dumps(payload))
            self.tmp.replace(self.path)
        except OSError as exc:
            log.error(json.dumps({"event": "kv_write_error", "tree": self.path.stem, "err": str(exc)}))
            raise PersistenceError(f"cannot write {self.path}: {exc}") from exc

    def put(self, key: bytes, value: bytes) -> None:
        previous = self._data.get(bytes(key))
        super().put(key, value)
        try:
            self._flush()
        except PersistenceError:
            # keep memory and disk in agreement for the failed key
            if previous is None:
                self._data.pop(bytes(key), None)
            else:
                self._data[bytes(key)] = previous
            raise

    def delete(self, key: bytes) -> None:
        previous = self._data.get(bytes(key))
        if previous is None:
            return
        super().delete(key)
        try:
            self._flush()
        except PersistenceError:
            self._data[bytes(key)] = previous
            raise


class JsonFileStore:
    def __init__(self, path: str) -> None:
        self.root = Path(path)
        self.root.mkdir(parents=True, exist_ok=True)
        self._trees: Dict[str, JsonFileTree] = {}

    def tree(self, name: str) -> JsonFileTree:
        tree = self._trees.get(name)
        if tree is None:
            tree = JsonFileTree(self.root / f"{name}.json")
            self._trees[name] = tree
        return tree
