"""
On-disk snapshot of the store: a faiss index blob plus a JSON entries document.

The two artifacts load independently; a bad one is reported with its own
error type so the caller can reinitialize just that artifact. Writes go to a
temporary sibling and are moved into place with os.replace.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Dict, Iterable

import jsonschema

from hmem.errors import EntryLoadError, IndexLoadError, PersistenceWriteError
from hmem.index import FaissVectorIndex
from hmem.models import MemoryEntry

from .schema import validate_entries

INDEX_FILE = "memory_index.faiss"
ENTRIES_FILE = "memory_data.json"


class SnapshotStore:
    def __init__(self, data_dir: str, index_file: str = INDEX_FILE, entries_file: str = ENTRIES_FILE) -> None:
        self.root = Path(data_dir)
        self.index_path = self.root / index_file
        self.entries_path = self.root / entries_file

    def load_entries(self) -> Dict[int, MemoryEntry]:
        if not self.entries_path.exists():
            raise EntryLoadError(f"entries document not found: {self.entries_path}")

        try:
            with self.entries_path.open("r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise EntryLoadError(f"cannot parse {self.entries_path}: {e}") from e

        try:
            validate_entries(payload)
        except jsonschema.ValidationError as e:
            raise EntryLoadError(f"invalid entries document {self.entries_path}: {e.message}") from e

        out: Dict[int, MemoryEntry] = {}
        for obj in payload:
            entry = MemoryEntry.from_dict(obj)
            if entry.id in out:
                raise EntryLoadError(f"duplicate id {entry.id} in {self.entries_path}")
            out[entry.id] = entry
        return out

    def load_index(self, dim: int, **index_kwargs) -> FaissVectorIndex:
        if not self.index_path.exists():
            raise IndexLoadError(f"index file not found: {self.index_path}")
        return FaissVectorIndex.read(str(self.index_path), dim=dim, **index_kwargs)

    def save(self, index: FaissVectorIndex, entries: Iterable[MemoryEntry]) -> None:
        rows = [e.to_dict() for e in sorted(entries, key=lambda e: e.id)]
        try:
            self.root.mkdir(parents=True, exist_ok=True)

            tmp_index = self.index_path.with_name(self.index_path.name + ".tmp")
            index.write(str(tmp_index))
            with tmp_index.open("rb") as f:
                os.fsync(f.fileno())
            os.replace(tmp_index, self.index_path)

            tmp_entries = self.entries_path.with_name(self.entries_path.name + ".tmp")
            with tmp_entries.open("w", encoding="utf-8") as f:
                json.dump(rows, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_entries, self.entries_path)
        except Exception as e:
            raise PersistenceWriteError(f"snapshot write to {self.root} failed: {e}") from e
