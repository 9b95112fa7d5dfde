from .schema import ENTRIES_SCHEMA, validate_entries
from .snapshot import ENTRIES_FILE, INDEX_FILE, SnapshotStore

__all__ = ["ENTRIES_SCHEMA", "validate_entries", "ENTRIES_FILE", "INDEX_FILE", "SnapshotStore"]
