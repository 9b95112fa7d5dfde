from .memory_entry import MemoryEntry, utc_timestamp

__all__ = ["MemoryEntry", "utc_timestamp"]
