from .ranking import select_relevant
from .store import MemoryStore

__all__ = ["MemoryStore", "select_relevant"]
