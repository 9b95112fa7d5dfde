from __future__ import annotations


class MemoryStoreError(Exception):
    """Base class for every error raised inside hmem."""


class ValidationError(MemoryStoreError):
    """Malformed transport input; surfaced to the caller as a 400."""


class EmbeddingError(MemoryStoreError):
    """Provider failure, timeout or dimension mismatch."""


class DuplicateIdError(MemoryStoreError):
    """A vector was inserted under an id the index already holds."""


class IndexLoadError(MemoryStoreError):
    """Persisted vector index is missing, unreadable or incompatible."""


class EntryLoadError(MemoryStoreError):
    """Persisted entries document is missing, unparsable or schema-invalid."""


class PersistenceWriteError(MemoryStoreError):
    """Writing a snapshot artifact to disk failed."""
