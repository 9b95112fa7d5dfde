from __future__ import annotations

import enum
from abc import ABC, abstractmethod

import numpy as np

from hmem.errors import EmbeddingError


class Intent(str, enum.Enum):
    QUERY = "query"
    DOCUMENT = "document"


# Asymmetric retrieval: stored turns and search text get different prefixes.
PREFIXES = {
    Intent.QUERY: "search_query: ",
    Intent.DOCUMENT: "search_document: ",
}


def prepare(text: str, intent: Intent) -> str:
    return PREFIXES[Intent(intent)] + text


def normalize(vec: np.ndarray) -> np.ndarray:
    v = np.asarray(vec, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(v))
    if norm > 1e-6:
        v = v / norm
    return v.astype(np.float32)


class EmbeddingProvider(ABC):
    """Turns text into a normalized float32 vector of a fixed dimension."""

    @property
    @abstractmethod
    def dim(self) -> int:
        pass

    @abstractmethod
    def _encode(self, text: str) -> np.ndarray:
        """Raw model call on already-prefixed text."""

    def warm_up(self) -> None:
        """Load whatever the provider needs before its first call. No-op by default."""

    def embed(self, text: str, intent: Intent) -> np.ndarray:
        try:
            raw = self._encode(prepare(text, intent))
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"embedding provider failed: {e}") from e

        v = np.asarray(raw, dtype=np.float32).reshape(-1)
        if v.shape[0] != self.dim:
            raise EmbeddingError(f"dim mismatch: expected {self.dim}, got {v.shape[0]}")
        if not np.all(np.isfinite(v)):
            raise EmbeddingError("embedding contains non-finite values")
        return normalize(v)
