from __future__ import annotations

import hashlib
import re

import numpy as np

from .base import EmbeddingProvider, PREFIXES

_WORD = re.compile(r"[A-Za-z0-9_ÁÉÍÓÚÜÑáéíóúüñ]+")


class HashingEmbedder(EmbeddingProvider):
    """
    Offline, deterministic provider: signed feature hashing of lowercase word
    unigrams and bigrams. No model, no randomness; two texts sharing words end
    up close in inner-product space.
    """

    def __init__(self, dim: int = 768) -> None:
        self._dim = int(dim)

    @property
    def dim(self) -> int:
        return self._dim

    def _bucket(self, feature: str) -> tuple[int, float]:
        h = hashlib.blake2b(feature.encode("utf-8"), digest_size=8).digest()
        n = int.from_bytes(h, "little")
        sign = 1.0 if (n >> 63) & 1 == 0 else -1.0
        return n % self._dim, sign

    def _encode(self, text: str) -> np.ndarray:
        for prefix in PREFIXES.values():
            if text.startswith(prefix):
                text = text[len(prefix):]
                break

        words = [w.lower() for w in _WORD.findall(text)]
        v = np.zeros((self._dim,), dtype=np.float32)
        feats = words + [f"{a}_{b}" for a, b in zip(words, words[1:])]
        for f in feats:
            ix, sign = self._bucket(f)
            v[ix] += sign
        return v
