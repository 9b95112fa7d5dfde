from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env(name: str, default: str) -> str:
    return os.environ.get(f"HMEM_{name}", default)


@dataclass(frozen=True)
class RelevancePolicy:
    """
    Ranking policy for semantic recall.

    Scores are cosine distances (1 - inner product over normalized vectors),
    smaller is better. `max_distance` is the base cutoff; when the scan has
    passed half of the requested pool with fewer than ceil(k/2) admitted, the
    cutoff widens once by `relax_factor`, never beyond `relax_cap`.
    """

    max_distance: float = 0.75
    relax_factor: float = 1.2
    relax_cap: float = 0.90
    oversample: int = 5

    def __post_init__(self) -> None:
        if not 0.0 <= float(self.max_distance) <= 2.0:
            raise ValueError(f"max_distance out of range: {self.max_distance}")
        if float(self.relax_factor) < 1.0:
            raise ValueError(f"relax_factor must be >= 1.0, got {self.relax_factor}")
        if not 0.0 <= float(self.relax_cap) <= 2.0:
            raise ValueError(f"relax_cap out of range: {self.relax_cap}")
        if int(self.oversample) not in (4, 5):
            raise ValueError(f"oversample must be 4 or 5, got {self.oversample}")

    @property
    def relaxed_distance(self) -> float:
        widened = min(float(self.relax_cap), float(self.max_distance) * float(self.relax_factor))
        return max(float(self.max_distance), widened)

    @classmethod
    def from_env(cls) -> "RelevancePolicy":
        return cls(
            max_distance=float(_env("MAX_DISTANCE", "0.75")),
            relax_factor=float(_env("RELAX_FACTOR", "1.2")),
            relax_cap=float(_env("RELAX_CAP", "0.90")),
            oversample=int(_env("OVERSAMPLE", "5")),
        )


@dataclass(frozen=True)
class StoreSettings:
    dimension: int = 768
    data_dir: str = "."
    buffer_capacity: int = 50
    flush_interval: float = 10.0
    embed_timeout: Optional[float] = 30.0
    index_kind: str = "hnsw"  # "hnsw" | "flat"
    hnsw_m: int = 32
    ef_construction: int = 400
    ef_search: int = 64

    def __post_init__(self) -> None:
        if int(self.dimension) <= 0:
            raise ValueError(f"dimension must be positive, got {self.dimension}")
        if int(self.buffer_capacity) <= 0:
            raise ValueError(f"buffer_capacity must be positive, got {self.buffer_capacity}")
        if float(self.flush_interval) <= 0:
            raise ValueError(f"flush_interval must be positive, got {self.flush_interval}")
        if self.index_kind not in ("hnsw", "flat"):
            raise ValueError(f"unknown index_kind: {self.index_kind}")

    @classmethod
    def from_env(cls) -> "StoreSettings":
        timeout = _env("EMBED_TIMEOUT", "30")
        return cls(
            dimension=int(_env("DIMENSION", "768")),
            data_dir=_env("DATA_DIR", "."),
            buffer_capacity=int(_env("BUFFER_CAPACITY", "50")),
            flush_interval=float(_env("FLUSH_INTERVAL", "10")),
            embed_timeout=(float(timeout) if float(timeout) > 0 else None),
            index_kind=_env("INDEX_KIND", "hnsw"),
            hnsw_m=int(_env("HNSW_M", "32")),
            ef_construction=int(_env("EF_CONSTRUCTION", "400")),
            ef_search=int(_env("EF_SEARCH", "64")),
        )


@dataclass(frozen=True)
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 9004
    auth_token: str = "super_secret_token_for_prototype"
    embedder: str = "sentence-transformers"  # "sentence-transformers" | "hashing"
    model_name: str = "nomic-ai/nomic-embed-text-v1.5"

    @classmethod
    def from_env(cls) -> "ServerSettings":
        return cls(
            host=_env("HOST", "0.0.0.0"),
            port=int(_env("PORT", "9004")),
            auth_token=_env("AUTH_TOKEN", "super_secret_token_for_prototype"),
            embedder=_env("EMBEDDER", "sentence-transformers"),
            model_name=_env("MODEL_NAME", "nomic-ai/nomic-embed-text-v1.5"),
        )
