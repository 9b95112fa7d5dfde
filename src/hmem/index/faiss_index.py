from __future__ import annotations

import threading
from typing import List, Set, Tuple

import numpy as np

from hmem.errors import DuplicateIdError, IndexLoadError

try:
    import faiss  # type: ignore
except Exception as e:  # pragma: no cover
    raise RuntimeError("faiss is required for FaissVectorIndex") from e


class FaissVectorIndex:
    """
    Nearest-neighbor index over normalized vectors, keyed by entry id.

    Backed by an inner-product faiss index wrapped in IndexIDMap2, so results
    come back with the caller's ids. Scores are reported as cosine distance
    (1 - inner product); smaller is better.
    """

    def __init__(
        self,
        dim: int,
        kind: str = "hnsw",
        m: int = 32,
        ef_construction: int = 400,
        ef_search: int = 64,
        omp_threads: int = 1,
        _idx: "faiss.Index | None" = None,
    ) -> None:
        self.dim = int(dim)
        self.kind = kind
        self.m = int(m)
        self.ef_construction = int(ef_construction)
        self.ef_search = int(ef_search)
        self._lock = threading.RLock()

        try:
            faiss.omp_set_num_threads(int(omp_threads))
        except Exception:
            pass

        self._idx = _idx if _idx is not None else self._create()
        self._ids: Set[int] = self._stored_ids(self._idx)
        self._tune(self._idx)

    def _create(self) -> "faiss.Index":
        if self.kind == "flat":
            base = faiss.IndexFlatIP(self.dim)
        else:
            base = faiss.IndexHNSWFlat(self.dim, self.m, faiss.METRIC_INNER_PRODUCT)
            base.hnsw.efConstruction = self.ef_construction
        return faiss.IndexIDMap2(base)

    def _tune(self, idx: "faiss.Index") -> None:
        inner = faiss.downcast_index(idx.index)
        if hasattr(inner, "hnsw"):
            inner.hnsw.efSearch = self.ef_search

    @staticmethod
    def _stored_ids(idx: "faiss.Index") -> Set[int]:
        if int(idx.ntotal) == 0:
            return set()
        return {int(x) for x in faiss.vector_to_array(idx.id_map).tolist()}

    @property
    def ntotal(self) -> int:
        with self._lock:
            return int(self._idx.ntotal)

    def __len__(self) -> int:
        return self.ntotal

    def __contains__(self, entry_id: int) -> bool:
        with self._lock:
            return int(entry_id) in self._ids

    def max_id(self) -> int:
        with self._lock:
            return max(self._ids) if self._ids else -1

    def add(self, entry_id: int, vec: np.ndarray) -> None:
        with self._lock:
            if int(entry_id) in self._ids:
                raise DuplicateIdError(f"id {entry_id} already indexed")

            v = vec.reshape(1, -1) if vec.ndim == 1 else vec
            v = np.ascontiguousarray(v, dtype=np.float32)

            if v.shape != (1, self.dim):
                raise ValueError(f"dim mismatch: expected {self.dim}, got {v.shape[1]}")

            self._idx.add_with_ids(v, np.array([int(entry_id)], dtype=np.int64))
            self._ids.add(int(entry_id))

    def search(self, q: np.ndarray, k: int) -> List[Tuple[int, float]]:
        """Return up to k (entry_id, distance) pairs, nearest first."""
        with self._lock:
            if int(self._idx.ntotal) == 0 or int(k) <= 0:
                return []

            qv = q.reshape(1, -1) if q.ndim == 1 else q
            qv = np.ascontiguousarray(qv, dtype=np.float32)
            if qv.shape[1] != self.dim:
                raise ValueError(f"dim mismatch: expected {self.dim}, got {qv.shape[1]}")
            kk = min(int(k), int(self._idx.ntotal))

            sims, ids = self._idx.search(qv, kk)
            pairs = [
                (int(i), float(1.0 - s))
                for i, s in zip(ids.reshape(-1), sims.reshape(-1))
                if int(i) >= 0
            ]
            # inner product comes back largest-first; flip to distance and keep a stable order
            pairs.sort(key=lambda t: (t[1], t[0]))
            return pairs

    def write(self, path: str) -> None:
        with self._lock:
            faiss.write_index(self._idx, path)

    @classmethod
    def read(
        cls,
        path: str,
        dim: int,
        kind: str = "hnsw",
        m: int = 32,
        ef_construction: int = 400,
        ef_search: int = 64,
    ) -> "FaissVectorIndex":
        try:
            idx = faiss.read_index(path)
        except Exception as e:
            raise IndexLoadError(f"cannot read index {path}: {e}") from e

        if int(idx.d) != int(dim):
            raise IndexLoadError(f"index {path} has dim {idx.d}, expected {dim}")
        if not hasattr(idx, "id_map") or not hasattr(idx, "index"):
            raise IndexLoadError(f"index {path} is not id-mapped ({type(idx).__name__})")
        if idx.metric_type != faiss.METRIC_INNER_PRODUCT:
            raise IndexLoadError(f"index {path} does not use inner product")

        return cls(dim=dim, kind=kind, m=m, ef_construction=ef_construction, ef_search=ef_search, _idx=idx)
