"""
Hybrid conversational memory: a bounded window of recent turns plus a
semantic index over every turn ever added.

Entries live in one table keyed by id. The short-term buffer and the vector
index only hold ids. A single lock guards the table, the buffer, the index and
the dirty flag; embeddings are computed outside it and committed under it.
A background thread writes a full snapshot whenever the store is dirty.
"""
from __future__ import annotations

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Deque, Dict, List, Optional

import numpy as np

from hmem.config import RelevancePolicy, StoreSettings
from hmem.errors import (
    DuplicateIdError,
    EmbeddingError,
    EntryLoadError,
    IndexLoadError,
    PersistenceWriteError,
)
from hmem.index import FaissVectorIndex
from hmem.metrics import EMBED_FAILURES, EMBED_POOL_SATURATED, FLUSH_FAILURES, FLUSHES
from hmem.models import MemoryEntry, utc_timestamp
from hmem.storage import SnapshotStore
from hmem.vectorize import EmbeddingProvider, Intent

from .ranking import select_relevant

logger = logging.getLogger(__name__)

EMBED_WORKERS = 4


class MemoryStore:
    def __init__(
        self,
        embedder: EmbeddingProvider,
        settings: Optional[StoreSettings] = None,
        policy: Optional[RelevancePolicy] = None,
        start_flusher: bool = True,
    ) -> None:
        self.embedder = embedder
        self.settings = settings or StoreSettings()
        self.policy = policy or RelevancePolicy()

        if int(embedder.dim) != int(self.settings.dimension):
            raise ValueError(
                f"embedder dim {embedder.dim} does not match store dimension {self.settings.dimension}"
            )

        self._lock = threading.RLock()
        self._snapshots = SnapshotStore(self.settings.data_dir)
        self._entries: Dict[int, MemoryEntry] = {}
        self._recent: Deque[int] = deque(maxlen=int(self.settings.buffer_capacity))
        self._index = self._new_index()
        self._next_id = 0
        self._dirty = False
        self._closed = False

        self._embed_pool: Optional[ThreadPoolExecutor] = None
        if self.settings.embed_timeout is not None:
            self._embed_pool = ThreadPoolExecutor(max_workers=EMBED_WORKERS, thread_name_prefix="hmem-embed")
        self._inflight = 0
        self._inflight_lock = threading.Lock()

        self.reload()

        self._stop = threading.Event()
        self._flusher = threading.Thread(target=self._flush_loop, name="hmem-flush", daemon=True)
        if start_flusher:
            self._flusher.start()

    # -- lifecycle -------------------------------------------------------

    def _new_index(self) -> FaissVectorIndex:
        s = self.settings
        return FaissVectorIndex(
            dim=s.dimension,
            kind=s.index_kind,
            m=s.hnsw_m,
            ef_construction=s.ef_construction,
            ef_search=s.ef_search,
        )

    def reload(self) -> None:
        """
        Replace in-memory state with the on-disk snapshot.

        Each artifact loads on its own: a missing or corrupt one is replaced by
        an empty one. The short-term buffer always restarts empty.
        """
        s = self.settings
        with self._lock:
            try:
                entries = self._snapshots.load_entries()
            except EntryLoadError as e:
                logger.warning("%s; starting with an empty entry table", e)
                entries = {}

            try:
                index = self._snapshots.load_index(
                    s.dimension,
                    kind=s.index_kind,
                    m=s.hnsw_m,
                    ef_construction=s.ef_construction,
                    ef_search=s.ef_search,
                )
            except IndexLoadError as e:
                logger.warning("%s; creating a new index", e)
                index = self._new_index()

            max_id = max(max(entries, default=-1), index.max_id())

            self._entries = entries
            self._index = index
            self._recent.clear()
            self._next_id = max_id + 1
            self._dirty = False

        logger.info("Loaded %d entries and %d vectors", len(entries), index.ntotal)

    def flush(self) -> bool:
        """Write a full snapshot if anything changed. Returns True when written."""
        with self._lock:
            if not self._dirty:
                return False
            try:
                self._snapshots.save(self._index, self._entries.values())
            except PersistenceWriteError as e:
                FLUSH_FAILURES.inc()
                logger.error("Error saving memory snapshot, will retry: %s", e)
                return False
            self._dirty = False
            FLUSHES.inc()
            logger.debug("Saved %d entries to %s", len(self._entries), self._snapshots.root)
            return True

    def _flush_loop(self) -> None:
        while not self._stop.wait(float(self.settings.flush_interval)):
            if self._dirty:
                self.flush()

    def close(self) -> None:
        """Stop the flusher, wait for it, then flush whatever is still dirty."""
        with self._lock:
            if self._closed:
                return
            self._closed = True

        self._stop.set()
        if self._flusher.is_alive():
            self._flusher.join()

        self.flush()

        if self._embed_pool is not None:
            self._embed_pool.shutdown(wait=False)

    def __enter__(self) -> "MemoryStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # -- embedding -------------------------------------------------------

    def warm_up(self) -> None:
        """
        Load the embedding model now, outside the per-call timeout. Call before
        serving traffic; otherwise the first turns can time out while the
        model is still loading.
        """
        t0 = time.perf_counter()
        self.embedder.warm_up()
        logger.info("Embedding provider ready in %.1fs", time.perf_counter() - t0)

    def _embed_done(self, _fut: Optional[Future]) -> None:
        with self._inflight_lock:
            self._inflight -= 1

    def _embed(self, text: str, intent: Intent) -> np.ndarray:
        if self._embed_pool is None:
            return self.embedder.embed(text, intent)

        with self._inflight_lock:
            busy = self._inflight
            self._inflight += 1
        if busy >= EMBED_WORKERS:
            EMBED_POOL_SATURATED.inc()
            logger.warning(
                "Embedding pool saturated: %d calls still running or queued for %d workers",
                busy, EMBED_WORKERS,
            )

        try:
            fut = self._embed_pool.submit(self.embedder.embed, text, intent)
        except RuntimeError:
            self._embed_done(None)
            raise
        fut.add_done_callback(self._embed_done)
        try:
            return fut.result(timeout=float(self.settings.embed_timeout))
        except FutureTimeout as e:
            fut.cancel()
            raise EmbeddingError(f"embedding timed out after {self.settings.embed_timeout}s") from e

    # -- operations ------------------------------------------------------

    def add(self, role: str, content: str) -> MemoryEntry:
        """
        Record a turn. The entry is always kept; if no vector can be produced
        it is only reachable through retrieve_recent.
        """
        if self._closed:
            raise RuntimeError("MemoryStore is closed")

        vec: Optional[np.ndarray] = None
        try:
            vec = self._embed(content, Intent.DOCUMENT)
        except EmbeddingError as e:
            EMBED_FAILURES.labels(intent=Intent.DOCUMENT.value).inc()
            logger.warning("Error generating embedding: %s", e)
        except Exception:
            EMBED_FAILURES.labels(intent=Intent.DOCUMENT.value).inc()
            logger.exception("Unexpected embedding failure")

        with self._lock:
            # close() may have run its final flush while this call was embedding
            if self._closed:
                raise RuntimeError("MemoryStore is closed")

            entry_id = self._next_id
            self._next_id += 1

            entry = MemoryEntry(id=entry_id, timestamp=utc_timestamp(), role=role, content=content)
            self._entries[entry_id] = entry
            self._recent.append(entry_id)

            if vec is not None:
                try:
                    self._index.add(entry_id, vec)
                except (DuplicateIdError, ValueError) as e:
                    logger.warning("Entry %d kept without a vector: %s", entry_id, e)
                except Exception:
                    logger.exception("Index insert failed; entry %d kept without a vector", entry_id)

            self._dirty = True

        return entry

    def retrieve_recent(self, n: int) -> List[MemoryEntry]:
        """Up to n most recent entries, oldest first."""
        with self._lock:
            count = max(0, min(int(n), len(self._recent)))
            if count == 0:
                return []
            ids = list(self._recent)[-count:]
            return [self._entries[i] for i in ids if i in self._entries]

    def retrieve_relevant(self, query: str, k: int) -> List[MemoryEntry]:
        """Up to k entries closest in meaning to query, best first, no repeated content."""
        if not query or int(k) <= 0:
            return []
        with self._lock:
            if self._index.ntotal == 0:
                return []

        try:
            qv = self._embed(query, Intent.QUERY)
        except Exception as e:
            EMBED_FAILURES.labels(intent=Intent.QUERY.value).inc()
            logger.warning("Error during semantic search: %s", e)
            return []

        pool = int(k) * int(self.policy.oversample)
        with self._lock:
            candidates = self._index.search(qv, pool)
            results, threshold = select_relevant(candidates, self._entries, int(k), pool, self.policy)

        logger.debug(
            "Query %r final cutoff %.3f results %d/%d best distance %s",
            query,
            threshold,
            len(results),
            int(k),
            (f"{candidates[0][1]:.4f}" if candidates else "n/a"),
        )
        return results

    # -- introspection ---------------------------------------------------

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def short_term_size(self) -> int:
        with self._lock:
            return len(self._recent)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "vectors": self._index.ntotal,
                "buffered": len(self._recent),
                "next_id": self._next_id,
            }
