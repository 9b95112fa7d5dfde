from __future__ import annotations

import importlib.util
import re
import threading
import time
from pathlib import Path
from typing import Callable, List, Tuple

import numpy as np
import pytest

from hmem.config import RelevancePolicy, StoreSettings
from hmem.core import MemoryStore
from hmem.vectorize import EmbeddingProvider, Intent

# Words mapped onto fixed axes; anything else lands, weakly, on the last axis.
TOPICS = {
    "hiking": 0, "hike": 0, "outdoor": 0, "activities": 0, "exercise": 0, "trail": 0,
    "france": 1, "capital": 1, "paris": 1,
    "python": 2, "code": 2, "programming": 2,
    "cooking": 3, "recipe": 3, "pasta": 3,
}
DIM = 8


class KeywordEmbedder(EmbeddingProvider):
    """Tiny deterministic embedder for tests; records every call it receives."""

    def __init__(self, dim: int = DIM) -> None:
        self._dim = dim
        self.calls: List[Tuple[str, Intent]] = []
        self._lock = threading.Lock()

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, text: str, intent: Intent) -> np.ndarray:
        with self._lock:
            self.calls.append((text, Intent(intent)))
        return super().embed(text, intent)

    def _encode(self, text: str) -> np.ndarray:
        body = text.split(": ", 1)[1] if ": " in text else text
        v = np.zeros((self._dim,), dtype=np.float32)
        for w in re.findall(r"[a-z]+", body.lower()):
            if w in TOPICS:
                v[TOPICS[w]] += 1.0
            else:
                v[self._dim - 1] += 0.1
        return v


class FailingEmbedder(KeywordEmbedder):
    def _encode(self, text: str) -> np.ndarray:
        raise RuntimeError("model crashed")


class SlowEmbedder(KeywordEmbedder):
    def __init__(self, delay: float, dim: int = DIM) -> None:
        super().__init__(dim)
        self.delay = delay

    def _encode(self, text: str) -> np.ndarray:
        time.sleep(self.delay)
        return super()._encode(text)


class LazyEmbedder(KeywordEmbedder):
    """Slow once, on the first load; fast afterwards."""

    def __init__(self, load_delay: float, dim: int = DIM) -> None:
        super().__init__(dim)
        self.load_delay = load_delay
        self.loaded = False
        self._load_lock = threading.Lock()

    def _load(self) -> None:
        with self._load_lock:
            if not self.loaded:
                time.sleep(self.load_delay)
                self.loaded = True

    def warm_up(self) -> None:
        self._load()

    def _encode(self, text: str) -> np.ndarray:
        self._load()
        return super()._encode(text)


def _has_sentence_transformers() -> bool:
    return importlib.util.find_spec("sentence_transformers") is not None


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if _has_sentence_transformers():
        return

    skip = pytest.mark.skip(
        reason="sentence-transformers missing. Install: pip install -e '.[embeddings]'"
    )
    for item in items:
        if "embeddings" in item.keywords:
            item.add_marker(skip)


@pytest.fixture
def embedder() -> KeywordEmbedder:
    return KeywordEmbedder()


@pytest.fixture
def make_store(tmp_path: Path) -> Callable[..., MemoryStore]:
    opened: List[MemoryStore] = []

    def _make(
        embedder: EmbeddingProvider | None = None,
        data_dir: Path | None = None,
        policy: RelevancePolicy | None = None,
        start_flusher: bool = False,
        **settings_kwargs,
    ) -> MemoryStore:
        settings_kwargs.setdefault("embed_timeout", None)
        settings = StoreSettings(
            dimension=DIM,
            data_dir=str(data_dir or tmp_path),
            **settings_kwargs,
        )
        store = MemoryStore(
            embedder or KeywordEmbedder(),
            settings=settings,
            policy=policy,
            start_flusher=start_flusher,
        )
        opened.append(store)
        return store

    yield _make

    for s in opened:
        s.close()


@pytest.fixture
def failing_embedder() -> FailingEmbedder:
    return FailingEmbedder()


@pytest.fixture
def slow_embedder() -> SlowEmbedder:
    return SlowEmbedder(delay=0.5)


@pytest.fixture
def lazy_embedder() -> LazyEmbedder:
    return LazyEmbedder(load_delay=0.5)
