from __future__ import annotations

import logging
import threading
from typing import Optional

import numpy as np

from hmem.errors import EmbeddingError

from .base import EmbeddingProvider

logger = logging.getLogger(__name__)


class SentenceTransformerEmbedder(EmbeddingProvider):
    """
    sentence-transformers backed provider. The model is loaded by warm_up() or,
    failing that, on first use; constructing the provider stays cheap.
    """

    def __init__(
        self,
        model_name: str = "nomic-ai/nomic-embed-text-v1.5",
        dim: int = 768,
        device: Optional[str] = None,
    ) -> None:
        self.model_name = model_name
        self.device = device
        self._dim = int(dim)
        self._model = None
        self._load_lock = threading.Lock()

    @property
    def dim(self) -> int:
        return self._dim

    def _get_model(self):
        with self._load_lock:
            if self._model is None:
                try:
                    from sentence_transformers import SentenceTransformer
                except ImportError as e:
                    raise EmbeddingError(
                        "sentence-transformers not installed. Install with: pip install -e '.[embeddings]'"
                    ) from e
                self._model = SentenceTransformer(
                    self.model_name, device=self.device, trust_remote_code=True
                )
                loaded = int(self._model.get_sentence_embedding_dimension())
                logger.info("Loaded embedding model %s (dim=%d)", self.model_name, loaded)
                if loaded != self._dim:
                    logger.warning(
                        "Model %s produces %d dims, store expects %d; every embedding will be rejected",
                        self.model_name, loaded, self._dim,
                    )
            return self._model

    def warm_up(self) -> None:
        self._get_model()

    def _encode(self, text: str) -> np.ndarray:
        model = self._get_model()
        emb = model.encode([text], convert_to_numpy=True, normalize_embeddings=True)
        return np.asarray(emb, dtype=np.float32).reshape(-1)
