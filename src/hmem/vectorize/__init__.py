from .base import EmbeddingProvider, Intent, normalize, prepare
from .hashing import HashingEmbedder
from .sentence import SentenceTransformerEmbedder


def build_embedder(kind: str, dim: int, model_name: str = "nomic-ai/nomic-embed-text-v1.5") -> EmbeddingProvider:
    if kind == "hashing":
        return HashingEmbedder(dim=dim)
    if kind == "sentence-transformers":
        return SentenceTransformerEmbedder(model_name=model_name, dim=dim)
    raise ValueError(f"Unknown embedder: {kind}")


__all__ = [
    "EmbeddingProvider",
    "Intent",
    "normalize",
    "prepare",
    "HashingEmbedder",
    "SentenceTransformerEmbedder",
    "build_embedder",
]
