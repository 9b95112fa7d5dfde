from .faiss_index import FaissVectorIndex

__all__ = ["FaissVectorIndex"]
