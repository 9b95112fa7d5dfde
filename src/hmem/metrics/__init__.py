from .prom import EMBED_FAILURES, EMBED_POOL_SATURATED, FLUSH_FAILURES, FLUSHES, LAT, REQS, mark

__all__ = ["EMBED_FAILURES", "EMBED_POOL_SATURATED", "FLUSH_FAILURES", "FLUSHES", "LAT", "REQS", "mark"]
