from __future__ import annotations
from prometheus_client import Counter, Histogram

REQS = Counter("hmem_requests_total", "Total requests", ["endpoint"])
LAT = Histogram("hmem_latency_ms", "Latency ms", ["endpoint"])

EMBED_FAILURES = Counter("hmem_embedding_failures_total", "Embedding calls that failed or timed out", ["intent"])
FLUSHES = Counter("hmem_flushes_total", "Snapshots written to disk")
FLUSH_FAILURES = Counter("hmem_flush_failures_total", "Snapshot writes that failed")
EMBED_POOL_SATURATED = Counter(
    "hmem_embed_pool_saturated_total", "Embedding calls submitted while every worker was busy"
)


def mark(endpoint: str) -> None:
    REQS.labels(endpoint=endpoint).inc()
