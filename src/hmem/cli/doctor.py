from __future__ import annotations

import json
import logging
import platform
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from hmem import __version__
from hmem.config import StoreSettings
from hmem.core import MemoryStore
from hmem.core.signatures import report_signature
from hmem.vectorize import HashingEmbedder

logger = logging.getLogger(__name__)


@dataclass
class CheckResult:
    name: str
    ok: bool
    details: Dict[str, Any]


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _write(path: str, s: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(s)


def _open(data_dir: str, dimension: int) -> MemoryStore:
    settings = StoreSettings(dimension=dimension, data_dir=data_dir, embed_timeout=None)
    return MemoryStore(HashingEmbedder(dim=dimension), settings=settings, start_flusher=False)


def _run_checks(data_dir: str, dimension: int, entries: int) -> List[CheckResult]:
    checks: List[CheckResult] = []

    store = _open(data_dir, dimension)
    capacity = int(store.settings.buffer_capacity)
    added = []
    for i in range(int(entries)):
        role = "user" if i % 2 == 0 else "assistant"
        added.append(store.add(role, f"turn {i}: topic_{i % 7} detail_{i}"))

    ids = [e.id for e in added]
    checks.append(
        CheckResult(
            "ids_strictly_increasing",
            all(b > a for a, b in zip(ids, ids[1:])),
            {"first": ids[0] if ids else None, "last": ids[-1] if ids else None},
        )
    )

    recent = store.retrieve_recent(capacity * 2)
    expected = added[-min(len(added), capacity):]
    checks.append(
        CheckResult(
            "short_term_bounded_and_ordered",
            [e.id for e in recent] == [e.id for e in expected],
            {"capacity": capacity, "returned": len(recent)},
        )
    )

    store.add("user", "the duplicated sentence about gardening")
    store.add("user", "the duplicated sentence about gardening")
    hits = store.retrieve_relevant("duplicated sentence about gardening", 5)
    contents = [h.content for h in hits]
    checks.append(
        CheckResult(
            "content_dedup",
            contents.count("the duplicated sentence about gardening") == 1,
            {"returned": len(hits)},
        )
    )

    q = "topic_3 detail"
    r1 = [e.id for e in store.retrieve_relevant(q, 5)]
    r2 = [e.id for e in store.retrieve_relevant(q, 5)]
    checks.append(CheckResult("relevant_deterministic", r1 == r2, {"ids": r1}))

    max_before = store.stats()["next_id"] - 1
    wrote = store.flush()
    store.close()

    reopened = _open(data_dir, dimension)
    try:
        after = reopened.retrieve_relevant("duplicated sentence about gardening", 3)
        fresh = reopened.add("user", "first turn after restart")
        checks.append(
            CheckResult(
                "reload_restores_long_term_only",
                bool(
                    wrote
                    and reopened.retrieve_recent(capacity) == [fresh]
                    and any(e.content == "the duplicated sentence about gardening" for e in after)
                    and fresh.id > max_before
                ),
                {"flushed": wrote, "new_id": fresh.id, "max_id_before": max_before},
            )
        )
    finally:
        reopened.close()

    return checks


def run_doctor(
    data_dir: Optional[str],
    dimension: int,
    entries: int,
    report_out: str,
    strict: bool,
) -> int:
    env: Dict[str, Any] = {
        "timestamp_utc": _now_iso(),
        "os": f"{platform.system()} {platform.release()} ({platform.machine()})",
        "python": platform.python_version(),
        "numpy": np.__version__,
        "dimension": int(dimension),
    }

    try:
        import faiss  # type: ignore
        env["faiss"] = getattr(faiss, "__version__", "unknown")
    except Exception:
        env["faiss"] = "not_installed"

    if data_dir is None:
        with tempfile.TemporaryDirectory(prefix="hmem_doctor_") as tmp:
            env["data_dir"] = tmp
            checks = _run_checks(tmp, dimension, entries)
    else:
        env["data_dir"] = data_dir
        checks = _run_checks(data_dir, dimension, entries)

    ok_all = all(c.ok for c in checks)
    summary: Dict[str, Any] = {"hmem_version": __version__, "timestamp_utc": _now_iso(), "ok": bool(ok_all)}
    body = {
        "summary": summary,
        "environment": env,
        "checks": [{"name": c.name, "ok": c.ok, "details": c.details} for c in checks],
    }
    summary["report_signature"] = report_signature(body)

    _write(report_out, json.dumps(body, indent=2, ensure_ascii=False))
    for c in checks:
        logger.info("%s: %s", c.name, "PASS" if c.ok else "FAIL")
    logger.info("Report written to %s (%s)", report_out, "PASS" if ok_all else "FAIL")

    return 0 if ok_all else (1 if strict else 0)
