from __future__ import annotations

import hashlib
import json
from typing import Any


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def canonical_dumps(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def report_signature(obj: Any) -> str:
    return sha256_hex(canonical_dumps(obj))[:16]
