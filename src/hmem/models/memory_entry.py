from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from typing import Any, Dict


def utc_timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass(frozen=True)
class MemoryEntry:
    id: int  # monotonic, never reused
    timestamp: str  # ISO-8601 UTC at creation
    role: str  # "user" | "assistant" | ...
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, obj: Dict[str, Any]) -> "MemoryEntry":
        return cls(
            id=int(obj["id"]),
            timestamp=str(obj["timestamp"]),
            role=str(obj["role"]),
            content=str(obj["content"]),
        )
