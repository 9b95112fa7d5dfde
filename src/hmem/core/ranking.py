from __future__ import annotations

from typing import List, Mapping, Optional, Sequence, Set, Tuple

from hmem.config import RelevancePolicy
from hmem.models import MemoryEntry


def _admit(
    candidates: Sequence[Tuple[int, float]],
    entries: Mapping[int, MemoryEntry],
    lower: float,
    upper: float,
    limit: int,
    out: List[MemoryEntry],
    seen: Set[str],
) -> None:
    # appends entries with lower < distance <= upper, in candidate order
    for entry_id, dist in candidates:
        if len(out) >= limit:
            break
        if dist <= lower or dist > upper:
            continue
        entry = entries.get(int(entry_id))
        if entry is None or entry.content in seen:
            continue
        seen.add(entry.content)
        out.append(entry)


def select_relevant(
    candidates: Sequence[Tuple[int, float]],
    entries: Mapping[int, MemoryEntry],
    k: int,
    pool: int,
    policy: RelevancePolicy,
) -> Tuple[List[MemoryEntry], float]:
    """
    Pick up to k entries from (entry_id, distance) candidates sorted nearest-first.

    Entries within `policy.max_distance` are admitted in order, skipping any
    content already admitted. If fewer than ceil(k/2) had been admitted once
    more than half of `pool` was scanned, the cutoff widens to
    `policy.relaxed_distance` and entries from the widened band top the result
    up to ceil(k/2). Returns the admitted entries and the final cutoff.
    """
    k = int(k)
    floor = (k + 1) // 2
    base = float(policy.max_distance)

    out: List[MemoryEntry] = []
    seen: Set[str] = set()
    at_midpoint: Optional[int] = None

    for position, (entry_id, dist) in enumerate(candidates):
        if at_midpoint is None and position * 2 > int(pool):
            at_midpoint = len(out)
        if len(out) >= k:
            break
        if dist > base:
            continue
        entry = entries.get(int(entry_id))
        if entry is None or entry.content in seen:
            continue
        seen.add(entry.content)
        out.append(entry)

    if at_midpoint is None and len(candidates) * 2 > int(pool):
        at_midpoint = len(out)

    if at_midpoint is None or at_midpoint >= floor or len(out) >= floor:
        return out, base

    relaxed = policy.relaxed_distance
    _admit(candidates, entries, base, relaxed, floor, out, seen)
    return out, relaxed
