"""
Least-recently-used eviction bookkeeping.

:class:`LRUEvictionPolicy` keeps an ``OrderedDict`` of record ids ordered from
least to most recently used, plus per-id access counters. It does not own the
records themselves; the cache keeps the id set here equal to its own map by
calling :meth:`track` / :meth:`forget` alongside every map mutation. The policy
is not thread-safe on its own.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable, List


@dataclass
class AccessInfo:
    """Usage bookkeeping for one cached record."""

    last_accessed_at: float
    access_count: int = 0


@dataclass
class LRUEvictionPolicy:
    """Recency list for a single cache."""

    _order: OrderedDict[str, AccessInfo] = field(default_factory=OrderedDict, repr=False)

    def track(self, record_id: str) -> None:
        """Register ``record_id`` as most recently used (insert or replace)."""

        info = self._order.pop(record_id, None)
        if info is None:
            info = AccessInfo(last_accessed_at=time.time())
        else:
            info.last_accessed_at = time.time()
        self._order[record_id] = info

    def touch(self, record_id: str) -> None:
        """Mark an access; unknown ids are ignored."""

        info = self._order.get(record_id)
        if info is None:
            return
        info.last_accessed_at = time.time()
        info.access_count += 1
        self._order.move_to_end(record_id)

    def forget(self, record_id: str) -> None:
        self._order.pop(record_id, None)

    def victims(self, count: int) -> List[str]:
        """Return up to ``count`` least recently used ids, oldest first."""

        if count <= 0:
            return []
        victims: List[str] = []
        for record_id in self._order:
            if len(victims) >= count:
                break
            victims.append(record_id)
        return victims

    def reset(self, record_ids: Iterable[str] = ()) -> None:
        """Rebuild from ``record_ids`` in the given order (oldest first)."""

        now = time.time()
        self._order = OrderedDict((rid, AccessInfo(now)) for rid in record_ids)

    def info(self, record_id: str) -> AccessInfo | None:
        return self._order.get(record_id)

    def ids(self) -> List[str]:
        """Ids ordered least -> most recently used."""

        return list(self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._order
