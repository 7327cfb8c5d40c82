"""retry_guard.store

Time-bounded mapping from fingerprint to the latest FailureRecord.

Expiry is lazy: the guard calls cleanup() before decisions and statistics
queries, so an idle store does one batch purge on its next use.

.. warning:: NOT THREAD-SAFE

   FailureStore does no locking. RetryGuard serializes access to it.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional, Tuple

from .types import FailureRecord


class FailureStore:
    """At most one FailureRecord per fingerprint."""

    def __init__(self, max_age_ms: float):
        self.max_age_ms = max_age_ms
        self._records: Dict[str, FailureRecord] = {}

    def get(self, key: str) -> Optional[FailureRecord]:
        return self._records.get(key)

    def set(self, key: str, record: FailureRecord) -> None:
        self._records[key] = record

    def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    def clear(self) -> None:
        self._records.clear()

    def items(self) -> List[Tuple[str, FailureRecord]]:
        return list(self._records.items())

    def values(self) -> List[FailureRecord]:
        return list(self._records.values())

    def cleanup(self, now: float) -> int:
        """Delete every record older than max_age_ms. Returns how many were purged."""
        expired = [
            key for key, rec in self._records.items()
            if now - rec.timestamp > self.max_age_ms
        ]
        for key in expired:
            del self._records[key]
        return len(expired)

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._records))
