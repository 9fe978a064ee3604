"""In-memory, time-bounded cache for policy decisions."""
import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from forum_authz.schemas import OpaDecision

DEFAULT_TTL_SECONDS = 30.0

# Purpose:
# Avoid asking OPA the same question twice within a short window.
#
# How It Works:
# - Key: (subject id, action, resource) serialised with sorted keys, so
#   {"type": "post", "id": "1"} and {"id": "1", "type": "post"} collide.
#   Request context (client IP, time) is NOT part of the key.
# - Cache hit: entry present and its expiry is strictly in the future.
# - Expired entries are dropped the moment they are observed.
#
# Where it is used:
# - OpaService, for single and batch queries.
# - Admin endpoints, for clearing / per-subject invalidation.


@dataclass
class CacheEntry:
    decision: OpaDecision
    expires_at: float
    subject_id: Optional[str] = None


def make_key(subject_id: str, action: str, resource: Mapping[str, Any]) -> str:
    """Deterministic cache key for one authorization check."""
    return json.dumps(
        {"uid": subject_id, "action": action, "resource": resource},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )


class DecisionCache:
    """Thread-safe TTL cache of OpaDecision objects.

    Never raises: a miss just means the caller asks the policy engine.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Optional[OpaDecision]:
        if not self.enabled:
            return None

        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at > self._clock():
                return entry.decision
            # Expired: evict on observation
            del self._entries[key]
            return None

    def put(
        self,
        key: str,
        decision: OpaDecision,
        ttl: Optional[float] = None,
        subject_id: Optional[str] = None,
    ) -> None:
        if not self.enabled:
            return

        ttl = self.ttl_seconds if ttl is None else ttl
        entry = CacheEntry(decision=decision, expires_at=self._clock() + ttl, subject_id=subject_id)
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, key: str) -> bool:
        """Drop a single entry. Returns True if something was removed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_subject(self, subject_id: str) -> int:
        """Drop every entry cached for one subject (e.g. after a ban)."""
        with self._lock:
            stale = [k for k, e in self._entries.items() if e.subject_id == subject_id]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def prune(self) -> int:
        """Remove all expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count
