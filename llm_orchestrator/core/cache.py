"""
In-process response cache with per-entry TTL.

The cache is constructed explicitly and owned by an orchestrator instance.
Entries are replaced or expired, never mutated.
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from .messages import LLMMessage, LLMResponse

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 1000
DEFAULT_SWEEP_INTERVAL = 60.0


def make_cache_key(
    task_type: str,
    messages: Sequence[LLMMessage],
    options: Mapping[str, Any],
) -> str:
    """Build a deterministic fingerprint for a call.

    Message order is part of the key; option keys are sorted.

    Args:
        task_type: Task type value used for routing
        messages: Ordered conversation
        options: Resolved call options (provider, model, max_tokens, ...)

    Returns:
        Hex SHA-256 digest
    """
    payload = json.dumps(
        {
            "task_type": task_type,
            "messages": [m.to_dict() for m in messages],
            "options": dict(options),
        },
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class CacheEntry:
    response: LLMResponse
    expires_at: float


class ResponseCache:
    """Thread-safe TTL cache of LLM responses.

    Last writer wins on concurrent population. When full, the entry
    written longest ago is evicted. Writes sweep expired entries at most
    once per sweep interval.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
    ):
        """Initialize the cache.

        Args:
            max_entries: Maximum number of live entries
            clock: Monotonic time source in seconds
            sweep_interval: Minimum seconds between expiry sweeps

        Raises:
            ValueError: If max_entries or sweep_interval is not positive
        """
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be > 0")
        self.max_entries = max_entries
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._next_sweep = clock() + sweep_interval
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._closed = False
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[LLMResponse]:
        """Return the live response for *key* marked as cached, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.response.as_cached()

    def set(self, key: str, response: LLMResponse, ttl: float) -> None:
        """Store *response* under *key* for *ttl* seconds.

        A non-positive ttl stores nothing.
        """
        if ttl <= 0:
            return
        with self._lock:
            if self._closed:
                logger.debug("Cache closed; dropping write for %s", key[:16])
                return
            now = self._clock()
            if now >= self._next_sweep:
                self._purge_locked(now)
                self._next_sweep = now + self.sweep_interval
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted cache entry %s", evicted[:16])
            self._entries[key] = CacheEntry(response=response, expires_at=now + ttl)

    def purge_expired(self) -> int:
        """Drop expired entries and return how many were removed."""
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if e.expires_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Purged %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def close(self) -> None:
        """Clear the cache and refuse further writes."""
        self.clear()
        with self._lock:
            self._closed = True

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {"entries": len(self._entries), "hits": self.hits, "misses": self.misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
