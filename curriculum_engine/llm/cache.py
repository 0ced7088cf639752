"""TTL-bounded memoization of provider responses."""

import hashlib
import json
import threading
import time
from typing import Any, Callable, Mapping, Optional

import structlog

from curriculum_engine.models.schemas import GenerationResult

logger = structlog.get_logger(__name__)


class ResponseCache:
    """Process-wide response cache keyed by (task, prompt, options).

    Entries carry an absolute expiry and are dropped on read once expired.
    When full, the oldest inserted entry is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._entries: dict[str, tuple[GenerationResult, float]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def key(task: str, prompt: str, options: Optional[Mapping[str, Any]] = None) -> str:
        payload = json.dumps(
            {"task": task, "prompt": prompt, "options": dict(options or {})},
            sort_keys=True,
            default=str,
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def get(self, key: str) -> Optional[GenerationResult]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            result, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
        return result.model_copy(update={"cached": True})

    def put(self, key: str, result: GenerationResult) -> None:
        expires_at = self._clock() + self.ttl_seconds
        with self._lock:
            # Re-inserting moves the key to the end of the insertion order
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.debug("cache_evicted", key=oldest[:12])
            self._entries[key] = (result.model_copy(update={"cached": False}), expires_at)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self.hits,
                "misses": self.misses,
            }
