"""Short-lived cache for text-only generation responses."""

import threading
import time
from collections import OrderedDict
from typing import Callable, Optional, Tuple

from core.logging import get_logger, log_cache_operation

logger = get_logger(__name__)

# Only the head of the prompt participates in the key
PROMPT_KEY_LENGTH = 100


class ResponseCache:
    """TTL cache capped at the most recently inserted entries.

    Entries older than ``ttl_seconds`` are treated as misses and dropped on
    read. When more than ``max_entries`` are stored, the oldest insertions
    are evicted first. All mutations happen under a lock.
    """

    def __init__(self, ttl_seconds: float = 300, max_entries: int = 100,
                 clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[str, float]]" = OrderedDict()
        self._lock = threading.Lock()

    @staticmethod
    def make_key(model: Optional[str], system_prompt: Optional[str], prompt: str) -> str:
        return f"{model or ''}:{system_prompt or ''}:{prompt[:PROMPT_KEY_LENGTH]}"

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                hit = None
            else:
                text, stored_at = entry
                if self._clock() - stored_at < self.ttl_seconds:
                    hit = text
                else:
                    del self._entries[key]
                    hit = None
        log_cache_operation(logger, "get", key[:60], hit=hit is not None)
        return hit

    def set(self, key: str, text: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = (text, self._clock())
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        log_cache_operation(logger, "set", key[:60])

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
