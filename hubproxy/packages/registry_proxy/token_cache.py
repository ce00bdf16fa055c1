"""In-memory bearer token cache keyed by challenge fingerprint."""

import threading
import time
from typing import Callable, Optional

import structlog

from .types import DEFAULT_TOKEN_TTL, CachedToken

logger = structlog.stdlib.get_logger(__name__)


class TokenCache:
    """TTL store for registry bearer tokens.

    Entries are checked for expiry on lookup only; there is no sweep. The
    lock is held for the dict access alone, so a miss on one key never
    blocks another. Concurrent misses on the same key may both
    fetch; the later put wins.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TOKEN_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CachedToken] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)

        if entry is None:
            return None

        remaining = entry.expires_at - self._clock()
        if remaining <= 0:
            logger.debug("Cached token expired", cache_key=key)
            return None

        logger.debug("Using cached token", cache_key=key, remaining=remaining)
        return entry.value

    def put(self, key: str, token: str, ttl: Optional[float] = None) -> CachedToken:
        if ttl is None:
            ttl = self.default_ttl

        entry = CachedToken(value=token, expires_at=self._clock() + ttl)
        with self._lock:
            self._entries[key] = entry

        return entry

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
