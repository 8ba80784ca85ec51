"""In-process cache of resolved grant levels.

Entries hold raw grant aggregates only. Time-dependent gates (credential
expiry, activity, provider allow-lists) are always evaluated fresh. Every
grant mutation in ``permission_service`` invalidates synchronously, before the
mutating call returns.

Readers take a ``generation()`` token before querying and hand it back to
``set()``. Any invalidation in between bumps the generation and the store is
dropped, so a query that raced a revoke never repopulates the cache.
"""

import threading

from sharegate.models.permission import PermissionLevel
from sharegate.utils.logging import get_logger

logger = get_logger(__name__)

CacheKey = tuple[str, int, int]  # (subject kind, subject id, bucket id)


class PermissionCache:
    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._entries: dict[CacheKey, PermissionLevel] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, key: CacheKey) -> PermissionLevel | None:
        if not self.enabled:
            return None
        with self._lock:
            return self._entries.get(key)

    def set(self, key: CacheKey, level: PermissionLevel, generation: int) -> bool:
        """Store ``level`` unless the cache was invalidated after ``generation`` was read."""
        if not self.enabled:
            return False
        with self._lock:
            if generation != self._generation:
                return False
            self._entries[key] = level
            return True

    def invalidate_bucket(self, bucket_id: int) -> None:
        with self._lock:
            self._generation += 1
            stale = [k for k in self._entries if k[2] == bucket_id]
            for key in stale:
                del self._entries[key]
        logger.debug("Permission cache invalidated for bucket %s (%d entries)", bucket_id, len(stale))

    def invalidate_credential(self, credential_id: int) -> None:
        with self._lock:
            self._generation += 1
            stale = [k for k in self._entries if k[0] == "credential" and k[1] == credential_id]
            for key in stale:
                del self._entries[key]
        logger.debug("Permission cache invalidated for credential %s (%d entries)", credential_id, len(stale))

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            count = len(self._entries)
            self._entries.clear()
        logger.debug("Permission cache cleared (%d entries)", count)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
