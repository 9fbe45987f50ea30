"""Permission decision cache.

Caches evaluator decisions keyed by user, permission and a fingerprint of
the tenant context and target. Invalidation bumps a per-user version that
is embedded in every key, so a decision computed before an invalidation
can never be served after it, even if its write lands late.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Callable

from pydantic import BaseModel, Field

from hotelhub.authz.models import AuthzDecision

logger = logging.getLogger(__name__)


class PermissionCacheEntry(BaseModel):
    """A cached decision."""

    key: str
    user_id: str
    decision: AuthzDecision
    created_at: float
    expires_at: float
    hit_count: int = 0
    last_accessed: float = 0.0


class PermissionCacheStats(BaseModel):
    """Cache statistics."""

    enabled: bool = True
    total_entries: int = 0
    total_hits: int = 0
    total_misses: int = 0
    hit_rate: float = 0.0
    evictions: int = 0
    invalidations: int = 0
    ttl_seconds: float = Field(default=0.0)


class PermissionCache:
    """In-process TTL cache for authorization decisions.

    With `enabled=False` every lookup misses and nothing is stored.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        max_entries: int = 10000,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self.enabled = enabled
        self._clock = clock

        # Ordered least to most recently used
        self._entries: OrderedDict[str, PermissionCacheEntry] = OrderedDict()
        self._user_versions: dict[str, int] = {}
        self._global_version = 0

        # Stats
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._invalidations = 0

    def make_key(
        self,
        user_id: str,
        resource: str,
        action: str,
        scope: str,
        fingerprint: str,
    ) -> str:
        """Build a key bound to the user's current invalidation version."""
        version = self._user_versions.get(user_id, 0)
        return (
            f"perm:{user_id}:v{version}.{self._global_version}:"
            f"{resource}:{action}:{scope}:{fingerprint}"
        )

    async def get(self, key: str) -> AuthzDecision | None:
        if not self.enabled:
            self._misses += 1
            return None

        entry = self._entries.get(key)
        now = self._clock()
        if entry is None or now >= entry.expires_at:
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            return None

        self._entries.move_to_end(key)
        entry.hit_count += 1
        entry.last_accessed = now
        self._hits += 1
        return entry.decision

    async def set(
        self,
        key: str,
        user_id: str,
        decision: AuthzDecision,
        ttl_seconds: float | None = None,
    ) -> None:
        if not self.enabled:
            return

        ttl = self.ttl if ttl_seconds is None else min(ttl_seconds, self.ttl)
        if ttl <= 0:
            return

        if key not in self._entries:
            self._evict_if_needed()
        now = self._clock()
        self._entries[key] = PermissionCacheEntry(
            key=key,
            user_id=user_id,
            decision=decision,
            created_at=now,
            expires_at=now + ttl,
            last_accessed=now,
        )
        self._entries.move_to_end(key)

    def _evict_if_needed(self) -> None:
        """Drop expired entries, then least recently used ones, to stay under max."""
        if len(self._entries) < self.max_entries:
            return

        self._sweep(self._clock())
        if len(self._entries) < self.max_entries:
            return

        while len(self._entries) >= self.max_entries:
            self._entries.popitem(last=False)
            self._evictions += 1

    def _sweep(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def invalidate_user(self, user_id: str) -> int:
        """Invalidate every cached decision for a user."""
        self._user_versions[user_id] = self._user_versions.get(user_id, 0) + 1
        stale = [k for k, e in self._entries.items() if e.user_id == user_id]
        for key in stale:
            del self._entries[key]
        self._invalidations += 1
        logger.debug("Invalidated %d cached decisions for user=%s", len(stale), user_id)
        return len(stale)

    async def invalidate_all(self) -> int:
        """Invalidate every cached decision (role definition changes)."""
        self._global_version += 1
        count = len(self._entries)
        self._entries.clear()
        self._invalidations += 1
        logger.debug("Invalidated all %d cached decisions", count)
        return count

    async def sweep_expired(self) -> int:
        removed = self._sweep(self._clock())
        if removed:
            logger.debug("Swept %d expired permission cache entries", removed)
        return removed

    def get_stats(self) -> PermissionCacheStats:
        total = self._hits + self._misses
        return PermissionCacheStats(
            enabled=self.enabled,
            total_entries=len(self._entries),
            total_hits=self._hits,
            total_misses=self._misses,
            hit_rate=self._hits / total if total > 0 else 0.0,
            evictions=self._evictions,
            invalidations=self._invalidations,
            ttl_seconds=self.ttl,
        )
