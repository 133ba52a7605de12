# src/hookrelay/services/member_cache.py
"""Memoised guild member lookups.

Member lookups sit on both the join and the send path and are the slowest call
the relay makes. Successful lookups are kept for a long TTL, failed ones for a
short TTL so a momentarily unresolvable user is not re-fetched on every
keystroke yet recovers quickly once the upstream hiccup passes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from hookrelay.core.errors import UpstreamUnavailable
from hookrelay.core.settings import settings
from hookrelay.services.upstream import Member

logger = logging.getLogger(__name__)

MemberLoader = Callable[[], Awaitable[Member | None]]


@dataclass
class MemberEntry:
    """Cached outcome of one (guild, user) lookup."""

    member: Member | None
    fetched_at: float
    failed: bool


class MemberCache:
    """TTL cache for member lookups keyed by ``(guild_id, user_id)``."""

    def __init__(
        self,
        *,
        success_ttl: float | None = None,
        failure_ttl: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.success_ttl = settings.member_cache_ttl_seconds if success_ttl is None else success_ttl
        self.failure_ttl = settings.member_fail_ttl_seconds if failure_ttl is None else failure_ttl
        self.max_entries = settings.member_cache_max_entries if max_entries is None else max_entries
        self._clock = clock
        self._entries: dict[tuple[str, str], MemberEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def _is_fresh(self, entry: MemberEntry, now: float) -> bool:
        ttl = self.failure_ttl if entry.failed else self.success_ttl
        return now - entry.fetched_at < ttl

    def peek(self, guild_id: str, user_id: str) -> MemberEntry | None:
        """Return the entry for a key if it is still fresh, without loading."""
        entry = self._entries.get((guild_id, user_id))
        if entry is None or not self._is_fresh(entry, self._clock()):
            return None
        return entry

    async def fetch(self, guild_id: str, user_id: str, loader: MemberLoader) -> Member | None:
        """Return the member for ``(guild_id, user_id)``, loading it when stale.

        ``None`` means the user is not (or could not be confirmed as) a member.
        """
        entry = self.peek(guild_id, user_id)
        if entry is not None:
            return entry.member

        try:
            member = await loader()
        except UpstreamUnavailable as exc:
            logger.debug("Member lookup %s/%s failed: %s", guild_id, user_id, exc)
            member = None

        self._store(guild_id, user_id, member)
        return member

    def _store(self, guild_id: str, user_id: str, member: Member | None) -> None:
        if len(self._entries) >= self.max_entries:
            self.purge_expired()
        self._entries[(guild_id, user_id)] = MemberEntry(
            member=member,
            fetched_at=self._clock(),
            failed=member is None,
        )

    def invalidate(self, guild_id: str, user_id: str) -> None:
        """Forget a cached lookup, e.g. after a membership change was observed."""
        self._entries.pop((guild_id, user_id), None)

    def purge_expired(self) -> int:
        """Drop entries outside their TTL band and return how many were removed."""
        now = self._clock()
        stale = [key for key, entry in self._entries.items() if not self._is_fresh(entry, now)]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
