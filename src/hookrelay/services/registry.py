# src/hookrelay/services/registry.py
"""Registry of upstream bot connections.

The registry owns every ``UpstreamConnection`` and answers "which connection
can see this guild/channel". Lookups scan connections in registration order and
return the first match, so when two bots share a guild the one registered first
owns it.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterator

from hookrelay.core.errors import DuplicateRegistration
from hookrelay.services.member_cache import MemberCache
from hookrelay.services.upstream import (
    Channel,
    ConnectionFactory,
    Guild,
    Member,
    UpstreamConnection,
)

logger = logging.getLogger(__name__)

ConnectionListener = Callable[[UpstreamConnection], Awaitable[None] | None]


class ConnectionRegistry:
    """Holds the live upstream connections, keyed by connection id."""

    def __init__(self, factory: ConnectionFactory, member_cache: MemberCache) -> None:
        self._factory = factory
        self._member_cache = member_cache
        self._connections: dict[str, UpstreamConnection] = {}
        self._listeners: list[ConnectionListener] = []

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[UpstreamConnection]:
        return iter(list(self._connections.values()))

    @property
    def member_cache(self) -> MemberCache:
        return self._member_cache

    def add_listener(self, listener: ConnectionListener) -> None:
        """Call ``listener`` for every connection added from now on."""
        self._listeners.append(listener)

    async def add(self, connection_id: str, credential: str) -> UpstreamConnection:
        """Authenticate a new connection and make its guilds discoverable.

        Raises:
            DuplicateRegistration: If ``connection_id`` is already registered.
        """
        if connection_id in self._connections:
            raise DuplicateRegistration(f"Bot {connection_id} is already registered")

        connection = self._factory(connection_id)
        await connection.start(credential)

        # start() suspends; a concurrent add for the same id may have won
        if connection_id in self._connections:
            await connection.close()
            raise DuplicateRegistration(f"Bot {connection_id} is already registered")

        self._connections[connection_id] = connection
        logger.info(
            "Added bot %s (%s), %d guilds",
            connection.display_name,
            connection_id,
            len(connection.guilds()),
        )

        for listener in self._listeners:
            result = listener(connection)
            if result is not None:
                await result
        return connection

    async def remove(self, connection_id: str) -> None:
        """Tear down a connection; unknown ids are ignored."""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return
        logger.info("Removing bot %s (%s)", connection.display_name, connection_id)
        await connection.close()

    def get(self, connection_id: str) -> UpstreamConnection | None:
        return self._connections.get(connection_id)

    def connections(self) -> list[UpstreamConnection]:
        return list(self._connections.values())

    def find_guild(self, guild_id: str) -> Guild | None:
        for connection in self._connections.values():
            guild = connection.get_guild(guild_id)
            if guild is not None:
                return guild
        return None

    def find_channel(self, channel_id: str) -> Channel | None:
        for connection in self._connections.values():
            channel = connection.get_channel(channel_id)
            if channel is not None:
                return channel
        return None

    def owner_of(self, item: Guild | Channel) -> UpstreamConnection | None:
        """Return the connection a guild or channel was found through."""
        return self._connections.get(item.connection_id)

    async def fetch_member(self, guild_id: str, user_id: str) -> Member | None:
        """Resolve a guild member through the cache; ``None`` for unknown guilds."""
        guild = self.find_guild(guild_id)
        if guild is None:
            return None
        connection = self._connections.get(guild.connection_id)
        if connection is None:
            return None
        return await self._member_cache.fetch(
            guild_id,
            user_id,
            lambda: connection.fetch_member(guild_id, user_id),
        )

    def invalidate_member(self, guild_id: str, user_id: str) -> None:
        self._member_cache.invalidate(guild_id, user_id)

    async def close(self) -> None:
        """Tear down every connection."""
        for connection_id in list(self._connections):
            await self.remove(connection_id)
        self._member_cache.clear()
