# src/hookrelay/services/runtime.py
"""Wiring of the relay core.

``RelayRuntime`` builds every long-lived component once per process, in
dependency order, and tears them down in reverse on shutdown.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy.orm import Session

from hookrelay.db.session import SessionLocal
from hookrelay.services.bots import load_connections
from hookrelay.services.delivery_queue import DeliveryQueue
from hookrelay.services.discord_upstream import create_discord_connection
from hookrelay.services.gateway import SubscriptionGateway
from hookrelay.services.member_cache import MemberCache
from hookrelay.services.proxy_endpoints import ProxyEndpointManager
from hookrelay.services.registry import ConnectionRegistry
from hookrelay.services.relay import EventRelay
from hookrelay.services.rooms import RoomHub
from hookrelay.services.upstream import ConnectionFactory

logger = logging.getLogger(__name__)


class RelayRuntime:
    """Container for the relay's in-process state."""

    def __init__(
        self,
        connection_factory: ConnectionFactory | None = None,
        session_factory: Callable[[], Session] = SessionLocal,
    ) -> None:
        self.session_factory = session_factory
        self.member_cache = MemberCache()
        self.registry = ConnectionRegistry(
            connection_factory or create_discord_connection, self.member_cache
        )
        self.delivery_queue = DeliveryQueue()
        self.hub = RoomHub()
        self.relay = EventRelay(self.hub)
        self.proxy = ProxyEndpointManager(self.registry, self.delivery_queue, session_factory)
        self.gateway = SubscriptionGateway(self.registry, self.hub, self.proxy)

        self.registry.add_listener(self.relay.attach)

    async def start(self) -> None:
        """Log in every configured bot."""
        with self.session_factory() as db:
            await load_connections(self.registry, db)

    async def close(self) -> None:
        """Stop delivery, then disconnect every bot."""
        await self.delivery_queue.close()
        await self.registry.close()
        logger.info("Relay runtime stopped")

    def stats(self) -> dict[str, int]:
        """Counters reported by the health endpoint."""
        return {
            "bots": len(self.registry),
            "guilds": sum(len(connection.guilds()) for connection in self.registry),
            "rooms": len(self.hub.rooms()),
            "queues": len(self.delivery_queue),
            "cachedMembers": len(self.member_cache),
        }
