# src/hookrelay/services/rooms.py
"""Realtime subscribers and the channel rooms they listen on."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any

from hookrelay.models import UserSession

logger = logging.getLogger(__name__)

ROOM_PREFIX = "channel:"
OUTBOX_SIZE = 1000


def room_for(channel_id: str) -> str:
    """Return the room name for a channel."""
    return f"{ROOM_PREFIX}{channel_id}"


@dataclass(frozen=True)
class SubscriberIdentity:
    """The authenticated user behind a realtime connection."""

    id: str
    username: str
    global_name: str | None = None
    avatar: str | None = None
    age_verified: bool = False

    @property
    def display_name(self) -> str:
        return self.global_name or self.username

    @classmethod
    def from_session(cls, record: UserSession) -> SubscriberIdentity:
        return cls(
            id=record.user_id,
            username=record.username,
            global_name=record.global_name,
            avatar=record.avatar,
            age_verified=bool(record.age_verified),
        )


@dataclass(eq=False)
class Subscriber:
    """One browser client's realtime session.

    Frames pushed to a subscriber are buffered in ``outbox``; the socket
    endpoint drains it, so a slow client never stalls a broadcast.
    """

    identity: SubscriberIdentity
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    room: str | None = None
    send_times: deque[float] = field(default_factory=deque)
    # Join bookkeeping: a join only lands if it is still the latest request
    room_requests: int = 0
    pending_room: str | None = None
    outbox: asyncio.Queue[dict[str, Any]] = field(
        default_factory=lambda: asyncio.Queue(maxsize=OUTBOX_SIZE)
    )
    closed: bool = False

    def deliver(self, frame: dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            self.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("Dropping frame for slow subscriber %s (%s)", self.id, self.identity.username)


class RoomHub:
    """Room membership and broadcast."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[Subscriber]] = {}

    def members(self, room: str) -> set[Subscriber]:
        return set(self._rooms.get(room, ()))

    def rooms(self) -> list[str]:
        return list(self._rooms)

    def join(self, subscriber: Subscriber, room: str) -> None:
        """Put ``subscriber`` in ``room``, leaving whatever room it was in."""
        if subscriber.closed:
            return
        if subscriber.room is not None and subscriber.room != room:
            self.leave(subscriber, subscriber.room)
        self._rooms.setdefault(room, set()).add(subscriber)
        subscriber.room = room

    def leave(self, subscriber: Subscriber, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(subscriber)
            if not members:
                del self._rooms[room]
        if subscriber.room == room:
            subscriber.room = None

    def disconnect(self, subscriber: Subscriber) -> None:
        """Drop every membership of a closing subscriber."""
        subscriber.closed = True
        if subscriber.room is not None:
            self.leave(subscriber, subscriber.room)

    def emit(
        self,
        room: str,
        event: str,
        data: dict[str, Any],
        *,
        exclude: Subscriber | None = None,
    ) -> int:
        """Push ``event`` to every member of ``room``; returns the recipient count."""
        frame = {"event": event, "data": data}
        delivered = 0
        for subscriber in self.members(room):
            if subscriber is exclude:
                continue
            subscriber.deliver(frame)
            delivered += 1
        return delivered
