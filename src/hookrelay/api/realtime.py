# src/hookrelay/api/realtime.py
"""Realtime socket endpoint.

One socket per browser tab. Client frames are ``{"event", "data", "ack"}``;
each is handled in its own task so a slow send never holds up typing or
leave frames. Everything sent back (acks and room broadcasts) goes through the
subscriber's outbox, drained by a single writer task.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from sqlalchemy.orm import Session

from hookrelay.core.errors import Unauthenticated
from hookrelay.core.security import (
    decode_session_token,
    token_from_authorization,
    token_from_cookie_header,
)
from hookrelay.schemas.realtime import ClientFrame
from hookrelay.services.gateway import SubscriptionGateway
from hookrelay.services.rooms import Subscriber, SubscriberIdentity
from hookrelay.services.runtime import RelayRuntime
from hookrelay.services.sessions import get_session_record

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_UNAUTHENTICATED = 4401

# Strong references to frame handlers that may outlive their socket
_inflight: set[asyncio.Task[None]] = set()


def authenticate_socket(
    websocket: WebSocket, session_factory: Callable[[], Session]
) -> SubscriberIdentity:
    """Resolve the user behind a socket handshake.

    Raises:
        Unauthenticated: If no valid token is presented or the session is gone.
    """
    token = (
        websocket.query_params.get("token")
        or token_from_cookie_header(websocket.headers.get("cookie"))
        or token_from_authorization(websocket.headers.get("authorization"))
    )
    user_id = decode_session_token(token)
    with session_factory() as db:
        record = get_session_record(db, user_id)
        if record is None:
            raise Unauthenticated("Session not found")
        return SubscriberIdentity.from_session(record)


async def _pump(websocket: WebSocket, subscriber: Subscriber) -> None:
    while True:
        frame = await subscriber.outbox.get()
        try:
            await websocket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Writer for %s stopped: %r", subscriber.id, exc)
            return


async def _handle(gateway: SubscriptionGateway, subscriber: Subscriber, frame: ClientFrame) -> None:
    ack = await gateway.dispatch(subscriber, frame)
    if ack is not None:
        subscriber.deliver(ack)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    runtime: RelayRuntime = websocket.app.state.runtime
    await websocket.accept()

    try:
        identity = authenticate_socket(websocket, runtime.session_factory)
    except Unauthenticated as exc:
        await websocket.close(code=CLOSE_UNAUTHENTICATED, reason=exc.message)
        return

    gateway = runtime.gateway
    subscriber = Subscriber(identity=identity)
    logger.info("%s connected (%s)", identity.username, subscriber.id)

    writer = asyncio.create_task(_pump(websocket, subscriber))
    try:
        while True:
            text = await websocket.receive_text()
            try:
                frame = ClientFrame.model_validate_json(text)
            except ValidationError:
                subscriber.deliver({"error": "Malformed frame", "code": "ValidationFailed"})
                continue
            task = asyncio.create_task(_handle(gateway, subscriber, frame))
            _inflight.add(task)
            task.add_done_callback(_inflight.discard)
    except WebSocketDisconnect:
        pass
    finally:
        # In-flight handlers keep running; their acks are dropped once closed.
        gateway.disconnect(subscriber)
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer
        logger.info("%s disconnected (%s)", identity.username, subscriber.id)
