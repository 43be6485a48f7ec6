"""Live domain events over WebSocket, one topic per connection."""

import asyncio
from enum import Enum
from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from src.shared.infrastructure.messaging.event_bus import Subscription
from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["events"])


class EventScope(str, Enum):
    SESSION = "session"
    CAMPAIGN = "campaign"


async def _forward(websocket: WebSocket, subscription: Subscription, topic: str) -> None:
    try:
        async for event in subscription:
            await websocket.send_json(event.to_dict())
    except (WebSocketDisconnect, RuntimeError) as e:
        # client went away mid-send; the receive loop sees the disconnect
        logger.debug("Event stream send stopped", extra={"topic": topic, "error": str(e)})


async def _until_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/events/{scope}/{scope_id}")
async def event_stream(websocket: WebSocket, scope: EventScope, scope_id: UUID):
    """
    Forward every event published on ``{scope}:{scope_id}`` to the client.

    The subscription is registered before the handshake completes so no
    event published after ``accept`` is missed. Client frames are read and
    ignored; only the disconnect matters.
    """
    broker = websocket.app.state.container.broker
    topic = f"{scope.value}:{scope_id}"
    async with broker.subscription(topic) as subscription:
        await websocket.accept()
        logger.info("Event stream opened", extra={"topic": topic})
        forwarder = asyncio.create_task(_forward(websocket, subscription, topic))
        try:
            await _until_disconnect(websocket)
        finally:
            # the forwarder must be gone before the subscription closes
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)
            logger.info("Event stream closed", extra={"topic": topic, "dropped": subscription.dropped})
