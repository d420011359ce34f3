import asyncio
import contextlib
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from core.deps import get_socket_user, is_staff
from services.broadcaster import (
    ALL_TOPIC,
    MANAGERS_TOPIC,
    Subscriber,
    broadcaster,
    worker_topic,
)

logger = logging.getLogger(__name__)

router = APIRouter()


async def _pump(websocket: WebSocket, subscriber: Subscriber) -> None:
    """Forward queued events to the socket in arrival order."""
    while True:
        message = await subscriber.queue.get()
        try:
            await websocket.send_json(message)
        except Exception:
            logger.warning("Dropping subscriber %s: send failed", subscriber.label)
            broadcaster.drop(subscriber)
            subscriber.close()
            return


def _handle_message(user: dict, subscriber: Subscriber, message: dict) -> None:
    action = message.get("action")
    worker_id = message.get("worker_id")
    worker_id = user["uid"] if worker_id is None else str(worker_id)

    if action not in ("subscribe", "unsubscribe"):
        logger.info("Ignoring unknown realtime action %r from %s", action, user["uid"])
        return

    # Workers only ever see their own feed
    if worker_id != user["uid"] and not is_staff(user):
        logger.warning("User %s may not follow worker %s", user["uid"], worker_id)
    elif action == "subscribe":
        broadcaster.subscribe(worker_topic(worker_id), subscriber)
    else:
        broadcaster.unsubscribe(worker_topic(worker_id), subscriber)

    subscriber.deliver(
        {"event": "subscribed", "data": {"topics": broadcaster.topics_for(subscriber)}}
    )


@router.websocket("/ws")
async def realtime_feed(
    websocket: WebSocket,
    user: dict = Depends(get_socket_user),
):
    await websocket.accept()

    subscriber = Subscriber(asyncio.get_running_loop(), label=user["uid"])
    broadcaster.subscribe(ALL_TOPIC, subscriber)
    if is_staff(user):
        broadcaster.subscribe(MANAGERS_TOPIC, subscriber)
    pump = asyncio.create_task(_pump(websocket, subscriber))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                logger.info("Ignoring malformed realtime message from %s", user["uid"])
                continue
            if isinstance(message, dict):
                _handle_message(user, subscriber, message)
    except WebSocketDisconnect:
        pass
    finally:
        # Subscriptions never outlive the connection
        broadcaster.drop(subscriber)
        subscriber.close()
        pump.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await pump
