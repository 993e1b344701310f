import asyncio
import logging
from typing import Optional

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from core.actors import ActorContext, actor_from_token, require_roles
from core.db import get_db
from models.order import Order
from models.user import UserRole
from schemas.location import LocationIn, LocationPublished
from services import cod_lifecycle
from services.location import LOCATION_EVENT, channel_for, location_relay

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["tracking"])

rider_only = require_roles(UserRole.RIDER)


@router.post("/{order_id}/location", response_model=LocationPublished)
def publish_location(
    order_id: int, data: LocationIn, actor: ActorContext = Depends(rider_only), db: Session = Depends(get_db)
):
    order = db.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.rider_id is None or order.rider_id != actor.rider_id:
        raise HTTPException(status_code=403, detail="Only the assigned rider can share location")
    if cod_lifecycle.is_terminal(order.status):
        raise HTTPException(status_code=409, detail=f"Order is already {order.status}")

    try:
        subscribers = location_relay.publish(order_id, data.latitude, data.longitude, data.timestamp)
    except redis.exceptions.RedisError as exc:
        logger.error("Location publish for order %s failed: %s", order_id, exc)
        raise HTTPException(status_code=503, detail="Location relay unavailable")
    return LocationPublished(channel=channel_for(order_id), event=LOCATION_EVENT, subscribers=subscribers)


@router.websocket("/{order_id}/location/ws")
async def location_stream(
    websocket: WebSocket, order_id: int, token: Optional[str] = None, db: Session = Depends(get_db)
):
    """Stream ``location_update`` events for one order until the client sends a frame or leaves.

    The relay failing mid-stream closes the socket with 1011 instead of leaving it open and silent.
    """
    try:
        actor = actor_from_token(db, token)
        order = db.get(Order, order_id)
        allowed = order is not None and cod_lifecycle.can_view(order, actor)
    except HTTPException:
        allowed = False
    finally:
        # The stream can run for minutes; the pooled connection goes back now
        db.close()
    if not allowed:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    # Subscribed before accept so nothing published after the handshake is missed
    subscription = location_relay.subscribe(order_id)
    await websocket.accept()

    async def forward():
        while True:
            sample = await run_in_threadpool(subscription.next_sample, 1.0)
            if sample is None:
                continue
            try:
                await websocket.send_json({"event": LOCATION_EVENT, "payload": sample})
            except (WebSocketDisconnect, RuntimeError):
                return

    forwarder = asyncio.create_task(forward())
    receiver = asyncio.create_task(websocket.receive())
    try:
        done, _ = await asyncio.wait({forwarder, receiver}, return_when=asyncio.FIRST_COMPLETED)
        if forwarder in done:
            exc = forwarder.exception()
            if exc is not None:
                logger.error("Location relay for order %s failed: %r", order_id, exc)
                await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        else:
            message = receiver.result()
            if message["type"] != "websocket.disconnect":
                await websocket.close()
    finally:
        forwarder.cancel()
        receiver.cancel()
        subscription.close()
        logger.debug("Location stream for order %s closed", order_id)
