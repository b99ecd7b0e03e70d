"""HTTP health check and the /ws table socket.

Socket frames are JSON objects `{"event": ..., "data": ...}` in both
directions. Each connection gets an outbox queue on the hub; a writer task
drains it while the reader loop feeds GameTable.handle().
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

api_router = APIRouter()
socket_router = APIRouter()


@api_router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


async def _drain(websocket: WebSocket, outbox: asyncio.Queue) -> None:
    try:
        while True:
            frame = await outbox.get()
            await websocket.send_json(frame)
    except WebSocketDisconnect:
        return


@socket_router.websocket("/ws")
async def table_socket(websocket: WebSocket) -> None:
    table = websocket.app.state.table
    hub = websocket.app.state.hub

    await websocket.accept()
    connection_id = uuid.uuid4().hex
    outbox = hub.register(connection_id)
    table.connect(connection_id)
    writer = asyncio.create_task(_drain(websocket, outbox))
    logger.info("connection %s opened", connection_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError as e:
                logger.warning("bad frame from %s: %s", connection_id, e)
                continue
            if isinstance(message, dict):
                await table.handle(connection_id, message)
    except WebSocketDisconnect:
        logger.info("connection %s closed", connection_id)
    finally:
        await table.disconnect(connection_id)
        hub.unregister(connection_id)
        writer.cancel()
