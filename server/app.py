"""FastAPI server for King Chu Bridge."""

import asyncio
import contextlib
import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from server.session import TableSession

logger = logging.getLogger(__name__)


def make_outbox(maxsize):
    """Bounded per-connection queue. A full queue drops the message, never blocks."""
    queue = asyncio.Queue(maxsize=maxsize)

    def send(message):
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Outbox full, dropping %s message", message.get("type"))

    return queue, send


async def pump(websocket, queue):
    """Drain a connection's outbox onto its socket until the socket goes away."""
    try:
        while True:
            message = await queue.get()
            await websocket.send_json(message)
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.debug("Sender stopped: %s", e)


async def receive_frame(websocket):
    """Next inbound frame as str or bytes. Text and binary frames are both accepted."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000))
    text = message.get("text")
    return text if text is not None else message.get("bytes") or b""


def create_app(config=None, session=None):
    app = FastAPI(title="King Chu Bridge")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    table = session or TableSession(config)
    app.state.session = table

    @app.get("/api/status")
    async def status():
        return table.status()

    @app.websocket("/ws")
    async def game_ws(websocket: WebSocket):
        await websocket.accept()

        queue, send = make_outbox(table.config["outbox_size"])
        conn_id = table.connect(send)
        sender = asyncio.create_task(pump(websocket, queue))

        try:
            # Message loop
            while True:
                data = await receive_frame(websocket)
                try:
                    table.handle_message(conn_id, data)
                except Exception:
                    logger.exception("Error handling message from client %s", conn_id)
                    send({"type": "error", "kind": "internal", "message": "Internal server error"})
        except WebSocketDisconnect:
            pass
        finally:
            table.disconnect(conn_id)
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender

    return app


app = create_app()
