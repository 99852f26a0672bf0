"""WebSocket endpoints for real-time updates."""

import asyncio
import json
import queue
import threading
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from loguru import logger

from comms.event_bus import EventBus, matches
from state.models import utcnow

router = APIRouter(prefix="/ws", tags=["websocket"])


class ConnectionManager:
    """Tracks live clients and the event-type prefixes each one follows.

    A client with no prefixes receives every event.
    """

    def __init__(self):
        self.channels: dict[WebSocket, tuple[str, ...]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self.channels[websocket] = ()
        logger.info(f"Live client connected ({len(self.channels)} total)")

    async def disconnect(self, websocket: WebSocket):
        async with self._lock:
            self.channels.pop(websocket, None)
        logger.info(f"Live client disconnected ({len(self.channels)} total)")

    async def follow(self, websocket: WebSocket, prefixes: list) -> tuple[str, ...]:
        """Restrict *websocket* to events whose type starts with one of *prefixes*."""
        wanted = tuple(p for p in prefixes if isinstance(p, str) and p)
        async with self._lock:
            if websocket in self.channels:
                self.channels[websocket] = wanted
        return wanted

    async def broadcast(self, message: dict):
        """Send *message* to every client following its type; drop dead clients."""
        if not self.channels:
            return

        event_type = message.get("type", "")
        payload = json.dumps(message, default=str)
        dead = []

        async with self._lock:
            for websocket, prefixes in self.channels.items():
                if not matches(event_type, prefixes):
                    continue
                try:
                    await websocket.send_text(payload)
                except Exception as e:
                    logger.warning(f"Dropping live client: {e}")
                    dead.append(websocket)
            for websocket in dead:
                self.channels.pop(websocket, None)

    async def send_to(self, websocket: WebSocket, message: dict):
        try:
            await websocket.send_text(json.dumps(message, default=str))
        except Exception as e:
            logger.warning(f"Failed to send to live client: {e}")


manager = ConnectionManager()


@router.websocket("/live")
async def websocket_live(websocket: WebSocket):
    """Live operations feed: state changes, alerts, messages, telemetry."""
    await manager.connect(websocket)

    await manager.send_to(
        websocket,
        {
            "type": "connected",
            "timestamp": utcnow().isoformat(),
            "message": "CROWDWATCH UPLINK ESTABLISHED",
        },
    )

    try:
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_to(websocket, {"type": "error", "message": "Invalid JSON"})
                continue
            await handle_client_message(websocket, message)
    except WebSocketDisconnect:
        await manager.disconnect(websocket)


async def handle_client_message(websocket: WebSocket, message: dict):
    msg_type = message.get("type") if isinstance(message, dict) else None

    if msg_type == "ping":
        await manager.send_to(
            websocket,
            {"type": "pong", "timestamp": utcnow().isoformat()},
        )
    elif msg_type == "subscribe":
        channels = message.get("channels") or []
        if not isinstance(channels, list):
            await manager.send_to(
                websocket, {"type": "error", "message": "channels must be a list"}
            )
            return
        followed = await manager.follow(websocket, channels)
        await manager.send_to(websocket, {"type": "subscribed", "channels": list(followed)})
    elif msg_type == "snapshot":
        center = getattr(websocket.app.state, "ops", None)
        if center is None:
            await manager.send_to(
                websocket, {"type": "error", "message": "Operations center is not running"}
            )
            return
        await manager.send_to(
            websocket,
            {"type": "snapshot", "data": center.get_snapshot().to_dict()},
        )
    else:
        await manager.send_to(
            websocket,
            {"type": "error", "message": f"Unknown message type: {msg_type}"},
        )


# --- EventBus bridge ---

class EventBridge:
    """Daemon thread forwarding EventBus events to WebSocket clients.

    Bridges the threaded EventBus to FastAPI's event loop via
    ``asyncio.run_coroutine_threadsafe``.
    """

    def __init__(self, event_bus: EventBus, loop: asyncio.AbstractEventLoop, poll: float = 0.5):
        self._event_bus = event_bus
        self._loop = loop
        self._poll = poll
        self._sub: Optional[queue.Queue] = None
        self._running = False
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._sub = self._event_bus.subscribe()
        self._running = True
        self._thread = threading.Thread(target=self._bridge_loop, daemon=True, name="ops-ws-bridge")
        self._thread.start()

    def stop(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=2.0)
            self._thread = None
        if self._sub is not None:
            self._event_bus.unsubscribe(self._sub)
            self._sub = None

    def _bridge_loop(self) -> None:
        while self._running:
            try:
                msg = self._sub.get(timeout=self._poll)
            except queue.Empty:
                continue
            if self._loop.is_closed():
                break
            asyncio.run_coroutine_threadsafe(
                manager.broadcast({
                    "type": msg.get("type", "unknown"),
                    "data": msg.get("data", {}),
                    "timestamp": utcnow().isoformat(),
                }),
                self._loop,
            )


def start_event_bridge(event_bus: EventBus, loop: asyncio.AbstractEventLoop) -> EventBridge:
    """Start forwarding *event_bus* events into *loop*.  Returns the bridge."""
    bridge = EventBridge(event_bus, loop)
    bridge.start()
    return bridge
