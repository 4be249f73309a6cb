"""
Websocket push of ranked opportunities.

The broadcaster is registered as a strategy manager handler. Handlers may be
invoked from a worker thread (sync endpoints) or from the feed task, so
delivery is always marshalled onto the event loop that owns the client
queues.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..mev_detection.opportunity_models import MEVOpportunity
from ..strategies.strategy_manager import StrategyManager

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_QUEUE_SIZE = 100

router = APIRouter()


def build_update_message(opportunities: List[MEVOpportunity]) -> Dict[str, Any]:
    return {
        "type": "opportunities_updated",
        "opportunities": [opp.model_dump(mode="json") for opp in opportunities],
        "count": len(opportunities)
    }


class OpportunityBroadcaster:
    """Fans opportunity updates out to connected websocket clients."""

    def __init__(self, max_queue_size: int = DEFAULT_CLIENT_QUEUE_SIZE):
        self.max_queue_size = max_queue_size
        self._clients: List[asyncio.Queue] = []
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def attach(self, manager: StrategyManager, loop: asyncio.AbstractEventLoop) -> None:
        """Subscribe to the manager; messages are delivered on ``loop``."""
        self._loop = loop
        manager.add_opportunity_handler(self.publish)

    def detach(self, manager: StrategyManager) -> None:
        manager.remove_opportunity_handler(self.publish)
        self._loop = None

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue_size)
        self._clients = self._clients + [queue]
        logger.info(f"Websocket client subscribed ({len(self._clients)} connected)")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._clients = [client for client in self._clients if client is not queue]
        logger.info(f"Websocket client unsubscribed ({len(self._clients)} connected)")

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def publish(self, opportunities: List[MEVOpportunity]) -> None:
        """Strategy manager handler: queue an update for every client."""
        if self._loop is None or not self._clients:
            return
        message = build_update_message(opportunities)
        self._loop.call_soon_threadsafe(self._deliver, message)

    def _deliver(self, message: Dict[str, Any]) -> None:
        for queue in self._clients:
            if queue.full():
                # Slow client: drop its oldest pending update
                queue.get_nowait()
            queue.put_nowait(message)


async def _forward_updates(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        message = await queue.get()
        await websocket.send_json(message)


@router.websocket("/ws/opportunities")
async def opportunities_feed(websocket: WebSocket):
    """Send the current top opportunities, then every update."""
    broadcaster: OpportunityBroadcaster = websocket.app.state.broadcaster
    manager: StrategyManager = websocket.app.state.strategy_manager

    await websocket.accept()
    queue = broadcaster.subscribe()
    sender: Optional[asyncio.Task] = None

    try:
        await websocket.send_json(build_update_message(manager.get_opportunities(manager.broadcast_limit)))
        sender = asyncio.create_task(_forward_updates(websocket, queue))

        # Client frames of any type are ignored; receiving detects the disconnect
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
    except WebSocketDisconnect:
        logger.info("Websocket client disconnected")
    finally:
        broadcaster.unsubscribe(queue)
        if sender is not None:
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
