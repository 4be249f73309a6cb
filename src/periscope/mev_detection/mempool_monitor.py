"""
Mempool Monitor.

Subscribes to a websocket mempool feed and pushes each received packet into
the packet ingestor. Transport failures are retried with exponential backoff;
once the retry budget is spent the monitor waits a fixed interval and starts
a fresh retry cycle, so it never gives up while running.
"""
import asyncio
import json
import logging
import random
from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Callable, Dict, List, Optional

import aiohttp

from .ingestion import PacketIngestor
from .opportunity_models import MEVOpportunity
from .packets import now_ms

logger = logging.getLogger(__name__)


class FeedError(Exception):
    """Exception raised for mempool feed transport errors."""

    def __init__(self, message: str, subscription_id: str = None, retry_count: int = 0):
        self.subscription_id = subscription_id
        self.retry_count = retry_count
        super().__init__(message)


@dataclass
class MempoolConfig:
    """Configuration for mempool feed monitoring."""

    # Feed configuration
    feed_url: Optional[str] = None
    workchain: int = 0
    addresses: List[str] = field(default_factory=list)

    # Reconnect settings
    max_retries: int = 10
    base_retry_delay: float = 5.0       # seconds
    max_retry_delay: float = 60.0       # seconds
    backoff_multiplier: float = 1.5
    jitter_min: float = 0.85
    jitter_max: float = 1.15
    periodic_retry_interval: float = 60.0

    # Liveness
    stale_after: float = 120.0          # seconds without data before reconnecting
    heartbeat: float = 30.0

    @property
    def subscription_id(self) -> str:
        if self.addresses:
            return f"addresses-{','.join(self.addresses)}"
        return f"workchain-{self.workchain}"

    def subscription_request(self) -> Dict[str, Any]:
        """Subscription message sent after connecting."""
        if self.addresses:
            return {"subscribe": "addresses", "addresses": list(self.addresses)}
        return {"subscribe": "workchain", "workchain": self.workchain}


def compute_retry_delay(retry_count: int, config: MempoolConfig, jitter: Optional[float] = None) -> float:
    """Backoff delay in seconds for the given (1-based) retry attempt."""
    if jitter is None:
        jitter = random.uniform(config.jitter_min, config.jitter_max)
    delay = config.base_retry_delay * (config.backoff_multiplier ** (retry_count - 1)) * jitter
    return min(delay, config.max_retry_delay)


def _list_length(value: Any) -> int:
    return len(value) if isinstance(value, list) else 0


class MempoolMonitor:
    """
    Websocket mempool feed client.

    Received messages are parsed as JSON and handed to the ingestor. The
    detection path runs synchronously inside the receive loop, so packets are
    processed strictly one at a time.
    """

    def __init__(
        self,
        config: MempoolConfig,
        ingestor: PacketIngestor,
        session_factory: Callable[[], aiohttp.ClientSession] = aiohttp.ClientSession,
        sleep: Callable[[float], Any] = asyncio.sleep
    ):
        """Initialize mempool monitor with configuration."""
        self.config = config
        self.ingestor = ingestor
        self._session_factory = session_factory
        self._sleep = sleep

        self.is_running = False
        self.is_connected = False
        self.retry_count = 0
        self.last_data_at: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

        # Statistics
        self.stats = {
            "messages_received": 0,
            "invalid_messages": 0,
            "connection_attempts": 0,
            "connection_failures": 0,
            "started_at": None
        }

    async def start(self):
        """Start consuming the feed in a background task."""
        if self.is_running:
            logger.warning("Mempool monitor already running")
            return

        if not self.config.feed_url:
            raise FeedError("Mempool feed URL not configured", self.config.subscription_id)

        logger.info(f"Starting mempool monitor for {self.config.subscription_id}")
        self.is_running = True
        self.stats["started_at"] = now_ms()
        self._task = asyncio.create_task(self._run())

    async def stop(self):
        """Stop the feed and wait for the background task to finish."""
        logger.info("Stopping mempool monitor")
        self.is_running = False
        self.is_connected = False

        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def _run(self):
        while self.is_running:
            try:
                self.stats["connection_attempts"] += 1
                await self._connect_and_consume()
                logger.warning(f"Mempool feed {self.config.subscription_id} closed by server")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.stats["connection_failures"] += 1
                logger.error(f"Mempool subscription {self.config.subscription_id} error: {e}")

            self.is_connected = False
            if not self.is_running:
                break

            await self._sleep(self.next_retry_delay())

    def next_retry_delay(self) -> float:
        """Advance the retry counter and return how long to wait before reconnecting."""
        if self.retry_count >= self.config.max_retries:
            logger.error(
                f"Max retries ({self.config.max_retries}) reached for {self.config.subscription_id}, "
                f"retrying in {self.config.periodic_retry_interval}s"
            )
            self.retry_count = 0
            return self.config.periodic_retry_interval

        self.retry_count += 1
        delay = compute_retry_delay(self.retry_count, self.config)
        logger.info(
            f"Reconnecting {self.config.subscription_id} in {delay:.1f}s "
            f"(attempt {self.retry_count}/{self.config.max_retries})"
        )
        return delay

    async def _connect_and_consume(self):
        async with self._session_factory() as session:
            async with session.ws_connect(self.config.feed_url, heartbeat=self.config.heartbeat) as ws:
                await ws.send_json(self.config.subscription_request())
                logger.info(f"Subscribed to mempool feed {self.config.subscription_id}")
                await self.consume(self._iter_messages(ws))

    async def _iter_messages(self, ws: aiohttp.ClientWebSocketResponse) -> AsyncIterator[Any]:
        while True:
            try:
                msg = await asyncio.wait_for(ws.receive(), timeout=self.config.stale_after)
            except asyncio.TimeoutError:
                raise FeedError(
                    f"No data received for {self.config.stale_after}s, connection considered dead",
                    self.config.subscription_id,
                    self.retry_count
                )

            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                yield msg.data
            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise FeedError(f"Websocket error: {ws.exception()}", self.config.subscription_id, self.retry_count)
            else:
                return

    async def consume(self, source: AsyncIterable[Any]) -> int:
        """Feed every message from an async source into the ingestor; returns messages handled."""
        handled = 0
        async for raw in source:
            self.handle_message(raw)
            handled += 1
        return handled

    def handle_message(self, raw: Any) -> List[MEVOpportunity]:
        """Parse one feed message and run it through the ingestor."""
        self.is_connected = True
        self.retry_count = 0
        self.last_data_at = now_ms()
        self.stats["messages_received"] += 1

        if isinstance(raw, (str, bytes, bytearray)):
            try:
                payload = json.loads(raw)
            except ValueError as e:
                self.stats["invalid_messages"] += 1
                logger.error(f"Error parsing mempool message from {self.config.subscription_id}: {e}")
                return []
        else:
            payload = raw

        if isinstance(payload, dict):
            logger.debug(
                f"Mempool update on {self.config.subscription_id}: "
                f"{_list_length(payload.get('externalMessages'))} external, "
                f"{_list_length(payload.get('messages'))} internal messages"
            )

        return self.ingestor.ingest_raw(payload)

    def get_stats(self) -> Dict[str, Any]:
        """Get monitoring statistics."""
        return {
            **self.stats,
            "subscription_id": self.config.subscription_id,
            "is_running": self.is_running,
            "is_connected": self.is_connected,
            "retry_count": self.retry_count,
            "last_data_at": self.last_data_at
        }


# Convenience functions

def create_mempool_monitor(
    ingestor: PacketIngestor,
    feed_url: Optional[str] = None,
    **config_kwargs
) -> MempoolMonitor:
    """Create a mempool monitor from keyword configuration."""
    config = MempoolConfig(feed_url=feed_url, **config_kwargs)
    return MempoolMonitor(config, ingestor)
