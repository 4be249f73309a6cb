"""
Unit tests for the mempool feed monitor.
"""
import json
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from periscope.mev_detection.mempool_monitor import (
    FeedError, MempoolConfig, MempoolMonitor, compute_retry_delay, create_mempool_monitor
)


async def messages(*items):
    for item in items:
        yield item


@pytest.fixture
def ingestor():
    ingestor = Mock()
    ingestor.ingest_raw.return_value = []
    return ingestor


class TestMempoolConfig:
    """Test subscription configuration."""

    def test_workchain_subscription(self):
        config = MempoolConfig(feed_url="wss://feed", workchain=-1)
        assert config.subscription_id == "workchain--1"
        assert config.subscription_request() == {"subscribe": "workchain", "workchain": -1}

    def test_address_subscription(self):
        config = MempoolConfig(feed_url="wss://feed", addresses=["EQA", "EQB"])
        assert config.subscription_id == "addresses-EQA,EQB"
        assert config.subscription_request() == {"subscribe": "addresses", "addresses": ["EQA", "EQB"]}


class TestRetryDelay:
    """Test exponential backoff."""

    def test_exponential_growth(self):
        config = MempoolConfig()
        assert compute_retry_delay(1, config, jitter=1.0) == pytest.approx(5.0)
        assert compute_retry_delay(2, config, jitter=1.0) == pytest.approx(7.5)
        assert compute_retry_delay(3, config, jitter=1.0) == pytest.approx(11.25)

    def test_capped(self):
        config = MempoolConfig()
        assert compute_retry_delay(10, config, jitter=1.15) == 60.0

    def test_jitter_band(self):
        config = MempoolConfig()
        for _ in range(50):
            assert 5.0 * 0.85 <= compute_retry_delay(1, config) <= 5.0 * 1.15

    def test_periodic_retry_after_budget(self, ingestor):
        """After max retries the monitor waits the periodic interval and starts over."""
        monitor = MempoolMonitor(MempoolConfig(feed_url="wss://feed", max_retries=2), ingestor)

        monitor.next_retry_delay()
        monitor.next_retry_delay()
        assert monitor.retry_count == 2

        assert monitor.next_retry_delay() == 60.0
        assert monitor.retry_count == 0


class TestMessageHandling:
    """Test message parsing and forwarding."""

    @pytest.mark.asyncio
    async def test_consume_forwards_parsed_json(self, ingestor):
        monitor = MempoolMonitor(MempoolConfig(feed_url="wss://feed"), ingestor)
        payload = {"externalMessages": [{"hash": "aa"}]}

        handled = await monitor.consume(messages(json.dumps(payload), {"transactions": []}))

        assert handled == 2
        ingestor.ingest_raw.assert_any_call(payload)
        ingestor.ingest_raw.assert_any_call({"transactions": []})
        assert monitor.stats["messages_received"] == 2
        assert monitor.is_connected
        assert monitor.last_data_at is not None

    @pytest.mark.asyncio
    async def test_invalid_json_skipped(self, ingestor):
        monitor = MempoolMonitor(MempoolConfig(feed_url="wss://feed"), ingestor)

        await monitor.consume(messages("{not json", json.dumps([1])))

        assert monitor.stats["invalid_messages"] == 1
        ingestor.ingest_raw.assert_called_once_with([1])

    @pytest.mark.asyncio
    async def test_malformed_message_shape_keeps_consuming(self, ingestor):
        """Non-list message fields reach the ingestor and later messages still flow."""
        monitor = MempoolMonitor(MempoolConfig(feed_url="wss://feed"), ingestor)

        handled = await monitor.consume(messages(
            '{"messages": 5}', '{"externalMessages": true}', '{"transactions": []}'
        ))

        assert handled == 3
        assert ingestor.ingest_raw.call_count == 3
        ingestor.ingest_raw.assert_called_with({"transactions": []})

    def test_message_resets_retry_count(self, ingestor):
        monitor = MempoolMonitor(MempoolConfig(feed_url="wss://feed"), ingestor)
        monitor.retry_count = 4

        monitor.handle_message(b'{"messages": []}')

        assert monitor.retry_count == 0


class TestLifecycle:
    """Test start, stop and reconnect."""

    @pytest.mark.asyncio
    async def test_start_requires_feed_url(self, ingestor):
        monitor = create_mempool_monitor(ingestor)
        with pytest.raises(FeedError):
            await monitor.start()
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_connection_failure_triggers_backoff(self, ingestor):
        """A failed connect is counted and followed by a backoff sleep."""
        session_factory = Mock(side_effect=aiohttp.ClientError("connection refused"))
        sleep = AsyncMock()
        monitor = MempoolMonitor(
            MempoolConfig(feed_url="wss://feed"), ingestor,
            session_factory=session_factory, sleep=sleep
        )

        async def stop_after_first_sleep(delay):
            monitor.is_running = False

        sleep.side_effect = stop_after_first_sleep
        monitor.is_running = True

        await monitor._run()

        assert monitor.stats["connection_failures"] == 1
        assert monitor.retry_count == 1
        delay = sleep.await_args.args[0]
        assert 5.0 * 0.85 <= delay <= 5.0 * 1.15

    @pytest.mark.asyncio
    async def test_start_and_stop(self, ingestor):
        session_factory = Mock(side_effect=aiohttp.ClientError("connection refused"))
        monitor = MempoolMonitor(
            MempoolConfig(feed_url="wss://feed"), ingestor,
            session_factory=session_factory, sleep=AsyncMock()
        )

        await monitor.start()
        assert monitor.is_running
        assert monitor.get_stats()["subscription_id"] == "workchain-0"

        await monitor.stop()
        assert not monitor.is_running
        assert not monitor.is_connected
