"""Main FastAPI application entry point."""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from periscope import __version__
from periscope.api.health import router as health_router
from periscope.api.opportunities import router as opportunities_router
from periscope.api.websocket import OpportunityBroadcaster, router as websocket_router
from periscope.config.log_config import configure_logging
from periscope.config.settings import Settings, settings
from periscope.mev_detection.ingestion import PacketIngestor
from periscope.mev_detection.mempool_monitor import MempoolConfig, MempoolMonitor
from periscope.mev_detection.price_cache import PriceCache
from periscope.strategies.arbitrage_strategy import ArbitrageConfig, ArbitrageStrategy
from periscope.strategies.base_strategy import SimulationMode
from periscope.strategies.sandwich_strategy import SandwichConfig, SandwichStrategy
from periscope.strategies.strategy_manager import StrategyManager

logger = logging.getLogger(__name__)


def build_strategy_manager(app_settings: Settings) -> StrategyManager:
    """Default strategies configured from process settings."""
    mode = SimulationMode(app_settings.simulation_mode)
    price_cache = PriceCache(
        ttl_ms=app_settings.price_cache_ttl_ms,
        max_entries=app_settings.price_cache_max_entries
    )
    strategies = [
        ArbitrageStrategy(ArbitrageConfig(simulation_mode=mode), price_cache=price_cache),
        SandwichStrategy(SandwichConfig(simulation_mode=mode))
    ]
    return StrategyManager(strategies, broadcast_limit=app_settings.opportunities_broadcast_limit)


def build_mempool_monitor(app_settings: Settings, ingestor: PacketIngestor) -> MempoolMonitor:
    config = MempoolConfig(
        feed_url=app_settings.mempool_feed_url,
        workchain=app_settings.mempool_workchain,
        addresses=app_settings.subscription_addresses,
        max_retries=app_settings.feed_max_retries,
        base_retry_delay=app_settings.feed_base_retry_delay,
        max_retry_delay=app_settings.feed_max_retry_delay,
        periodic_retry_interval=app_settings.feed_periodic_retry_interval,
        stale_after=app_settings.feed_stale_after
    )
    return MempoolMonitor(config, ingestor)


def create_app(
    app_settings: Optional[Settings] = None,
    strategy_manager: Optional[StrategyManager] = None,
    start_feed: bool = True
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use, defaults to the global instance
        strategy_manager: Pre-built manager, defaults to one built from settings
        start_feed: Whether to connect to the mempool feed on startup
    """
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Manage application lifespan - startup and shutdown events."""
        configure_logging(app_settings.log_level)
        logger.info("Starting Periscope...")

        manager = strategy_manager or build_strategy_manager(app_settings)
        ingestor = PacketIngestor(manager, processed_cache_size=app_settings.processed_tx_cache_size)
        broadcaster = OpportunityBroadcaster()
        broadcaster.attach(manager, asyncio.get_running_loop())

        app.state.started_at = time.monotonic()
        app.state.strategy_manager = manager
        app.state.ingestor = ingestor
        app.state.broadcaster = broadcaster
        app.state.monitor = None

        if start_feed and app_settings.mempool_feed_url:
            monitor = build_mempool_monitor(app_settings, ingestor)
            await monitor.start()
            app.state.monitor = monitor
            logger.info(f"Mempool feed started: {monitor.config.subscription_id}")
        else:
            logger.warning("Mempool feed not configured, serving API only")

        logger.info("System startup complete")

        yield

        logger.info("Shutting down Periscope...")
        if app.state.monitor is not None:
            await app.state.monitor.stop()
        broadcaster.detach(manager)
        logger.info("System shutdown complete")

    app = FastAPI(
        title="Periscope API",
        description="Mempool monitoring and MEV opportunity detection",
        version=__version__,
        lifespan=lifespan,
    )

    # Include API routers
    app.include_router(health_router, tags=["health"])
    app.include_router(opportunities_router, tags=["opportunities"])
    app.include_router(websocket_router, tags=["websocket"])

    return app


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "periscope.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug",
    )
