"""Request-scoped accessors for the components held in application state."""
from typing import Optional

from fastapi import HTTPException, Request

from ..mev_detection.ingestion import PacketIngestor
from ..mev_detection.mempool_monitor import MempoolMonitor
from ..strategies.strategy_manager import StrategyManager


def get_strategy_manager(request: Request) -> StrategyManager:
    manager = getattr(request.app.state, "strategy_manager", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Strategy manager not initialized")
    return manager


def get_ingestor(request: Request) -> PacketIngestor:
    ingestor = getattr(request.app.state, "ingestor", None)
    if ingestor is None:
        raise HTTPException(status_code=503, detail="Packet ingestor not initialized")
    return ingestor


def get_monitor(request: Request) -> Optional[MempoolMonitor]:
    """The mempool monitor, or None when no feed is configured."""
    return getattr(request.app.state, "monitor", None)
