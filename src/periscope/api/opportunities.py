"""Opportunity, strategy and statistics endpoints."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request

from ..mev_detection.ingestion import PacketIngestor
from ..mev_detection.mempool_monitor import MempoolMonitor
from ..mev_detection.packets import now_ms
from ..strategies.base_strategy import StrategyConfigError
from ..strategies.strategy_manager import StrategyManager
from .dependencies import get_ingestor, get_monitor, get_strategy_manager
from .health import uptime_seconds

logger = logging.getLogger(__name__)

# Number of top opportunities scanned for per-venue activity
SYSTEM_STATS_SAMPLE_SIZE = 100

router = APIRouter()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/mempool")
def latest_mempool_packet(ingestor: PacketIngestor = Depends(get_ingestor)) -> Dict[str, Any]:
    """The most recently received mempool packet."""
    logger.info("Mempool data requested")
    packet = ingestor.latest_packet
    if packet is None:
        body: Dict[str, Any] = {"message": "No mempool data received yet"}
    else:
        body = {"id": packet.id, "timestamp": packet.timestamp, "data": packet.data}

    return {"packet": body, "timestamp": _timestamp()}


@router.get("/opportunities")
def list_opportunities(
    limit: int = Query(default=10, ge=0, description="Maximum number of opportunities, 0 for all"),
    strategy: Optional[str] = Query(default=None, description="Only return this strategy's opportunities"),
    manager: StrategyManager = Depends(get_strategy_manager)
) -> Dict[str, Any]:
    """Opportunities ranked by estimated profit."""
    logger.info(f"MEV opportunities requested (limit={limit}, strategy={strategy})")
    opportunities = manager.get_opportunities(limit, strategy or None)
    return {
        "opportunities": [opp.model_dump(mode="json") for opp in opportunities],
        "count": len(opportunities),
        "timestamp": _timestamp()
    }


@router.delete("/opportunities")
def clear_opportunities(
    strategy: Optional[str] = Query(default=None, description="Only clear this strategy's opportunities"),
    manager: StrategyManager = Depends(get_strategy_manager)
) -> Dict[str, Any]:
    logger.info(f"Clear opportunities requested (strategy={strategy})")
    removed = manager.clear_opportunities(strategy or None)
    return {
        "message": f"Opportunities cleared for strategy: {strategy}" if strategy else "All opportunities cleared",
        "removed": removed,
        "timestamp": _timestamp()
    }


@router.get("/strategies")
def list_strategies(manager: StrategyManager = Depends(get_strategy_manager)) -> Dict[str, Any]:
    """Registered strategies with their enabled state and configuration."""
    return {"strategies": manager.get_strategies(), "timestamp": _timestamp()}


@router.patch("/strategies/{name}")
def update_strategy(
    name: str,
    config: Dict[str, Any] = Body(...),
    manager: StrategyManager = Depends(get_strategy_manager)
) -> Dict[str, Any]:
    """Patch a strategy's configuration."""
    logger.info(f"Strategy configuration update requested for {name}: {config}")

    if manager.get_strategy(name) is None:
        raise HTTPException(status_code=404, detail=f"Strategy not found: {name}")

    try:
        new_config = manager.update_strategy_config(name, config)
    except StrategyConfigError as e:
        logger.warning(f"Rejected configuration update for {name}: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    return {
        "message": f"Strategy {name} configuration updated",
        "strategy": name,
        "config": new_config.model_dump(mode="json") if new_config else None,
        "timestamp": _timestamp()
    }


@router.get("/statistics")
def strategy_statistics(manager: StrategyManager = Depends(get_strategy_manager)) -> Dict[str, Any]:
    """Aggregate opportunity counts and profit per strategy."""
    return {**manager.get_statistics(), "timestamp": _timestamp()}


@router.get("/system/stats")
def system_stats(
    request: Request,
    manager: StrategyManager = Depends(get_strategy_manager),
    ingestor: PacketIngestor = Depends(get_ingestor),
    monitor: Optional[MempoolMonitor] = Depends(get_monitor)
) -> Dict[str, Any]:
    """Uptime, feed state and per-venue activity among recent arbitrage opportunities."""
    venue_activity: Dict[str, int] = {}
    for opp in manager.get_opportunities(SYSTEM_STATS_SAMPLE_SIZE):
        if opp.strategy != "arbitrage":
            continue
        for key in ("buy_dex", "sell_dex"):
            venue = opp.details.get(key)
            if venue:
                venue_activity[venue] = venue_activity.get(venue, 0) + 1

    packet = ingestor.latest_packet
    return {
        "uptime": uptime_seconds(request),
        "last_packet_received": packet.timestamp if packet else now_ms(),
        "active_subscriptions": [monitor.config.subscription_id] if monitor and monitor.is_running else [],
        "mempool_stats": venue_activity,
        "ingestion": ingestor.get_stats(),
        "timestamp": _timestamp()
    }
