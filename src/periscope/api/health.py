"""Health check API endpoints for monitoring and load balancer integration."""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request

from ..mev_detection.ingestion import PacketIngestor
from ..mev_detection.mempool_monitor import MempoolMonitor
from ..mev_detection.packets import now_ms
from .dependencies import get_ingestor, get_monitor

logger = logging.getLogger(__name__)

# Last-packet age thresholds for the reported connection status
CONNECTED_THRESHOLD_MS = 60000
DEGRADED_THRESHOLD_MS = 300000

# Create the FastAPI router
router = APIRouter()


def connection_status(last_packet_timestamp: Optional[int], now: Optional[int] = None) -> str:
    """Classify feed health from the age of the last received packet."""
    if not last_packet_timestamp:
        return "no_data"

    age_ms = (now if now is not None else now_ms()) - last_packet_timestamp
    if age_ms < CONNECTED_THRESHOLD_MS:
        return "connected"
    if age_ms < DEGRADED_THRESHOLD_MS:
        return "degraded"
    return "disconnected"


def _iso(timestamp_ms: Optional[int]) -> Optional[str]:
    if not timestamp_ms:
        return None
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).isoformat()


def uptime_seconds(request: Request) -> int:
    started_at = getattr(request.app.state, "started_at", None)
    if started_at is None:
        return 0
    return int(time.monotonic() - started_at)


@router.get("/health")
def health_check(
    request: Request,
    ingestor: PacketIngestor = Depends(get_ingestor),
    monitor: Optional[MempoolMonitor] = Depends(get_monitor)
) -> Dict[str, Any]:
    """Service status with feed connection health."""
    now = now_ms()
    last_packet_time = ingestor.latest_packet.timestamp if ingestor.latest_packet else None

    return {
        "status": "ok",
        "uptime": uptime_seconds(request),
        "last_packet_received": _iso(last_packet_time),
        "time_since_last_packet_ms": now - last_packet_time if last_packet_time else None,
        "active_subscriptions": [monitor.config.subscription_id] if monitor and monitor.is_running else [],
        "connection_status": connection_status(last_packet_time, now),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@router.get("/health/live")
def liveness_probe() -> Dict[str, Any]:
    """Kubernetes liveness probe."""
    return {
        "status": "alive",
        "message": "Application is responsive"
    }


@router.get("/subscriptions")
def list_subscriptions(monitor: Optional[MempoolMonitor] = Depends(get_monitor)) -> Dict[str, Any]:
    """Feed subscription state."""
    subscriptions = [monitor.get_stats()] if monitor else []
    return {
        "subscriptions": subscriptions,
        "count": len(subscriptions),
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
