"""HTTP and websocket API routers."""
from .health import router as health_router
from .opportunities import router as opportunities_router
from .websocket import router as websocket_router, OpportunityBroadcaster

__all__ = [
    "health_router",
    "opportunities_router",
    "websocket_router",
    "OpportunityBroadcaster",
]
