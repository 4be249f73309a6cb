"""
MEV Opportunity Detection Module.

Packet model and extraction, payload decoding, venue registry, price cache,
opportunity models and the mempool feed that drives detection.
"""
from .packets import (
    MempoolPacket,
    extract_transactions,
    transaction_key,
    now_ms
)
from .payload_decoder import (
    DecodedField,
    read_field_after_marker
)
from .venues import (
    TokenConfig,
    VenueConfig,
    DEFAULT_VENUES
)
from .price_cache import (
    PriceCache,
    PriceCacheEntry
)
from .opportunity_models import (
    MEVOpportunity,
    ArbitrageOpportunityDetails,
    SandwichOpportunityDetails,
    OpportunityStore
)
from .ingestion import PacketIngestor
from .mempool_monitor import (
    MempoolMonitor,
    MempoolConfig,
    FeedError
)

__all__ = [
    # Packets
    "MempoolPacket",
    "extract_transactions",
    "transaction_key",
    "now_ms",

    # Decoding and venues
    "DecodedField",
    "read_field_after_marker",
    "TokenConfig",
    "VenueConfig",
    "DEFAULT_VENUES",

    # Price cache
    "PriceCache",
    "PriceCacheEntry",

    # Opportunity Models
    "MEVOpportunity",
    "ArbitrageOpportunityDetails",
    "SandwichOpportunityDetails",
    "OpportunityStore",

    # Mempool Monitoring
    "PacketIngestor",
    "MempoolMonitor",
    "MempoolConfig",
    "FeedError"
]
