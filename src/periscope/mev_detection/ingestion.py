"""
Packet ingestion with transaction de-duplication.

Feed reconnects can replay transactions, so each transaction key is
remembered for a bounded window and packets are analyzed only on the
transactions not seen before.
"""
import logging
from collections import OrderedDict
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from .opportunity_models import MEVOpportunity
from .packets import MempoolPacket, extract_transactions, transaction_key

if TYPE_CHECKING:
    from ..strategies.strategy_manager import StrategyManager

logger = logging.getLogger(__name__)

DEFAULT_PROCESSED_CACHE_SIZE = 1000


class PacketIngestor:
    """Feeds de-duplicated packets into the strategy manager."""

    def __init__(self, strategy_manager: "StrategyManager", processed_cache_size: int = DEFAULT_PROCESSED_CACHE_SIZE):
        self.strategy_manager = strategy_manager
        self.processed_cache_size = processed_cache_size

        self.latest_packet: Optional[MempoolPacket] = None
        self._processed: "OrderedDict[str, None]" = OrderedDict()

        self.stats = {
            "packets_received": 0,
            "packets_analyzed": 0,
            "transactions_seen": 0,
            "duplicates_skipped": 0,
            "opportunities_found": 0
        }

    def ingest_raw(self, data: Any, timestamp: Optional[int] = None) -> List[MEVOpportunity]:
        """Wrap a raw feed payload in a packet and process it."""
        return self.process(MempoolPacket.from_raw(data, timestamp=timestamp))

    def process(self, packet: MempoolPacket) -> List[MEVOpportunity]:
        """Analyze the packet's previously unseen transactions."""
        self.latest_packet = packet
        self.stats["packets_received"] += 1

        try:
            transactions = extract_transactions(packet)
            fresh = []
            for tx in transactions:
                key = transaction_key(tx)
                if key in self._processed:
                    self.stats["duplicates_skipped"] += 1
                    continue
                self._remember(key)
                fresh.append(tx)

            self.stats["transactions_seen"] += len(transactions)

            if not fresh:
                logger.debug(f"Packet {packet.id} carried no new transactions")
                return []

            opportunities = self.strategy_manager.analyze_packet(packet.with_transactions(fresh))
            self.stats["packets_analyzed"] += 1
            self.stats["opportunities_found"] += len(opportunities)
            return opportunities
        except Exception as e:
            logger.error(f"Error processing mempool packet {packet.id}: {e}")
            return []

    def _remember(self, key: str) -> None:
        self._processed[key] = None
        while len(self._processed) > self.processed_cache_size:
            self._processed.popitem(last=False)

    def has_processed(self, key: str) -> bool:
        return key in self._processed

    def get_stats(self) -> Dict[str, Any]:
        return {
            **self.stats,
            "processed_cache_size": len(self._processed),
            "last_packet_timestamp": self.latest_packet.timestamp if self.latest_packet else None
        }
