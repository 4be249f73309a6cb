"""
Strategy Manager.

Owns the strategy registry, fans each packet out to every enabled strategy
in registration order, keeps the aggregate opportunity store and notifies
subscribers when opportunities change.
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..mev_detection.opportunity_models import MEVOpportunity, OpportunityStore
from ..mev_detection.packets import MempoolPacket, now_ms
from .arbitrage_strategy import ArbitrageStrategy
from .base_strategy import BaseStrategy, StrategyConfig
from .sandwich_strategy import SandwichStrategy

logger = logging.getLogger(__name__)

OpportunityHandler = Callable[[List[MEVOpportunity]], None]

DEFAULT_BROADCAST_LIMIT = 20


def create_default_strategies() -> List[BaseStrategy]:
    """The strategies registered when none are supplied."""
    return [ArbitrageStrategy(), SandwichStrategy()]


class StrategyManager:
    """Coordinates multiple strategies and aggregates their results."""

    def __init__(
        self,
        strategies: Optional[Iterable[BaseStrategy]] = None,
        broadcast_limit: int = DEFAULT_BROADCAST_LIMIT
    ):
        """
        Initialize the manager.

        Args:
            strategies: Strategies to register, in order; defaults to arbitrage and sandwich
            broadcast_limit: Number of top opportunities passed to subscribers
        """
        self.broadcast_limit = broadcast_limit
        self.store = OpportunityStore()
        self.last_analysis_time: int = 0

        self._strategies: Dict[str, BaseStrategy] = {}
        self._handlers: List[OpportunityHandler] = []
        # Serializes analysis against clears so the store and strategy histories agree
        self._write_lock = threading.RLock()

        for strategy in (create_default_strategies() if strategies is None else strategies):
            self.register_strategy(strategy)

        logger.info(f"Strategy manager initialized with {len(self._strategies)} strategies")

    # Registry

    def register_strategy(self, strategy: BaseStrategy) -> None:
        name = strategy.get_name()
        if name in self._strategies:
            logger.warning(f"Strategy {name} already registered, replacing")
        strategies = dict(self._strategies)
        strategies[name] = strategy
        self._strategies = strategies
        logger.info(f"Strategy registered: {name}")

    def unregister_strategy(self, strategy_name: str) -> bool:
        if strategy_name not in self._strategies:
            return False
        strategies = dict(self._strategies)
        del strategies[strategy_name]
        self._strategies = strategies
        logger.info(f"Strategy unregistered: {strategy_name}")
        return True

    def get_strategy(self, strategy_name: str) -> Optional[BaseStrategy]:
        return self._strategies.get(strategy_name)

    def get_all_strategies(self) -> List[BaseStrategy]:
        return list(self._strategies.values())

    def get_strategies(self) -> List[Dict[str, Any]]:
        """Registered strategies with their enabled state and configuration."""
        return [
            {
                "name": strategy.get_name(),
                "enabled": strategy.is_enabled(),
                "config": strategy.get_config().model_dump(mode="json")
            }
            for strategy in self._strategies.values()
        ]

    def update_strategy_config(self, strategy_name: str, config: Mapping[str, Any]) -> Optional[StrategyConfig]:
        """
        Patch a strategy's configuration.

        Returns:
            The new configuration, or None when the strategy is unknown

        Raises:
            StrategyConfigError: If the patch produces an invalid configuration
        """
        strategy = self._strategies.get(strategy_name)
        if strategy is None:
            logger.warning(f"Strategy {strategy_name} not found for configuration update")
            return None

        new_config = strategy.update_config(config)
        logger.info(f"Strategy {strategy_name} configuration updated with {dict(config)}")
        return new_config

    # Subscribers

    def add_opportunity_handler(self, handler: OpportunityHandler) -> None:
        """Subscribe to opportunity updates; handlers run in registration order."""
        self._handlers.append(handler)
        logger.debug("Added opportunity handler")

    def remove_opportunity_handler(self, handler: OpportunityHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def _notify_handlers(self) -> None:
        if not self._handlers:
            return
        top_opportunities = self.get_opportunities(self.broadcast_limit)
        for handler in list(self._handlers):
            try:
                handler(top_opportunities)
            except Exception as e:
                logger.error(f"Error in opportunity handler: {e}")

    # Analysis

    def analyze_packet(self, packet: MempoolPacket) -> List[MEVOpportunity]:
        """Run every enabled strategy on a packet and record what they find."""
        if packet is None or (packet.data is None and packet.transactions is None):
            logger.warning("Invalid mempool packet received for analysis")
            return []

        start_time = time.perf_counter()
        self.last_analysis_time = now_ms()

        new_opportunities: List[MEVOpportunity] = []
        with self._write_lock:
            for strategy in list(self._strategies.values()):
                if not strategy.is_enabled():
                    continue
                try:
                    logger.debug(f"Analyzing packet {packet.id} with strategy {strategy.get_name()}")
                    strategy_opportunities = strategy.analyze(packet)
                except Exception as e:
                    logger.exception(f"Error running strategy {strategy.get_name()}: {e}")
                    continue

                for opportunity in strategy_opportunities:
                    if opportunity.profit_estimate < 0:
                        logger.warning(
                            f"Negative profit estimate {opportunity.profit_estimate} from strategy "
                            f"{opportunity.strategy} (opportunity {opportunity.id})"
                        )
                new_opportunities.extend(strategy_opportunities)

            if new_opportunities:
                self.store.append(new_opportunities)

        analysis_ms = (time.perf_counter() - start_time) * 1000

        if new_opportunities:
            logger.info(
                f"{len(new_opportunities)} new MEV opportunities from packet {packet.id} "
                f"in {analysis_ms:.1f}ms"
            )
            self._notify_handlers()
        else:
            logger.debug(f"No new MEV opportunities from packet {packet.id} in {analysis_ms:.1f}ms")

        return new_opportunities

    # Queries

    def get_opportunities(self, limit: int = 0, strategy_filter: Optional[str] = None) -> List[MEVOpportunity]:
        """Opportunities sorted by profit estimate, highest first (limit 0 means all)."""
        return self.store.query(limit=limit, strategy=strategy_filter)

    def clear_opportunities(self, strategy_filter: Optional[str] = None) -> int:
        """Clear opportunities globally or for one strategy; returns count removed."""
        with self._write_lock:
            removed = self.store.clear(strategy_filter)
            if strategy_filter:
                strategy = self._strategies.get(strategy_filter)
                if strategy is not None:
                    strategy.clear_opportunities()
            else:
                for strategy in self._strategies.values():
                    strategy.clear_opportunities()

        if strategy_filter:
            logger.info(f"Cleared {removed} opportunities for strategy {strategy_filter}")
        else:
            logger.info(f"Cleared all {removed} opportunities")

        self._notify_handlers()
        return removed

    def get_statistics(self) -> Dict[str, Any]:
        """Aggregate counts and profit per strategy."""
        per_strategy = []
        for name, strategy in self._strategies.items():
            try:
                stats = strategy.get_stats()
                per_strategy.append({
                    "name": name,
                    "enabled": strategy.is_enabled(),
                    "count": stats["opportunity_count"],
                    "total_profit": stats["total_profit"],
                    "average_profit": stats["average_profit"]
                })
            except Exception as e:
                logger.error(f"Error getting statistics for strategy {name}: {e}")
                per_strategy.append({
                    "name": name,
                    "enabled": False,
                    "count": 0,
                    "total_profit": 0.0,
                    "average_profit": 0.0,
                    "error": "Error getting strategy statistics"
                })

        return {
            "total_strategies": len(self._strategies),
            "total_opportunities": len(self.store),
            "last_analysis_time": self.last_analysis_time,
            "per_strategy": per_strategy
        }
