"""
Unit tests for the strategy manager.
"""
import threading
from typing import List
from unittest.mock import Mock

import pytest

from periscope.mev_detection.opportunity_models import MEVOpportunity
from periscope.mev_detection.packets import MempoolPacket
from periscope.strategies.arbitrage_strategy import ArbitrageStrategy
from periscope.strategies.base_strategy import BaseStrategy, StrategyConfig, StrategyConfigError
from periscope.strategies.sandwich_strategy import SandwichStrategy
from periscope.strategies.strategy_manager import StrategyManager


class StaticStrategy(BaseStrategy):
    """Returns a fixed list of profits for every packet."""

    def __init__(self, name: str, profits: List[float]):
        super().__init__(name, StrategyConfig())
        self.profits = profits
        self.packets: List[MempoolPacket] = []

    def analyze(self, packet: MempoolPacket) -> List[MEVOpportunity]:
        self.packets.append(packet)
        opportunities = [
            MEVOpportunity(strategy=self.name, timestamp=packet.timestamp, profit_estimate=profit, confidence=0.9)
            for profit in self.profits
        ]
        self._record(opportunities)
        return opportunities


class FailingStrategy(BaseStrategy):
    def __init__(self):
        super().__init__("failing", StrategyConfig())

    def analyze(self, packet: MempoolPacket) -> List[MEVOpportunity]:
        raise RuntimeError("strategy exploded")



class BlockingStrategy(StaticStrategy):
    """Records its opportunities, then waits until released."""

    def __init__(self, name: str, profits: List[float]):
        super().__init__(name, profits)
        self.recorded = threading.Event()
        self.release = threading.Event()

    def analyze(self, packet: MempoolPacket) -> List[MEVOpportunity]:
        opportunities = super().analyze(packet)
        self.recorded.set()
        self.release.wait(timeout=5)
        return opportunities

@pytest.fixture
def packet():
    return MempoolPacket(id="p1", timestamp=1000, data={"transactions": [{"hash": "aa"}]})


@pytest.fixture
def manager():
    return StrategyManager([
        StaticStrategy("arbitrage", [0.5, 2.0]),
        StaticStrategy("sandwich", [1.0])
    ])


class TestRegistry:
    """Test strategy registration."""

    def test_default_strategies(self):
        manager = StrategyManager()
        names = [strategy.get_name() for strategy in manager.get_all_strategies()]

        assert names == ["arbitrage", "sandwich"]
        assert isinstance(manager.get_strategy("arbitrage"), ArbitrageStrategy)
        assert isinstance(manager.get_strategy("sandwich"), SandwichStrategy)

    def test_register_and_unregister(self, manager):
        manager.register_strategy(StaticStrategy("extra", []))
        assert manager.get_strategy("extra") is not None

        assert manager.unregister_strategy("extra") is True
        assert manager.unregister_strategy("extra") is False
        assert manager.get_strategy("extra") is None

    def test_get_strategies(self, manager):
        strategies = manager.get_strategies()

        assert [s["name"] for s in strategies] == ["arbitrage", "sandwich"]
        assert strategies[0]["enabled"] is True
        assert strategies[0]["config"]["min_confidence"] == 0.7
        assert strategies[0]["config"]["simulation_mode"] == "deterministic"


class TestConfigUpdates:
    """Test configuration patches through the manager."""

    def test_update_known_strategy(self, manager):
        new_config = manager.update_strategy_config("sandwich", {"min_confidence": 0.3})

        assert new_config.min_confidence == 0.3
        assert manager.get_strategy("sandwich").get_config().min_confidence == 0.3

    def test_unknown_strategy_is_noop(self, manager):
        before = manager.get_strategies()
        assert manager.update_strategy_config("nonexistent", {"enabled": False}) is None
        assert manager.get_strategies() == before

    def test_invalid_update_raises(self, manager):
        with pytest.raises(StrategyConfigError):
            manager.update_strategy_config("arbitrage", {"min_confidence": 5})


class TestAnalyzePacket:
    """Test fan-out, isolation and storage."""

    def test_collects_from_all_strategies(self, manager, packet):
        opportunities = manager.analyze_packet(packet)

        assert [opp.strategy for opp in opportunities] == ["arbitrage", "arbitrage", "sandwich"]
        assert len(manager.get_opportunities()) == 3
        assert manager.last_analysis_time > 0

    def test_strategy_failure_isolated(self, packet):
        """A strategy that raises does not stop a healthy one from reporting."""
        healthy = StaticStrategy("healthy", [1.5])
        manager = StrategyManager([FailingStrategy(), healthy])

        opportunities = manager.analyze_packet(packet)

        assert len(opportunities) == 1
        assert opportunities[0].strategy == "healthy"

    def test_disabled_strategy_skipped(self, manager, packet):
        manager.update_strategy_config("arbitrage", {"enabled": False})

        opportunities = manager.analyze_packet(packet)

        assert [opp.strategy for opp in opportunities] == ["sandwich"]
        assert manager.get_strategy("arbitrage").packets == []

    @pytest.mark.parametrize("data", [None, "garbage", {"nothing": 1}])
    def test_packet_without_transactions(self, data):
        """Packets with nothing extractable produce no opportunities and never raise."""
        manager = StrategyManager()
        manager.update_strategy_config("arbitrage", {"simulation_mode": "off"})
        manager.update_strategy_config("sandwich", {"simulation_mode": "off"})

        assert manager.analyze_packet(MempoolPacket(id="p", timestamp=1, data=data)) == []

    def test_negative_profit_still_stored(self, packet, caplog):
        manager = StrategyManager([StaticStrategy("buggy", [-1.0])])

        with caplog.at_level("WARNING"):
            manager.analyze_packet(packet)

        assert len(manager.get_opportunities()) == 1
        assert "Negative profit estimate" in caplog.text


class TestQueries:
    """Test ranking, filtering and clearing."""

    def test_sorted_by_profit_with_limit(self, manager, packet):
        manager.analyze_packet(packet)

        top = manager.get_opportunities(limit=2)

        assert [opp.profit_estimate for opp in top] == [2.0, 1.0]
        assert [opp.profit_estimate for opp in manager.get_opportunities()] == [2.0, 1.0, 0.5]

    def test_strategy_filter(self, manager, packet):
        manager.analyze_packet(packet)
        assert [opp.profit_estimate for opp in manager.get_opportunities(0, "arbitrage")] == [2.0, 0.5]

    def test_clear_one_strategy(self, manager, packet):
        """Clearing arbitrage leaves sandwich opportunities untouched."""
        manager.analyze_packet(packet)

        removed = manager.clear_opportunities("arbitrage")

        assert removed == 2
        assert manager.get_opportunities(0, "arbitrage") == []
        assert len(manager.get_opportunities(0, "sandwich")) == 1
        assert manager.get_strategy("arbitrage").get_opportunities() == []
        assert len(manager.get_strategy("sandwich").get_opportunities()) == 1

    def test_clear_all(self, manager, packet):
        manager.analyze_packet(packet)
        assert manager.clear_opportunities() == 3
        assert manager.get_opportunities() == []

    def test_clear_during_analysis_keeps_store_and_history_consistent(self, packet):
        """A clear from another thread waits for the in-flight packet to be stored."""
        strategy = BlockingStrategy("arbitrage", [1.5])
        manager = StrategyManager([strategy])

        analyzer = threading.Thread(target=manager.analyze_packet, args=(packet,))
        analyzer.start()
        assert strategy.recorded.wait(timeout=5)

        clearer = threading.Thread(target=manager.clear_opportunities)
        clearer.start()
        clearer.join(timeout=0.1)
        assert clearer.is_alive()

        strategy.release.set()
        analyzer.join(timeout=5)
        clearer.join(timeout=5)

        assert manager.get_opportunities() == []
        assert strategy.get_opportunities() == []
        assert manager.get_statistics()["total_opportunities"] == 0

    def test_statistics(self, manager, packet):
        manager.analyze_packet(packet)
        manager.analyze_packet(packet)

        stats = manager.get_statistics()
        per_strategy = {entry["name"]: entry for entry in stats["per_strategy"]}

        assert stats["total_strategies"] == 2
        assert stats["total_opportunities"] == 6
        assert per_strategy["arbitrage"]["count"] == 4
        assert per_strategy["arbitrage"]["total_profit"] == pytest.approx(5.0)
        assert per_strategy["arbitrage"]["average_profit"] == pytest.approx(1.25)
        assert per_strategy["sandwich"]["count"] == 2


class TestHandlers:
    """Test subscriber notification."""

    def test_handlers_receive_top_opportunities_in_order(self, packet):
        manager = StrategyManager([StaticStrategy("alpha", [1.0, 3.0, 2.0])], broadcast_limit=2)
        calls = []
        manager.add_opportunity_handler(lambda opps: calls.append(("first", [o.profit_estimate for o in opps])))
        manager.add_opportunity_handler(lambda opps: calls.append(("second", [o.profit_estimate for o in opps])))

        manager.analyze_packet(packet)

        assert calls == [("first", [3.0, 2.0]), ("second", [3.0, 2.0])]

    def test_failing_handler_does_not_block_others(self, manager, packet):
        broken = Mock(side_effect=RuntimeError("subscriber gone"))
        healthy = Mock()
        manager.add_opportunity_handler(broken)
        manager.add_opportunity_handler(healthy)

        manager.analyze_packet(packet)

        healthy.assert_called_once()

    def test_no_notification_without_new_opportunities(self, packet):
        manager = StrategyManager([StaticStrategy("quiet", [])])
        handler = Mock()
        manager.add_opportunity_handler(handler)

        manager.analyze_packet(packet)

        handler.assert_not_called()

    def test_clear_notifies_and_removed_handler_is_silent(self, manager, packet):
        handler = Mock()
        manager.add_opportunity_handler(handler)

        manager.clear_opportunities()
        handler.assert_called_once_with([])

        manager.remove_opportunity_handler(handler)
        manager.analyze_packet(packet)
        handler.assert_called_once()
