"""Base strategy class for MEV opportunity detection."""
import logging
import random
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..mev_detection.opportunity_models import MEVOpportunity
from ..mev_detection.packets import MempoolPacket

logger = logging.getLogger(__name__)


class SimulationMode(str, Enum):
    """What a strategy does when real on-chain data cannot be extracted."""
    OFF = "off"                     # Emit nothing
    DETERMINISTIC = "deterministic" # Midpoint placeholder values, flagged as simulated
    RANDOM = "random"               # Random placeholder values, flagged as simulated


class StrategyConfig(BaseModel):
    """Configuration shared by all strategies. Instances are immutable."""

    model_config = ConfigDict(frozen=True, extra="forbid", use_enum_values=False)

    enabled: bool = Field(default=True, description="Whether the strategy runs")
    min_confidence: float = Field(default=0.7, description="Minimum confidence (0-1)", ge=0, le=1)
    min_profit_estimate: float = Field(default=0.01, description="Minimum profit in the native unit")
    simulation_mode: SimulationMode = Field(
        default=SimulationMode.DETERMINISTIC,
        description="Behaviour when on-chain data cannot be extracted"
    )


class StrategyConfigError(ValueError):
    """Exception raised when a configuration update is rejected."""

    def __init__(self, message: str, strategy: str = None):
        self.strategy = strategy
        super().__init__(message)

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.strategy:
            return f"[{self.strategy}] {base_msg}"
        return base_msg


class BaseStrategy(ABC):
    """
    Abstract base class for MEV strategies.

    A strategy consumes one packet at a time and emits zero or more
    opportunities. It owns its configuration and its own opportunity history.
    """

    def __init__(self, name: str, config: StrategyConfig, rng: Optional[random.Random] = None):
        """
        Initialize the strategy.

        Args:
            name: Unique strategy name used as the registry key
            config: Initial configuration
            rng: Random source used only in ``SimulationMode.RANDOM``
        """
        self.name = name
        self._config = config
        self.rng = rng or random.Random()
        self.logger = logging.getLogger(f"{self.__class__.__name__}({name})")

        self._opportunities: List[MEVOpportunity] = []
        self._history_lock = threading.Lock()

        self.logger.info(f"Strategy initialized with config {config.model_dump(mode='json')}")

    @property
    def config(self) -> StrategyConfig:
        return self._config

    @abstractmethod
    def analyze(self, packet: MempoolPacket) -> List[MEVOpportunity]:
        """
        Process a mempool packet and identify potential MEV opportunities.

        Implementations must not raise: failures are logged and treated as
        "no opportunities from this packet".
        """
        pass

    def get_name(self) -> str:
        return self.name

    def is_enabled(self) -> bool:
        return self._config.enabled

    def get_config(self) -> StrategyConfig:
        return self._config

    def update_config(self, partial: Mapping[str, Any]) -> StrategyConfig:
        """
        Merge fields into the configuration and swap it in wholesale.

        Raises:
            StrategyConfigError: If the merged configuration fails validation
        """
        merged = {**self._config.model_dump(), **dict(partial)}
        try:
            new_config = type(self._config).model_validate(merged)
        except ValidationError as e:
            raise StrategyConfigError(f"Invalid configuration update: {e}", strategy=self.name) from e

        self._config = new_config
        self.logger.info(f"Strategy configuration updated: {new_config.model_dump(mode='json')}")
        return new_config

    def get_opportunities(self) -> List[MEVOpportunity]:
        """Full history of opportunities emitted by this strategy."""
        return list(self._opportunities)

    def clear_opportunities(self) -> None:
        with self._history_lock:
            self._opportunities = []
        self.logger.info("Opportunities cleared")

    def get_stats(self) -> Dict[str, Any]:
        """Summary of this strategy's opportunity history."""
        opportunities = self._opportunities
        total_profit = sum(opp.profit_estimate for opp in opportunities)
        return {
            "name": self.name,
            "enabled": self.is_enabled(),
            "opportunity_count": len(opportunities),
            "total_profit": total_profit,
            "average_profit": total_profit / len(opportunities) if opportunities else 0.0,
            "highest_profit": max((opp.profit_estimate for opp in opportunities), default=0.0)
        }

    def meets_minimum_criteria(self, opportunity: MEVOpportunity) -> bool:
        """Check an opportunity against the configured thresholds."""
        return (
            opportunity.confidence >= self._config.min_confidence and
            opportunity.profit_estimate >= self._config.min_profit_estimate
        )

    def _record(self, opportunities: List[MEVOpportunity]) -> None:
        if not opportunities:
            return
        with self._history_lock:
            self._opportunities = self._opportunities + opportunities

    def _placeholder_fraction(self) -> Optional[float]:
        """
        Position within a placeholder band for the current simulation mode.

        Returns None when simulation is off, 0.5 in deterministic mode and a
        uniform draw in random mode.
        """
        mode = self._config.simulation_mode
        if mode == SimulationMode.OFF:
            return None
        if mode == SimulationMode.RANDOM:
            return self.rng.random()
        return 0.5

    def _band_fraction(self) -> float:
        """Position within a modelled band (capture rate etc.), never None."""
        if self._config.simulation_mode == SimulationMode.RANDOM:
            return self.rng.random()
        return 0.5

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, enabled={self.is_enabled()})"
