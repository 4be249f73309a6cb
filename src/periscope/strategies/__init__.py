"""
MEV Strategies Module.

Pluggable opportunity-detection strategies and the manager that fans
mempool packets out to them.
"""
from .base_strategy import (
    BaseStrategy,
    StrategyConfig,
    StrategyConfigError,
    SimulationMode
)
from .arbitrage_strategy import (
    ArbitrageStrategy,
    ArbitrageConfig,
    PriceObservation
)
from .sandwich_strategy import (
    SandwichStrategy,
    SandwichConfig,
    SwapDetails
)
from .strategy_manager import (
    StrategyManager,
    create_default_strategies
)

__all__ = [
    # Base
    "BaseStrategy",
    "StrategyConfig",
    "StrategyConfigError",
    "SimulationMode",
    
    # Arbitrage
    "ArbitrageStrategy",
    "ArbitrageConfig",
    "PriceObservation",
    
    # Sandwich
    "SandwichStrategy",
    "SandwichConfig",
    "SwapDetails",
    
    # Manager
    "StrategyManager",
    "create_default_strategies"
]
