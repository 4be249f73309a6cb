"""
MEV Opportunity Data Models.

Defines the opportunity record emitted by strategies, the strategy-specific
detail payloads, and the append-only store the strategy manager keeps.
"""
import threading
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class MEVOpportunity(BaseModel):
    """A scored, strategy-attributed candidate for profit extraction."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique opportunity identifier")
    strategy: str = Field(..., description="Name of the emitting strategy")
    timestamp: int = Field(..., description="Source packet time (ms epoch)")
    profit_estimate: float = Field(..., description="Estimated profit in the native unit")
    confidence: float = Field(..., description="Confidence in the estimate (0-1)", ge=0, le=1)
    details: Dict[str, Any] = Field(default_factory=dict, description="Strategy-specific payload")
    raw_data: Dict[str, Any] = Field(default_factory=dict, description="Originating packet reference")

    @property
    def is_simulated(self) -> bool:
        """Whether any input to this opportunity was a placeholder value."""
        return bool(self.details.get("simulated", False))


class ArbitrageOpportunityDetails(BaseModel):
    """Details of a cross-venue price divergence."""

    buy_dex: str
    sell_dex: str
    token_pair: str
    price_difference_percent: float
    buy_amount: float
    sell_amount: float
    estimated_profit: float
    estimated_gas: float
    execution_plan: str
    simulated: bool = False


class SandwichOpportunityDetails(BaseModel):
    """Details of a front-run / back-run pair around a large swap."""

    target_tx_hash: str
    token_pair: str
    target_swap_size: float
    estimated_price_impact: float
    front_run_amount: float
    back_run_amount: float
    estimated_front_run_gas: float
    estimated_back_run_gas: float
    total_gas_cost: float
    execution_plan: str
    simulated: bool = False


class OpportunityStore:
    """
    Append-only ledger of emitted opportunities.

    Writers replace the underlying tuple wholesale, so readers iterate over
    an immutable snapshot and never need a lock.
    """

    def __init__(self):
        self._entries: Tuple[MEVOpportunity, ...] = ()
        self._write_lock = threading.Lock()

    def append(self, opportunities: Iterable[MEVOpportunity]) -> int:
        """Append opportunities in order; returns how many were added."""
        new_entries = tuple(opportunities)
        if not new_entries:
            return 0
        with self._write_lock:
            self._entries = self._entries + new_entries
        return len(new_entries)

    def snapshot(self) -> Tuple[MEVOpportunity, ...]:
        """Current contents in insertion order."""
        return self._entries

    def query(self, limit: int = 0, strategy: Optional[str] = None) -> List[MEVOpportunity]:
        """
        Opportunities sorted by profit estimate, highest first.

        Args:
            limit: Maximum number to return, 0 for all
            strategy: Only return opportunities from this strategy

        Returns:
            Sorted list; ties keep insertion order
        """
        entries = self._entries
        if strategy:
            entries = tuple(opp for opp in entries if opp.strategy == strategy)

        ranked = sorted(entries, key=lambda opp: opp.profit_estimate, reverse=True)
        if limit > 0:
            return ranked[:limit]
        return ranked

    def clear(self, strategy: Optional[str] = None) -> int:
        """Remove all opportunities, or only one strategy's; returns count removed."""
        with self._write_lock:
            before = len(self._entries)
            if strategy:
                self._entries = tuple(opp for opp in self._entries if opp.strategy != strategy)
            else:
                self._entries = ()
            return before - len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
