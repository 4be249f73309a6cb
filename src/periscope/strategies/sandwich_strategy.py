"""
Sandwich Strategy.

Looks at the packet's primary transaction for a single large swap on a
known venue and models a front-run / back-run pair around it.
"""
import random
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from pydantic import Field

from ..mev_detection.opportunity_models import MEVOpportunity, SandwichOpportunityDetails
from ..mev_detection.packets import (
    MempoolPacket, Transaction, extract_transactions, tx_data_hex, tx_hash, tx_out_message_hex
)
from ..mev_detection.payload_decoder import read_field_after_marker
from ..mev_detection.venues import DEFAULT_VENUES, NATIVE_DECIMALS, VenueConfig, get_swap_op_codes
from .base_strategy import BaseStrategy, StrategyConfig

# Price impact below this (percent) is not worth sandwiching
MIN_PRICE_IMPACT_PERCENT = 0.5
MAX_PRICE_IMPACT_PERCENT = 5.0
BASE_PRICE_IMPACT_PERCENT = 0.1
PRICE_IMPACT_INCREMENT_PERCENT = 0.05

MAX_CONFIDENCE = 0.98


class SandwichConfig(StrategyConfig):
    """Configuration for the sandwich strategy."""

    min_confidence: float = Field(default=0.8, ge=0, le=1)
    min_profit_estimate: float = Field(default=0.05)

    min_target_swap_size: float = Field(default=10.0, description="Minimum target swap size in the native unit", ge=0)
    max_front_run_gas: float = Field(default=0.03, description="Gas ceiling for the front-run", ge=0)
    max_back_run_gas: float = Field(default=0.03, description="Gas ceiling for the back-run", ge=0)
    target_pairs: List[str] = Field(
        default_factory=lambda: ["TON/USDT", "TON/USDC", "JETTON/TON"],
        description="Pairs worth sandwiching"
    )
    slippage_tolerance: float = Field(default=1.0, description="Slippage tolerance in percent", ge=0)

    venue: str = Field(default="DeDust", description="Venue whose swap op-code is scanned")
    assumed_pair: str = Field(default="TON/USDT", description="Pair attributed to decoded swaps")
    amount_offsets: Tuple[int, ...] = Field(
        default=(8, 16, 24, 32),
        description="Hex-character offsets after the swap op-code where the amount may sit"
    )
    impact_size_step: float = Field(default=10.0, description="Swap size per 0.05% of extra price impact", gt=0)
    placeholder_size_span: float = Field(default=20.0, description="Width of the placeholder swap size band", ge=0)


@dataclass(frozen=True)
class SwapDetails:
    """Pair and size of a target swap."""
    token_pair: str
    swap_size: float
    simulated: bool = False


class SandwichStrategy(BaseStrategy):
    """Strategy for front-running and back-running large pending swaps."""

    def __init__(
        self,
        config: Optional[SandwichConfig] = None,
        venues: Mapping[str, VenueConfig] = DEFAULT_VENUES,
        rng: Optional[random.Random] = None
    ):
        super().__init__("sandwich", config or SandwichConfig(), rng=rng)
        self.venues = dict(venues)

    def analyze(self, packet: MempoolPacket) -> List[MEVOpportunity]:
        """Analyze the packet's primary transaction for a sandwich opportunity."""
        config = self.config
        new_opportunities: List[MEVOpportunity] = []

        try:
            transactions = extract_transactions(packet)
            if not transactions:
                self.logger.debug(f"No transactions in packet {packet.id}")
                return new_opportunities

            opportunity = self._analyze_transaction(transactions[0], packet, config)
            if opportunity is not None:
                new_opportunities.append(opportunity)
        except Exception:
            self.logger.exception(f"Error analyzing packet {packet.id} for sandwich opportunities")

        self._record(new_opportunities)
        return new_opportunities

    def _analyze_transaction(
        self,
        tx: Transaction,
        packet: MempoolPacket,
        config: SandwichConfig
    ) -> Optional[MEVOpportunity]:
        swap = self.extract_swap_details(tx, config)
        if swap is None:
            self.logger.debug("Could not extract swap details from transaction")
            return None

        if swap.token_pair not in config.target_pairs:
            self.logger.debug(f"Token pair {swap.token_pair} not in target list")
            return None

        if swap.swap_size < config.min_target_swap_size:
            self.logger.debug(f"Swap size {swap.swap_size} below minimum {config.min_target_swap_size}")
            return None

        price_impact = self.calculate_price_impact(swap.swap_size, config)
        if price_impact < MIN_PRICE_IMPACT_PERCENT:
            self.logger.debug(f"Price impact {price_impact:.2f}% below {MIN_PRICE_IMPACT_PERCENT}%")
            return None

        front_run_amount = self.calculate_front_run_amount(swap.swap_size, price_impact)
        back_run_amount = self.calculate_back_run_amount(swap.swap_size, front_run_amount)

        front_run_gas = min(config.max_front_run_gas, 0.01 + front_run_amount * 0.001)
        back_run_gas = min(config.max_back_run_gas, 0.01 + back_run_amount * 0.001)
        total_gas = front_run_gas + back_run_gas

        profit_estimate = self.calculate_profit_estimate(swap.swap_size, price_impact, total_gas)
        if profit_estimate < config.min_profit_estimate:
            self.logger.debug(f"Profit estimate {profit_estimate:.4f} below {config.min_profit_estimate}")
            return None

        confidence = self.calculate_confidence(swap.swap_size, price_impact, profit_estimate, config)
        if confidence < config.min_confidence:
            self.logger.debug(f"Confidence {confidence:.2f} below {config.min_confidence}")
            return None

        details = SandwichOpportunityDetails(
            target_tx_hash=tx_hash(tx) or "unknown",
            token_pair=swap.token_pair,
            target_swap_size=swap.swap_size,
            estimated_price_impact=price_impact,
            front_run_amount=front_run_amount,
            back_run_amount=back_run_amount,
            estimated_front_run_gas=front_run_gas,
            estimated_back_run_gas=back_run_gas,
            total_gas_cost=total_gas,
            execution_plan=f"Front-run with {front_run_amount:.2f} TON, back-run with {back_run_amount:.2f} TON",
            simulated=swap.simulated
        )

        opportunity = MEVOpportunity(
            strategy=self.name,
            timestamp=packet.timestamp,
            profit_estimate=profit_estimate,
            confidence=confidence,
            details=details.model_dump(),
            raw_data={"packet_id": packet.id, "timestamp": packet.timestamp}
        )

        self.logger.info(
            f"Sandwich opportunity {opportunity.id}: {swap.token_pair} size {swap.swap_size:.2f}, "
            f"profit {profit_estimate:.4f}, confidence {confidence:.2f}"
        )
        return opportunity

    def extract_swap_details(self, tx: Transaction, config: Optional[SandwichConfig] = None) -> Optional[SwapDetails]:
        """
        Extract (pair, size) of a swap on the configured venue.

        The outbound message is scanned first, then the raw data field, using
        the venue's swap op-code and the configured amount offsets. When neither
        yields an amount a placeholder is substituted unless simulation is off.
        """
        config = config or self.config

        for payload in (tx_out_message_hex(tx), tx_data_hex(tx)):
            if not payload:
                continue
            for swap_op_code in get_swap_op_codes(config.venue, self.venues):
                decoded = read_field_after_marker(payload, swap_op_code, config.amount_offsets)
                if decoded is not None:
                    return SwapDetails(
                        token_pair=config.assumed_pair,
                        swap_size=decoded.value / (10 ** NATIVE_DECIMALS)
                    )

        fraction = self._placeholder_fraction()
        if fraction is None or not config.target_pairs:
            return None

        swap_size = config.min_target_swap_size + fraction * config.placeholder_size_span
        self.logger.debug(f"Using placeholder swap details {config.target_pairs[0]} size {swap_size:.2f}")
        return SwapDetails(token_pair=config.target_pairs[0], swap_size=swap_size, simulated=True)

    def calculate_price_impact(self, swap_size: float, config: Optional[SandwichConfig] = None) -> float:
        """Price impact in percent, growing with size above the minimum and capped."""
        config = config or self.config
        size_above_min = swap_size - config.min_target_swap_size
        impact = BASE_PRICE_IMPACT_PERCENT + (size_above_min / config.impact_size_step) * PRICE_IMPACT_INCREMENT_PERCENT
        return min(impact, MAX_PRICE_IMPACT_PERCENT)

    @staticmethod
    def calculate_front_run_amount(target_swap_size: float, price_impact: float) -> float:
        return target_swap_size * (0.15 + price_impact / 100)

    def calculate_back_run_amount(self, target_swap_size: float, front_run_amount: float) -> float:
        """Front-run amount plus 5-10% of the target swap."""
        return front_run_amount + target_swap_size * (0.05 + self._band_fraction() * 0.05)

    def calculate_profit_estimate(self, target_swap_size: float, price_impact: float, gas_cost: float) -> float:
        """Capture 60-80% of the price impact, minus gas."""
        capture_rate = 0.6 + self._band_fraction() * 0.2
        gross_profit = (target_swap_size * price_impact / 100) * capture_rate
        return gross_profit - gas_cost

    def calculate_confidence(
        self,
        swap_size: float,
        price_impact: float,
        profit_estimate: float,
        config: Optional[SandwichConfig] = None
    ) -> float:
        config = config or self.config
        confidence = 0.7

        if config.min_target_swap_size > 0:
            confidence += min((swap_size / config.min_target_swap_size) * 0.05, 0.15)
        else:
            confidence += 0.15

        confidence += min(price_impact * 0.02, 0.1)

        if config.min_profit_estimate > 0:
            confidence += min((profit_estimate / config.min_profit_estimate) * 0.02, 0.1)
        elif profit_estimate > 0:
            confidence += 0.1

        return max(0.0, min(confidence, MAX_CONFIDENCE))
