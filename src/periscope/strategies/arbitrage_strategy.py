"""
Arbitrage Strategy.

Detects price divergence for the same instrument pair across venues. Each
recognised swap updates the price cache; the observed price is then compared
pairwise against every other configured venue's fresh cached price.
"""
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from pydantic import Field

from ..mev_detection.opportunity_models import ArbitrageOpportunityDetails, MEVOpportunity
from ..mev_detection.packets import (
    MempoolPacket, Transaction, extract_transactions, tx_address_hex, tx_data_hex,
    tx_hash, tx_out_message_hex
)
from ..mev_detection.payload_decoder import contains_marker, read_field_after_marker
from ..mev_detection.price_cache import PriceCache
from ..mev_detection.venues import DEFAULT_VENUES, NATIVE_DECIMALS, VenueConfig
from .base_strategy import BaseStrategy, SimulationMode, StrategyConfig

# Placeholder price bands per quote token, used only when a price cannot be decoded
SIMULATED_PRICE_BANDS = {
    "USDT": (0.5, 0.1),
    "USDC": (0.5, 0.1),
    "ETH": (0.0003, 0.0001),
}
DEFAULT_SIMULATED_PRICE_BAND = (1.0, 0.2)


class ArbitrageConfig(StrategyConfig):
    """Configuration for the cross-venue arbitrage strategy."""

    min_confidence: float = Field(default=0.7, ge=0, le=1)
    min_profit_estimate: float = Field(default=0.01)

    dexes: List[str] = Field(
        default_factory=lambda: list(DEFAULT_VENUES.keys()),
        description="Venues compared against each other"
    )
    min_price_difference_percent: float = Field(default=0.5, description="Minimum price gap in percent", ge=0)
    max_slippage: float = Field(default=0.5, description="Slippage tolerance in percent", ge=0)
    gas_buffer: float = Field(default=0.005, description="Safety margin subtracted from profit", ge=0)

    base_trade_size: float = Field(default=10.0, description="Base trade size in the native unit", gt=0)
    max_size_factor: float = Field(default=5.0, description="Cap on the gap-driven size factor", ge=0)
    base_gas_cost: float = Field(default=0.01, description="Gas for a single arbitrage", ge=0)
    cross_venue_gas_cost: float = Field(default=0.003, description="Extra gas when buy and sell venues differ", ge=0)


@dataclass(frozen=True)
class PriceObservation:
    """A price for a pair observed on a venue in one transaction."""
    venue: str
    pair: str
    price: float
    simulated: bool = False


class ArbitrageStrategy(BaseStrategy):
    """Strategy for identifying arbitrage opportunities between venues."""

    def __init__(
        self,
        config: Optional[ArbitrageConfig] = None,
        venues: Mapping[str, VenueConfig] = DEFAULT_VENUES,
        price_cache: Optional[PriceCache] = None,
        rng: Optional[random.Random] = None
    ):
        super().__init__("arbitrage", config or ArbitrageConfig(), rng=rng)
        self.venues = dict(venues)
        self.price_cache = price_cache or PriceCache()

    def analyze(self, packet: MempoolPacket) -> List[MEVOpportunity]:
        """Analyze a mempool packet for arbitrage opportunities."""
        config = self.config
        new_opportunities: List[MEVOpportunity] = []

        try:
            transactions = extract_transactions(packet)
            self.logger.debug(f"Analyzing {len(transactions)} transactions from packet {packet.id}")

            for tx in transactions:
                try:
                    new_opportunities.extend(self._analyze_transaction(tx, packet, config))
                except Exception:
                    self.logger.exception(f"Error analyzing transaction {tx_hash(tx) or '<no hash>'}")
        except Exception:
            self.logger.exception(f"Error analyzing packet {packet.id} for arbitrage opportunities")

        self._record(new_opportunities)
        return new_opportunities

    def _analyze_transaction(
        self,
        tx: Transaction,
        packet: MempoolPacket,
        config: ArbitrageConfig
    ) -> List[MEVOpportunity]:
        venue = self.identify_venue(tx)
        if venue is None:
            return []

        observation = self.extract_price_observation(tx, venue, config)
        if observation is None:
            self.logger.debug(f"Could not extract pair or price from {venue} transaction")
            return []

        self.price_cache.put(observation.venue, observation.pair, observation.price, simulated=observation.simulated)
        self.logger.debug(
            f"Observed {observation.pair} at {observation.price} on {observation.venue}"
            f"{' (simulated)' if observation.simulated else ''}"
        )

        opportunities = []
        for other_venue in config.dexes:
            if other_venue == observation.venue:
                continue
            opportunity = self._evaluate_pair(observation, other_venue, packet, config)
            if opportunity is not None:
                opportunities.append(opportunity)
        return opportunities

    # Classification

    def identify_venue(self, tx: Transaction) -> Optional[str]:
        """Match a transaction to a known venue by address, then by op-code."""
        address = tx_address_hex(tx)
        if address:
            for name, venue in self.venues.items():
                if venue.contract_address and venue.contract_address in address:
                    return name

        for payload in (tx_out_message_hex(tx), tx_data_hex(tx)):
            if not payload:
                continue
            for name, venue in self.venues.items():
                if contains_marker(payload, venue.op_code):
                    return name

        return None

    def extract_price_observation(
        self,
        tx: Transaction,
        venue_name: str,
        config: Optional[ArbitrageConfig] = None
    ) -> Optional[PriceObservation]:
        """
        Extract (pair, price) for a venue transaction.

        Scans the first outbound message for a token swap op-code and reads the
        price at the venue's candidate offsets; falls back to token markers in
        the raw data field. Missing values are substituted according to the
        configured simulation mode.
        """
        venue = self.venues.get(venue_name)
        if venue is None or not venue.tokens:
            return None

        pair: Optional[str] = None
        price: Optional[float] = None

        out_hex = tx_out_message_hex(tx)
        if out_hex:
            for token, token_config in venue.tokens.items():
                swap_op_code = token_config.swap_op_code
                if not swap_op_code or not contains_marker(out_hex, swap_op_code):
                    continue
                pair = venue.pair_for(token)
                decoded = read_field_after_marker(out_hex, swap_op_code, venue.price_offsets)
                if decoded is not None:
                    price = decoded.value / (10 ** token_config.decimals)
                break

        data_hex = tx_data_hex(tx)
        if (pair is None or price is None) and data_hex:
            for token, token_config in venue.tokens.items():
                markers = (
                    (token_config.address, venue.address_price_offsets),
                    (token_config.pool_id, venue.id_price_offsets),
                    (token_config.token_id, venue.id_price_offsets),
                )
                found = False
                for marker, offsets in markers:
                    if marker and contains_marker(data_hex, marker):
                        pair = venue.pair_for(token)
                        decoded = read_field_after_marker(data_hex, marker, offsets)
                        if decoded is not None:
                            price = decoded.value / (10 ** NATIVE_DECIMALS)
                        found = True
                        break
                if found:
                    break

        if pair is not None and price is not None:
            return PriceObservation(venue=venue_name, pair=pair, price=price)

        fraction = self._placeholder_fraction()
        if fraction is None:
            return None

        if pair is None:
            pair = venue.pair_for(next(iter(venue.tokens)))
        quote = pair.split("/")[-1]
        low, span = SIMULATED_PRICE_BANDS.get(quote, DEFAULT_SIMULATED_PRICE_BAND)
        return PriceObservation(venue=venue_name, pair=pair, price=low + fraction * span, simulated=True)

    # Scoring

    def _evaluate_pair(
        self,
        observation: PriceObservation,
        other_venue: str,
        packet: MempoolPacket,
        config: ArbitrageConfig
    ) -> Optional[MEVOpportunity]:
        cached = self.price_cache.get_entry(other_venue, observation.pair)
        if cached is None or cached.price <= 0:
            return None

        price_difference_percent = self.price_difference_percent(observation.price, cached.price)
        if price_difference_percent < config.min_price_difference_percent:
            self.logger.debug(
                f"Price difference {price_difference_percent:.2f}% between {observation.venue} and "
                f"{other_venue} below {config.min_price_difference_percent}%"
            )
            return None

        if observation.price < cached.price:
            buy_dex, buy_price = observation.venue, observation.price
            sell_dex, sell_price = other_venue, cached.price
        else:
            buy_dex, buy_price = other_venue, cached.price
            sell_dex, sell_price = observation.venue, observation.price

        trade_size = self.calculate_optimal_trade_size(buy_price, sell_price, config)
        buy_amount = trade_size
        sell_amount = trade_size * (sell_price / buy_price) * (1 - config.max_slippage / 100)
        estimated_gas = self.estimate_gas_cost(buy_dex, sell_dex, config)
        estimated_profit = sell_amount - buy_amount - estimated_gas - config.gas_buffer

        if estimated_profit < config.min_profit_estimate:
            self.logger.debug(
                f"Skipping {buy_dex}->{sell_dex} {observation.pair}: profit {estimated_profit:.4f} "
                f"below {config.min_profit_estimate}"
            )
            return None

        confidence = self.calculate_confidence(price_difference_percent, estimated_profit, config.min_profit_estimate)
        if confidence < config.min_confidence:
            self.logger.debug(
                f"Skipping {buy_dex}->{sell_dex} {observation.pair}: confidence {confidence:.2f} "
                f"below {config.min_confidence}"
            )
            return None

        details = ArbitrageOpportunityDetails(
            buy_dex=buy_dex,
            sell_dex=sell_dex,
            token_pair=observation.pair,
            price_difference_percent=price_difference_percent,
            buy_amount=buy_amount,
            sell_amount=sell_amount,
            estimated_profit=estimated_profit,
            estimated_gas=estimated_gas,
            execution_plan=f"Buy {buy_amount:.2f} on {buy_dex}, sell {sell_amount:.2f} on {sell_dex}",
            simulated=observation.simulated or cached.simulated
        )

        opportunity = MEVOpportunity(
            strategy=self.name,
            timestamp=packet.timestamp,
            profit_estimate=estimated_profit,
            confidence=confidence,
            details=details.model_dump(),
            raw_data={"packet_id": packet.id, "timestamp": packet.timestamp}
        )

        self.logger.info(
            f"Arbitrage opportunity {opportunity.id}: {observation.pair} buy {buy_dex} sell {sell_dex} "
            f"({price_difference_percent:.2f}%), profit {estimated_profit:.4f}, confidence {confidence:.2f}"
        )
        return opportunity

    @staticmethod
    def price_difference_percent(price_a: float, price_b: float) -> float:
        return abs(price_a - price_b) / min(price_a, price_b) * 100

    def calculate_optimal_trade_size(self, buy_price: float, sell_price: float, config: ArbitrageConfig) -> float:
        """Trade size grows with the price gap; the size factor is capped."""
        gap_percent = (sell_price - buy_price) / buy_price * 100
        size_factor = min(gap_percent / 1.0, config.max_size_factor)
        return config.base_trade_size * (1 + size_factor)

    def estimate_gas_cost(self, buy_dex: str, sell_dex: str, config: ArbitrageConfig) -> float:
        """Base cost, plus the costliest venue surcharge, plus bridging between venues."""
        surcharge = max(
            self.venues[buy_dex].gas_surcharge if buy_dex in self.venues else 0.0,
            self.venues[sell_dex].gas_surcharge if sell_dex in self.venues else 0.0
        )
        bridging = config.cross_venue_gas_cost if buy_dex != sell_dex else 0.0
        return config.base_gas_cost + surcharge + bridging

    @staticmethod
    def calculate_confidence(price_difference_percent: float, estimated_profit: float, min_profit_estimate: float) -> float:
        """70% from the price gap (saturating at 5%), 30% from profit (saturating at 10x minimum)."""
        price_difference_score = min(price_difference_percent / 5, 1.0)
        if min_profit_estimate > 0:
            profit_score = min(estimated_profit / (min_profit_estimate * 10), 1.0)
        else:
            profit_score = 1.0 if estimated_profit > 0 else 0.0
        confidence = price_difference_score * 0.7 + profit_score * 0.3
        return max(0.0, min(confidence, 1.0))

    def get_stats(self) -> Dict[str, Any]:
        stats = super().get_stats()
        stats["dex_coverage"] = len(self.config.dexes)
        stats["cache_size"] = self.price_cache.size()
        return stats
