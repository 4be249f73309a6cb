"""
Static registry of known decentralised exchanges (venues).

Each venue is identified by its contract address and an operation code,
and carries per-token metadata used to recognise swaps in raw payloads.
"""
from typing import Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# Native unit (TON) has 9 decimals
NATIVE_DECIMALS = 9
NATIVE_SYMBOL = "TON"


class TokenConfig(BaseModel):
    """Per-token metadata for a venue."""

    model_config = ConfigDict(frozen=True)

    address: Optional[str] = Field(None, description="Token address marker in payloads")
    pool_id: Optional[str] = Field(None, description="Pool id marker in payloads")
    token_id: Optional[str] = Field(None, description="Token id marker in payloads")
    decimals: int = Field(18, description="Token decimals", ge=0)
    min_amount: float = Field(0.0, description="Smallest tradable amount", ge=0)
    max_amount: float = Field(float("inf"), description="Largest tradable amount", ge=0)
    swap_op_code: Optional[str] = Field(None, description="Swap op-code in outbound messages")


class VenueConfig(BaseModel):
    """A decentralised exchange contract and its token metadata."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Venue name")
    contract_address: str = Field(..., description="Contract address matched against transactions")
    op_code: str = Field(..., description="Operation code matched against payloads")
    tokens: Dict[str, TokenConfig] = Field(default_factory=dict, description="Supported tokens")
    gas_surcharge: float = Field(0.0, description="Extra gas cost when trading on this venue", ge=0)

    # Hex-character offsets after the swap op-code where a price may sit
    price_offsets: Tuple[int, ...] = Field((24, 32, 40, 48, 56, 64))

    # Hex-character offsets after a token marker in the raw data field
    address_price_offsets: Tuple[int, ...] = Field((80,))
    id_price_offsets: Tuple[int, ...] = Field((24,))

    def pair_for(self, token: str) -> str:
        """Instrument pair name for a token quoted against the native unit."""
        return f"{NATIVE_SYMBOL}/{token}"


DEFAULT_VENUES: Dict[str, VenueConfig] = {
    "DeDust": VenueConfig(
        name="DeDust",
        contract_address="EQBfBWT7X2BHg9tXAxzhz2aKiNTU1tpt5NsiK0uSDW_YAJ67",
        op_code="b5ee9c72",
        tokens={
            "USDT": TokenConfig(
                address="0a519f99bb5b6d3d3c5c8d5e5f5a5b5c5d5e5f5a5b5c5d5e5f5a5b5c5d5e5f",
                decimals=6, min_amount=1, max_amount=1000000, swap_op_code="01e18801"
            ),
            "USDC": TokenConfig(
                address="0b519f99bb5b6d3d3c5c8d5e5f5a5b5c5d5e5f5a5b5c5d5e5f5a5b5c5d5e5f",
                decimals=6, min_amount=1, max_amount=1000000, swap_op_code="01e18801"
            ),
            "ETH": TokenConfig(
                address="0c519f99bb5b6d3d3c5c8d5e5f5a5b5c5d5e5f5a5b5c5d5e5f5a5b5c5d5e5f",
                decimals=18, min_amount=0.0001, max_amount=100, swap_op_code="01e18801"
            ),
        }
    ),
    "Ston.fi": VenueConfig(
        name="Ston.fi",
        contract_address="fdc7cd1d8d0e710105e2b69bbd747eb3748cc4103bc0dd581e91ba4360929b73",
        op_code="b5ee9c72",
        tokens={
            "USDT": TokenConfig(pool_id="0001", decimals=6, min_amount=1, max_amount=1000000),
            "USDC": TokenConfig(pool_id="0002", decimals=6, min_amount=1, max_amount=1000000),
            "ETH": TokenConfig(pool_id="0003", decimals=18, min_amount=0.0001, max_amount=100),
        }
    ),
    "Megaton": VenueConfig(
        name="Megaton",
        contract_address="0bfe2f05a7ccf04aa326cb3ae08c2bb7d9729ddec7fc04a5f9d01007d9c65f9f",
        op_code="b5ee9c72",
        gas_surcharge=0.002,
        tokens={
            "USDT": TokenConfig(token_id="0101", decimals=6, min_amount=1, max_amount=1000000),
            "USDC": TokenConfig(token_id="0102", decimals=6, min_amount=1, max_amount=1000000),
            "ETH": TokenConfig(token_id="0103", decimals=18, min_amount=0.0001, max_amount=100),
        }
    ),
}


# Registry helpers

def get_supported_venues(venues: Mapping[str, VenueConfig] = DEFAULT_VENUES) -> List[str]:
    """Names of all registered venues, in registration order."""
    return list(venues.keys())


def get_supported_tokens(venue: str, venues: Mapping[str, VenueConfig] = DEFAULT_VENUES) -> List[str]:
    """Tokens supported by a venue (empty for unknown venues)."""
    config = venues.get(venue)
    return list(config.tokens.keys()) if config else []


def get_token_config(
    venue: str,
    token: str,
    venues: Mapping[str, VenueConfig] = DEFAULT_VENUES
) -> Optional[TokenConfig]:
    """Token metadata for a venue, if registered."""
    config = venues.get(venue)
    if config is None:
        return None
    return config.tokens.get(token)


def is_token_supported(venue: str, token: str, venues: Mapping[str, VenueConfig] = DEFAULT_VENUES) -> bool:
    """Whether a venue lists a token."""
    return get_token_config(venue, token, venues) is not None


def get_token_decimals(venue: str, token: str, venues: Mapping[str, VenueConfig] = DEFAULT_VENUES) -> int:
    """Token decimals, defaulting to 18 for unknown tokens."""
    token_config = get_token_config(venue, token, venues)
    return token_config.decimals if token_config else 18


def get_swap_op_codes(venue: str, venues: Mapping[str, VenueConfig] = DEFAULT_VENUES) -> List[str]:
    """Distinct swap op-codes declared by a venue's tokens, in token order."""
    config = venues.get(venue)
    if config is None:
        return []
    op_codes: List[str] = []
    for token_config in config.tokens.values():
        if token_config.swap_op_code and token_config.swap_op_code not in op_codes:
            op_codes.append(token_config.swap_op_code)
    return op_codes
