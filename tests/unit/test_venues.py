"""
Unit tests for the venue registry helpers.
"""
from periscope.mev_detection.venues import (
    DEFAULT_VENUES, get_supported_tokens, get_supported_venues, get_swap_op_codes,
    get_token_config, get_token_decimals, is_token_supported
)


class TestVenueRegistry:
    """Test registry lookups."""

    def test_supported_venues(self):
        assert get_supported_venues() == ["DeDust", "Ston.fi", "Megaton"]

    def test_supported_tokens(self):
        assert get_supported_tokens("Ston.fi") == ["USDT", "USDC", "ETH"]
        assert get_supported_tokens("Unknown") == []

    def test_token_config_lookup(self):
        assert get_token_config("Ston.fi", "USDC").pool_id == "0002"
        assert get_token_config("Megaton", "ETH").token_id == "0103"
        assert get_token_config("DeDust", "DOGE") is None

    def test_token_support_and_decimals(self):
        assert is_token_supported("DeDust", "USDT")
        assert not is_token_supported("DeDust", "DOGE")
        assert get_token_decimals("DeDust", "USDT") == 6
        assert get_token_decimals("DeDust", "ETH") == 18
        assert get_token_decimals("DeDust", "DOGE") == 18

    def test_swap_op_codes_are_distinct(self):
        assert get_swap_op_codes("DeDust") == ["01e18801"]
        assert get_swap_op_codes("Ston.fi") == []

    def test_pair_naming_and_surcharge(self):
        assert DEFAULT_VENUES["DeDust"].pair_for("USDT") == "TON/USDT"
        assert DEFAULT_VENUES["Megaton"].gas_surcharge == 0.002
        assert DEFAULT_VENUES["DeDust"].gas_surcharge == 0.0
