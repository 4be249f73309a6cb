"""
Unit tests for op-code anchored payload decoding.
"""
from periscope.mev_detection.payload_decoder import (
    FIELD_WIDTH, MAX_PLAUSIBLE_VALUE, contains_marker, read_field_after_marker
)

SWAP_OP = "01e18801"


def field(value: int) -> str:
    return f"{value:0{FIELD_WIDTH}x}"


class TestContainsMarker:
    """Test marker lookup."""

    def test_case_insensitive(self):
        assert contains_marker("00AB01E1880100", SWAP_OP)

    def test_missing_inputs(self):
        assert not contains_marker(None, SWAP_OP)
        assert not contains_marker("01e18801", None)
        assert not contains_marker("", SWAP_OP)


class TestReadFieldAfterMarker:
    """Test ordered offset trials."""

    def test_first_plausible_offset_wins(self):
        """A zero field at the first offset is skipped in favour of the next."""
        payload = SWAP_OP + field(0) + field(123) + field(456)

        decoded = read_field_after_marker(payload, SWAP_OP, (8, 24, 40))

        assert decoded.value == 123
        assert decoded.offset == 24
        assert decoded.hex_value == field(123)

    def test_offsets_tried_in_given_order(self):
        payload = SWAP_OP + field(111) + field(222)
        assert read_field_after_marker(payload, SWAP_OP, (24, 8)).value == 222
        assert read_field_after_marker(payload, SWAP_OP, (8, 24)).value == 111

    def test_overflowing_value_rejected(self):
        payload = SWAP_OP + field(MAX_PLAUSIBLE_VALUE) + field(7)
        assert read_field_after_marker(payload, SWAP_OP, (8, 24)).value == 7

    def test_offsets_relative_to_marker(self):
        """Offsets count from where the marker starts, not from the payload start."""
        payload = "deadbeef" + SWAP_OP + field(99)
        assert read_field_after_marker(payload, SWAP_OP, (8,)).value == 99

    def test_field_past_end_is_skipped(self):
        payload = SWAP_OP + "00ff"
        assert read_field_after_marker(payload, SWAP_OP, (8, 24)) is None

    def test_non_hex_chunk_is_skipped(self):
        payload = SWAP_OP + "zz" * 8 + field(5)
        assert read_field_after_marker(payload, SWAP_OP, (8, 24)).value == 5

    def test_marker_absent(self):
        assert read_field_after_marker(field(5), SWAP_OP, (8,)) is None
