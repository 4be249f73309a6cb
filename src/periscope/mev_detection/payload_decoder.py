"""
Op-code anchored field decoding for raw transaction payloads.

Venue messages are not decoded structurally. Instead a known op-code (or
token marker) is located in the hex payload and a fixed-width integer is
read at each candidate offset after it, in order, until one decodes to a
plausible magnitude. This is a heuristic and not a protocol guarantee; a
structured message decoder per venue wire format should replace it.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

# Width of the numeric field in hex characters (8 bytes)
FIELD_WIDTH = 16

# Values at or above this are treated as overflow / garbage
MAX_PLAUSIBLE_VALUE = 10 ** 18


@dataclass(frozen=True)
class DecodedField:
    """An integer read from a payload and where it was found."""
    value: int
    offset: int
    hex_value: str


def contains_marker(payload_hex: Optional[str], marker: Optional[str]) -> bool:
    """Case-insensitive substring test for a hex marker."""
    if not payload_hex or not marker:
        return False
    return marker.lower() in payload_hex.lower()


def read_field_after_marker(
    payload_hex: Optional[str],
    marker: str,
    offsets: Sequence[int],
    width: int = FIELD_WIDTH,
    max_value: int = MAX_PLAUSIBLE_VALUE
) -> Optional[DecodedField]:
    """
    Read the first plausible integer following a marker.

    Args:
        payload_hex: Hex payload to scan
        marker: Op-code or token marker anchoring the read
        offsets: Candidate offsets in hex characters from the marker start, tried in order
        width: Field width in hex characters
        max_value: Exclusive upper bound on accepted values

    Returns:
        The first value in (0, max_value), or None when no offset yields one
    """
    if not payload_hex or not marker:
        return None

    payload = payload_hex.lower()
    anchor = payload.find(marker.lower())
    if anchor < 0:
        return None

    for offset in offsets:
        start = anchor + offset
        end = start + width
        if end > len(payload):
            continue

        chunk = payload[start:end]
        try:
            value = int(chunk, 16)
        except ValueError:
            continue

        if 0 < value < max_value:
            return DecodedField(value=value, offset=offset, hex_value=chunk)

    logger.debug(f"No plausible field after marker {marker} at offsets {list(offsets)}")
    return None
