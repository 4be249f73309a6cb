"""
Mempool packet model and transaction extraction.

The upstream feed schema is not strictly versioned, so transactions are
pulled out of a packet by an ordered list of shape matchers. The first
matcher that recognises the payload wins; an unrecognised payload yields
no transactions rather than an error.
"""
import json
import logging
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

Transaction = Any


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class MempoolPacket:
    """One unit of pending-transaction data delivered by the feed."""
    id: str
    timestamp: int
    data: Any = None
    transactions: Optional[Tuple[Transaction, ...]] = None

    @classmethod
    def from_raw(cls, data: Any, timestamp: Optional[int] = None) -> "MempoolPacket":
        """Wrap a raw feed payload with a fresh id and ingestion time."""
        return cls(
            id=str(uuid.uuid4()),
            timestamp=timestamp if timestamp is not None else now_ms(),
            data=data
        )

    def with_transactions(self, transactions: Sequence[Transaction]) -> "MempoolPacket":
        """Return a copy of the packet with pre-extracted transactions memoized."""
        return replace(self, transactions=tuple(transactions))

    def summary(self) -> Dict[str, Any]:
        """Small JSON-friendly description of the packet."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "transaction_count": len(self.transactions) if self.transactions is not None else None,
            "data_keys": sorted(self.data.keys()) if isinstance(self.data, Mapping) else None
        }


ShapeMatcher = Callable[[MempoolPacket], Optional[List[Transaction]]]


def _list_field(name: str) -> ShapeMatcher:
    """Build a matcher for a named list inside the packet payload."""
    def matcher(packet: MempoolPacket) -> Optional[List[Transaction]]:
        if isinstance(packet.data, Mapping):
            value = packet.data.get(name)
            if isinstance(value, list):
                return value
        return None
    matcher.__name__ = f"payload_{name}"
    return matcher


def _pre_extracted(packet: MempoolPacket) -> Optional[List[Transaction]]:
    if packet.transactions is not None:
        return list(packet.transactions)
    return None


def _payload_is_list(packet: MempoolPacket) -> Optional[List[Transaction]]:
    if isinstance(packet.data, list):
        return packet.data
    return None


# Order matters: first match wins
SHAPE_MATCHERS: Tuple[ShapeMatcher, ...] = (
    _pre_extracted,
    _list_field("transactions"),
    _list_field("messages"),
    _payload_is_list,
    _list_field("externalMessages"),
)


def extract_transactions(
    packet: MempoolPacket,
    matchers: Sequence[ShapeMatcher] = SHAPE_MATCHERS
) -> List[Transaction]:
    """Extract candidate transactions from a packet, degrading to an empty list."""
    for matcher in matchers:
        try:
            transactions = matcher(packet)
        except Exception as e:
            logger.debug(f"Shape matcher {getattr(matcher, '__name__', matcher)} failed on packet {packet.id}: {e}")
            continue
        if transactions is not None:
            return list(transactions)

    logger.debug(f"No transactions found in packet {packet.id}")
    return []


# Transaction field access

def tx_field(tx: Transaction, *names: str) -> Any:
    """Read the first present field from a mapping- or attribute-style transaction."""
    for name in names:
        if isinstance(tx, Mapping):
            if name in tx and tx[name] is not None:
                return tx[name]
        else:
            value = getattr(tx, name, None)
            if value is not None:
                return value
    return None


def to_hex(value: Any) -> Optional[str]:
    """Render bytes as lowercase hex; pass strings through unchanged."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, str):
        return value
    return None


def tx_hash(tx: Transaction) -> Optional[str]:
    """Hex hash of a transaction, if it carries one."""
    return to_hex(tx_field(tx, "hash"))


def tx_out_message_hex(tx: Transaction) -> Optional[str]:
    """Hex of the first outbound message, when it is binary or hex."""
    out_msgs = tx_field(tx, "outMsgs", "out_msgs")
    if isinstance(out_msgs, (list, tuple)) and out_msgs:
        return to_hex(out_msgs[0])
    return None


def tx_address_hex(tx: Transaction) -> Optional[str]:
    """Hex (or textual) form of the transaction's smart-contract address."""
    return to_hex(tx_field(tx, "stdSmcAddress", "std_smc_address"))


def tx_data_hex(tx: Transaction) -> Optional[str]:
    """Hex (or textual) form of the raw payload field."""
    return to_hex(tx_field(tx, "data"))


def transaction_key(tx: Transaction) -> str:
    """Stable identity of a transaction for de-duplication."""
    tx_hash_hex = tx_hash(tx)
    if tx_hash_hex:
        return tx_hash_hex
    return json.dumps(tx, sort_keys=True, default=_json_default)


def _json_default(value: Any) -> str:
    hex_value = to_hex(value)
    if hex_value is not None:
        return hex_value
    return repr(value)
