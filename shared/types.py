"""
Shared data types for the vault deposit alert relay.

Centralized dataclasses used across all modules.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from core.event_descriptor import EventDescriptor

# ---------------------------------------------------------------------------
# Configuration Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PoolConfig:
    """A watched vault/pool contract."""

    address: str  # lowercase 0x-hex
    name: str  # display name used in alerts
    decimals: int  # token decimals for amount formatting (6 for USDC/USDT)


@dataclass(frozen=True)
class Settings:
    """Deployment settings resolved from the environment at startup."""

    websocket_url: str
    telegram_bot_token: str
    telegram_chat_id: str  # numeric id or @channel username
    pools: tuple[PoolConfig, ...]
    event_abi_json: str = ""
    event_signature: str = ""
    contract_address: str = ""  # legacy single-contract var, ignored
    http_port: int = 3000


@dataclass(frozen=True)
class WatchContext:
    """Read-only state shared by the dispatcher and the log handler."""

    pools: tuple[PoolConfig, ...]
    descriptor: EventDescriptor | None
    explorer_base: str


# ---------------------------------------------------------------------------
# Event Types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EventField:
    name: str  # may be "" when the signature carries no names
    type: str  # canonical ABI type, e.g. "uint256", "(address,uint256)[]"
    indexed: bool


@dataclass(frozen=True)
class DecodedField:
    name: str
    type: str
    value: Any


def _hex_str(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    value = str(value or "")
    if value and not value.startswith("0x"):
        value = "0x" + value
    return value


def _int_or_none(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    value = str(value)
    return int(value, 16) if value.startswith("0x") else int(value)


@dataclass(frozen=True)
class RawLog:
    """A log entry as delivered by an eth_subscribe("logs") notification."""

    address: str
    topics: tuple[str, ...]
    data: str  # 0x-hex payload
    transaction_hash: str
    block_number: int | None = None
    log_index: int | None = None

    @classmethod
    def from_rpc(cls, log_data: dict[str, Any]) -> RawLog:
        """Normalize a JSON-RPC log object (hex strings or raw bytes)."""
        return cls(
            address=_hex_str(log_data.get("address", "")).lower(),
            topics=tuple(_hex_str(t).lower() for t in log_data.get("topics") or []),
            data=_hex_str(log_data.get("data") or "0x"),
            transaction_hash=_hex_str(log_data.get("transactionHash", "")),
            block_number=_int_or_none(log_data.get("blockNumber")),
            log_index=_int_or_none(log_data.get("logIndex")),
        )
