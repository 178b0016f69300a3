"""
Shared pytest configuration and fixtures for the alert relay tests.

Provides sample pools, a canonical ERC-4626 Deposit log and small fakes
for the alert sink and the log stream.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import encode as abi_encode
from web3 import Web3

from shared.types import PoolConfig, RawLog

# ---------------------------------------------------------------------------
# Sample values
# ---------------------------------------------------------------------------

DEPOSIT_SIGNATURE = "Deposit(address,address,uint256,uint256)"
DEPOSIT_TOPIC = Web3.to_hex(Web3.keccak(text=DEPOSIT_SIGNATURE))
DEPOSIT_SIGNATURE_NAMED = (
    "Deposit(address indexed sender, address indexed owner, uint256 assets, uint256 shares)"
)
DEPOSIT_ABI_JSON = (
    '[{"type":"event","name":"Deposit","anonymous":false,"inputs":['
    '{"name":"sender","type":"address","indexed":true},'
    '{"name":"owner","type":"address","indexed":true},'
    '{"name":"assets","type":"uint256","indexed":false},'
    '{"name":"shares","type":"uint256","indexed":false}]}]'
)

SAMPLE_SENDER = "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"
SAMPLE_OWNER = "0x1234567890abcdef1234567890abcdef12345678"
SAMPLE_TX_HASH = "0x" + "ab" * 32

POOL_USDT = PoolConfig(
    address="0x00000000000000000000000000000000000000aa",
    name="Fund USDT Tranche",
    decimals=6,
)
POOL_USDC = PoolConfig(
    address="0x00000000000000000000000000000000000000bb",
    name="Fund A",
    decimals=6,
)


def address_topic(address: str) -> str:
    """Left-pad a 20-byte address into a 32-byte topic."""
    return "0x" + "00" * 12 + address[2:].lower()


def make_deposit_log(
    assets: int = 1_000_000,
    shares: int = 999_000,
    pool: PoolConfig = POOL_USDT,
    tx_hash: str = SAMPLE_TX_HASH,
) -> RawLog:
    """A Deposit(sender, owner, assets, shares) log with two indexed addresses."""
    data = abi_encode(["uint256", "uint256"], [assets, shares])
    return RawLog(
        address=pool.address,
        topics=(DEPOSIT_TOPIC, address_topic(SAMPLE_SENDER), address_topic(SAMPLE_OWNER)),
        data="0x" + data.hex(),
        transaction_hash=tx_hash,
        block_number=19_000_000,
        log_index=3,
    )


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeLogStream:
    """
    In-memory stand-in for data.log_stream.LogStream.

    subscribe() hands out "0xsub1", "0xsub2", ... unless the pool address is
    listed in `reject`; notifications() replays `queued` then ends.
    """

    def __init__(self, reject: set[str] | None = None) -> None:
        self.filters: list[dict] = []
        self.queued: list[tuple[str, RawLog]] = []
        self.reject = reject or set()
        self.entered = False
        self.closed = False

    async def __aenter__(self) -> FakeLogStream:
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.closed = True

    async def subscribe(self, log_filter: dict) -> str:
        from data.log_stream import SubscriptionError

        self.filters.append(log_filter)
        if log_filter["address"].lower() in self.reject:
            raise SubscriptionError("subscription error: {'code': -32602}")
        return f"0xsub{len(self.filters)}"

    async def notifications(self) -> AsyncIterator[tuple[str, RawLog]]:
        for item in self.queued:
            yield item


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_logger():
    return MagicMock()


@pytest.fixture
def sink():
    """Alert sink that records every message and reports success."""
    mock = MagicMock()
    mock.send = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def fake_stream():
    return FakeLogStream()


@pytest.fixture
def pool_usdt() -> PoolConfig:
    return POOL_USDT


@pytest.fixture
def pool_usdc() -> PoolConfig:
    return POOL_USDC


@pytest.fixture
def deposit_log_factory():
    """Factory fixture: deposit_log_factory(assets=..., pool=...) -> RawLog."""
    return make_deposit_log


@pytest.fixture
def deposit_topic() -> str:
    return DEPOSIT_TOPIC


@pytest.fixture
def deposit_abi_json() -> str:
    return DEPOSIT_ABI_JSON


@pytest.fixture
def deposit_signature() -> str:
    return DEPOSIT_SIGNATURE_NAMED


@pytest.fixture
def fake_stream_factory():
    """Factory fixture: fake_stream_factory(reject={address, ...}) -> FakeLogStream."""
    return FakeLogStream
