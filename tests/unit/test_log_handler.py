"""
Unit tests for core/log_handler.py.

Tests cover amount scaling, symbol classification, explorer selection,
the decode-or-fallback policy and sink failure isolation.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from eth_abi import encode as abi_encode

from core.event_descriptor import parse_event_signature
from core.log_handler import (
    LogHandler,
    build_generic_message,
    classify_symbol,
    extract_amount,
    format_units,
    get_explorer_base,
)
from shared.types import DecodedField, PoolConfig, RawLog, WatchContext

SEPOLIA = "https://sepolia.etherscan.io"


def _make_handler(sink, descriptor=None, pools=(), explorer_base=SEPOLIA):
    """Create a LogHandler with a patched logger. Returns (handler, logger)."""
    context = WatchContext(pools=tuple(pools), descriptor=descriptor, explorer_base=explorer_base)
    with patch("core.log_handler.setup_module_logger") as mock_setup:
        logger = MagicMock()
        mock_setup.return_value = logger
        return LogHandler(context, sink), logger


@pytest.fixture
def descriptor(deposit_signature):
    with patch("core.event_descriptor._logger"):
        return parse_event_signature(deposit_signature)


# ===========================================================================
# Pure helpers
# ===========================================================================


class TestFormatUnits:
    @pytest.mark.parametrize(
        "value, decimals, expected",
        [
            (1_000_000, 6, "1.0"),
            (1_500_000, 6, "1.5"),
            (123_456_789, 6, "123.456789"),
            (1, 6, "0.000001"),
            (0, 6, "0.0"),
            (10**18, 18, "1.0"),
            (42, 0, "42.0"),
            (-2_500_000, 6, "-2.5"),
        ],
    )
    def test_scaling(self, value, decimals, expected):
        assert format_units(value, decimals) == expected

    def test_no_float_rounding(self):
        # 2^256 - 1 with 6 decimals stays exact
        value = 2**256 - 1
        whole, frac = format_units(value, 6).split(".")
        assert int(whole + frac) == value


class TestClassifySymbol:
    def test_usdt_in_name(self):
        assert classify_symbol("Fund USDT Tranche") == "USDT"

    def test_case_insensitive(self):
        assert classify_symbol("fund usdt") == "USDT"

    def test_default_is_usdc(self):
        assert classify_symbol("Fund A") == "USDC"


class TestExplorerBase:
    def test_sepolia_host(self):
        assert get_explorer_base("wss://eth-sepolia.g.alchemy.com/v2/key") == SEPOLIA

    def test_holesky_host(self):
        assert get_explorer_base("wss://eth-holesky.g.alchemy.com/v2/key") == "https://holesky.etherscan.io"

    def test_mainnet_default(self):
        assert get_explorer_base("wss://eth-mainnet.g.alchemy.com/v2/key") == "https://etherscan.io"


class TestExtractAmount:
    def test_prefers_named_field(self):
        fields = (
            DecodedField("assets", "uint256", 5),
            DecodedField("a", "uint256", 1),
            DecodedField("b", "uint256", 9),
        )
        assert extract_amount(fields) == 5

    def test_positional_fallback(self):
        fields = (
            DecodedField("", "address", "0x" + "11" * 20),
            DecodedField("", "address", "0x" + "22" * 20),
            DecodedField("", "uint256", 7),
        )
        assert extract_amount(fields) == 7

    def test_non_integer_positional_rejected(self):
        fields = (
            DecodedField("", "uint256", 1),
            DecodedField("", "uint256", 2),
            DecodedField("", "address", "0x" + "33" * 20),
        )
        assert extract_amount(fields) is None

    def test_bool_not_treated_as_amount(self):
        fields = (DecodedField("assets", "bool", True),)
        assert extract_amount(fields) is None

    def test_too_few_fields(self):
        assert extract_amount((DecodedField("x", "uint256", 1),)) is None


# ===========================================================================
# Message building
# ===========================================================================


class TestBuildMessage:
    def test_detailed_message(self, sink, descriptor, pool_usdt, deposit_log_factory):
        handler, _ = _make_handler(sink, descriptor)
        log = deposit_log_factory(assets=1_000_000, pool=pool_usdt)

        message = handler.build_message(log, pool_usdt)

        assert message == (
            "💰 <b>1.0 USDT</b> have just been deposited on <b>Fund USDT Tranche</b>:\n"
            f'Check txn <a href="{SEPOLIA}/tx/{log.transaction_hash}">view on Etherscan</a>'
        )

    def test_usdc_label(self, sink, descriptor, pool_usdc, deposit_log_factory):
        handler, _ = _make_handler(sink, descriptor)
        message = handler.build_message(deposit_log_factory(assets=2_500_000, pool=pool_usdc), pool_usdc)
        assert "<b>2.5 USDC</b>" in message
        assert "<b>Fund A</b>" in message

    def test_no_descriptor_uses_generic(self, sink, pool_usdt, deposit_log_factory):
        handler, logger = _make_handler(sink, descriptor=None)
        log = deposit_log_factory()

        message = handler.build_message(log, pool_usdt)

        assert message == build_generic_message(pool_usdt.name, f"{SEPOLIA}/tx/{log.transaction_hash}")
        assert message.startswith("💰 <b>New deposit</b> on <b>Fund USDT Tranche</b>:")
        logger.warning.assert_not_called()

    def test_decode_failure_falls_back(self, sink, descriptor, pool_usdt):
        handler, logger = _make_handler(sink, descriptor)
        log = RawLog(
            address=pool_usdt.address,
            topics=(descriptor.topic_id,),  # missing indexed topics
            data="0x",
            transaction_hash="0x" + "cd" * 32,
        )

        message = handler.build_message(log, pool_usdt)

        assert "<b>New deposit</b>" in message
        logger.warning.assert_called_once()
        assert logger.warning.call_args.kwargs["extra"]["pool_name"] == pool_usdt.name

    def test_non_numeric_amount_falls_back(self, sink, pool_usdt):
        with patch("core.event_descriptor._logger"):
            descriptor = parse_event_signature("Deposit(uint256 a, uint256 b, address c)")
        handler, logger = _make_handler(sink, descriptor)

        data = abi_encode(["uint256", "uint256", "address"], [1, 2, "0x" + "44" * 20])
        log = RawLog(
            address=pool_usdt.address,
            topics=(descriptor.topic_id,),
            data="0x" + data.hex(),
            transaction_hash="0x" + "ef" * 32,
        )

        message = handler.build_message(log, pool_usdt)

        assert "<b>New deposit</b>" in message
        logger.warning.assert_called_once()

    def test_invalid_utf8_string_falls_back(self, sink, pool_usdt):
        with patch("core.event_descriptor._logger"):
            descriptor = parse_event_signature("Deposit(string note, uint256 assets)")
        handler, logger = _make_handler(sink, descriptor)
        data = abi_encode(["bytes", "uint256"], [b"\xff\xfe", 5])
        log = RawLog(
            address=pool_usdt.address,
            topics=(descriptor.topic_id,),
            data="0x" + data.hex(),
            transaction_hash="0x" + "aa" * 32,
        )

        message = handler.build_message(log, pool_usdt)

        assert message == build_generic_message(pool_usdt.name, f"{SEPOLIA}/tx/{log.transaction_hash}")
        logger.warning.assert_called_once()

    def test_pool_name_is_html_escaped(self, sink):
        handler, _ = _make_handler(sink)
        pool = PoolConfig(address="0x" + "00" * 20, name="<A&B>", decimals=6)
        log = RawLog(address=pool.address, topics=(), data="0x", transaction_hash="0x01")
        assert "<b>&lt;A&amp;B&gt;</b>" in handler.build_message(log, pool)

    def test_idempotent(self, sink, descriptor, pool_usdt, deposit_log_factory):
        handler, _ = _make_handler(sink, descriptor)
        log = deposit_log_factory()
        assert handler.build_message(log, pool_usdt) == handler.build_message(log, pool_usdt)


# ===========================================================================
# Delivery
# ===========================================================================


class TestHandle:
    async def test_sends_message(self, sink, descriptor, pool_usdt, deposit_log_factory):
        handler, logger = _make_handler(sink, descriptor)
        log = deposit_log_factory()

        assert await handler.handle(log, pool_usdt) is True

        sink.send.assert_awaited_once_with(handler.build_message(log, pool_usdt))
        logger.info.assert_called()

    async def test_same_log_twice_sends_identical_alerts(self, sink, descriptor, pool_usdt, deposit_log_factory):
        handler, _ = _make_handler(sink, descriptor)
        log = deposit_log_factory()

        await handler.handle(log, pool_usdt)
        await handler.handle(log, pool_usdt)

        first, second = (c.args[0] for c in sink.send.await_args_list)
        assert first == second

    async def test_sink_exception_is_swallowed(self, descriptor, pool_usdt, deposit_log_factory):
        sink = MagicMock()
        sink.send = AsyncMock(side_effect=RuntimeError("network down"))
        handler, logger = _make_handler(sink, descriptor)

        assert await handler.handle(deposit_log_factory(), pool_usdt) is False
        logger.error.assert_called_once()

    async def test_sink_reports_failure(self, descriptor, pool_usdt, deposit_log_factory):
        sink = MagicMock()
        sink.send = AsyncMock(return_value=False)
        handler, logger = _make_handler(sink, descriptor)

        assert await handler.handle(deposit_log_factory(), pool_usdt) is False
        logger.warning.assert_called_once()
