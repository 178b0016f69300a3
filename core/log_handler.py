"""
Log handler: turns one raw deposit log into one Telegram alert.

Decode-or-fallback policy:
    1. With an event descriptor, decode the log and pick the deposited amount
       (field named "assets", else the third declared field if it is an int).
       Scale it by the pool's decimals and render the detailed message.
    2. Without a descriptor, on decode failure, or without a usable amount,
       render the generic "New deposit" message.
    3. Hand the message to the alert sink; delivery failures are logged and
       dropped.

Each call is stateless, so concurrent handler tasks need no locking.
"""

from __future__ import annotations

import html
import json
from collections.abc import Sequence
from typing import Protocol

from bot_logging.logger_manager import setup_module_logger
from core.event_descriptor import EventDecodeError
from shared.constants import (
    AMOUNT_FIELD_INDEX,
    AMOUNT_FIELD_NAME,
    EXPLORER_LINK_LABEL,
    EXPLORER_MAINNET,
    EXPLORER_TESTNETS,
    SYMBOL_DEFAULT,
    SYMBOL_USDT,
)
from shared.serialization_utils import EventValueEncoder
from shared.types import DecodedField, PoolConfig, RawLog, WatchContext


class AlertSink(Protocol):
    async def send(self, text: str) -> bool: ...


# ============================================================================
# PURE HELPERS
# ============================================================================


def get_explorer_base(endpoint_url: str) -> str:
    """Pick the block explorer from the streaming endpoint's host."""
    url = endpoint_url.lower()
    for token, explorer in EXPLORER_TESTNETS.items():
        if token in url:
            return explorer
    return EXPLORER_MAINNET


def format_units(value: int, decimals: int) -> str:
    """
    Render an integer token amount as a decimal string.

    Exact integer arithmetic; trailing zeros are stripped but at least one
    fractional digit is kept: format_units(1_000_000, 6) == "1.0".
    """
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), 10**decimals)
    frac_str = str(frac).rjust(decimals, "0").rstrip("0") if decimals > 0 else ""
    return f"{sign}{whole}.{frac_str or '0'}"


def classify_symbol(pool_name: str) -> str:
    """Display-name heuristic: USDT pools say so in their name, the rest are USDC."""
    return SYMBOL_USDT if SYMBOL_USDT in pool_name.upper() else SYMBOL_DEFAULT


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def extract_amount(fields: Sequence[DecodedField]) -> int | None:
    """
    Locate the deposited amount in decoded fields.

    Name match on "assets" first; otherwise position 2, the `assets` slot of
    ERC-4626 Deposit(sender, owner, assets, shares). Only ints qualify.
    """
    for field in fields:
        if field.name == AMOUNT_FIELD_NAME and _is_int(field.value):
            return field.value
    if len(fields) > AMOUNT_FIELD_INDEX and _is_int(fields[AMOUNT_FIELD_INDEX].value):
        return fields[AMOUNT_FIELD_INDEX].value
    return None


def tx_link(explorer_base: str, tx_hash: str) -> str:
    return f"{explorer_base}/tx/{tx_hash}"


def build_deposit_message(amount: str, symbol: str, pool_name: str, tx_url: str) -> str:
    return "\n".join(
        [
            f"💰 <b>{amount} {symbol}</b> have just been deposited on <b>{html.escape(pool_name)}</b>:",
            f'Check txn <a href="{html.escape(tx_url)}">{EXPLORER_LINK_LABEL}</a>',
        ]
    )


def build_generic_message(pool_name: str, tx_url: str) -> str:
    return "\n".join(
        [
            f"💰 <b>New deposit</b> on <b>{html.escape(pool_name)}</b>:",
            f'Check txn <a href="{html.escape(tx_url)}">{EXPLORER_LINK_LABEL}</a>',
        ]
    )


# ============================================================================
# HANDLER
# ============================================================================


class LogHandler:
    """Builds and delivers the alert for one (log, pool) pair."""

    def __init__(self, context: WatchContext, sink: AlertSink) -> None:
        self._descriptor = context.descriptor
        self._explorer_base = context.explorer_base
        self._sink = sink

        self._logger = setup_module_logger(
            "log_handler", "log_handler.log", module_folder="Log_Handler_Logs"
        )

    def build_message(self, log: RawLog, pool: PoolConfig) -> str:
        """Render the alert text for a log (never raises on bad payloads)."""
        tx_url = tx_link(self._explorer_base, log.transaction_hash)
        context = {"pool_name": pool.name, "pool_address": pool.address, "tx_hash": log.transaction_hash}

        if self._descriptor is not None:
            try:
                fields = self._descriptor.decode(log.topics, log.data)
            except EventDecodeError as exc:
                self._logger.warning(
                    'Failed to decode log with %s for pool "%s". Falling back to raw log: %s',
                    self._descriptor.signature,
                    pool.name,
                    exc,
                    extra=context,
                )
            else:
                self._logger.debug(
                    "Decoded %s: %s",
                    self._descriptor.name,
                    json.dumps({f.name or str(i): f.value for i, f in enumerate(fields)}, cls=EventValueEncoder),
                    extra=context,
                )
                amount = extract_amount(fields)
                if amount is not None:
                    return build_deposit_message(
                        format_units(amount, pool.decimals),
                        classify_symbol(pool.name),
                        pool.name,
                        tx_url,
                    )
                self._logger.warning(
                    'No integer amount field in decoded %s for pool "%s". Falling back to raw log.',
                    self._descriptor.signature,
                    pool.name,
                    extra=context,
                )

        return build_generic_message(pool.name, tx_url)

    async def handle(self, log: RawLog, pool: PoolConfig) -> bool:
        """Build the alert and hand it to the sink. Returns delivery status."""
        message = self.build_message(log, pool)
        try:
            delivered = await self._sink.send(message)
        except Exception as exc:
            self._logger.error(
                'Alert sink raised for pool "%s" tx %s: %s',
                pool.name,
                log.transaction_hash,
                exc,
                exc_info=True,
            )
            return False
        if delivered:
            self._logger.info('Alert sent for pool "%s" tx %s', pool.name, log.transaction_hash)
        else:
            self._logger.warning(
                'Alert dropped for pool "%s" tx %s', pool.name, log.transaction_hash
            )
        return bool(delivered)
