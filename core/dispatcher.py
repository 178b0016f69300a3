"""
Log dispatcher: one log subscription per watched pool, one task per log.

Registers an (address, [topic0]) filter for every pool on a shared
LogStream, maps each returned subscription id back to its pool and hands
every delivered log to the LogHandler in its own asyncio task. Handler
tasks may overlap; they only share read-only configuration.

A failing log never stops the stream, and a rejected subscription never
blocks the other pools. When the connection drops the dispatcher logs it
and returns; there is no reconnection.

Usage:
    dispatcher = LogDispatcher(context, LogStream(url), LogHandler(context, sink))
    task = asyncio.create_task(dispatcher.run(), name="dispatcher")
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from web3 import Web3

from bot_logging.logger_manager import setup_module_logger
from data.log_stream import LogStreamError, SubscriptionError
from shared.types import PoolConfig, RawLog, WatchContext

if TYPE_CHECKING:
    from core.log_handler import LogHandler
    from data.log_stream import LogStream


class LogDispatcher:
    """Owns the per-pool subscriptions and fans logs out to handler tasks."""

    def __init__(self, context: WatchContext, stream: LogStream, handler: LogHandler) -> None:
        self._pools = context.pools
        self._descriptor = context.descriptor
        self._stream = stream
        self._handler = handler

        # subscription id -> pool
        self._subscriptions: dict[str, PoolConfig] = {}
        self._tasks: set[asyncio.Task[None]] = set()

        self._logger = setup_module_logger(
            "dispatcher", "dispatcher.log", module_folder="Dispatcher_Logs"
        )

    @property
    def subscriptions(self) -> dict[str, PoolConfig]:
        return dict(self._subscriptions)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Subscribe every pool and dispatch logs until the stream ends."""
        if not self._pools:
            self._logger.warning("No pools configured in POOLS env. Nothing to subscribe to.")
            return

        try:
            async with self._stream:
                accepted = await self.subscribe_all()
                if accepted == 0:
                    self._logger.error("No subscription was accepted; not listening for logs")
                    return
                async for subscription_id, log in self._stream.notifications():
                    self.dispatch(subscription_id, log)
        except LogStreamError as exc:
            self._logger.error("Log stream failed: %s", exc)

        self._logger.warning("Log stream ended; no further alerts until restart")

    def stop(self) -> None:
        """Cancel in-flight handler tasks without awaiting them."""
        for task in list(self._tasks):
            task.cancel()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def build_filter(self, pool: PoolConfig) -> dict[str, Any]:
        """eth_subscribe logs filter for one pool."""
        try:
            address = Web3.to_checksum_address(pool.address)
        except ValueError:
            address = pool.address
        log_filter: dict[str, Any] = {"address": address}
        if self._descriptor is not None:
            log_filter["topics"] = [self._descriptor.topic_id]
        return log_filter

    async def subscribe_all(self) -> int:
        """Register one filter per pool. Returns the number accepted."""
        for pool in self._pools:
            log_filter = self.build_filter(pool)
            self._logger.info(
                "Subscribing to pool: name=%s address=%s topics=%s",
                pool.name,
                pool.address,
                log_filter.get("topics"),
            )
            try:
                subscription_id = await self._stream.subscribe(log_filter)
            except SubscriptionError as exc:
                self._logger.error(
                    'Subscription for pool "%s" failed: %s', pool.name, exc, extra={"pool_name": pool.name}
                )
                continue
            self._subscriptions[subscription_id] = pool
            self._logger.info(
                'Subscribed pool "%s" (subscription %s)',
                pool.name,
                subscription_id,
                extra={"subscription_id": subscription_id},
            )
        return len(self._subscriptions)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, subscription_id: str, log: RawLog) -> asyncio.Task[None] | None:
        """Start a handler task for a log; unknown subscriptions are dropped."""
        pool = self._subscriptions.get(subscription_id)
        if pool is None:
            self._logger.debug("Dropping log for unknown subscription %s", subscription_id)
            return None

        task = asyncio.create_task(
            self._handle_safely(log, pool),
            name=f"alert:{pool.name}:{log.transaction_hash[:12]}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _handle_safely(self, log: RawLog, pool: PoolConfig) -> None:
        try:
            await self._handler.handle(log, pool)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.error(
                'Error handling log for pool "%s" tx %s: %s',
                pool.name,
                log.transaction_hash,
                exc,
                exc_info=True,
            )
