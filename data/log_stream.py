"""
Log Stream - WebSocket eth_subscribe("logs") transport.

Purpose:
    Hold one WebSocket connection to the node provider (Alchemy or any
    JSON-RPC endpoint with eth_subscribe), multiplex several log filters over
    it and yield (subscription_id, RawLog) pairs as notifications arrive.

Connection keep-alive is the websockets library's ping/pong; there is no
reconnection loop. Connection errors and closures are logged and end the
notification stream.

Usage:
    async with LogStream(url) as stream:
        sub_id = await stream.subscribe({"address": "0x...", "topics": [topic0]})
        async for sub_id, log in stream.notifications():
            ...
"""

from __future__ import annotations

import asyncio
import json
from collections import deque
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import urlsplit

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from shared.constants import DEFAULT_SUBSCRIPTION_TIMEOUT_SECONDS
from shared.types import RawLog


class LogStreamError(Exception):
    """Raised when the WebSocket transport cannot connect or send."""


class SubscriptionError(LogStreamError):
    """Raised when the node rejects or does not answer an eth_subscribe call."""


def redact_url(url: str) -> str:
    """Drop path and query (provider API keys live there) for logging."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.hostname:
        return "<invalid url>"
    return f"{parts.scheme}://{parts.hostname}/..."


class LogStream:
    """Single WebSocket connection carrying any number of log subscriptions."""

    def __init__(self, url: str) -> None:
        self._url = url

        ws_config = get_config().get_websocket_config()
        conn_config = ws_config.get("connection", {})
        self._ping_interval = conn_config.get("ping_interval_seconds", 20)
        self._ping_timeout = conn_config.get("ping_timeout_seconds", 30)
        self._close_timeout = conn_config.get("close_timeout_seconds", 10)
        self._max_size = conn_config.get("max_message_bytes", 10 * 1024 * 1024)
        self._subscription_timeout: float = ws_config.get("timeouts", {}).get(
            "subscription_response_timeout_seconds", DEFAULT_SUBSCRIPTION_TIMEOUT_SECONDS
        )

        self._ws: Any | None = None
        self._request_id = 0
        # Notifications that arrived while waiting for a subscribe response
        self._pending: deque[tuple[str, RawLog]] = deque()

        self._logger = setup_module_logger(
            "log_stream", "log_stream.log", module_folder="Log_Stream_Logs"
        )

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> LogStream:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def connect(self) -> None:
        self._logger.info("[WEBSOCKET] Connecting to %s...", redact_url(self._url))
        try:
            self._ws = await websockets.connect(
                self._url,
                ping_interval=self._ping_interval,
                ping_timeout=self._ping_timeout,
                close_timeout=self._close_timeout,
                max_size=self._max_size,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self._logger.error("[WEBSOCKET] Connection failed: %s", e)
            raise LogStreamError(f"cannot connect to {redact_url(self._url)}: {e}") from e
        self._logger.info("[WEBSOCKET] Connected.")

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(self, log_filter: dict[str, Any]) -> str:
        """
        Send eth_subscribe("logs", log_filter) and wait for the subscription id.

        Raises:
            SubscriptionError: JSON-RPC error, malformed result or timeout.
            LogStreamError: the connection closed while subscribing.
        """
        self._request_id += 1
        request_id = self._request_id
        await self._send(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "method": "eth_subscribe",
                "params": ["logs", log_filter],
            }
        )

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._subscription_timeout
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise SubscriptionError(f"no eth_subscribe response within {self._subscription_timeout}s")
            try:
                message = await asyncio.wait_for(self._recv_json(), timeout=remaining)
            except asyncio.TimeoutError:
                raise SubscriptionError(
                    f"no eth_subscribe response within {self._subscription_timeout}s"
                ) from None
            except ConnectionClosed as e:
                raise LogStreamError(f"connection closed while subscribing: {e}") from e

            if message is None:
                continue
            if message.get("method") == "eth_subscription":
                notification = self._parse_notification(message)
                if notification is not None:
                    self._pending.append(notification)
                continue
            if message.get("id") != request_id:
                continue
            if "error" in message:
                raise SubscriptionError(f"subscription error: {message['error']}")
            subscription_id = message.get("result")
            if not isinstance(subscription_id, str) or not subscription_id:
                raise SubscriptionError(f"unexpected eth_subscribe result: {subscription_id!r}")
            return subscription_id

    async def notifications(self) -> AsyncIterator[tuple[str, RawLog]]:
        """Yield (subscription_id, RawLog) until the connection closes."""
        while self._pending:
            yield self._pending.popleft()

        try:
            while True:
                message = await self._recv_json()
                if message is None:
                    continue
                notification = self._parse_notification(message)
                if notification is not None:
                    yield notification
        except ConnectionClosedOK as e:
            self._logger.info("[WEBSOCKET] Connection closed: %s", e)
        except ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd is not None else None
            self._logger.error("[WEBSOCKET] WebSocket closed with code: %s (%s)", code, e)

    # ------------------------------------------------------------------
    # Wire helpers
    # ------------------------------------------------------------------

    async def _send(self, payload: dict[str, Any]) -> None:
        if self._ws is None:
            raise LogStreamError("not connected")
        try:
            await self._ws.send(json.dumps(payload))
        except ConnectionClosed as e:
            raise LogStreamError(f"connection closed while sending: {e}") from e

    async def _recv_json(self) -> dict[str, Any] | None:
        if self._ws is None:
            raise LogStreamError("not connected")
        raw_message = await self._ws.recv()
        try:
            message = json.loads(raw_message)
        except json.JSONDecodeError as e:
            self._logger.warning("[WEBSOCKET] Invalid JSON message: %s", e)
            return None
        if not isinstance(message, dict):
            return None
        return message

    def _parse_notification(self, message: dict[str, Any]) -> tuple[str, RawLog] | None:
        if message.get("method") != "eth_subscription":
            return None
        params = message.get("params")
        if not isinstance(params, dict):
            self._logger.warning("[WEBSOCKET] Notification params is not an object: %r", params)
            return None
        subscription_id = params.get("subscription")
        log_data = params.get("result")
        if not isinstance(subscription_id, str) or not subscription_id or not isinstance(log_data, dict):
            return None
        try:
            raw_log = RawLog.from_rpc(log_data)
        except (ValueError, TypeError) as e:
            self._logger.warning("[WEBSOCKET] Unparsable log notification: %s", e)
            return None
        self._logger.debug(
            "[WEBSOCKET] Log %s from %s (block %s)",
            raw_log.transaction_hash,
            raw_log.address,
            raw_log.block_number,
        )
        return subscription_id, raw_log
