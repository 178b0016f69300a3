"""
Telegram Bot API alert sink.

Thin async wrapper around sendMessage. Delivery is best effort: failures
are logged and reported as False, never raised, and never retried.

Usage:
    client = TelegramClient(bot_token, chat_id)
    delivered = await client.send("💰 <b>New deposit</b> ...")
    await client.close()
"""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp

from bot_logging.logger_manager import setup_module_logger
from config.loader import get_config
from shared.constants import DEFAULT_TELEGRAM_API_BASE, DEFAULT_TELEGRAM_TIMEOUT_SECONDS


class TelegramClientError(Exception):
    """Raised when the Bot API answers with ok=false."""


class TelegramClient:
    """
    Async Telegram sender with a lazily created aiohttp session.

    Messages are sent with HTML parse mode and link previews disabled.
    """

    def __init__(self, bot_token: str, chat_id: str) -> None:
        cfg = get_config().get_telegram_config()

        api_base = str(cfg.get("api_base", DEFAULT_TELEGRAM_API_BASE)).rstrip("/")
        self._url = f"{api_base}/bot{bot_token.strip()}/sendMessage"
        self._chat_id = chat_id.strip()
        self._timeout: float = cfg.get("request_timeout_seconds", DEFAULT_TELEGRAM_TIMEOUT_SECONDS)
        self._parse_mode: str = cfg.get("parse_mode", "HTML")
        self._disable_preview: bool = cfg.get("disable_web_page_preview", True)

        self._session: aiohttp.ClientSession | None = None

        self._logger = setup_module_logger(
            "telegram", "telegram.log", module_folder="Telegram_Logs"
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def send(self, text: str) -> bool:
        """Send one message to the configured chat. Returns True on success."""
        try:
            await self._post_message(text)
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, TelegramClientError) as exc:
            self._logger.error("Failed to send message: %s", str(exc) or type(exc).__name__)
            return False
        return True

    async def close(self) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    async def _post_message(self, text: str) -> dict[str, Any]:
        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": self._parse_mode,
            "disable_web_page_preview": self._disable_preview,
        }
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self._timeout)
        async with session.post(self._url, json=payload, timeout=timeout) as resp:
            try:
                data = await resp.json(content_type=None)
            except ValueError:
                # Non-JSON body; let the status code speak
                resp.raise_for_status()
                raise TelegramClientError(f"non-JSON response (HTTP {resp.status})")
        if not isinstance(data, dict) or not data.get("ok"):
            description = data.get("description") if isinstance(data, dict) else data
            raise TelegramClientError(f"HTTP {resp.status}: {description}")
        return data

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Lazy-init aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session
