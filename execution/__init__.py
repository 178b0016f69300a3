from execution.telegram_client import TelegramClient, TelegramClientError

__all__ = [
    "TelegramClient",
    "TelegramClientError",
]
