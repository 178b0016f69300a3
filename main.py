"""
Vault Deposit Alert Relay - Main Entrypoint.

Single-process asyncio runner:
    1. LogDispatcher  - one eth_subscribe("logs") filter per watched pool,
                        one handler task per delivered log
    2. HealthServer   - HTTP liveness endpoint, kept up even if the
                        stream ends

All deployment settings come from the environment (.env supported); JSON
files under config/ hold tunables. Missing required settings abort startup.

Usage:
    python main.py
"""

from __future__ import annotations

import asyncio
import signal
import sys

from dotenv import load_dotenv

from bot_logging.logger_manager import create_module_log_directories, setup_module_logger
from config.validate import ConfigValidationError, load_settings, validate_all_configs
from shared.types import Settings, WatchContext

# ---------------------------------------------------------------------------
# Module logger
# ---------------------------------------------------------------------------
_logger = setup_module_logger("main", "main.log", module_folder="Main_Logs")


# ---------------------------------------------------------------------------
# Startup banner
# ---------------------------------------------------------------------------


def _log_banner(settings: Settings, endpoint: str, explorer_base: str) -> None:
    """Log a concise startup summary."""
    _logger.info("=" * 60)
    _logger.info("Vault deposit alert relay starting")
    _logger.info("=" * 60)
    _logger.info("  endpoint        : %s", endpoint)
    _logger.info("  explorer        : %s", explorer_base)
    _logger.info("  pools           : %d", len(settings.pools))
    for pool in settings.pools:
        _logger.info("    - %s %s (decimals=%d)", pool.name, pool.address, pool.decimals)
    _logger.info("  contract (env)  : %s", settings.contract_address or "(not set)")
    _logger.info("  http port       : %d", settings.http_port)
    _logger.info("=" * 60)


# ---------------------------------------------------------------------------
# Task done callback
# ---------------------------------------------------------------------------


def _task_done_callback(task: asyncio.Task[None]) -> None:
    """Log how the dispatcher task ended. The process keeps running."""
    try:
        exc = task.exception()
    except asyncio.CancelledError:
        _logger.info("Task %s cancelled", task.get_name())
        return

    if exc is not None:
        _logger.critical(
            "Task %s failed with unhandled exception: %s",
            task.get_name(),
            exc,
            exc_info=exc,
        )
    else:
        _logger.warning("Task %s finished; health endpoint stays up", task.get_name())


# ---------------------------------------------------------------------------
# Main async entry
# ---------------------------------------------------------------------------


async def _run() -> None:
    """Wire all components and run until SIGINT/SIGTERM."""
    # ------------------------------------------------------------------
    # 1. Load environment and validate configuration
    # ------------------------------------------------------------------
    load_dotenv()

    try:
        validate_all_configs()
        settings = load_settings()
    except ConfigValidationError as exc:
        _logger.critical("Config validation failed:\n%s", exc)
        sys.exit(1)

    create_module_log_directories()

    # ------------------------------------------------------------------
    # 2. Resolve the event shape and shared read-only context
    # ------------------------------------------------------------------
    from api.health_server import HealthServer
    from core.dispatcher import LogDispatcher
    from core.event_descriptor import resolve_event_descriptor
    from core.log_handler import LogHandler, get_explorer_base
    from data.log_stream import LogStream, redact_url
    from execution.telegram_client import TelegramClient

    descriptor = resolve_event_descriptor(settings.event_abi_json, settings.event_signature)
    context = WatchContext(
        pools=settings.pools,
        descriptor=descriptor,
        explorer_base=get_explorer_base(settings.websocket_url),
    )

    _log_banner(settings, redact_url(settings.websocket_url), context.explorer_base)

    # ------------------------------------------------------------------
    # 3. Initialize components (dependency order)
    # ------------------------------------------------------------------
    telegram = TelegramClient(settings.telegram_bot_token, settings.telegram_chat_id)
    handler = LogHandler(context, telegram)
    stream = LogStream(settings.websocket_url)
    dispatcher = LogDispatcher(context, stream, handler)
    health_server = HealthServer(settings.http_port)

    # ------------------------------------------------------------------
    # 4. Signal handling for graceful shutdown
    # ------------------------------------------------------------------
    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _handle_signal(sig: signal.Signals) -> None:
        _logger.info("Received %s, shutting down", sig.name)
        shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _handle_signal, sig)

    # ------------------------------------------------------------------
    # 5. Launch
    # ------------------------------------------------------------------
    try:
        await health_server.start()
    except OSError as exc:
        _logger.critical("Cannot bind health server on port %d: %s", settings.http_port, exc)
        await telegram.close()
        sys.exit(1)

    task_dispatcher = asyncio.create_task(dispatcher.run(), name="dispatcher")
    task_dispatcher.add_done_callback(_task_done_callback)

    _logger.info("All tasks launched: dispatcher, health_server")

    # ------------------------------------------------------------------
    # 6. Wait for shutdown signal, then cancel
    # ------------------------------------------------------------------
    try:
        await shutdown_event.wait()
    finally:
        _logger.info("Shutting down, cancelling tasks")

        # In-flight alerts are dropped, not awaited
        dispatcher.stop()

        if not task_dispatcher.done():
            task_dispatcher.cancel()
        results = await asyncio.gather(task_dispatcher, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                _logger.error("Task %s exited with error: %s", task_dispatcher.get_name(), result)

        # Cleanup resources
        await telegram.close()
        await health_server.stop()
        _logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    """Synchronous entry point."""
    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        _logger.info("Interrupted by user")


if __name__ == "__main__":
    main()
