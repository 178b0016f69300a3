"""
Liveness endpoint for container platforms.

GET /health answers "ok"; any other request answers "service running".
Stays up even after the log stream has ended.
"""

from __future__ import annotations

from aiohttp import web

from bot_logging.logger_manager import setup_module_logger
from shared.constants import DEFAULT_HTTP_PORT


async def _health_handler(request: web.Request) -> web.Response:
    return web.Response(text="ok")


async def _fallback_handler(request: web.Request) -> web.Response:
    return web.Response(text="service running")


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/health", _health_handler)
    app.router.add_route("*", "/{tail:.*}", _fallback_handler)
    return app


class HealthServer:
    """aiohttp AppRunner wrapper bound to 0.0.0.0:port."""

    def __init__(self, port: int = DEFAULT_HTTP_PORT, host: str = "0.0.0.0") -> None:
        self._host = host
        self._port = port
        self._runner: web.AppRunner | None = None

        self._logger = setup_module_logger(
            "health_server", "health_server.log", module_folder="Health_Server_Logs"
        )

    @property
    def port(self) -> int:
        return self._port

    async def start(self) -> None:
        runner = web.AppRunner(create_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, host=self._host, port=self._port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        self._logger.info("Health server listening on port %d", self._port)

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            self._logger.info("Health server stopped")
