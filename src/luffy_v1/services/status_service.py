from __future__ import annotations

from aiohttp import web

from luffy_v1.config import Settings
from luffy_v1.services.logger_service import LoggerService


STATUS_HTML = "<h2>Chat Bot Running</h2>"


class StatusService:
    """Liveness page on a fixed port. One route, nothing else."""

    def __init__(self, settings: Settings, logger: LoggerService) -> None:
        self.settings = settings
        self.logger = logger
        self._runner: web.AppRunner | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/", self.index)
        return app

    async def index(self, request: web.Request) -> web.Response:
        return web.Response(text=STATUS_HTML, content_type="text/html")

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        if self._runner is not None:
            return
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, self.settings.status_host, self.settings.status_port)
        try:
            await site.start()
        except OSError as exc:
            await runner.cleanup()
            self.logger.log("status.start_failed", port=self.settings.status_port, error=str(exc)[:300])
            return
        self._runner = runner
        self.logger.log("status.started", url=f"http://localhost:{self.settings.status_port}")

    async def stop(self) -> None:
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
