# -- coding: utf-8 --
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from aiohttp import web

from core.lifecycle import LoopRunner

if TYPE_CHECKING:  # pragma: no cover - type hints only
    from core.status import StatusTracker


class AppContextLike(Protocol):
    @property
    def trigger_gateway(self) -> Any: ...

    @property
    def tracker(self) -> "StatusTracker": ...

    @property
    def mqtt_io(self) -> Any: ...


L = logging.getLogger("camera_ai_bridge.output.hmi")


class _ApiServer:
    def __init__(
        self,
        host: str,
        port: int,
        context: AppContextLike,
        *,
        loop_runner: LoopRunner,
    ):
        self.host = host
        self.port = port
        self.context = context
        self.app = web.Application()
        self._setup_routes()
        self._runner = None
        self._site = None
        self._started = False
        self._loop_runner = loop_runner

    def _setup_routes(self):
        app = self.app
        ctx = self.context

        async def status(_request):
            tracker = ctx.tracker
            stats = tracker.all_stats()
            cameras = {
                name: {
                    "status": label,
                    "stats": stats[name].to_wire() if name in stats else {},
                }
                for name, label in tracker.all_statuses().items()
            }
            mqtt_io = ctx.mqtt_io
            payload = {
                "cameras": cameras,
                "mqtt_connected": bool(mqtt_io.is_connected) if mqtt_io else False,
            }
            return web.json_response(payload)

        async def trigger(request):
            camera = request.match_info["camera"]
            ok = ctx.trigger_gateway.report_raw_trigger(camera, "WEB")
            return web.json_response({"accepted": ok})

        app.router.add_get("/status", status)
        app.router.add_post("/trigger/{camera}", trigger)

    def start(self):
        if self._started:
            return
        try:
            self._loop_runner.run_async(self._serve(), timeout=1.0)
        except Exception:
            self.stop()
            raise
        self._started = True

    async def _serve(self):
        self._runner = web.AppRunner(self.app, access_log=None)
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()
        L.info("Status API running @ http://%s:%d", self.host, self.port)

    def stop(self):
        async def _cleanup():
            if self._runner:
                await self._runner.cleanup()
            self._runner = None
            self._site = None

        try:
            self._loop_runner.run_async(_cleanup(), timeout=0.5)
        except Exception:
            L.exception("Status API cleanup failed")
        self._started = False
        L.info("Status API stopped")

    def raise_if_failed(self):
        if not self._started:
            return
        if self._runner is None or self._site is None:
            raise RuntimeError("Status API stopped unexpectedly")


class HmiOutput:
    def __init__(
        self,
        host: str,
        port: int,
        context: AppContextLike,
        *,
        loop_runner: LoopRunner,
    ):
        self.server = _ApiServer(host, port, context, loop_runner=loop_runner)

    def start(self):
        self.server.start()

    def stop(self):
        self.server.stop()

    def raise_if_failed(self):
        self.server.raise_if_failed()


__all__ = ["HmiOutput"]
