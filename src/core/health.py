"""
Tiny HTTP endpoint so the hosting platform can tell the process is alive.
"""

import logging
from typing import Optional

from aiohttp import web

from utils.constants import HEALTH_RESPONSE

logger = logging.getLogger(__name__)


class HealthServer:
    def __init__(self, port: int, host: str = '0.0.0.0'):
        self.port = port
        self.host = host
        self._runner: Optional[web.AppRunner] = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get('/', self._handle)
        return app

    async def _handle(self, _request: web.Request) -> web.Response:
        return web.Response(text=HEALTH_RESPONSE, content_type='text/plain')

    async def start(self):
        runner = web.AppRunner(self.build_app())
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        await site.start()
        self._runner = runner
        logger.info(f"HTTP server on {self.port}")

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
