"""HTTP front end for replbox.

One route, ``/``, takes a JSON object body:

    POST    {"language": ...}                          create a session
    POST    {"containerId": ..., "language": ..., "code": ...}  run code
    DELETE  {"containerId": ...}                       kill a session
    OPTIONS                                            CORS pre-flight

Usage:
    replbox --host 0.0.0.0 --port 5000
"""

import argparse
import logging
from http import HTTPStatus
from typing import Optional

from aiohttp import web

from replbox.config import Settings
from replbox.dispatcher import Dispatcher
from replbox.runtime import DockerRuntime
from replbox.sandbox_manager import SandboxManager

logger = logging.getLogger(__name__)

MANAGER_KEY = web.AppKey("manager", SandboxManager)


def cors_middleware(allowed_origin: str):
    """Stamp the CORS origin headers on every response."""
    cors_headers = {
        "Access-Control-Allow-Origin": allowed_origin,
        "Vary": "Origin",
    }

    @web.middleware
    async def middleware(request: web.Request, handler):
        try:
            response = await handler(request)
        except web.HTTPException as exc:
            exc.headers.update(cors_headers)
            raise
        response.headers.update(cors_headers)
        return response

    return middleware


class ReplboxAPI:
    def __init__(self, manager: SandboxManager, allowed_origin: str):
        self.manager = manager
        self.dispatcher = Dispatcher(manager)
        self.allowed_origin = allowed_origin

    async def preflight(self, request: web.Request) -> web.Response:
        """CORS pre-flight."""
        return web.Response(
            status=HTTPStatus.NO_CONTENT,
            headers={
                "Access-Control-Allow-Headers": "Content-Type",
                "Access-Control-Allow-Methods": "POST, DELETE",
            },
        )

    async def handle(self, request: web.Request) -> web.Response:
        """Classify the body and run the matching operation."""
        try:
            body = await request.json()
        except ValueError:
            return web.json_response(
                {"error": "Invalid JSON"}, status=HTTPStatus.BAD_REQUEST
            )
        logger.debug(f"{request.method} {body}")

        try:
            reply = await self.dispatcher.dispatch(body, request.method)
        except Exception as e:
            logger.exception(f"Unhandled error for {request.method} request")
            return web.json_response(
                {"error": str(e)}, status=HTTPStatus.INTERNAL_SERVER_ERROR
            )

        if reply.body is None:
            return web.Response(status=reply.status)
        return web.json_response(reply.body, status=reply.status)

    async def _on_startup(self, app: web.Application) -> None:
        await self.manager.start()

    async def _on_cleanup(self, app: web.Application) -> None:
        await self.manager.stop()

    def create_app(self) -> web.Application:
        """Create the aiohttp application."""
        app = web.Application(middlewares=[cors_middleware(self.allowed_origin)])
        app[MANAGER_KEY] = self.manager
        app.router.add_route("OPTIONS", "/", self.preflight)
        app.router.add_post("/", self.handle)
        app.router.add_delete("/", self.handle)
        app.on_startup.append(self._on_startup)
        app.on_cleanup.append(self._on_cleanup)
        return app


def create_app(settings: Optional[Settings] = None, manager: Optional[SandboxManager] = None) -> web.Application:
    """Build the application, with a Docker-backed manager unless one is given."""
    settings = settings or Settings.from_env()
    if manager is None:
        manager = SandboxManager(
            runtime=DockerRuntime(runtime=settings.runtime),
            session_timeout=settings.session_timeout,
            cleanup_interval=settings.cleanup_interval,
            exec_timeout=settings.exec_timeout,
        )
    return ReplboxAPI(manager, settings.allowed_origin).create_app()


def main():
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(description="Sandboxed code execution server")
    parser.add_argument(
        "--host",
        default=settings.host,
        help=f"Address to listen on (default: {settings.host})",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.port,
        help=f"Port to listen on (default: {settings.port})",
    )
    args = parser.parse_args()

    logging.basicConfig(level=settings.log_level)

    app = create_app(settings)
    logger.info(f"replbox listening on {args.host}:{args.port}")
    web.run_app(app, host=args.host, port=args.port, print=None)


if __name__ == "__main__":
    main()
