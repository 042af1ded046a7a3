"""OAuth Callback Listener: one-shot loopback HTTP server capturing the redirect.

Invariants:
    - Bound to a fixed loopback host/port; the socket is created here so a busy port
      surfaces as OSError before the browser is opened
    - The first request to the callback path resolves the listener with its full URL
    - Other paths answer 404 with a plain-text body
    - wait_for_callback raises CallbackTimeoutError after `timeout` seconds
    - The listening socket is released exactly once on every path (close() is idempotent)

Design Decisions:
    - FastAPI app served by a programmatic uvicorn.Server: same stack as any other
      HTTP surface, and the app is testable in-process via httpx.ASGITransport
    - lifespan="off", access_log=False: the listener lives for a few seconds
"""

import asyncio
import logging
import socket
from collections.abc import Callable

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from antigravity_chat.constants import CALLBACK_PATH, REDIRECT_HOST, REDIRECT_PORT
from antigravity_chat.core.errors import CallbackTimeoutError

logger = logging.getLogger(__name__)

CALLBACK_HTML = """<!DOCTYPE html>
<html lang="en">
  <head><meta charset="utf-8" /><title>Antigravity OAuth</title></head>
  <body>
    <main>
      <h1>Authentication complete</h1>
      <p>You can close this tab and return to the terminal.</p>
    </main>
  </body>
</html>"""


def build_callback_app(
    callback_path: str, on_callback: Callable[[str], None],
) -> FastAPI:
    """ASGI app serving the confirmation page on `callback_path`."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get(callback_path, response_class=HTMLResponse)
    async def oauth_callback(request: Request):
        on_callback(str(request.url))
        return HTMLResponse(CALLBACK_HTML)

    @app.exception_handler(StarletteHTTPException)
    async def plain_http_error(request: Request, exc: StarletteHTTPException):
        text = "Not found" if exc.status_code == 404 else str(exc.detail)
        return PlainTextResponse(text, status_code=exc.status_code)

    return app


class CallbackListener:
    """Local redirect listener. Use start() then wait_for_callback()."""

    def __init__(
        self,
        host: str = REDIRECT_HOST,
        port: int = REDIRECT_PORT,
        callback_path: str = CALLBACK_PATH,
    ):
        self.host = host
        self.callback_path = callback_path
        self._requested_port = port
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._task: asyncio.Task | None = None
        self._future: asyncio.Future | None = None
        self._closed = False

    @property
    def port(self) -> int:
        if self._socket is None:
            return self._requested_port
        return self._socket.getsockname()[1]

    async def start(self) -> None:
        """Bind and begin serving. Raises OSError if the port is taken."""
        self._future = asyncio.get_running_loop().create_future()
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self._requested_port))
        except OSError:
            sock.close()
            raise
        self._socket = sock

        config = uvicorn.Config(
            build_callback_app(self.callback_path, self._resolve),
            log_level="warning", lifespan="off", access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve(sockets=[sock]))
        while not self._server.started:
            if self._task.done():
                await self.close()
                raise OSError(f"Callback listener failed to start on port {self.port}")
            await asyncio.sleep(0.01)
        logger.info("OAuth callback listener ready on %s:%d", self.host, self.port)

    def _resolve(self, url: str) -> None:
        if self._future is not None and not self._future.done():
            self._future.set_result(url)

    async def wait_for_callback(self, timeout: float) -> str:
        """Return the full redirect URL; always closes the listener."""
        if self._future is None:
            raise RuntimeError("CallbackListener.start() was not called")
        try:
            return await asyncio.wait_for(asyncio.shield(self._future), timeout)
        except asyncio.TimeoutError:
            raise CallbackTimeoutError(timeout) from None
        finally:
            await self.close()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._server is not None:
            self._server.should_exit = True
        if self._task is not None:
            await self._task
        if self._socket is not None:
            self._socket.close()
        logger.debug("OAuth callback listener closed")

    async def __aenter__(self) -> "CallbackListener":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()
