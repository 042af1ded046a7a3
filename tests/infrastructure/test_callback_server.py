"""OAuth Callback Listener tests.

Tests cover:
    - ASGI app: callback path returns the confirmation page and reports the URL
    - Unknown paths answer plain-text 404
    - Real listener on an ephemeral port resolves with the full redirect URL
    - Timeout raises CallbackTimeoutError and releases the port
    - Busy port surfaces as OSError from start()
"""

import socket

import httpx
import pytest

from antigravity_chat.core.errors import CallbackTimeoutError
from antigravity_chat.infrastructure.callback_server import (
    CALLBACK_HTML,
    CallbackListener,
    build_callback_app,
)


# -- ASGI app ------------------------------------------------------------------

async def test_callback_path_serves_page_and_reports_url():
    seen = []
    app = build_callback_app("/oauth-callback", seen.append)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://localhost:51121",
    ) as client:
        res = await client.get("/oauth-callback", params={"code": "c", "state": "s"})

    assert res.status_code == 200
    assert res.text == CALLBACK_HTML
    assert seen == ["http://localhost:51121/oauth-callback?code=c&state=s"]


async def test_other_paths_return_plain_404():
    seen = []
    app = build_callback_app("/oauth-callback", seen.append)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://localhost",
    ) as client:
        res = await client.get("/favicon.ico")

    assert res.status_code == 404
    assert res.text == "Not found"
    assert seen == []


# -- Real listener -------------------------------------------------------------

async def test_listener_resolves_with_redirect_url():
    async with CallbackListener(port=0) as listener:
        port = listener.port
        async with httpx.AsyncClient() as client:
            res = await client.get(f"http://127.0.0.1:{port}/oauth-callback?code=abc&state=xyz")
        assert res.status_code == 200

        url = await listener.wait_for_callback(timeout=5)
    assert url.endswith("/oauth-callback?code=abc&state=xyz")


async def test_listener_timeout_raises_and_frees_port():
    listener = CallbackListener(port=0)
    await listener.start()
    port = listener.port

    with pytest.raises(CallbackTimeoutError):
        await listener.wait_for_callback(timeout=0.05)

    rebind = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    rebind.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        rebind.bind(("127.0.0.1", port))
    finally:
        rebind.close()


async def test_close_is_idempotent():
    listener = CallbackListener(port=0)
    await listener.start()
    await listener.close()
    await listener.close()


async def test_busy_port_raises_oserror():
    holder = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    holder.bind(("127.0.0.1", 0))
    holder.listen(1)
    try:
        listener = CallbackListener(port=holder.getsockname()[1])
        with pytest.raises(OSError):
            await listener.start()
    finally:
        holder.close()
