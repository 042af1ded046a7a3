"""Login Command: runs the browser OAuth flow and reports each stage.

Invariants:
    - Returns a process exit code; AuthError never escapes
    - The authorization URL is always printed, so a headless user can open it by hand;
      that includes a listener that could not bind its port
"""

import logging

import httpx
from rich.console import Console

from antigravity_chat.config import Settings
from antigravity_chat.core.domain_types import LoginStage
from antigravity_chat.core.errors import AuthError
from antigravity_chat.infrastructure.credential_store import CredentialStore
from antigravity_chat.infrastructure.oauth_client import GoogleOAuthClient
from antigravity_chat.services.login_flow import LoginFlow

logger = logging.getLogger(__name__)

_STAGE_MESSAGES = {
    LoginStage.LISTENER_STARTED: "Waiting for the OAuth redirect on localhost.",
    LoginStage.AWAITING_CALLBACK: "Complete the sign-in in your browser.",
    LoginStage.EXCHANGING: "Exchanging authorization code...",
    LoginStage.ENRICHING: "Fetching account details...",
    LoginStage.TIMED_OUT: "Timed out waiting for the browser redirect.",
    LoginStage.STATE_MISMATCH: "The redirect did not match this login attempt.",
    LoginStage.NO_CODE: "The redirect carried no authorization code.",
}


async def run_login(settings: Settings, console: Console) -> int:
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http:
        flow = LoginFlow(
            GoogleOAuthClient(http),
            CredentialStore(settings.credentials_path),
            timeout_seconds=settings.oauth_callback_timeout_seconds,
        )

        def on_stage(stage: LoginStage) -> None:
            if stage is LoginStage.BROWSER_OPENED:
                verb = "Opened" if flow.browser_opened else "Could not open"
                console.print(f"{verb} the browser. If needed, visit:")
                console.print(flow.auth_url, markup=False, highlight=False, soft_wrap=True)
                return
            message = _STAGE_MESSAGES.get(stage)
            if message:
                console.print(f"[dim]{message}[/dim]")

        flow.on_stage = on_stage
        try:
            tokens = await flow.run()
        except AuthError as e:
            logger.warning("Login failed", extra={"error_code": e.code})
            console.print(f"[bold red]Login failed:[/bold red] {e.display_message()}")
            if e.code == "LISTENER_UNAVAILABLE" and flow.auth_url:
                console.print("Open this URL manually in your browser:")
                console.print(flow.auth_url, markup=False, highlight=False, soft_wrap=True)
            return 1

    console.print("[green]Logged in.[/green]")
    console.print(f"Account: {tokens.email or '(unknown)'}", markup=False)
    console.print(f"Project: {tokens.project_id}", markup=False)
    console.print(f"Credentials saved to {settings.credentials_path}", markup=False)
    return 0
