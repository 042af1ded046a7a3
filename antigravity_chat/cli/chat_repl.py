"""Chat REPL: wires credentials, model choice, tools, and the agent loop to a terminal.

Invariants:
    - Exit code 1 when not logged in or when no model is available
    - Slash commands are handled locally and never reach the model
    - Ctrl-C during a turn cancels that turn only; at the prompt it ends the session
      with exit code 130, and EOF ends it with 0
    - One httpx client is shared by the API client, OAuth refreshes, and web tools

Design Decisions:
    - The prompt is read on the main thread with the default SIGINT handler restored,
      so Ctrl-C raises KeyboardInterrupt out of input() at once. Nothing runs on the
      loop between turns, and no worker thread is left blocked on stdin at exit
    - SIGINT is routed to the turn's cancel event through loop.add_signal_handler
      while a turn is in flight (POSIX only; elsewhere Ctrl-C ends the process)
"""

import asyncio
import logging
import signal

import httpx
from rich.console import Console

from antigravity_chat.cli.chat_render import TurnRenderer
from antigravity_chat.config import Settings
from antigravity_chat.core.errors import AuthError, NotAuthenticatedError, TransportError
from antigravity_chat.core.session_state import ChatSession
from antigravity_chat.infrastructure.code_assist_client import CodeAssistClient
from antigravity_chat.infrastructure.credential_store import CredentialStore
from antigravity_chat.infrastructure.oauth_client import GoogleOAuthClient
from antigravity_chat.schemas.models import ModelDescriptor
from antigravity_chat.services.agent_runner import AgentRunner
from antigravity_chat.services.chat_commands import ChatCommands, session_summary
from antigravity_chat.services.model_directory import ModelDirectory, format_model_line
from antigravity_chat.services.system_prompt import build_system_prompt, detect_environment
from antigravity_chat.services.token_manager import TokenManager
from antigravity_chat.services.tool_dispatch import ToolDispatch
from antigravity_chat.services.tools_registry import (
    get_tool_declarations,
    get_tool_summary_lines,
)

logger = logging.getLogger(__name__)

PROMPT = "[bold cyan]you>[/bold cyan] "


def pick_model(models: list[ModelDescriptor], requested: str | None) -> ModelDescriptor | None:
    """Requested id or 1-based index; the first (best quota) model otherwise."""
    if not requested:
        return models[0]
    if requested.isdigit():
        index = int(requested) - 1
        return models[index] if 0 <= index < len(models) else None
    return next((m for m in models if m.id == requested), None)


async def run_chat(settings: Settings, console: Console, requested_model: str | None = None) -> int:
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as http:
        token_manager = TokenManager(
            CredentialStore(settings.credentials_path), GoogleOAuthClient(http),
        )
        try:
            tokens = await token_manager.get_valid_tokens()
        except AuthError as e:
            console.print(f"[bold red]{e.display_message()}[/bold red]")
            if not isinstance(e, NotAuthenticatedError):
                console.print("Run `antigravity-chat login` to re-authenticate.", markup=False)
            return 1
        console.print(f"Signed in as {tokens.email or '(unknown)'}", markup=False)

        client = CodeAssistClient(
            http,
            base_url=settings.code_assist_base_url,
            max_retries=settings.max_retries,
            base_delay_ms=settings.base_delay_ms,
            max_delay_ms=settings.max_delay_ms,
        )
        try:
            models = await ModelDirectory(client).list_models(tokens)
        except TransportError as e:
            console.print(f"[bold red]Could not list models:[/bold red] {e.display_message()}")
            return 1
        if not models:
            console.print("[bold red]No models available for this account.[/bold red]")
            return 1

        model = pick_model(models, requested_model)
        if model is None:
            console.print(f"Unknown model: {requested_model}", markup=False)
            for i, m in enumerate(models, 1):
                console.print(f"  {i:>2}. {format_model_line(m)}", markup=False)
            return 1

        dispatch = ToolDispatch(http, settings)
        tools = get_tool_declarations(dispatch.search_config.provider)
        tool_lines = get_tool_summary_lines(tools)
        env = detect_environment()

        session = ChatSession(
            model_id=model.id,
            system_prompt=build_system_prompt(model.id, model.label, env, tool_lines),
        )

        def on_model_change(new_model: ModelDescriptor) -> None:
            session.system_prompt = build_system_prompt(
                new_model.id, new_model.label, env, tool_lines,
            )

        commands = ChatCommands(session, models, on_model_change)
        runner = AgentRunner(
            client, dispatch, token_manager,
            tools=tools,
            max_iterations=settings.max_tool_loops,
            max_output_tokens=settings.max_output_tokens,
        )
        console.print(
            f"Model: {model.label} ({model.id}) | web_search: "
            f"{dispatch.search_config.provider.value} | /help for commands",
            markup=False,
        )
        return await _repl(console, session, commands, runner)


def read_prompt(console: Console) -> str:
    """Blocking prompt read; Ctrl-C raises KeyboardInterrupt from here."""
    previous = signal.signal(signal.SIGINT, signal.default_int_handler)
    try:
        return console.input(PROMPT)
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)


async def _repl(
    console: Console, session: ChatSession,
    commands: ChatCommands, runner: AgentRunner,
) -> int:
    while True:
        try:
            text = read_prompt(console)
        except (EOFError, KeyboardInterrupt) as e:
            console.print()
            console.print(session_summary(session), markup=False)
            return 130 if isinstance(e, KeyboardInterrupt) else 0
        text = text.strip()
        if not text:
            continue
        if text.startswith("/"):
            result = commands.handle(text)
            if result.message:
                console.print(result.message, markup=False, highlight=False)
            if result.quit:
                return 0
            continue
        await run_turn(console, session, runner, text)


async def run_turn(
    console: Console, session: ChatSession, runner: AgentRunner, text: str,
) -> None:
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        handler_installed = False
    try:
        with TurnRenderer(console, session.show_thinking) as renderer:
            async for event in runner.run(session, text, cancel_event):
                renderer.handle(event)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)
