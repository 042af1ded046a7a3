"""REPL prompt tests: how the session ends while waiting for input.

Tests cover:
    - Ctrl-C at the prompt ends the process promptly with exit code 130
    - EOF at the prompt ends the session with exit code 0 and a summary
"""

import io
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest
from rich.console import Console

from antigravity_chat.cli.chat_repl import _repl
from antigravity_chat.core.session_state import ChatSession
from antigravity_chat.services.chat_commands import ChatCommands

REPO_ROOT = Path(__file__).resolve().parents[2]

# Child process: a REPL whose stdin is a pipe that never delivers a line
_CHILD = """
import asyncio, sys
from rich.console import Console
from antigravity_chat.cli.chat_repl import _repl
from antigravity_chat.core.session_state import ChatSession
from antigravity_chat.services.chat_commands import ChatCommands

session = ChatSession(model_id="gemini-3-pro")
print("ready", flush=True)
code = asyncio.run(_repl(Console(), session, ChatCommands(session, []), None))
sys.exit(code)
"""


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
def test_ctrl_c_at_prompt_exits_130():
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(REPO_ROOT), env.get("PYTHONPATH")]))
    proc = subprocess.Popen(
        [sys.executable, "-c", _CHILD],
        stdin=subprocess.PIPE, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
        cwd=REPO_ROOT, env=env, text=True,
    )
    try:
        assert proc.stdout.readline().strip() == "ready"
        time.sleep(0.5)
        proc.send_signal(signal.SIGINT)
        proc.wait(timeout=10)
    finally:
        if proc.poll() is None:
            proc.kill()
            proc.wait()
        proc.stdin.close()

    output = proc.stdout.read()
    proc.stdout.close()
    proc.stderr.close()
    assert proc.returncode == 130
    assert "Session ended." in output


async def test_eof_at_prompt_exits_0(monkeypatch):
    monkeypatch.setattr("sys.stdin", io.StringIO(""))
    out = io.StringIO()
    session = ChatSession(model_id="gemini-3-pro")

    code = await _repl(
        Console(file=out, force_terminal=False), session, ChatCommands(session, []), None,
    )

    assert code == 0
    assert "Session ended. 0 messages" in out.getvalue()
