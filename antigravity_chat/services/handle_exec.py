"""Exec Handler: run a shell command with timeout, cancellation and bounded output.

Invariants:
    - Runs `bash -c <command>` with TERM=dumb, in `workdir` when given
    - Timeout default 30s, clamped to [1, 300]
    - On timeout or external cancellation the whole process group is killed, once
    - stdout and stderr captured separately, each middle-truncated to MAX_OUTPUT_CHARS
    - Result always ends with `Exit code: N | Tms`; is_error when exit code != 0
    - Never raises: spawn failures become error results

Design Decisions:
    - start_new_session=True so killpg reaches children that inherited the pipes;
      killing only bash would leave communicate() waiting on them
"""

import asyncio
import logging
import os
import signal
import time

from antigravity_chat.core.conversation import ToolResult

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
MAX_TIMEOUT_SECONDS = 300
MAX_OUTPUT_CHARS = 50_000


def truncate_middle(text: str, max_chars: int = MAX_OUTPUT_CHARS) -> str:
    """Keep head and tail, replace the middle with an omitted-count marker."""
    if len(text) <= max_chars:
        return text
    half = max(max_chars // 2 - 20, 1)
    omitted = len(text) - 2 * half
    return f"{text[:half]}\n\n... ({omitted} chars truncated) ...\n\n{text[-half:]}"


def resolve_timeout(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_TIMEOUT_SECONDS
    return min(max(float(value), 1.0), MAX_TIMEOUT_SECONDS)


class _ProcessKiller:
    """Kills the process group at most once."""

    def __init__(self, proc: asyncio.subprocess.Process):
        self.proc = proc
        self.killed = False

    def kill(self) -> None:
        if self.killed or self.proc.returncode is not None:
            return
        self.killed = True
        try:
            os.killpg(self.proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass


class ExecHandlers:
    """Shell execution tool."""

    def __init__(self, default_workdir: str | None = None):
        self.default_workdir = default_workdir

    async def exec(
        self, input_data: dict, cancel_event: asyncio.Event | None = None,
    ) -> ToolResult:
        command = str(input_data.get("command") or "")
        if not command.strip():
            return ToolResult("Error: empty command.", is_error=True)

        workdir = str(input_data["workdir"]) if input_data.get("workdir") else self.default_workdir
        timeout = resolve_timeout(input_data.get("timeout"))
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                "bash", "-c", command,
                cwd=workdir,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, "TERM": "dumb"},
                start_new_session=True,
            )
        except OSError as e:
            return ToolResult(f"Error executing command: {e}", is_error=True)

        stdout, stderr, kill_note = await self._communicate(proc, timeout, cancel_event)
        took_ms = int((time.monotonic() - start) * 1000)
        exit_code = proc.returncode if proc.returncode is not None else -1

        parts = []
        out = stdout.decode("utf-8", errors="replace").strip()
        err = stderr.decode("utf-8", errors="replace").strip()
        if out:
            parts.append(truncate_middle(out))
        if err:
            parts.append(f"STDERR:\n{truncate_middle(err)}")
        if kill_note:
            parts.append(f"({kill_note})")
        parts.append(f"Exit code: {exit_code} | {took_ms}ms")

        logger.info(
            "exec finished with %d in %dms", exit_code, took_ms,
            extra={"tool_name": "exec"},
        )
        return ToolResult("\n".join(parts), is_error=exit_code != 0)

    async def _communicate(self, proc, timeout: float, cancel_event):
        """Wait for output; kill on timeout or cancellation. Returns (out, err, note)."""
        killer = _ProcessKiller(proc)
        output = asyncio.ensure_future(proc.communicate())
        waiters = {output}
        cancelled = None
        if cancel_event is not None:
            cancelled = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancelled)

        note = None
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED,
            )
            if output not in done:
                if cancelled is not None and cancelled in done:
                    note = "killed: cancelled"
                else:
                    note = f"killed: timeout after {round(timeout)}s"
                killer.kill()
            stdout, stderr = await output
        except asyncio.CancelledError:
            killer.kill()
            raise
        finally:
            if cancelled is not None:
                cancelled.cancel()
        return stdout, stderr, note
