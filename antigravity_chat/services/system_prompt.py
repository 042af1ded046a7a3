"""System Prompt: per-session instructions naming the model, environment, and tools.

Invariants:
    - detect_environment() never raises; unknown values degrade to placeholders
    - build_system_prompt() is pure: same inputs, same prompt

Design Decisions:
    - XML-ish section tags so the tool list stays separable from the identity lines
"""

import logging
import os
import platform
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnvironmentInfo:
    os_name: str
    desktop: str
    shell: str


def _os_name() -> str:
    try:
        release = platform.freedesktop_os_release()
        return release.get("PRETTY_NAME") or release.get("NAME") or "Unknown Linux"
    except OSError:
        system = platform.system()
        return f"{system} {platform.release()}".strip() if system else "Unknown OS"


def detect_environment(environ: Mapping[str, str] = os.environ) -> EnvironmentInfo:
    desktop = environ.get("XDG_CURRENT_DESKTOP") or environ.get("DESKTOP_SESSION") or "unknown"
    shell = Path(environ.get("SHELL", "")).name or "bash"
    info = EnvironmentInfo(os_name=_os_name(), desktop=desktop, shell=shell)
    logger.debug("Detected environment: %s", info)
    return info


def build_system_prompt(
    model_id: str,
    display_name: str,
    env: EnvironmentInfo,
    tool_lines: list[str],
) -> str:
    sections = [
        "You are an agentic AI assistant running in the user's terminal.",
        f"Model: {display_name} ({model_id}).",
        f"User environment: {env.os_name}, desktop: {env.desktop}, shell: {env.shell}.",
    ]
    if tool_lines:
        sections += [
            "",
            "<tools>",
            "You can call these tools. Commands run with the user's privileges; "
            "prefer read-only commands unless the user asks for changes.",
            *tool_lines,
            "</tools>",
        ]
    return "\n".join(sections)
