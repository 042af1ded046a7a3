"""Exec Tool Schema: Gemini functionDeclaration for shell execution.

Invariants:
    - timeout bounded 1-300 in the schema; handle_exec clamps again for safety
"""

TOOL_EXEC = {
    "name": "exec",
    "description": (
        "Run a shell command. Returns stdout, stderr, and exit code. "
        "Use for file operations, building, testing, git, package management, etc."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "command": {
                "type": "string",
                "description": "The shell command to execute.",
            },
            "workdir": {
                "type": "string",
                "description": (
                    "Working directory for the command. "
                    "Defaults to the current directory."
                ),
            },
            "timeout": {
                "type": "number",
                "description": (
                    "Timeout in seconds (default: 30). "
                    "The command is killed if it exceeds this."
                ),
                "minimum": 1,
                "maximum": 300,
            },
        },
        "required": ["command"],
    },
}
