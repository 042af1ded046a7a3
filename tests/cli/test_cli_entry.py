"""CLI entry tests: argument parsing and startup model selection."""

import pytest

from antigravity_chat.cli.chat_repl import pick_model
from antigravity_chat.main import build_parser
from antigravity_chat.schemas.models import ModelDescriptor

MODELS = [ModelDescriptor(id="gemini-3-pro"), ModelDescriptor(id="claude-sonnet-4-5")]


def test_pick_model_default_index_and_id():
    assert pick_model(MODELS, None).id == "gemini-3-pro"
    assert pick_model(MODELS, "2").id == "claude-sonnet-4-5"
    assert pick_model(MODELS, "claude-sonnet-4-5").id == "claude-sonnet-4-5"


def test_pick_model_unknown():
    assert pick_model(MODELS, "0") is None
    assert pick_model(MODELS, "3") is None
    assert pick_model(MODELS, "gpt") is None


def test_parser_subcommands():
    args = build_parser().parse_args(["--log-level", "DEBUG", "chat", "--model", "2"])
    assert args.command == "chat"
    assert args.model == "2"
    assert args.log_level == "DEBUG"
    assert build_parser().parse_args(["login"]).command == "login"


def test_parser_requires_subcommand():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
