"""Tests for the pilot-llm command line."""

import io
import json

import httpx
import pytest
import yaml
from click.testing import CliRunner
from rich.console import Console

from pilot_llm import cli
from pilot_llm.llm.client import CompletionClient
from pilot_llm.types import ErrorInfo, ErrorKind


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "pilot_llm.yaml"
    path.write_text(yaml.dump({
        "profile": "local",
        "profiles": {
            "local": {"provider": "custom", "base_url": "http://localhost:11434/v1", "model": "qwen3-8b"},
            "api": {"provider": "openai", "base_url": "https://api.openai.com/v1", "api_key": "sk-x"},
        },
    }))
    return str(path)


@pytest.fixture
def requests_seen(monkeypatch):
    """Route the CLI's client through a mock transport; returns (seen, set_handler)."""
    seen: list[httpx.Request] = []
    state = {"handler": None}

    def handler(request):
        seen.append(request)
        return state["handler"](request)

    def factory():
        return CompletionClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    monkeypatch.setattr(cli, "CompletionClient", factory)

    def set_handler(fn):
        state["handler"] = fn

    return seen, set_handler


class TestAsk:
    def test_streams_tokens(self, config_file, requests_seen):
        seen, set_handler = requests_seen
        set_handler(lambda r: httpx.Response(
            200,
            headers={"Content-Type": "text/event-stream"},
            content=b'data: {"choices":[{"delta":{"content":"po"}}]}\n\n'
                    b'data: {"choices":[{"delta":{"content":"ng"}}]}\n\n'
                    b"data: [DONE]\n\n",
        ))
        result = CliRunner().invoke(cli.main, ["ask", "ping", "--config", config_file])
        assert result.exit_code == 0, result.output
        assert "pong" in result.output
        assert str(seen[0].url) == "http://localhost:11434/v1/chat/completions"

    def test_no_stream(self, config_file, requests_seen):
        seen, set_handler = requests_seen
        set_handler(lambda r: httpx.Response(200, json={"choices": [{"message": {"content": "whole answer"}}]}))
        result = CliRunner().invoke(
            cli.main, ["ask", "q", "--config", config_file, "--profile", "api", "--no-stream"],
        )
        assert result.exit_code == 0, result.output
        assert "whole answer" in result.output
        assert json.loads(seen[0].content)["stream"] is False
        assert seen[0].headers["authorization"] == "Bearer sk-x"

    def test_context_and_options(self, config_file, requests_seen, tmp_path):
        seen, set_handler = requests_seen
        set_handler(lambda r: httpx.Response(200, json={"content": "ok"}))
        ctx = tmp_path / "page.txt"
        ctx.write_text("page body")
        result = CliRunner().invoke(cli.main, [
            "ask", "summarize", "--config", config_file, "--no-stream",
            "--context", str(ctx), "--system", "be brief",
            "--max-tokens", "64", "--temperature", "0.2",
        ])
        assert result.exit_code == 0, result.output
        body = json.loads(seen[0].content)
        assert body["max_tokens"] == 64
        assert body["temperature"] == 0.2
        assert body["messages"][0] == {"role": "system", "content": "be brief"}
        assert body["messages"][1]["content"].endswith("page body")
        assert body["messages"][-1] == {"role": "user", "content": "summarize"}

    def test_http_error_exit_code(self, config_file, requests_seen):
        _, set_handler = requests_seen
        set_handler(lambda r: httpx.Response(401, text="bad key"))
        result = CliRunner().invoke(cli.main, ["ask", "ping", "--config", config_file])
        assert result.exit_code == 1
        assert "http_status 401" in result.output
        assert "bad key" in result.output

    def test_empty_one_shot_exit_code(self, config_file, requests_seen):
        _, set_handler = requests_seen
        set_handler(lambda r: httpx.Response(200, json={"choices": []}))
        result = CliRunner().invoke(cli.main, ["ask", "ping", "--config", config_file, "--no-stream"])
        assert result.exit_code == 1
        assert "empty_response" in result.output

    def test_unknown_profile(self, config_file):
        result = CliRunner().invoke(cli.main, ["ask", "ping", "--config", config_file, "--profile", "nope"])
        assert result.exit_code != 0
        assert "Unknown profile" in result.output


class TestProfiles:
    def test_lists_profiles(self, config_file):
        result = CliRunner().invoke(cli.main, ["profiles", "--config", config_file])
        assert result.exit_code == 0, result.output
        assert "local" in result.output
        assert "api" in result.output
        assert "openai" in result.output

    def test_bad_config(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.dump({"profiles": {"x": {"provider": "nope"}}}))
        result = CliRunner().invoke(cli.main, ["profiles", "--config", str(path)])
        assert result.exit_code != 0
        assert "Unknown provider" in result.output


class TestConsoleCallbacks:
    def test_output_goes_to_given_console(self, monkeypatch):
        default = io.StringIO()
        monkeypatch.setattr(cli, "console", Console(file=default))
        buf = io.StringIO()
        callbacks = cli.ConsoleCallbacks(Console(file=buf, width=200))
        callbacks.on_token("partial")
        callbacks.on_error(ErrorInfo(
            kind=ErrorKind.ABORTED,
            message="Request aborted: cancelled by caller",
            endpoint="http://localhost:11434/v1/chat/completions",
        ))
        out = buf.getvalue()
        assert "partial" in out
        assert "Error (aborted): Request aborted: cancelled by caller" in out
        assert "Endpoint: http://localhost:11434/v1/chat/completions" in out
        assert default.getvalue() == ""
        assert callbacks.error.kind is ErrorKind.ABORTED
