"""Tests for the command-line entry point."""

import asyncio
import json
from typing import AsyncIterator

import httpx
import pytest
from click.testing import CliRunner

import main
from llmstream.cancellation import CancellationToken
from llmstream.config import loader
from llmstream.config.schema import Configuration
from llmstream.providers.openai import OpenAIProvider
from llmstream.retry import RetryPolicy
from tests.conftest import mock_client, sse


def delta(text: str) -> str:
    return json.dumps({"choices": [{"delta": {"content": text}}]})


def use_transport(monkeypatch, handler) -> None:
    """Make the CLI talk to ``handler`` instead of the network."""

    def factory(config: Configuration) -> OpenAIProvider:
        return OpenAIProvider(
            "sk-test",
            http_client=mock_client(handler),
            retry_policy=RetryPolicy(max_attempts=1),
        )

    monkeypatch.setattr(main, "create_provider", factory)


class TestCLI:
    """Tests for CLI.run_single."""

    @pytest.mark.asyncio
    async def test_streams_response(self, monkeypatch):
        """Test tokens are streamed and joined."""
        use_transport(monkeypatch, lambda request: httpx.Response(200, content=sse(delta("Hi"), delta(" there"))))
        cli = main.CLI(Configuration())

        result = await cli.run_single("Hello", system="Be brief")

        assert result == "Hi there"
        assert cli.token is None

    @pytest.mark.asyncio
    async def test_provider_error(self, monkeypatch):
        """Test classified errors are reported and yield None."""
        use_transport(
            monkeypatch,
            lambda request: httpx.Response(400, json={"error": {"message": "bad model"}}),
        )

        result = await main.CLI(Configuration()).run_single("Hello")

        assert result is None

    @pytest.mark.asyncio
    async def test_timeout_cancels(self, monkeypatch):
        """Test the timeout cancels a slow stream."""

        async def slow_body() -> AsyncIterator[bytes]:
            for i in range(100):
                yield f"data: {delta(str(i))}\n\n".encode()
                await asyncio.sleep(0.05)

        use_transport(monkeypatch, lambda request: httpx.Response(200, content=slow_body()))

        result = await main.CLI(Configuration()).run_single("Hello", timeout=0.01)

        assert result is None


class TestMainCommand:
    """Tests for the click command."""

    def test_configuration_error_exits(self, tmp_path, monkeypatch):
        """Test invalid configuration exits with status 1."""
        monkeypatch.setattr(loader, "get_system_config_path", lambda: tmp_path / "none.toml")

        result = CliRunner().invoke(main.main, ["Hello", "--provider", "cohere", "--cwd", str(tmp_path)])

        assert result.exit_code == 1
        assert "Configuration Error" in result.output

    def test_streams_to_stdout(self, tmp_path, monkeypatch):
        """Test a successful run prints the streamed text."""
        monkeypatch.setattr(loader, "get_system_config_path", lambda: tmp_path / "none.toml")
        use_transport(monkeypatch, lambda request: httpx.Response(200, content=sse(delta("Hello"), delta("!"))))

        result = CliRunner().invoke(main.main, ["Hi", "--cwd", str(tmp_path)])

        assert result.exit_code == 0
        assert "Hello!" in result.output


class TestInterrupt:
    """Tests for CLI.handle_interrupt."""

    def test_first_interrupt_cancels(self):
        """Test the first Ctrl-C cancels the request in flight."""
        cli = main.CLI(Configuration())
        cli.token = CancellationToken()

        cli.handle_interrupt()

        assert cli.token.is_cancelled()

    def test_second_interrupt_exits(self):
        """Test Ctrl-C on an already cancelled request raises KeyboardInterrupt."""
        cli = main.CLI(Configuration())
        cli.token = CancellationToken()
        cli.handle_interrupt()

        with pytest.raises(KeyboardInterrupt):
            cli.handle_interrupt()

    def test_interrupt_without_request_exits(self):
        """Test Ctrl-C with nothing in flight raises KeyboardInterrupt."""
        with pytest.raises(KeyboardInterrupt):
            main.CLI(Configuration()).handle_interrupt()

    def test_keyboard_interrupt_exit_status(self, tmp_path, monkeypatch):
        """Test a forced exit is reported and exits with status 130."""
        monkeypatch.setattr(loader, "get_system_config_path", lambda: tmp_path / "none.toml")

        async def interrupted(self, *args, **kwargs):
            raise KeyboardInterrupt

        monkeypatch.setattr(main.CLI, "run_single", interrupted)

        result = CliRunner().invoke(main.main, ["Hi", "--cwd", str(tmp_path)])

        assert result.exit_code == 130
        assert "Interrupted" in result.output
