"""
Main entry point for the llmstream command-line client.

This module streams a single chat or completion response to the terminal,
cancelling cleanly on Ctrl-C or when the optional timeout expires.
"""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.theme import Theme

from llmstream.cancellation import CancellationToken
from llmstream.config.loader import load_configuration
from llmstream.config.schema import Configuration
from llmstream.exceptions import ClassifiedError, ConfigurationError, OperationCancelledError
from llmstream.models import ChatMessage
from llmstream.providers.factory import create_provider
from llmstream.stream.session import StreamSession

logger = logging.getLogger(__name__)

THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bright_red bold",
        "muted": "grey50",
        "assistant": "bright_white",
    },
)

console = Console(theme=THEME, highlight=False)


def configure_logging(debug: bool) -> None:
    """Configure root logging; debug mode shows the pipeline's lifecycle logs."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class CLI:
    """
    Command-line interface for streaming a single response.

    Parameters
    ----------
    config : Configuration
        Configuration object.

    Attributes
    ----------
    config : Configuration
        Configuration object.
    token : CancellationToken | None
        Token of the request in flight, if any.

    Examples
    --------
    >>> cli = CLI(load_configuration())
    >>> await cli.run_single("Write a haiku about rivers")
    """

    def __init__(self, config: Configuration) -> None:
        self.config: Configuration = config
        self.token: CancellationToken | None = None

    def handle_interrupt(self) -> None:
        """
        SIGINT handler: the first Ctrl-C cancels the request in flight.

        Raises
        ------
        KeyboardInterrupt
            On a second Ctrl-C, when the request is already cancelled.
        """
        if self.token is None or self.token.is_cancelled():
            raise KeyboardInterrupt
        self.token.cancel()

    async def run_single(
        self,
        prompt: str,
        system: str | None = None,
        timeout: float | None = None,
        complete: bool = False,
    ) -> str | None:
        """
        Stream one response to the console.

        Parameters
        ----------
        prompt : str
            User prompt.
        system : str | None, optional
            System message (chat mode only).
        timeout : float | None, optional
            Seconds after which the request is cancelled.
        complete : bool, default=False
            Use the completion endpoint with the raw prompt instead of chat.

        Returns
        -------
        str | None
            The streamed text, or None if the request failed or was cancelled.
        """
        token = CancellationToken()
        self.token = token
        loop = asyncio.get_running_loop()

        deadline: asyncio.TimerHandle | None = token.cancel_after(timeout) if timeout else None
        signal_installed: bool = False
        try:
            loop.add_signal_handler(signal.SIGINT, self.handle_interrupt)
            signal_installed = True
        except NotImplementedError:
            logger.debug("SIGINT handler not supported on this platform")

        parts: list[str] = []
        try:
            async with create_provider(self.config) as provider:
                options = self.config.provider.to_options()
                session: StreamSession
                if complete:
                    session = await provider.stream_complete(prompt, options, token=token)
                else:
                    messages: list[ChatMessage] = []
                    if system:
                        messages.append(ChatMessage(role="system", content=system))
                    messages.append(ChatMessage(role="user", content=prompt))
                    session = await provider.stream_chat(messages, options, token=token)

                async with session:
                    async for text in session:
                        parts.append(text)
                        console.print(text, end="", style="assistant", markup=False)
            console.print()
            return "".join(parts)
        except OperationCancelledError:
            console.print()
            console.print("[warning]Request cancelled[/warning]")
            return None
        except ClassifiedError as e:
            console.print()
            console.print(f"[error]{type(e).__name__}: {escape(e.message)}[/error]")
            logger.debug(f"Request failed: {e!r}")
            return None
        finally:
            if deadline is not None:
                deadline.cancel()
            if signal_installed:
                loop.remove_signal_handler(signal.SIGINT)
            self.token = None


@click.command()
@click.argument("prompt")
@click.option("--provider", "-p", help="Provider: openai, azure, anthropic, huggingface")
@click.option("--model", "-m", help="Model (or Azure deployment) name")
@click.option("--base-url", help="API base URL override")
@click.option("--system", "-s", help="System message")
@click.option("--temperature", "-t", type=float, help="Sampling temperature")
@click.option("--timeout", type=float, help="Cancel the request after this many seconds")
@click.option("--complete", is_flag=True, help="Use the completion endpoint instead of chat")
@click.option(
    "--cwd",
    "-c",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Project directory to read .llmstream/config.toml from",
)
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(
    prompt: str,
    provider: str | None,
    model: str | None,
    base_url: str | None,
    system: str | None,
    temperature: float | None,
    timeout: float | None,
    complete: bool,
    cwd: Path | None,
    debug: bool,
) -> None:
    """
    llmstream - stream an LLM response to the terminal.
    """
    load_dotenv()

    provider_overrides: dict[str, Any] = {
        key: value
        for key, value in {
            "name": provider,
            "model": model,
            "base_url": base_url,
            "temperature": temperature,
        }.items()
        if value is not None
    }
    overrides: dict[str, Any] = {"provider": provider_overrides} if provider_overrides else {}
    if debug:
        overrides["debug"] = True

    try:
        config: Configuration = load_configuration(cwd=cwd, overrides=overrides)
    except ConfigurationError as e:
        console.print(f"[error]Configuration Error: {escape(e.message)}[/error]")
        sys.exit(1)

    configure_logging(config.debug)

    cli = CLI(config)
    try:
        result: str | None = asyncio.run(
            cli.run_single(prompt, system=system, timeout=timeout, complete=complete),
        )
    except KeyboardInterrupt:
        console.print()
        console.print("[warning]Interrupted[/warning]")
        sys.exit(130)
    if result is None:
        sys.exit(1)


if __name__ == "__main__":
    main()
