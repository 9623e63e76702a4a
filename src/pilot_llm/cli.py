"""Command-line front end: stream a completion to the terminal."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pilot_llm import __version__
from pilot_llm.config import ClientConfig, ProviderProfile, load_config
from pilot_llm.errors import ConfigError, LLMError
from pilot_llm.llm.cancel import CancelToken
from pilot_llm.llm.client import CompletionClient
from pilot_llm.llm.request_builder import build_url
from pilot_llm.types import ErrorEvent, ErrorInfo, GenerationParams

console = Console()


class ConsoleCallbacks:
    """Print tokens as they arrive; remember the error, if any."""

    def __init__(self, con: Console):
        self._console = con
        self.error: ErrorInfo | None = None

    def on_token(self, text: str) -> None:
        self._console.print(text, end="", markup=False, highlight=False, soft_wrap=True)

    def on_done(self) -> None:
        self._console.print()

    def on_error(self, info: ErrorInfo) -> None:
        self.error = info
        self._console.print()
        _print_error(info, self._console)


def _print_error(info: ErrorInfo, con: Console = console) -> None:
    status = f" {info.http_status}" if info.http_status is not None else ""
    con.print(f"[red]Error ({info.kind.value}{status}): {escape(info.message)}[/red]")
    if info.endpoint:
        con.print(f"[dim]Endpoint: {escape(info.endpoint)}[/dim]")


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)


def _load(config_path: str | None) -> ClientConfig:
    try:
        return load_config(config_path)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def _install_interrupt(token: CancelToken) -> None:
    """Route Ctrl-C to the cancel token instead of tearing down the loop."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel, "interrupted")
    except (NotImplementedError, RuntimeError, ValueError):
        # Not supported here (e.g. Windows, or not on the main thread)
        pass


async def _ask_stream(profile: ProviderProfile, params: GenerationParams) -> bool:
    token = CancelToken()
    _install_interrupt(token)
    callbacks = ConsoleCallbacks(console)
    async with CompletionClient() as client:
        event = await client.stream(profile, params, callbacks, cancel_token=token)
    return not isinstance(event, ErrorEvent)


async def _ask_once(profile: ProviderProfile, params: GenerationParams) -> bool:
    token = CancelToken()
    _install_interrupt(token)
    async with CompletionClient() as client:
        try:
            text = await client.complete(profile, params, cancel_token=token)
        except LLMError as e:
            _print_error(e.info)
            return False
    console.print(text, markup=False, highlight=False)
    return True


@click.group()
@click.version_option(__version__, prog_name="pilot-llm")
def main() -> None:
    """pilot-llm - streaming chat completions from OpenAI-style providers."""


@main.command()
@click.argument("prompt")
@click.option("--config", "-c", "config_path", default=None,
              help="Path to pilot_llm.yaml (auto-detected from CWD or ~/.config/pilot-llm/)")
@click.option("--profile", "-p", "profile_name", default=None, help="Profile name")
@click.option("--system", "-s", default=None, help="System instruction")
@click.option("--context", "context_file", type=click.File("r"), default=None,
              help="File whose text is sent as context ('-' for stdin)")
@click.option("--max-tokens", type=int, default=None, help="Maximum tokens to generate")
@click.option("--temperature", type=float, default=None, help="Sampling temperature")
@click.option("--no-stream", is_flag=True, help="Wait for the full answer instead of streaming")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
def ask(prompt: str, config_path: str | None, profile_name: str | None,
        system: str | None, context_file, max_tokens: int | None,
        temperature: float | None, no_stream: bool, verbose: bool):
    """Send PROMPT to the configured provider and print the answer."""
    _setup_logging(verbose)
    config = _load(config_path)
    try:
        profile = config.get_profile(profile_name)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    params = GenerationParams(
        prompt=prompt,
        system=system,
        context=context_file.read() if context_file else None,
        max_tokens=max_tokens,
        temperature=temperature,
        stream=not no_stream,
    )
    runner = _ask_once if no_stream else _ask_stream
    if not asyncio.run(runner(profile, params)):
        sys.exit(1)


@main.command()
@click.option("--config", "-c", "config_path", default=None, help="Path to pilot_llm.yaml")
def profiles(config_path: str | None):
    """List configured provider profiles."""
    config = _load(config_path)
    table = Table(title="Provider profiles")
    table.add_column("", width=1)
    table.add_column("Name", style="bold")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Endpoint", overflow="fold")
    table.add_column("Timeout", justify="right")
    for name, profile in config.profiles.items():
        table.add_row(
            "*" if name == config.profile else "",
            name,
            profile.kind.value,
            profile.model,
            build_url(profile),
            f"{profile.timeout:g}s",
        )
    console.print(table)


if __name__ == "__main__":
    main()
