from __future__ import annotations

import signal
from functools import partial
from pathlib import Path

import anyio
import msgspec
import typer

from . import __version__
from .config import ConfigError, SessionSettings, load_settings
from .console import ConsoleRenderer
from .logging import get_logger, setup_logging
from .model import PromptResult, PromptStatus
from .session import ClaudeSession
from .transport import TransportError

logger = get_logger(__name__)

EXIT_COMMANDS = {"/exit", "/quit"}


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


async def run_prompt(
    session: ClaudeSession, text: str, renderer: ConsoleRenderer
) -> PromptResult:
    """Run one exchange; SIGINT cancels it instead of killing the program."""
    async with anyio.create_task_group() as tg:

        async def watch_sigint() -> None:
            with anyio.open_signal_receiver(signal.SIGINT) as signals:
                async for _ in signals:
                    session.cancel()

        tg.start_soon(watch_sigint)
        try:
            return await session.prompt(text, renderer)
        finally:
            tg.cancel_scope.cancel()


async def _read_prompt() -> str | None:
    try:
        return await anyio.to_thread.run_sync(input, "> ")
    except EOFError:
        return None


async def _chat(settings: SessionSettings, prompt: str | None) -> PromptStatus:
    renderer = ConsoleRenderer()
    async with ClaudeSession(settings) as session:
        if prompt is not None:
            result = await run_prompt(session, prompt, renderer)
            return result.status

        status: PromptStatus = "success"
        while True:
            text = await _read_prompt()
            if text is None or text.strip() in EXIT_COMMANDS:
                return status
            if not text.strip():
                continue
            result = await run_prompt(session, text, renderer)
            status = result.status
            if status == "exited":
                return status


def chat(
    prompt: str | None = typer.Argument(
        None, help="Prompt to send; omit for an interactive session."
    ),
    config: Path | None = typer.Option(
        None, "--config", help="Path to agentwire.toml."
    ),
    model: str | None = typer.Option(None, "--model", help="Override the model."),
    cwd: Path | None = typer.Option(
        None, "--cwd", help="Working directory for the claude process."
    ),
    debug: bool = typer.Option(
        False,
        "--debug/--no-debug",
        help="Log raw stream-json lines and session events.",
    ),
) -> None:
    """Chat with Claude Code over stream-json."""
    setup_logging(debug=debug)
    try:
        settings = load_settings(config)
    except ConfigError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e

    overrides: dict[str, str] = {}
    if model:
        overrides["model"] = model
    if cwd is not None:
        overrides["cwd"] = str(cwd.expanduser())
    if overrides:
        settings = msgspec.structs.replace(settings, **overrides)

    try:
        status = anyio.run(partial(_chat, settings, prompt))
    except TransportError as e:
        typer.echo(f"error: {e}", err=True)
        raise typer.Exit(code=1) from e
    except KeyboardInterrupt:
        raise typer.Exit(code=130) from None
    if status != "success":
        raise typer.Exit(code=1)


def app_main(
    version: bool = typer.Option(
        False,
        "--version",
        help="Show the version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """Agentwire CLI."""


def create_app() -> typer.Typer:
    app = typer.Typer(
        add_completion=False,
        help="Drive the Claude Code CLI over its stream-json protocol.",
    )
    app.callback()(app_main)
    app.command(name="chat")(chat)
    return app


def main() -> None:
    app = create_app()
    app()


if __name__ == "__main__":
    main()
