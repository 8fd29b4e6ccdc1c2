from __future__ import annotations

import sys
import textwrap
from typing import Any, TextIO

import typer

from .model import (
    Completed,
    ErrorEvent,
    FinalResult,
    ForceStopped,
    RenderEvent,
    ResponseEnded,
    TextChunk,
    ThinkingChunk,
    ToolCall,
    ToolResult,
)

STATUS_RUNNING = "▸"
STATUS_DONE = "✓"
STATUS_FAIL = "✗"
HEADER_SEP = " · "

MAX_TOOL_TITLE_LEN = 120
MAX_RESULT_LINE_LEN = 160


def format_elapsed(elapsed_s: float) -> str:
    total = max(0, int(elapsed_s))
    minutes, seconds = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


def _shorten(text: str, width: int | None) -> str:
    if width is None:
        return text
    return textwrap.shorten(text, width=width, placeholder="…")


def tool_title(name: str, params: dict[str, Any]) -> str:
    if name == "shell":
        return f"`{_shorten(str(params.get('command') or name), MAX_TOOL_TITLE_LEN)}`"
    if name in {"read_file", "write_file", "edit_file"}:
        path = params.get("path")
        verb = {"read_file": "read", "write_file": "wrote", "edit_file": "edited"}[name]
        return f"{verb} {path}" if path else verb
    if name in {"glob", "grep"}:
        pattern = params.get("pattern")
        return f"{name}: {pattern}" if pattern else name
    if name == "WebSearch":
        return f"searched: {_shorten(str(params.get('query') or ''), 60)}"
    if name == "WebFetch":
        return f"fetched: {params.get('url') or ''}"
    if name in {"Task", "Agent"}:
        desc = params.get("description") or params.get("prompt") or name
        return f"task: {_shorten(str(desc), MAX_TOOL_TITLE_LEN)}"
    return f"tool: {name}"


def render_event_cli(event: RenderEvent) -> list[str]:
    """Status lines for non-streaming events; chunks are handled inline."""
    match event:
        case ToolCall(name=name, params=params):
            return [f"{STATUS_RUNNING} {tool_title(name, params)}"]
        case ToolResult(name=name, ok=ok, summary=summary):
            status = STATUS_DONE if ok else STATUS_FAIL
            first = summary.strip().splitlines()[0] if summary.strip() else ""
            line = f"{status} {name}"
            if first:
                line += f": {_shorten(first, MAX_RESULT_LINE_LEN)}"
            return [line]
        case FinalResult(ok=ok, message=message):
            return [f"{STATUS_DONE if ok else STATUS_FAIL} {message}"]
        case Completed(elapsed_ms=elapsed_ms, tool_count=tool_count):
            parts = ["done", format_elapsed(elapsed_ms / 1000)]
            if tool_count:
                parts.append(f"{tool_count} tools")
            return [HEADER_SEP.join(parts)]
        case ErrorEvent(message=message):
            return [f"error: {message}"]
        case ForceStopped():
            return ["stopped"]
    return []


class ConsoleRenderer:
    def __init__(self, out: TextIO | None = None, *, show_thinking: bool = True) -> None:
        self.out = out or sys.stdout
        self.show_thinking = show_thinking
        self._midline = False

    def _write(self, text: str, *, fg: str | None = None) -> None:
        if not text:
            return
        typer.secho(text, file=self.out, nl=False, fg=fg)
        self.out.flush()
        self._midline = not text.endswith("\n")

    def _line(self, text: str, *, fg: str | None = None) -> None:
        if self._midline:
            self._write("\n")
        typer.secho(text, file=self.out, fg=fg)
        self._midline = False

    def __call__(self, event: RenderEvent) -> None:
        match event:
            case TextChunk(text=text):
                self._write(text)
            case ThinkingChunk(text=text, is_start=is_start, is_end=is_end):
                if not self.show_thinking:
                    return
                if is_start:
                    self._line("thinking…", fg=typer.colors.BRIGHT_BLACK)
                self._write(text, fg=typer.colors.BRIGHT_BLACK)
                if is_end and self._midline:
                    self._write("\n")
            case ResponseEnded():
                if self._midline:
                    self._write("\n")
            case _:
                for line in render_event_cli(event):
                    fg = typer.colors.RED if line.startswith(("error", STATUS_FAIL)) else None
                    self._line(line, fg=fg)
