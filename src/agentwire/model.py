"""Agentwire domain model types (render events, prompt outcomes)."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

PromptStatus: TypeAlias = Literal[
    "success",
    "failed",
    "exited",
    "cancelled",
    "timed_out",
]


@dataclass(frozen=True, slots=True)
class ResponseStarted:
    pass


@dataclass(frozen=True, slots=True)
class TextChunk:
    text: str


@dataclass(frozen=True, slots=True)
class ResponseEnded:
    pass


@dataclass(frozen=True, slots=True)
class ThinkingChunk:
    text: str
    is_start: bool = False
    is_end: bool = False


@dataclass(frozen=True, slots=True)
class ToolCall:
    name: str
    params: dict[str, Any] = field(default_factory=dict)
    tool_use_id: str | None = None


@dataclass(frozen=True, slots=True)
class ToolResult:
    name: str
    ok: bool
    summary: str
    output: str
    tool_use_id: str | None = None


@dataclass(frozen=True, slots=True)
class FinalResult:
    ok: bool
    message: str
    iterations: int = 0


@dataclass(frozen=True, slots=True)
class Completed:
    elapsed_ms: int
    tool_count: int


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    message: str


@dataclass(frozen=True, slots=True)
class ForceStopped:
    pass


RenderEvent: TypeAlias = (
    ResponseStarted
    | TextChunk
    | ResponseEnded
    | ThinkingChunk
    | ToolCall
    | ToolResult
    | FinalResult
    | Completed
    | ErrorEvent
    | ForceStopped
)

EventSink: TypeAlias = Callable[[RenderEvent], Awaitable[None] | None]


def _noop_sink(_event: RenderEvent) -> None:
    return None


NO_OP_SINK: EventSink = _noop_sink


@dataclass(frozen=True, slots=True)
class PromptResult:
    status: PromptStatus
    session_id: str | None
    result: str = ""
    tool_count: int = 0
    elapsed_ms: int = 0
    exit_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"
