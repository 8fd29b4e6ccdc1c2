"""Incremental assembly of stream_event deltas into render events."""

from __future__ import annotations

from dataclasses import dataclass, field

from .logging import get_logger
from .model import RenderEvent, TextChunk, ThinkingChunk
from .schemas.claude import StreamEvent
from .tools import UNKNOWN_TOOL, ToolTracker

logger = get_logger(__name__)


@dataclass
class PromptState:
    """Streaming state for a single prompt; rebuilt on every prompt."""

    in_thinking: bool = False
    in_text: bool = False
    emitted_chunk: bool = False
    pending_tool_args: dict[int, list[str]] = field(default_factory=dict)
    tool_count: int = 0

    def pending_args(self, index: int) -> str:
        return "".join(self.pending_tool_args.get(index, ()))


def close_thinking(state: PromptState) -> list[RenderEvent]:
    if not state.in_thinking:
        return []
    state.in_thinking = False
    return [ThinkingChunk("", is_end=True)]


@dataclass
class StreamAssembler:
    tracker: ToolTracker

    def feed(self, event: StreamEvent, state: PromptState) -> list[RenderEvent]:
        match event.type:
            case "content_block_start":
                return self._block_start(event, state)
            case "content_block_delta":
                return self._block_delta(event, state)
            case "content_block_stop":
                return self._block_stop(event, state)
            case "message_start" | "message_delta" | "message_stop":
                return []
        logger.debug("stream.unknown_event", type=event.type)
        return []

    def _block_start(self, event: StreamEvent, state: PromptState) -> list[RenderEvent]:
        block = event.content_block
        if block is None:
            return []
        match block.type:
            case "thinking":
                state.in_thinking = True
                return [ThinkingChunk("", is_start=True)]
            case "text":
                state.in_text = True
            case "tool_use":
                # Rendered once the assistant message carries the full input.
                self.tracker.note_started(block.id or "", block.name or UNKNOWN_TOOL)
                if event.index >= 0:
                    state.pending_tool_args[event.index] = []
        return []

    def _block_delta(self, event: StreamEvent, state: PromptState) -> list[RenderEvent]:
        delta = event.delta
        if delta is None:
            return []
        match delta.type:
            case "thinking_delta":
                if delta.thinking is not None:
                    state.emitted_chunk = True
                    return [ThinkingChunk(delta.thinking)]
            case "text_delta":
                if delta.text is not None:
                    state.emitted_chunk = True
                    return [TextChunk(delta.text)]
            case "input_json_delta":
                if delta.partial_json is not None and event.index >= 0:
                    state.pending_tool_args.setdefault(event.index, []).append(
                        delta.partial_json
                    )
        return []

    def _block_stop(self, event: StreamEvent, state: PromptState) -> list[RenderEvent]:
        if event.index in state.pending_tool_args:
            logger.debug(
                "stream.tool_args_complete",
                index=event.index,
                args=state.pending_args(event.index),
            )
        out = close_thinking(state)
        state.in_text = False
        return out
