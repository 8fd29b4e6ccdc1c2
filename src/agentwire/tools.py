"""Tool name/parameter mapping and tool call tracking."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

import msgspec

from .logging import get_logger
from .model import ToolCall, ToolResult
from .schemas.claude import ContentBlock

logger = get_logger(__name__)

UNKNOWN_TOOL = "unknown"
PREVIEW_CHARS = 200

_TOOL_NAMES: dict[str, str] = {
    "Bash": "shell",
    "Read": "read_file",
    "Write": "write_file",
    "Edit": "edit_file",
    "MultiEdit": "edit_file",
    "Glob": "glob",
    "Grep": "grep",
}

_FILE_PATH_TOOLS = {"Read", "Write", "Edit", "MultiEdit"}


def map_tool_name(name: str) -> str:
    return _TOOL_NAMES.get(name, name)


def map_params(name: str, params: dict[str, Any]) -> dict[str, Any]:
    if name in _FILE_PATH_TOOLS:
        mapped = dict(params)
        if "file_path" in params:
            mapped["path"] = params["file_path"]
        return mapped
    if name == "NotebookEdit":
        mapped = dict(params)
        if "notebook_path" in params:
            mapped["path"] = params["notebook_path"]
        return mapped
    return dict(params)


# ----------------------------
# Tool input decoders
# ----------------------------


class ToolInputDecoder(Protocol):
    def decode(self, tool_name: str, raw: Any) -> dict[str, Any]: ...


def _input_object(tool_name: str, raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            value = msgspec.json.decode(raw)
        except msgspec.DecodeError as e:
            logger.warning("tool.input_decode_failed", tool=tool_name, error=str(e))
            return {}
        if isinstance(value, dict):
            return value
    logger.warning(
        "tool.input_decode_failed",
        tool=tool_name,
        error=f"expected an object, got {type(raw).__name__}",
    )
    return {}


def _flat_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return msgspec.json.encode(value).decode("utf-8")


@dataclass(frozen=True, slots=True)
class FlatInputDecoder:
    """Every value rendered as display text; nested values as compact JSON."""

    def decode(self, tool_name: str, raw: Any) -> dict[str, Any]:
        return {
            str(key): _flat_value(value)
            for key, value in _input_object(tool_name, raw).items()
        }


@dataclass(frozen=True, slots=True)
class StructuredInputDecoder:
    def decode(self, tool_name: str, raw: Any) -> dict[str, Any]:
        return dict(_input_object(tool_name, raw))


def input_decoder_for(mode: Literal["flat", "structured"]) -> ToolInputDecoder:
    if mode == "structured":
        return StructuredInputDecoder()
    return FlatInputDecoder()


# ----------------------------
# Tool results
# ----------------------------


def tool_result_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list) and all(
        isinstance(item, dict) and isinstance(item.get("text"), str)
        for item in content
    ):
        return "\n".join(item["text"] for item in content if item["text"])
    return msgspec.json.encode(content).decode("utf-8")


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


# ----------------------------
# Tracker
# ----------------------------


@dataclass
class ToolTracker:
    """Per-process tool bookkeeping.

    ``names`` and ``rendered`` grow for the life of the process so a result
    arriving in a later message, or after a later prompt, still resolves.
    """

    decoder: ToolInputDecoder = field(default_factory=FlatInputDecoder)
    preview_chars: int = PREVIEW_CHARS
    names: dict[str, str] = field(default_factory=dict)
    inputs: dict[str, dict[str, Any]] = field(default_factory=dict)
    rendered: set[str] = field(default_factory=set)

    def note_started(self, tool_use_id: str, name: str) -> None:
        if not tool_use_id:
            return
        self.names[tool_use_id] = name

    def tool_calls(self, blocks: list[ContentBlock]) -> list[ToolCall]:
        out: list[ToolCall] = []
        for block in blocks:
            if block.type != "tool_use":
                continue
            if not block.id:
                logger.debug("tool.missing_id", name=block.name)
                continue
            name = block.name or UNKNOWN_TOOL
            self.names[block.id] = name
            params = self.decoder.decode(name, block.input)
            self.inputs[block.id] = params
            if block.id in self.rendered:
                continue
            self.rendered.add(block.id)
            out.append(
                ToolCall(
                    name=map_tool_name(name),
                    params=map_params(name, params),
                    tool_use_id=block.id,
                )
            )
        return out

    def tool_results(self, blocks: list[ContentBlock]) -> list[ToolResult]:
        out: list[ToolResult] = []
        for block in blocks:
            if block.type != "tool_result":
                continue
            tool_use_id = block.tool_use_id or ""
            name = self.names.get(tool_use_id)
            if name is None:
                logger.debug("tool.result_for_unseen_call", tool_use_id=tool_use_id)
                name = UNKNOWN_TOOL
            output = tool_result_text(block.content)
            out.append(
                ToolResult(
                    name=map_tool_name(name),
                    ok=block.is_error is not True,
                    summary=_truncate(output, self.preview_chars),
                    output=output,
                    tool_use_id=tool_use_id or None,
                )
            )
        return out

    def clear(self) -> None:
        self.names.clear()
        self.inputs.clear()
        self.rendered.clear()
