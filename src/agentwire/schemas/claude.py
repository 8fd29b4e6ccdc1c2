"""
Msgspec-based model for newline-delimited JSON exchanged with:

  claude -p --input-format stream-json --output-format stream-json \
    --verbose --include-partial-messages

Inbound lines are parsed into a single LineMessage whose ``kind`` selects which
of ``content`` / ``stream_event`` / ``result`` is populated. Unknown fields are
ignored and unknown ``type`` values become kind "unknown" so new upstream
message types never break the reader.
"""

from __future__ import annotations

import uuid
from typing import Any, Literal, TypeAlias

import msgspec

MessageKind: TypeAlias = Literal[
    "system",
    "assistant",
    "user",
    "result",
    "stream_event",
    "unknown",
]

StreamEventType: TypeAlias = Literal[
    "content_block_start",
    "content_block_delta",
    "content_block_stop",
    "message_start",
    "message_delta",
    "message_stop",
]

_KINDS: dict[str, MessageKind] = {
    "system": "system",
    "assistant": "assistant",
    "user": "user",
    "result": "result",
    "stream_event": "stream_event",
}


# ----------------------------
# Inbound (stdout)
# ----------------------------


class ContentBlock(msgspec.Struct, forbid_unknown_fields=False):
    """One text / thinking / tool_use / tool_result block."""

    type: str
    text: str | None = None
    thinking: str | None = None
    id: str | None = None
    name: str | None = None
    input: Any = None
    tool_use_id: str | None = None
    content: Any = None
    is_error: bool | None = None


class StreamDelta(msgspec.Struct, forbid_unknown_fields=False):
    type: str = ""
    text: str | None = None
    thinking: str | None = None
    partial_json: str | None = None


class StreamEvent(msgspec.Struct, forbid_unknown_fields=False):
    type: str
    index: int = -1
    content_block: ContentBlock | None = None
    delta: StreamDelta | None = None


class LineMessage(msgspec.Struct):
    kind: MessageKind
    subtype: str | None = None
    session_id: str | None = None
    content: list[ContentBlock] = msgspec.field(default_factory=list)
    stream_event: StreamEvent | None = None
    result: str | None = None
    is_error: bool = False
    raw: dict[str, Any] = msgspec.field(default_factory=dict)


# ----------------------------
# Outbound (stdin)
# ----------------------------


class InputText(msgspec.Struct, tag="text", tag_field="type"):
    text: str


class InputMessage(msgspec.Struct):
    role: str
    content: list[InputText]


class UserInput(msgspec.Struct, tag="user", tag_field="type", omit_defaults=True):
    message: InputMessage
    session_id: str | None = None
    parent_tool_use_id: str | None = None


class InterruptRequest(msgspec.Struct, tag="interrupt", tag_field="subtype"):
    pass


class ControlRequest(msgspec.Struct, tag="control_request", tag_field="type"):
    request_id: str
    request: InterruptRequest


_ENCODER = msgspec.json.Encoder()


def encode_user_input(text: str, session_id: str | None = None) -> str:
    payload = UserInput(
        message=InputMessage(role="user", content=[InputText(text=text)]),
        session_id=session_id,
    )
    return _ENCODER.encode(payload).decode("utf-8")


def encode_interrupt(request_id: str | None = None) -> str:
    payload = ControlRequest(
        request_id=request_id or f"req_{uuid.uuid4().hex[:12]}",
        request=InterruptRequest(),
    )
    return _ENCODER.encode(payload).decode("utf-8")


# ----------------------------
# Public decoding helpers
# ----------------------------


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _parse_content(value: Any) -> list[ContentBlock]:
    # Content is either a bare string or a list of block objects.
    if isinstance(value, str):
        return [ContentBlock(type="text", text=value)]
    if not isinstance(value, list):
        return []
    blocks: list[ContentBlock] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        try:
            blocks.append(msgspec.convert(item, type=ContentBlock))
        except msgspec.ValidationError:
            continue
    return blocks


def _parse_stream_event(obj: dict[str, Any]) -> StreamEvent:
    index = obj.get("index")
    if isinstance(index, bool) or not isinstance(index, int):
        index = -1

    block: ContentBlock | None = None
    raw_block = obj.get("content_block")
    if isinstance(raw_block, dict):
        try:
            block = msgspec.convert(raw_block, type=ContentBlock)
        except msgspec.ValidationError:
            block = None

    delta: StreamDelta | None = None
    raw_delta = obj.get("delta")
    if isinstance(raw_delta, dict):
        try:
            delta = msgspec.convert(raw_delta, type=StreamDelta)
        except msgspec.ValidationError:
            delta = None

    return StreamEvent(
        type=str(obj.get("type") or ""),
        index=index,
        content_block=block,
        delta=delta,
    )


def parse_line(line: str | bytes) -> LineMessage | None:
    """
    Parse one stdout line into a LineMessage.

    - Blank lines and lines not starting with ``{`` return None.
    - Undecodable JSON, or JSON that is not an object, returns None.
    - Unrecognized or missing ``type`` returns a LineMessage of kind "unknown".

    Never raises.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    text = line.strip()
    if not text or not text.startswith("{"):
        return None

    try:
        obj = msgspec.json.decode(text)
    except msgspec.DecodeError:
        return None
    if not isinstance(obj, dict):
        return None

    etype = obj.get("type")
    kind = _KINDS.get(etype, "unknown") if isinstance(etype, str) else "unknown"
    session_id = _opt_str(obj.get("session_id"))

    match kind:
        case "system":
            return LineMessage(
                kind=kind,
                subtype=_opt_str(obj.get("subtype")),
                session_id=session_id,
                raw=obj,
            )
        case "assistant" | "user":
            message = obj.get("message")
            content = (
                _parse_content(message.get("content"))
                if isinstance(message, dict)
                else []
            )
            return LineMessage(
                kind=kind,
                session_id=session_id,
                content=content,
                raw=obj,
            )
        case "result":
            return LineMessage(
                kind=kind,
                subtype=_opt_str(obj.get("subtype")),
                session_id=session_id,
                result=_opt_str(obj.get("result")) or "",
                is_error=obj.get("is_error") is True,
                raw=obj,
            )
        case "stream_event":
            event = obj.get("event")
            return LineMessage(
                kind=kind,
                session_id=session_id,
                stream_event=(
                    _parse_stream_event(event) if isinstance(event, dict) else None
                ),
                raw=obj,
            )
    return LineMessage(kind="unknown", session_id=session_id, raw=obj)
