"""Long-lived Claude Code session over the stream-json stdio protocol."""

from __future__ import annotations

import inspect
import os
import time
from dataclasses import dataclass, field

import anyio

from .assembler import PromptState, StreamAssembler, close_thinking
from .config import SessionSettings
from .iolog import IoMirror, mirror_path
from .logging import get_logger
from .model import (
    NO_OP_SINK,
    Completed,
    ErrorEvent,
    EventSink,
    FinalResult,
    ForceStopped,
    PromptResult,
    PromptStatus,
    RenderEvent,
    ResponseEnded,
    ResponseStarted,
    TextChunk,
)
from .schemas.claude import LineMessage, encode_interrupt, encode_user_input, parse_line
from .tools import ToolInputDecoder, ToolTracker, input_decoder_for
from .transport import ProcessTransport, TransportError

logger = get_logger(__name__)

EXIT_WAIT_S = 1.0


class SessionBusyError(RuntimeError):
    pass


class _IdleTimeout(Exception):
    pass


@dataclass
class SessionState:
    """State that outlives a single prompt within one process."""

    tracker: ToolTracker
    session_id: str | None = None

    def reset(self) -> None:
        self.session_id = None
        self.tracker.clear()


@dataclass
class _Exchange:
    on_event: EventSink
    state: PromptState = field(default_factory=PromptState)
    started_at: float = field(default_factory=time.monotonic)

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)

    async def emit(self, event: RenderEvent) -> None:
        res = self.on_event(event)
        if inspect.isawaitable(res):
            await res

    async def emit_all(self, events: list) -> None:
        for event in events:
            await self.emit(event)


class ClaudeSession:
    """Drives one ``claude`` process; prompts are answered one at a time.

    ``prompt`` returns once the exchange reaches a terminal state. ``cancel``
    and ``kill`` may be called from other tasks while a prompt is in flight;
    ``start`` and ``stop`` belong to the task that owns the session.
    """

    def __init__(
        self,
        settings: SessionSettings | None = None,
        *,
        decoder: ToolInputDecoder | None = None,
    ) -> None:
        self.settings = settings or SessionSettings()
        tracker = ToolTracker(
            decoder=decoder or input_decoder_for(self.settings.tool_params),
            preview_chars=self.settings.preview_chars,
        )
        self.state = SessionState(tracker=tracker)
        self._assembler = StreamAssembler(tracker)
        self._transport: ProcessTransport | None = None
        self._cancel_scope: anyio.CancelScope | None = None
        self._busy = False

    # ----------------------------
    # Process lifecycle
    # ----------------------------

    @property
    def session_id(self) -> str | None:
        return self.state.session_id

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.is_alive

    @property
    def busy(self) -> bool:
        return self._busy

    def build_args(self) -> list[str]:
        s = self.settings
        args: list[str] = [
            "-p",
            "--output-format",
            "stream-json",
            "--input-format",
            "stream-json",
            "--verbose",
            "--include-partial-messages",
        ]
        if s.model:
            args.extend(["--model", s.model])
        args.extend(["--permission-mode", s.permission_mode or "acceptEdits"])
        if s.disallowed_tools:
            args.extend(["--disallowed-tools", ",".join(s.disallowed_tools)])
        args.extend(s.extra_args)
        return args

    def build_env(self) -> dict[str, str]:
        workdir = str(self.settings.working_dir())
        env = dict(os.environ)
        env.update(self.settings.env)
        env["PWD"] = workdir
        env["AGENTWIRE_WORKSPACE"] = workdir
        return env

    async def start(self) -> None:
        if self._transport is not None:
            raise TransportError("claude session already started")
        mirror = (
            IoMirror(mirror_path(self.settings.log_path()))
            if self.settings.log_io
            else None
        )
        self._transport = await ProcessTransport.open(
            self.settings.claude_cmd,
            self.build_args(),
            cwd=self.settings.working_dir(),
            env=self.build_env(),
            tag="claude",
            stderr_tail_lines=self.settings.stderr_tail_lines,
            mirror=mirror,
        )

    async def stop(self) -> None:
        transport, self._transport = self._transport, None
        if transport is not None:
            await transport.aclose()
        self.state.reset()
        logger.info("session.stopped")

    def kill(self) -> None:
        if self._transport is not None:
            self._transport.kill_hard()

    def cancel(self) -> bool:
        """Interrupt the in-flight prompt, if any."""
        scope = self._cancel_scope
        if scope is None:
            return False
        logger.info("session.cancel_requested", session_id=self.state.session_id)
        scope.cancel()
        return True

    async def __aenter__(self) -> ClaudeSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # ----------------------------
    # Prompt / response
    # ----------------------------

    def _require_transport(self) -> ProcessTransport:
        if self._transport is None:
            raise TransportError("claude session is not started")
        return self._transport

    async def prompt(self, text: str, on_event: EventSink = NO_OP_SINK) -> PromptResult:
        transport = self._require_transport()
        if self._busy:
            raise SessionBusyError("a prompt is already in flight for this session")
        self._busy = True
        exchange = _Exchange(on_event=on_event)
        scope = anyio.CancelScope()
        self._cancel_scope = scope
        result: PromptResult | None = None
        timed_out = False
        try:
            with scope:
                await transport.write_line(
                    encode_user_input(text, self.state.session_id)
                )
                await exchange.emit(ResponseStarted())
                try:
                    result = await self._read_loop(transport, exchange)
                except _IdleTimeout:
                    timed_out = True
            self._cancel_scope = None
            if result is not None:
                return result
            return await self._force_stop(
                transport, exchange, status="timed_out" if timed_out else "cancelled"
            )
        finally:
            self._cancel_scope = None
            self._busy = False

    async def _next_line(self, transport: ProcessTransport) -> str | None:
        idle = self.settings.idle_timeout_s
        if idle is None:
            return await transport.read_line()
        try:
            with anyio.fail_after(idle):
                return await transport.read_line()
        except TimeoutError as exc:
            raise _IdleTimeout from exc

    async def _read_loop(
        self, transport: ProcessTransport, exchange: _Exchange
    ) -> PromptResult | None:
        tracker = self.state.tracker
        while True:
            line = await self._next_line(transport)
            if line is None:
                return await self._process_exited(transport, exchange)
            msg = parse_line(line)
            if msg is None:
                continue

            match msg.kind:
                case "system":
                    self._on_system(msg)
                case "stream_event":
                    if msg.stream_event is not None:
                        await exchange.emit_all(
                            self._assembler.feed(msg.stream_event, exchange.state)
                        )
                case "assistant":
                    # text/thinking already arrived as stream deltas
                    calls = tracker.tool_calls(msg.content)
                    exchange.state.tool_count += len(calls)
                    await exchange.emit_all(calls)
                case "user":
                    await exchange.emit_all(tracker.tool_results(msg.content))
                case "result":
                    return await self._finish(msg, exchange)
                case _:
                    logger.debug("session.unknown_message", raw=msg.raw)

    def _on_system(self, msg: LineMessage) -> None:
        if msg.subtype != "init" or not msg.session_id:
            return
        if self.state.session_id is None:
            self.state.session_id = msg.session_id
            logger.info("session.initialized", session_id=msg.session_id)
        elif self.state.session_id != msg.session_id:
            logger.debug(
                "session.init_ignored",
                session_id=self.state.session_id,
                reported=msg.session_id,
            )

    async def _finish(self, msg: LineMessage, exchange: _Exchange) -> PromptResult:
        state = exchange.state
        result_text = msg.result or ""
        if result_text and not state.emitted_chunk:
            await exchange.emit(TextChunk(result_text))
        await exchange.emit_all(close_thinking(state))
        state.in_text = False
        await exchange.emit(ResponseEnded())

        ok = not msg.is_error
        subtype = msg.subtype or "unknown"
        message = f"claude finished: {subtype}"
        if not ok:
            message += " (error)"
            if result_text:
                message += f": {result_text}"
        num_turns = msg.raw.get("num_turns")
        iterations = num_turns if isinstance(num_turns, int) else 0
        await exchange.emit(FinalResult(ok=ok, message=message, iterations=iterations))

        elapsed_ms = exchange.elapsed_ms()
        await exchange.emit(Completed(elapsed_ms=elapsed_ms, tool_count=state.tool_count))
        logger.info(
            "session.result",
            session_id=self.state.session_id,
            subtype=subtype,
            ok=ok,
            tools=state.tool_count,
            elapsed_ms=elapsed_ms,
        )
        return PromptResult(
            status="success" if ok else "failed",
            session_id=self.state.session_id,
            result=result_text,
            tool_count=state.tool_count,
            elapsed_ms=elapsed_ms,
        )

    async def _process_exited(
        self, transport: ProcessTransport, exchange: _Exchange
    ) -> PromptResult | None:
        rc = await transport.wait(EXIT_WAIT_S)
        if transport.killed:
            return None
        logger.warning(
            "session.process_exited",
            rc=rc,
            stderr_tail=transport.stderr_tail(),
        )
        await exchange.emit_all(close_thinking(exchange.state))
        await exchange.emit(ResponseEnded())
        code = "unknown" if rc is None else str(rc)
        await exchange.emit(
            ErrorEvent(f"claude process exited unexpectedly (exit code: {code})")
        )
        return PromptResult(
            status="exited",
            session_id=self.state.session_id,
            tool_count=exchange.state.tool_count,
            elapsed_ms=exchange.elapsed_ms(),
            exit_code=rc,
        )

    async def _force_stop(
        self,
        transport: ProcessTransport,
        exchange: _Exchange,
        *,
        status: PromptStatus,
    ) -> PromptResult:
        await exchange.emit_all(close_thinking(exchange.state))
        if status == "timed_out":
            await exchange.emit(ErrorEvent("claude stream idle timeout"))
        await exchange.emit(ForceStopped())
        logger.info("session.force_stopped", status=status, killed=transport.killed)
        if not transport.killed and transport.is_alive:
            await self._interrupt(transport)
        return PromptResult(
            status=status,
            session_id=self.state.session_id,
            tool_count=exchange.state.tool_count,
            elapsed_ms=exchange.elapsed_ms(),
            exit_code=transport.returncode,
        )

    async def _interrupt(self, transport: ProcessTransport) -> None:
        try:
            await transport.write_line(encode_interrupt())
        except TransportError as e:
            logger.debug("session.interrupt_failed", error=str(e))
            return
        # Drop the rest of the interrupted turn so it cannot leak into the
        # next prompt.
        discarded = 0
        with anyio.move_on_after(self.settings.cancel_grace_s):
            while True:
                try:
                    line = await transport.read_line()
                except TransportError:
                    break
                if line is None:
                    break
                msg = parse_line(line)
                if msg is None:
                    continue
                discarded += 1
                if msg.kind == "result":
                    break
        logger.debug("session.interrupt_drained", discarded=discarded)
