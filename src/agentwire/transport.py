"""Child process ownership: spawn, line I/O, stderr tail, termination."""

from __future__ import annotations

import os
import signal
import subprocess
from collections import deque
from collections.abc import Mapping, Sequence
from pathlib import Path

import anyio
from anyio.abc import Process, TaskGroup

from .iolog import IoMirror
from .logging import get_logger
from .utils.streams import LineReader, drain_stderr

logger = get_logger(__name__)

STDERR_TAIL_LINES = 200
TERMINATE_TIMEOUT_S = 2.0


class TransportError(RuntimeError):
    pass


async def _wait_for_process(proc: Process, timeout: float) -> bool:
    with anyio.move_on_after(timeout) as scope:
        await proc.wait()
    return scope.cancel_called


def _signal_process(proc: Process, sig: signal.Signals) -> None:
    if proc.returncode is not None:
        return
    if os.name == "posix" and proc.pid is not None:
        try:
            os.killpg(proc.pid, sig)
            return
        except ProcessLookupError:
            return
        except OSError as e:
            logger.debug("process.signal_group_failed", signal=sig.name, error=str(e))
    try:
        if sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()
    except ProcessLookupError:
        return


class ProcessTransport:
    """Line-oriented pipe to one child process.

    stdout is read on the caller's task; stderr is drained by a background task
    for the lifetime of the process into a bounded tail buffer.
    """

    def __init__(
        self,
        proc: Process,
        *,
        tag: str = "claude",
        stderr_tail_lines: int = STDERR_TAIL_LINES,
        mirror: IoMirror | None = None,
    ) -> None:
        if proc.stdin is None or proc.stdout is None or proc.stderr is None:
            raise TransportError(f"{tag} failed to open subprocess pipes")
        self.tag = tag
        self._proc: Process | None = proc
        self._stdin = proc.stdin
        self._stderr = proc.stderr
        self._reader = LineReader(proc.stdout)
        self._stderr_chunks: deque[str] = deque(maxlen=stderr_tail_lines)
        self._mirror = mirror
        self._tg: TaskGroup | None = None
        self._killed = False
        self._returncode: int | None = None

    @classmethod
    async def open(
        cls,
        command: str,
        args: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        tag: str = "claude",
        stderr_tail_lines: int = STDERR_TAIL_LINES,
        mirror: IoMirror | None = None,
    ) -> ProcessTransport:
        argv = [command, *args]
        logger.info("process.starting", tag=tag, argv=argv, cwd=str(cwd) if cwd else None)
        kwargs: dict = {}
        if os.name == "posix":
            kwargs["start_new_session"] = True
        try:
            proc = await anyio.open_process(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                **kwargs,
            )
        except OSError as e:
            raise TransportError(f"failed to start {command}: {e}") from e
        transport = cls(
            proc, tag=tag, stderr_tail_lines=stderr_tail_lines, mirror=mirror
        )
        await transport._start_background()
        logger.info("process.started", tag=tag, pid=proc.pid)
        return transport

    async def _start_background(self) -> None:
        if self._mirror is not None:
            self._mirror.open()
        self._tg = anyio.create_task_group()
        await self._tg.__aenter__()
        self._tg.start_soon(drain_stderr, self._stderr, self._stderr_chunks, logger, self.tag)

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def returncode(self) -> int | None:
        if self._proc is not None:
            return self._proc.returncode
        return self._returncode

    @property
    def is_alive(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    @property
    def killed(self) -> bool:
        return self._killed

    def stderr_tail(self) -> str:
        return "".join(self._stderr_chunks)

    def _require_proc(self) -> Process:
        if self._proc is None:
            raise TransportError(f"{self.tag} transport is closed")
        return self._proc

    async def write_line(self, text: str) -> None:
        self._require_proc()
        if self._mirror is not None:
            self._mirror.write("out", text)
        logger.debug("stdin", tag=self.tag, line=text)
        try:
            await self._stdin.send((text + "\n").encode("utf-8"))
        except (
            anyio.BrokenResourceError,
            anyio.ClosedResourceError,
            BrokenPipeError,
            ConnectionResetError,
        ) as e:
            raise TransportError(f"{self.tag} stdin is closed") from e

    async def read_line(self) -> str | None:
        """Next stdout line without its newline, or None at EOF."""
        self._require_proc()
        line = await self._reader.receive_line()
        if line is None:
            return None
        raw = line.rstrip("\r\n")
        if self._mirror is not None:
            self._mirror.write("in", raw)
        logger.debug("stdout", tag=self.tag, line=raw)
        return raw

    async def wait(self, timeout: float | None = None) -> int | None:
        proc = self._proc
        if proc is None:
            return self._returncode
        if timeout is None:
            return await proc.wait()
        await _wait_for_process(proc, timeout)
        return proc.returncode

    def kill_hard(self) -> None:
        """SIGKILL the process group. Idempotent; callable from any task."""
        proc = self._proc
        if proc is None or self._killed:
            return
        self._killed = True
        logger.info("process.kill", tag=self.tag, pid=proc.pid)
        _signal_process(proc, signal.SIGKILL)

    async def aclose(self) -> None:
        proc, self._proc = self._proc, None
        if proc is None:
            return
        try:
            with anyio.CancelScope(shield=True):
                if proc.returncode is None:
                    _signal_process(proc, signal.SIGTERM)
                    timed_out = await _wait_for_process(proc, TERMINATE_TIMEOUT_S)
                    if timed_out:
                        _signal_process(proc, signal.SIGKILL)
                        await proc.wait()
            # must run in the opening task, outside the shielded scope
            tg, self._tg = self._tg, None
            if tg is not None:
                tg.cancel_scope.cancel()
                await tg.__aexit__(None, None, None)
            with anyio.CancelScope(shield=True):
                await proc.aclose()
        finally:
            self._returncode = proc.returncode
            if self._mirror is not None:
                self._mirror.close()
            logger.info("process.stopped", tag=self.tag, rc=proc.returncode)

    async def __aenter__(self) -> ProcessTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()
