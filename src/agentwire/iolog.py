from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Literal

import msgspec

from .logging import get_logger

logger = get_logger(__name__)

Direction = Literal["in", "out"]


class IoRecord(msgspec.Struct):
    ts: str
    direction: Direction
    line: str


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def mirror_path(log_dir: Path, *, prefix: str = "claude") -> Path:
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return log_dir / f"{prefix}-{stamp}.jsonl"


class IoMirror:
    """Append-only JSONL copy of every raw line sent to or read from the child."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle: IO[bytes] | None = None
        self._encoder = msgspec.json.Encoder()

    def open(self) -> None:
        if self._handle is not None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = open(self.path, "ab")
        except OSError as e:
            logger.warning("iolog.open_failed", path=str(self.path), error=str(e))
            return
        logger.info("iolog.opened", path=str(self.path))

    def write(self, direction: Direction, line: str) -> None:
        if self._handle is None:
            return
        record = IoRecord(ts=_utc_now(), direction=direction, line=line)
        try:
            self._handle.write(self._encoder.encode(record) + b"\n")
            self._handle.flush()
        except (OSError, ValueError) as e:
            logger.warning("iolog.write_failed", path=str(self.path), error=str(e))

    def close(self) -> None:
        handle, self._handle = self._handle, None
        if handle is None:
            return
        try:
            handle.close()
        except OSError as e:
            logger.warning("iolog.close_failed", path=str(self.path), error=str(e))

    @property
    def closed(self) -> bool:
        return self._handle is None
