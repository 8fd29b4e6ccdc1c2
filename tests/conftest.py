from __future__ import annotations

import json
import os
import stat
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

from agentwire.config import SessionSettings
from agentwire.model import RenderEvent

FAKE_CLAUDE = Path(__file__).parent / "fake_claude.py"


@dataclass
class FakeClaude:
    root: Path
    command: Path

    @property
    def script_path(self) -> Path:
        return self.root / "script.json"

    @property
    def record_path(self) -> Path:
        return self.root / "stdin.jsonl"

    @property
    def argv_path(self) -> Path:
        return self.root / "argv.json"

    def settings(self, turns: list[list[Any]], **overrides: Any) -> SessionSettings:
        self.script_path.write_text(json.dumps(turns), encoding="utf-8")
        env = {
            "FAKE_CLAUDE_SCRIPT": str(self.script_path),
            "FAKE_CLAUDE_RECORD": str(self.record_path),
            "FAKE_CLAUDE_ARGV": str(self.argv_path),
        }
        values: dict[str, Any] = {
            "claude_cmd": str(self.command),
            "cwd": str(self.root),
            "env": env,
            "cancel_grace_s": 2.0,
        }
        values.update(overrides)
        return SessionSettings(**values)

    def stdin_lines(self) -> list[dict[str, Any]]:
        if not self.record_path.exists():
            return []
        return [
            json.loads(line)
            for line in self.record_path.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]

    def argv(self) -> list[str]:
        return json.loads(self.argv_path.read_text(encoding="utf-8"))


@pytest.fixture
def fake_claude(tmp_path: Path) -> FakeClaude:
    if os.name != "posix":
        pytest.skip("fake claude wrapper requires a POSIX shell")
    wrapper = tmp_path / "claude"
    wrapper.write_text(
        f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_CLAUDE}" "$@"\n',
        encoding="utf-8",
    )
    wrapper.chmod(wrapper.stat().st_mode | stat.S_IEXEC)
    return FakeClaude(root=tmp_path, command=wrapper)


class EventLog:
    def __init__(self) -> None:
        self.events: list[RenderEvent] = []

    def __call__(self, event: RenderEvent) -> None:
        self.events.append(event)

    def of_type(self, cls: type) -> list[Any]:
        return [evt for evt in self.events if isinstance(evt, cls)]

    def types(self) -> list[str]:
        return [type(evt).__name__ for evt in self.events]


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()
