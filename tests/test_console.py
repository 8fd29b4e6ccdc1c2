import io

import pytest

from agentwire.console import (
    ConsoleRenderer,
    format_elapsed,
    render_event_cli,
    tool_title,
)
from agentwire.model import (
    Completed,
    ErrorEvent,
    FinalResult,
    ForceStopped,
    ResponseEnded,
    ResponseStarted,
    TextChunk,
    ThinkingChunk,
    ToolCall,
    ToolResult,
)


@pytest.mark.parametrize(
    ("seconds", "expected"),
    [(0, "0s"), (-3, "0s"), (59.9, "59s"), (61, "1m 01s"), (3725, "1h 02m")],
)
def test_format_elapsed(seconds: float, expected: str) -> None:
    assert format_elapsed(seconds) == expected


class TestToolTitle:
    def test_shell_command(self) -> None:
        assert tool_title("shell", {"command": "ls -la"}) == "`ls -la`"

    def test_file_tools_use_path(self) -> None:
        assert tool_title("read_file", {"path": "a.py"}) == "read a.py"
        assert tool_title("write_file", {"path": "b.py"}) == "wrote b.py"
        assert tool_title("edit_file", {}) == "edited"

    def test_search_tools(self) -> None:
        assert tool_title("grep", {"pattern": "TODO"}) == "grep: TODO"
        assert tool_title("glob", {}) == "glob"

    def test_unmapped_tool(self) -> None:
        assert tool_title("NotebookEdit", {"path": "n.ipynb"}) == "tool: NotebookEdit"

    def test_long_command_is_shortened(self) -> None:
        title = tool_title("shell", {"command": "echo " + "word " * 100})

        assert len(title) <= 122
        assert title.endswith("…`")


class TestRenderEventCli:
    def test_tool_call(self) -> None:
        event = ToolCall(name="shell", params={"command": "pwd"}, tool_use_id="t1")

        assert render_event_cli(event) == ["▸ `pwd`"]

    def test_tool_result_first_line(self) -> None:
        event = ToolResult(
            name="shell", ok=True, summary="\nline one\nline two", output="", tool_use_id="t1"
        )

        assert render_event_cli(event) == ["✓ shell: line one"]

    def test_failed_tool_result_without_output(self) -> None:
        event = ToolResult(name="grep", ok=False, summary="", output="", tool_use_id=None)

        assert render_event_cli(event) == ["✗ grep"]

    def test_final_and_completed(self) -> None:
        assert render_event_cli(FinalResult(ok=True, message="claude finished: success")) == [
            "✓ claude finished: success"
        ]
        assert render_event_cli(Completed(elapsed_ms=2500, tool_count=3)) == [
            "done · 2s · 3 tools"
        ]
        assert render_event_cli(Completed(elapsed_ms=100, tool_count=0)) == ["done · 0s"]

    def test_error_and_stop(self) -> None:
        assert render_event_cli(ErrorEvent("boom")) == ["error: boom"]
        assert render_event_cli(ForceStopped()) == ["stopped"]

    def test_streaming_events_have_no_status_line(self) -> None:
        assert render_event_cli(TextChunk("x")) == []
        assert render_event_cli(ResponseStarted()) == []


class TestConsoleRenderer:
    def test_text_streams_inline_then_status_on_new_line(self) -> None:
        out = io.StringIO()
        render = ConsoleRenderer(out)

        for event in [
            ResponseStarted(),
            TextChunk("Hello"),
            TextChunk(", world"),
            ToolCall(name="shell", params={"command": "ls"}, tool_use_id="t1"),
            TextChunk("done"),
            ResponseEnded(),
            Completed(elapsed_ms=0, tool_count=1),
        ]:
            render(event)

        assert out.getvalue() == "Hello, world\n▸ `ls`\ndone\ndone · 0s · 1 tools\n"

    def test_thinking_is_rendered_or_hidden(self) -> None:
        events = [
            ThinkingChunk("", is_start=True),
            ThinkingChunk("hmm"),
            ThinkingChunk("", is_end=True),
            TextChunk("answer"),
        ]
        shown = io.StringIO()
        hidden = io.StringIO()
        show = ConsoleRenderer(shown)
        hide = ConsoleRenderer(hidden, show_thinking=False)
        for event in events:
            show(event)
            hide(event)

        assert shown.getvalue() == "thinking…\nhmm\nanswer"
        assert hidden.getvalue() == "answer"
