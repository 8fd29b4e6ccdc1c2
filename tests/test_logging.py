import logging

from agentwire.logging import API_KEY_RE, get_logger, redact_key_processor, setup_logging


class TestRedactKeyProcessor:
    def test_redacts_api_key_in_values(self) -> None:
        event = {"event": "process.starting", "argv": "claude --key sk-ant-api03-abcdEFGH_1234"}

        out = redact_key_processor(None, "info", event)

        assert "abcdEFGH" not in out["argv"]
        assert out["argv"] == "claude --key sk-ant-[REDACTED]"

    def test_leaves_other_values_alone(self) -> None:
        event = {"event": "stdout", "line": "plain text", "rc": 3, "args": ["sk-ant-xxxxxxxxxx"]}

        out = redact_key_processor(None, "info", dict(event))

        assert out == event

    def test_short_prefix_not_matched(self) -> None:
        assert API_KEY_RE.search("sk-ant-abc") is None


class TestSetupLogging:
    def test_debug_level(self) -> None:
        setup_logging(debug=True)

        assert logging.getLogger().level == logging.DEBUG

    def test_default_level_is_warning(self) -> None:
        setup_logging(debug=False)

        assert logging.getLogger().level == logging.WARNING

    def test_json_output_is_redacted(self, capsys) -> None:
        setup_logging(debug=False)

        get_logger("agentwire.test").warning("leak", key="sk-ant-api03-secretsecret")

        err = capsys.readouterr().err
        assert "secretsecret" not in err
        assert "sk-ant-[REDACTED]" in err
        assert '"event": "leak"' in err
