"""
Tests for the log formatters and tenant context fields.
"""
import json
import logging
from config.logging_config import JSONFormatter, StandardFormatter, log_context


def make_record(message="Mensagem recebida", **extra):
    record = logging.LogRecord("providers.ingestion", logging.INFO, __file__, 10, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogContext:

    def test_drops_unknown_and_empty_fields(self):
        context = log_context(workspace_id="ws-1", conversation_id=None, phone="5511999990000")
        assert context == {"workspace_id": "ws-1"}


class TestFormatters:

    def test_json_lines_carry_context(self):
        record = make_record(**log_context(workspace_id="ws-1", instance_id="inst-1", provider="wapi"))
        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Mensagem recebida"
        assert data["level"] == "INFO"
        assert data["workspace_id"] == "ws-1"
        assert data["instance_id"] == "inst-1"
        assert data["provider"] == "wapi"
        assert "conversation_id" not in data

    def test_text_lines_append_context(self):
        record = make_record(**log_context(workspace_id="ws-1", conversation_id="conv-1"))
        line = StandardFormatter(colorize=False).format(record)
        assert line.endswith("Mensagem recebida [workspace_id=ws-1 conversation_id=conv-1]")

    def test_text_line_without_context(self):
        line = StandardFormatter(colorize=False).format(make_record())
        assert line.endswith("INFO - Mensagem recebida")

    def test_colorized_line(self):
        line = StandardFormatter(colorize=True).format(make_record())
        assert line.startswith("\033[32m")
        assert line.endswith("\033[0m")
