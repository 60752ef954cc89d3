from __future__ import annotations

import json
import logging

import allure

from wv_runner.runner.stream import (
    StreamLogger,
    display_text,
    is_completion_record,
    parse_stream_line,
    tool_error_texts,
)

pytestmark = [
    allure.epic("Agent Supervision"),
    allure.feature("Stream Inspection"),
]


def _line(event: dict) -> str:
    return json.dumps(event) + "\n"


def test_parse_stream_line_accepts_only_json_objects() -> None:
    assert parse_stream_line('{"type": "system"}\n') == {"type": "system"}
    assert parse_stream_line("plain text\n") is None
    assert parse_stream_line("{not json}") is None
    assert parse_stream_line("[1, 2]") is None


def test_completion_record_detection() -> None:
    assert is_completion_record({"type": "result", "subtype": "success"})
    assert not is_completion_record({"type": "assistant"})
    assert not is_completion_record(None)


def test_tool_error_texts_reads_string_and_list_content() -> None:
    event = {
        "type": "user",
        "message": {
            "content": [
                {"type": "tool_result", "is_error": True, "content": "requires approval: bin/ci"},
                {
                    "type": "tool_result",
                    "is_error": True,
                    "content": [{"type": "text", "text": "exit code 1"}],
                },
                {"type": "tool_result", "is_error": False, "content": "ok"},
            ],
        },
    }

    assert tool_error_texts(event) == ["requires approval: bin/ci", "exit code 1"]
    assert tool_error_texts(None) == []


def test_display_text_hides_bookkeeping_events() -> None:
    init = {"type": "system", "subtype": "init"}
    result = {"type": "result", "result": "done"}

    assert display_text(_line(init), init) is None
    assert display_text(_line(result), result) is None


def test_display_text_strips_system_reminders() -> None:
    event = {
        "type": "assistant",
        "message": {
            "content": [
                {"type": "text", "text": "Hello<system-reminder>internal</system-reminder>"},
                {"type": "tool_use", "name": "Bash", "id": "toolu_1"},
            ],
        },
    }

    assert display_text(_line(event), event) == "Hello\nTool: Bash (ID: toolu_1)"


def test_stream_logger_logs_readable_text(caplog) -> None:
    event = {"type": "assistant", "message": {"content": [{"type": "text", "text": "Working"}]}}

    with caplog.at_level(logging.DEBUG, logger="wv_runner"):
        StreamLogger().on_stdout(_line(event), event)
        StreamLogger().on_stderr("careful\n")

    messages = [record.getMessage() for record in caplog.records]
    assert "[agent] Working" in messages
    assert "[agent stderr] careful" in messages
