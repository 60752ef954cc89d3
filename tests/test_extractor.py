from __future__ import annotations

import json

import allure
import pytest

from wv_runner.runner.errors import MarkerMissingError, ResultParseError
from wv_runner.runner.extractor import (
    ExtractionFailure,
    extract,
    find_object_end,
    unescape_quotes,
)

pytestmark = [
    allure.epic("Agent Supervision"),
    allure.feature("Result Extraction"),
]


def _assistant_line(text: str) -> str:
    return json.dumps(
        {
            "type": "assistant",
            "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
        },
    )


def test_extract_plain_result_line() -> None:
    raw = (
        "Task done, PR opened.\n"
        'WVRUNNER_RESULT: {"status": "success", "hours": {"per_day": 8, "task_estimated": 2}}\n'
    )

    result = extract(raw, elapsed_hours=0.75)

    assert result.ok
    assert result.record is not None
    assert result.record.status == "success"
    assert result.record.hours.per_day == 8.0
    assert result.record.hours.task_estimated == 2.0
    assert result.record.hours.task_worked == 0.75


def test_extract_result_embedded_in_stream_json_line() -> None:
    text = (
        'WVRUNNER_RESULT: {"status": "success", "hours": {"per_day": 6, "task_estimated": 1.5}, '
        '"message": "said \\"hi\\" to the reviewer"}'
    )
    raw = "\n".join([_assistant_line("Working..."), _assistant_line(text), ""])

    result = extract(raw, elapsed_hours=1.2)

    assert result.record is not None
    assert result.record.status == "success"
    assert result.record.message == 'said "hi" to the reviewer'
    assert result.record.hours.per_day == 6.0
    assert result.record.hours.task_worked == 1.2


def test_extract_ignores_braces_inside_string_values() -> None:
    raw = (
        'WVRUNNER_RESULT: {"status": "failure", "message": "unbalanced } and { here", '
        '"hours": {"per_day": 8, "task_estimated": 1}} trailing text }'
    )

    result = extract(raw, elapsed_hours=0.1)

    assert result.record is not None
    assert result.record.status == "failure"
    assert result.record.message == "unbalanced } and { here"


def test_extract_overrides_reported_task_worked() -> None:
    raw = (
        'WVRUNNER_RESULT: {"status": "success", '
        '"hours": {"per_day": 8, "task_estimated": 2, "task_worked": 5}}'
    )

    result = extract(raw, elapsed_hours=0.42)

    assert result.record is not None
    assert result.record.hours.task_worked == 0.42
    assert result.record.to_dict()["hours"]["task_worked"] == 0.42


def test_extract_uses_first_marker() -> None:
    raw = (
        'WVRUNNER_RESULT: {"status": "no_more_tasks", "hours": {"per_day": 8}}\n'
        'WVRUNNER_RESULT: {"status": "success", "hours": {"per_day": 4}}\n'
    )

    result = extract(raw, elapsed_hours=0.0)

    assert result.record is not None
    assert result.record.status == "no_more_tasks"
    assert result.record.hours.per_day == 8.0


def test_extract_keeps_extra_fields() -> None:
    raw = (
        'WVRUNNER_RESULT: {"status": "success", "story_id": 42, "task_id": 7, '
        '"hours": {"per_day": 8, "task_estimated": 1, "already_worked": 2.5}}'
    )

    result = extract(raw, elapsed_hours=0.3)

    assert result.record is not None
    assert result.record.extra == {"story_id": 42, "task_id": 7}
    assert result.record.hours.already_worked == 2.5


def test_extract_reports_missing_marker() -> None:
    result = extract("The agent forgot to report anything.", elapsed_hours=0.5)

    assert not result.ok
    assert result.failure is ExtractionFailure.MARKER_NOT_FOUND
    assert result.detail == "No WVRUNNER_RESULT found in output"
    assert isinstance(result.to_error(), MarkerMissingError)


def test_extract_reports_marker_without_object() -> None:
    result = extract("WVRUNNER_RESULT: pending", elapsed_hours=0.5)

    assert result.failure is ExtractionFailure.NO_OBJECT_START
    assert "Could not find JSON object" in result.detail
    assert isinstance(result.to_error(), ResultParseError)


def test_extract_reports_truncated_object() -> None:
    result = extract('WVRUNNER_RESULT: {"status": "success"', elapsed_hours=0.5)

    assert result.failure is ExtractionFailure.UNTERMINATED_OBJECT
    assert result.detail == "Could not find complete JSON object"


def test_extract_reports_unparseable_object() -> None:
    result = extract("WVRUNNER_RESULT: {status: success}", elapsed_hours=0.5)

    assert result.failure is ExtractionFailure.PARSE_ERROR
    assert result.detail.startswith("Failed to parse JSON:")
    assert isinstance(result.to_error(), ResultParseError)


def test_to_error_rejects_successful_result() -> None:
    result = extract('WVRUNNER_RESULT: {"status": "success"}', elapsed_hours=0.0)

    with pytest.raises(ValueError, match="no error"):
        result.to_error()


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ('{"a": 1} tail', 8),
        ('{"a": {"b": {}}}', 16),
        (r'{"a": "x\\"} tail', 12),
        (r'{"a": "x\"}"}', 13),
        ('{"a": "}"', None),
        ("{", None),
    ],
)
def test_find_object_end(text: str, expected: int | None) -> None:
    assert find_object_end(text) == expected


def test_unescape_quotes_removes_one_layer() -> None:
    assert unescape_quotes(r'{\"a\": \"say \\\"hi\\\"\"}') == r'{"a": "say \"hi\""}'
