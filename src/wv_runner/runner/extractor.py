"""Locate and parse the ``WVRUNNER_RESULT`` object in agent output.

The agent is asked to finish with a line like::

    WVRUNNER_RESULT: {"status": "success", "hours": {"per_day": 8, "task_estimated": 2}}

In stream-json mode that line arrives inside a JSON-encoded string, so the
object usually shows up with every quote escaped (``{\\"status\\": ...}``)
and quotes inside values escaped twice. Plain transcripts contain it
unescaped. Both forms are accepted.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum

from wv_runner.runner.errors import MarkerMissingError, ResultParseError, RunnerError
from wv_runner.runner.models import RESULT_MARKER, OutcomeRecord

logger = logging.getLogger(__name__)

_ESCAPED_QUOTE_OR_BACKSLASH = re.compile(r'\\(["\\])')


class ExtractionFailure(str, Enum):
    """Why no record could be extracted."""

    MARKER_NOT_FOUND = "marker not found"
    NO_OBJECT_START = "no object start"
    UNTERMINATED_OBJECT = "unterminated object"
    PARSE_ERROR = "parse error"


@dataclass(frozen=True, slots=True)
class ExtractionResult:
    """Either a parsed record or a failure reason with details."""

    record: OutcomeRecord | None = None
    failure: ExtractionFailure | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.record is not None

    def to_error(self) -> RunnerError:
        """Map a failure onto the runner error taxonomy."""

        if self.failure is None:
            raise ValueError("Successful extraction has no error.")
        if self.failure is ExtractionFailure.MARKER_NOT_FOUND:
            return MarkerMissingError(self.detail)
        return ResultParseError(self.detail)


def extract(raw_text: str, *, elapsed_hours: float) -> ExtractionResult:
    """Extract the outcome record and stamp it with the measured duration."""

    logger.debug("Parsing agent output (%d chars) for %r", len(raw_text), RESULT_MARKER)

    marker_index = raw_text.find(RESULT_MARKER)
    if marker_index == -1:
        logger.debug("Result marker not found. Output tail: %s", raw_text[-500:])
        return ExtractionResult(
            failure=ExtractionFailure.MARKER_NOT_FOUND,
            detail="No WVRUNNER_RESULT found in output",
        )

    after_marker = raw_text[marker_index + len(RESULT_MARKER) :]
    brace_index = after_marker.find("{")
    if brace_index == -1:
        return ExtractionResult(
            failure=ExtractionFailure.NO_OBJECT_START,
            detail="Could not find JSON object after WVRUNNER_RESULT marker",
        )

    candidate = after_marker[brace_index:]
    object_end = find_object_end(candidate)
    if object_end is None:
        logger.debug("Unterminated result object: %s", candidate[:300])
        return ExtractionResult(
            failure=ExtractionFailure.UNTERMINATED_OBJECT,
            detail="Could not find complete JSON object",
        )

    json_text = candidate[:object_end]
    try:
        payload = _load_object(json_text)
    except ValueError as error:
        logger.debug("Result object failed to parse: %r", json_text)
        return ExtractionResult(
            failure=ExtractionFailure.PARSE_ERROR,
            detail=f"Failed to parse JSON: {error}",
        )

    record = OutcomeRecord.from_payload(payload, task_worked=elapsed_hours)
    logger.debug(
        "Parsed result: status=%s per_day=%s task_estimated=%s task_worked=%s",
        record.status,
        record.hours.per_day,
        record.hours.task_estimated,
        record.hours.task_worked,
    )
    return ExtractionResult(record=record)


def find_object_end(text: str) -> int | None:
    """Return the index just past the object that opens at ``text[0]``.

    A quote preceded by an odd run of backslashes is escaped and never opens
    or closes a string. Braces inside strings do not count. Returns ``None``
    when the text ends before the braces balance.
    """

    depth = 0
    in_string = False
    index = 0
    length = len(text)

    while index < length:
        char = text[index]

        if char == "\\":
            run_end = index
            while run_end < length and text[run_end] == "\\":
                run_end += 1
            if run_end < length and text[run_end] == '"' and (run_end - index) % 2 == 1:
                index = run_end + 1
                continue
            index = run_end
            continue

        if char == '"':
            in_string = not in_string
        elif not in_string:
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return index + 1

        index += 1

    logger.debug("Result object not closed, final depth: %d", depth)
    return None


def unescape_quotes(text: str) -> str:
    r"""Remove one layer of JSON string escaping from quotes and backslashes.

    ``{\"a\": \"say \\\"hi\\\"\"}`` becomes ``{"a": "say \"hi\""}``.
    """

    return _ESCAPED_QUOTE_OR_BACKSLASH.sub(r"\1", text)


def _load_object(json_text: str) -> dict[str, object]:
    try:
        parsed = json.loads(json_text)
    except json.JSONDecodeError:
        parsed = json.loads(unescape_quotes(json_text))
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed
