"""Inspection of ``--output-format=stream-json`` lines emitted by the agent."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

COMPLETION_RECORD_TYPE = "result"

_SYSTEM_REMINDER = re.compile(r"<system-reminder>.*?</system-reminder>", re.DOTALL)


def parse_stream_line(line: str) -> dict[str, Any] | None:
    """Decode one stream-json line. Non-JSON lines return ``None``."""

    stripped = line.strip()
    if not (stripped.startswith("{") and stripped.endswith("}")):
        return None
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def is_completion_record(event: dict[str, Any] | None) -> bool:
    """The final ``{"type": "result", ...}`` event arrives right before the agent exits."""

    return event is not None and event.get("type") == COMPLETION_RECORD_TYPE


def tool_error_texts(event: dict[str, Any] | None) -> list[str]:
    """Collect text of failed tool results carried by one event."""

    texts: list[str] = []
    for item in _content_items(event):
        if item.get("type") != "tool_result" or not item.get("is_error"):
            continue
        content = item.get("content")
        if isinstance(content, str):
            texts.append(content)
        elif isinstance(content, list):
            texts.extend(
                part["text"]
                for part in content
                if isinstance(part, dict) and isinstance(part.get("text"), str)
            )
    return texts


def display_text(line: str, event: dict[str, Any] | None) -> str | None:
    """Human-oriented text for one line, or ``None`` when the line is bookkeeping."""

    if event is None:
        text = line.rstrip("\n")
        return text.replace("\\n", "\n") if text.strip() else None

    event_type = event.get("type")
    if event_type == "system" and event.get("subtype") == "init":
        return None
    if event_type == COMPLETION_RECORD_TYPE:
        return None

    parts: list[str] = []
    for item in _content_items(event):
        item_type = item.get("type")
        if item_type == "text":
            text = _SYSTEM_REMINDER.sub("", str(item.get("text", ""))).strip()
            if text:
                parts.append(text)
        elif item_type == "tool_use":
            parts.append(f"Tool: {item.get('name', '')} (ID: {item.get('id', '')})")
        elif item_type == "tool_result":
            state = "ERROR" if item.get("is_error") else "OK"
            parts.append(f"Tool Result ({state})")
    if not parts:
        return None
    return "\n".join(parts)


class StreamLogger:
    """Forwards agent output lines to the log."""

    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose

    def on_stdout(self, line: str, event: dict[str, Any] | None) -> None:
        if self.verbose:
            logger.info("[agent] %s", line.rstrip("\n"))
            return
        text = display_text(line, event)
        if text is None:
            logger.debug("[agent] [stream] %s", line.strip())
            return
        logger.info("[agent] %s", text)

    def on_stderr(self, line: str) -> None:
        logger.warning("[agent stderr] %s", line.rstrip("\n"))


def _content_items(event: dict[str, Any] | None) -> list[dict[str, Any]]:
    if event is None:
        return []
    message = event.get("message")
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []
    return [item for item in content if isinstance(item, dict)]
