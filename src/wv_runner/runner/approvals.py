"""Collects shell commands the agent was not allowed to run without approval."""

from __future__ import annotations

import re

_PARTS_REQUIRE_APPROVAL = re.compile(r"The following parts require approval:\s*(.+)", re.IGNORECASE)
_REQUIRES_APPROVAL = re.compile(r"requires approval:\s*(.+)", re.IGNORECASE)


class ApprovalCollector:
    """Per-session list of approval-requiring commands, in first-seen order.

    Created by the caller for one session, handed to the supervisor, and read
    and cleared by the caller once the session ends.
    """

    def __init__(self) -> None:
        self._commands: list[str] = []

    def add(self, command: str | None) -> None:
        if command is None:
            return
        normalized = command.strip()
        if not normalized or normalized in self._commands:
            return
        self._commands.append(normalized)

    def extract_from_error(self, error_message: str | None) -> None:
        """Record the command named in a tool error such as ``... require approval: bin/ci``."""

        if not error_message:
            return
        if "require approval" not in error_message and "requires approval" not in error_message:
            return
        match = _PARTS_REQUIRE_APPROVAL.search(error_message) or _REQUIRES_APPROVAL.search(
            error_message,
        )
        if match is not None:
            self.add(match.group(1))

    @property
    def commands(self) -> list[str]:
        return list(self._commands)

    def clear(self) -> None:
        self._commands.clear()

    def summary_lines(self) -> list[str]:
        if not self._commands:
            return []
        lines = [
            "Commands that required approval during this session:",
            *(f"  {index}. {command}" for index, command in enumerate(self._commands, start=1)),
            "Add them to the allowed tools in ~/.claude/settings.json to auto-approve them.",
        ]
        return lines
