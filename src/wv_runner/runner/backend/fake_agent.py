"""Scriptable stand-in for the ``claude`` CLI used by supervisor integration tests.

Prints stream-json events the way the real agent does, then optionally hangs,
ignores SIGTERM, or flushes its result only when asked to stop.
"""

from __future__ import annotations

import argparse
import json
import signal
import sys
import time


def main(argv: list[str] | None = None) -> int:
    """Emit the scripted transcript and exit with the requested status."""

    parser = argparse.ArgumentParser()
    parser.add_argument("--text", action="append", default=[], help="Assistant text line.")
    parser.add_argument("--result", default=None, help="JSON object printed after the marker.")
    parser.add_argument("--completion-record", action="store_true")
    parser.add_argument("--stderr", action="append", default=[])
    parser.add_argument(
        "--tool-error",
        action="append",
        default=[],
        help="Text of a failed tool result.",
    )
    parser.add_argument("--delay", type=float, default=0.0, help="Pause between text lines.")
    parser.add_argument("--hang", type=float, default=0.0, help="Sleep before exiting.")
    parser.add_argument("--exit-code", type=int, default=0)
    parser.add_argument(
        "--on-term",
        choices=("exit", "flush", "ignore"),
        default="exit",
        help="flush: print the result only when SIGTERM arrives.",
    )
    args, _unknown = parser.parse_known_args(argv)

    result_line = f"WVRUNNER_RESULT: {args.result}" if args.result is not None else None

    if args.on_term == "ignore":
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
    elif args.on_term == "flush":

        def _flush_and_exit(_signum: int, _frame: object) -> None:
            if result_line is not None:
                _emit_text(result_line)
            sys.exit(143)

        signal.signal(signal.SIGTERM, _flush_and_exit)

    for line in args.stderr:
        print(line, file=sys.stderr, flush=True)
    for text in args.tool_error:
        _emit_tool_error(text)
    for text in args.text:
        _emit_text(text)
        if args.delay:
            time.sleep(args.delay)
    if result_line is not None and args.on_term != "flush":
        _emit_text(result_line)
        if args.completion_record:
            _emit({"type": "result", "subtype": "success", "result": result_line})

    if args.hang:
        time.sleep(args.hang)
    return args.exit_code


def _emit_text(text: str) -> None:
    _emit(
        {
            "type": "assistant",
            "message": {"role": "assistant", "content": [{"type": "text", "text": text}]},
        },
    )


def _emit_tool_error(text: str) -> None:
    _emit(
        {
            "type": "user",
            "message": {
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": "toolu_fake",
                        "is_error": True,
                        "content": text,
                    },
                ],
            },
        },
    )


def _emit(event: dict[str, object]) -> None:
    print(json.dumps(event), flush=True)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
