"""Local stand-in for the Claude CLI used in executor and worker tests.

Accepts the same flags the executor passes, prints stream-json records and
picks its behavior from ``CLAUDE_TODO_ECHO_MODE``:

``ok`` (default), ``fail`` (stderr + exit 2), ``fail_silent`` (exit 3, no
output), ``rate_limit`` (usage-limit sentinel, exit 1) and ``rate_limit_once``
(rate-limited on the first call per ``CLAUDE_TODO_ECHO_STATE`` file, then ok).
``CLAUDE_TODO_ECHO_DELAY`` pauses an ok run after its init record.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
import time
from pathlib import Path

ECHO_VERSION = "0.0.0 (echo agent)"


def main(argv: list[str] | None = None) -> int:
    """Emulate one ``claude --print --output-format=stream-json`` call."""

    parser = argparse.ArgumentParser(prog="echo-agent")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--model", default="unknown")
    parser.add_argument("--print", action="store_true", dest="print_mode")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--output-format", default="text")
    parser.add_argument("--dangerously-skip-permissions", action="store_true")
    parser.add_argument("prompt", nargs="?", default="")
    args, _ = parser.parse_known_args(argv)

    if args.version:
        print(ECHO_VERSION)
        return 0

    mode = os.getenv("CLAUDE_TODO_ECHO_MODE", "ok")
    if mode == "rate_limit_once":
        state_path = Path(os.environ["CLAUDE_TODO_ECHO_STATE"])
        if state_path.exists():
            mode = "ok"
        else:
            state_path.write_text("1", "utf-8")
            mode = "rate_limit"

    if mode == "fail":
        print(f"echo agent failure for: {args.prompt}", file=sys.stderr)
        return 2
    if mode == "fail_silent":
        return 3
    if mode == "rate_limit":
        resume_in = int(os.getenv("CLAUDE_TODO_ECHO_RESUME_IN", "0"))
        print(f"Claude AI usage limit reached|{int(time.time()) + resume_in}")
        return 1

    _emit({"type": "system", "subtype": "init", "model": args.model})
    delay = float(os.getenv("CLAUDE_TODO_ECHO_DELAY", "0"))
    if delay > 0:
        time.sleep(delay)
    _emit(
        {
            "type": "assistant",
            "message": {"content": [{"type": "text", "text": f"Echo: {args.prompt}"}]},
        },
    )
    print("not json at all")
    _emit({"type": "result", "subtype": "success", "result": f"Done: {args.prompt}"})
    return 0


def _emit(record: dict[str, object]) -> None:
    print(json.dumps(record, ensure_ascii=False), flush=True)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
