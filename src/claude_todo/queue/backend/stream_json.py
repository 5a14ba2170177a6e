"""Text extraction from ``--output-format=stream-json`` records."""

from __future__ import annotations

import json
from typing import Any


def parse_json_line(line: str) -> dict[str, Any] | None:
    """Decode one output line; anything that is not a JSON object yields ``None``."""

    stripped = line.strip()
    if not stripped:
        return None
    try:
        payload = json.loads(stripped)
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def extract_text(line: str) -> str:
    """Return the human-readable text carried by one stream-json record."""

    payload = parse_json_line(line)
    if payload is None:
        return ""
    record_type = payload.get("type")
    if record_type == "assistant":
        return _assistant_text(payload)
    if record_type == "text":
        text = payload.get("text")
        return text if isinstance(text, str) else ""
    if record_type == "result":
        result = payload.get("result")
        return f"{result}\n" if isinstance(result, str) else ""
    return ""


def extract_output(stdout: str) -> str:
    """Concatenate text from every record in ``stdout``, trimmed."""

    return "".join(extract_text(line) for line in stdout.splitlines()).strip()


def _assistant_text(payload: dict[str, Any]) -> str:
    message = payload.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")
    if not isinstance(content, list):
        return ""
    parts: list[str] = []
    for block in content:
        if not isinstance(block, dict) or block.get("type") != "text":
            continue
        text = block.get("text")
        if isinstance(text, str):
            parts.append(f"{text}\n")
    return "".join(parts)
