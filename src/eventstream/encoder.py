"""SSE field encoding.

Each helper returns the exact text chunks a session writes to the wire. Multi-line
values become one chunk per line so every chunk is a single newline-terminated field.
"""

from __future__ import annotations

import json
import re
from typing import Any

PROTOCOL_HEADERS: dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}

DISPATCH = "\n"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def split_lines(text: str) -> list[str]:
    """Split on any SSE line terminator (CRLF, CR, LF)."""
    return _LINE_BREAK.split(text)


def encode_field(name: str, value: str = "") -> str:
    """Encode a single-line field as ``name:value\\n``."""
    if _LINE_BREAK.search(value):
        raise ValueError(f"{name} field value must not contain line breaks: {value!r}")
    return f"{name}:{value}\n"


def encode_id(value: str | None) -> str:
    value = "" if value is None else value
    if "\0" in value:
        raise ValueError("id field value must not contain NUL")
    return encode_field("id", value)


def encode_retry(ms: int) -> str:
    if isinstance(ms, bool) or not isinstance(ms, int) or ms <= 0:
        raise ValueError(f"retry must be a positive integer of milliseconds, got {ms!r}")
    return encode_field("retry", str(ms))


def encode_data(payload: Any) -> list[str]:
    """Encode a payload as ``data:`` lines, serializing non-string payloads as JSON."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return [f"data:{line}\n" for line in split_lines(text)]


def encode_comment(text: str = "") -> list[str]:
    return [f":{line}\n" for line in split_lines(text)]
