# parsing/stream_extract.py
"""Pull one string field out of a JSON document that is still streaming in."""

from __future__ import annotations

import json
import re

import structlog

from config import settings

logger = structlog.get_logger(__name__)

_PARTIAL_UNICODE_RE = re.compile(r"\\u[0-9a-fA-F]{0,3}$")
_HIGH_SURROGATE_RE = re.compile(r"\\u[dD][89abAB][0-9a-fA-F]{2}$")


def _field_marker(field_name: str) -> re.Pattern[str]:
    return re.compile(r'"' + re.escape(field_name) + r'"\s*:\s*"')


def _is_escaped(text: str, pos: int) -> bool:
    """True when the character at ``pos`` follows an odd run of backslashes."""
    run = 0
    pos -= 1
    while pos >= 0 and text[pos] == "\\":
        run += 1
        pos -= 1
    return run % 2 == 1


def _trim_partial_escape(raw: str) -> str:
    if raw.endswith("\\") and not _is_escaped(raw, len(raw) - 1):
        return raw[:-1]
    for pattern in (_PARTIAL_UNICODE_RE, _HIGH_SURROGATE_RE):
        match = pattern.search(raw)
        if match and not _is_escaped(raw, match.start()):
            return raw[: match.start()]
    return raw


def _hold_back_partial_escape(raw: str) -> str:
    # A held-back low surrogate can expose its high surrogate.
    trimmed = _trim_partial_escape(raw)
    while trimmed != raw:
        raw, trimmed = trimmed, _trim_partial_escape(trimmed)
    return raw


def _decode(raw: str) -> str:
    try:
        return json.loads(f'"{raw}"', strict=False)
    except json.JSONDecodeError:
        return raw.replace("\\n", "\n").replace('\\"', '"')


def extract_field_state(
    buffer: str, field_name: str = settings.NARRATIVE_TEXT_FIELD
) -> tuple[str, bool]:
    """Return ``(value, complete)`` for the last ``field_name`` string in ``buffer``.

    ``complete`` turns true once the value's closing quote has arrived. While
    the value is still open, a trailing partial escape sequence is withheld so
    that successive calls on a growing buffer never return a shorter value.
    """
    if not buffer:
        return "", False

    last_match = None
    for last_match in _field_marker(field_name).finditer(buffer):
        pass
    if last_match is None:
        return "", False

    start = last_match.end()
    end = start
    while True:
        end = buffer.find('"', end)
        if end == -1 or not _is_escaped(buffer, end):
            break
        end += 1

    if end == -1:
        return _decode(_hold_back_partial_escape(buffer[start:])), False
    return _decode(buffer[start:end]), True


def extract_field(buffer: str, field_name: str = settings.NARRATIVE_TEXT_FIELD) -> str:
    """Return the best current value of ``field_name`` from a partial JSON buffer."""
    value, _ = extract_field_state(buffer, field_name)
    return value


__all__ = ["extract_field", "extract_field_state"]
