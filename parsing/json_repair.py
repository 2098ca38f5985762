# parsing/json_repair.py
"""Best-effort repair of near-JSON model output.

Models wrap JSON in prose and code fences, leave trailing commas, use
JavaScript literals, forget to quote keys or escape quotes, and get cut off
mid-document. :func:`repair_json_text` runs a fixed sequence of pure text
passes over such output and returns parseable JSON, or raises
:class:`RepairFailure` once every pass has been applied.

Every pass leaves valid JSON untouched, and no pass assumes an earlier one
fully succeeded. The passes run exactly once, in order, with no backtracking.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from typing import Any

import structlog

from config import settings
from core.errors import RepairFailure

logger = structlog.get_logger(__name__)

_OPENERS: dict[str, str] = {"{": "}", "[": "]"}
_CLOSERS: dict[str, str] = {"}": "{", "]": "["}
_CONTROL_ESCAPES: dict[str, str] = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}

_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")
_BARE_KEY_RE = re.compile(r"([{,]\s*)([^\W\d][\w\-]*)(\s*:)")
_NON_JSON_LITERAL_RE = re.compile(r"(?<![\w$.])(-?Infinity|NaN|undefined)(?![\w$])")
_CASED_LITERAL_RE = re.compile(r"(?<![\w$])(true|false|null)(?![\w$])", re.IGNORECASE)
_BARE_VALUE_RE = re.compile(r"(:\s*)([^\W\d][^,{}\[\]\":\n]*?)(\s*[,}\]])")
_MISSING_OPEN_QUOTE_RE = re.compile(
    r'("(?:[^"\\\n]|\\.)*"\s*:\s*)([^\s"{\[\]},\d\-][^"\n]*?)"(\s*[,}\]]|\s*$)'
)
_FRAGMENT_LINE_RE = re.compile(r'^(\s*\{?\s*"[^"\n]+"\s*:\s*")(.*)("\s*\}?\s*,?\s*)$')
_UNESCAPED_QUOTE_RE = re.compile(r'(?<!\\)"')
_QUOTED_KEY_IN_VALUE_RE = re.compile(r'(?<!\\)"\s*:')
_DANGLING_KEY_RE = re.compile(r',?\s*"(?:[^"\\]|\\.)*"\s*:\s*$')
_DANGLING_MEMBER_RE = re.compile(r'(?:,|(?<=\{))\s*"(?:[^"\\]|\\.)*"\s*$')


def _reject_constant(token: str) -> Any:
    raise ValueError(f"Non-JSON literal '{token}'")


def _strict_loads(text: str) -> Any:
    """``json.loads`` that refuses ``NaN``/``Infinity`` instead of accepting them."""
    return json.loads(text, parse_constant=_reject_constant)


def _next_significant(text: str, pos: int) -> tuple[str | None, bool]:
    """Return the next non-whitespace character after ``pos`` and whether a newline was crossed."""
    saw_newline = False
    n = len(text)
    while pos < n and text[pos] in " \t\r\n":
        if text[pos] == "\n":
            saw_newline = True
        pos += 1
    return (text[pos] if pos < n else None), saw_newline


def _prev_significant(text: str, pos: int) -> str | None:
    pos -= 1
    while pos >= 0 and text[pos] in " \t\r\n":
        pos -= 1
    return text[pos] if pos >= 0 else None


def _opens_single_quoted(text: str, pos: int) -> bool:
    """A single quote opens a string only where a key or value may start."""
    prev = _prev_significant(text, pos)
    return prev is None or prev in "{[,:"


def _closes_single_quoted(text: str, pos: int) -> bool:
    nxt, _ = _next_significant(text, pos + 1)
    return nxt is None or nxt in ",:}]"


def _scan_string_end(text: str, start: int) -> int:
    """Return the index just past the string literal opening at ``start``."""
    quote = text[start]
    n = len(text)
    j = start + 1
    while j < n:
        ch = text[j]
        if ch == "\\":
            j += 2
            continue
        if ch == quote and (quote == '"' or _closes_single_quoted(text, j)):
            return j + 1
        j += 1
    return n


def _split_string_spans(text: str) -> list[tuple[bool, str]]:
    """Split ``text`` into ``(is_string, segment)`` pieces."""
    segments: list[tuple[bool, str]] = []
    plain_start = 0
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"' or (ch == "'" and _opens_single_quoted(text, i)):
            if i > plain_start:
                segments.append((False, text[plain_start:i]))
            end = _scan_string_end(text, i)
            segments.append((True, text[i:end]))
            i = end
            plain_start = i
            continue
        i += 1
    if plain_start < n:
        segments.append((False, text[plain_start:]))
    return segments


def _outside_strings(text: str, transform: Callable[[str], str]) -> str:
    return "".join(
        segment if is_string else transform(segment)
        for is_string, segment in _split_string_spans(text)
    )


# --- Passes -----------------------------------------------------------------


def _extract_json_span(text: str) -> str:
    """Return the first balanced ``{...}``/``[...]`` span, or the open tail."""
    start = next((i for i, ch in enumerate(text) if ch in _OPENERS), -1)
    if start == -1:
        return text.strip()

    stack: list[str] = []
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        ch = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _OPENERS:
            stack.append(ch)
        elif ch in _CLOSERS:
            if stack[-1] != _CLOSERS[ch]:
                # Mismatched closer; left for bracket balancing.
                continue
            stack.pop()
            if not stack:
                return text[start : idx + 1]
    return text[start:]


def _strip_comments(text: str) -> str:
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"' or (ch == "'" and _opens_single_quoted(text, i)):
            end = _scan_string_end(text, i)
            out.append(text[i:end])
            i = end
            continue
        if ch == "/" and i + 1 < n and text[i + 1] in "/*":
            if text[i + 1] == "/":
                end = text.find("\n", i)
                i = n if end == -1 else end
            else:
                end = text.find("*/", i + 2)
                i = n if end == -1 else end + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _remove_trailing_commas(text: str) -> str:
    return _outside_strings(text, lambda seg: _TRAILING_COMMA_RE.sub(r"\1", seg))


def _quote_bare_keys(text: str) -> str:
    return _outside_strings(text, lambda seg: _BARE_KEY_RE.sub(r'\1"\2"\3', seg))


def _normalize_single_quotes(text: str) -> str:
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '"':
            end = _scan_string_end(text, i)
            out.append(text[i:end])
            i = end
            continue
        if ch == "'" and _opens_single_quoted(text, i):
            end = _scan_string_end(text, i)
            terminated = end <= n and end - 1 > i and text[end - 1] == "'"
            body = text[i + 1 : end - 1] if terminated else text[i + 1 : end]
            body = body.replace("\\'", "'")
            body = _UNESCAPED_QUOTE_RE.sub(r'\\"', body)
            out.append('"' + body + ('"' if terminated else ""))
            i = end
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _normalize_literals(text: str) -> str:
    def _fix(segment: str) -> str:
        segment = _NON_JSON_LITERAL_RE.sub("null", segment)
        return _CASED_LITERAL_RE.sub(lambda m: m.group(1).lower(), segment)

    return _outside_strings(text, _fix)


def _quote_bare_value(match: re.Match[str]) -> str:
    value = match.group(2)
    if value in ("true", "false", "null"):
        return match.group(0)
    return f'{match.group(1)}"{value}"{match.group(3)}'


def _quote_bare_values(text: str) -> str:
    return _outside_strings(text, lambda seg: _BARE_VALUE_RE.sub(_quote_bare_value, seg))


def _fix_missing_opening_quotes(text: str) -> str:
    lines = text.split("\n")
    for idx, line in enumerate(lines):
        if len(_UNESCAPED_QUOTE_RE.findall(line)) % 2 == 0:
            continue
        lines[idx] = _MISSING_OPEN_QUOTE_RE.sub(r'\1"\2"\3', line, count=1)
    return "\n".join(lines)


def _repair_fragment_line(line: str) -> str:
    match = _FRAGMENT_LINE_RE.match(line)
    if not match:
        return line
    inner = match.group(2)
    if not _UNESCAPED_QUOTE_RE.search(inner) or _QUOTED_KEY_IN_VALUE_RE.search(inner):
        return line
    return match.group(1) + _UNESCAPED_QUOTE_RE.sub(r'\\"', inner) + match.group(3)


def _fix_quoted_fragments(text: str) -> str:
    return "\n".join(_repair_fragment_line(line) for line in text.split("\n"))


def _escape_interior_quotes(text: str) -> str:
    out: list[str] = []
    in_string = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if not in_string:
            if ch == '"':
                in_string = True
            out.append(ch)
            i += 1
            continue
        if ch == "\\" and i + 1 < n:
            out.append(text[i : i + 2])
            i += 2
            continue
        if ch == '"':
            nxt, crossed_newline = _next_significant(text, i + 1)
            if nxt is None or nxt in ",:}]" or (nxt == '"' and crossed_newline):
                in_string = False
                out.append(ch)
            else:
                out.append('\\"')
            i += 1
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def _trim_dangling_tail(text: str, innermost: str) -> str:
    """Drop a trailing comma, key without value, or key without colon."""
    for _ in range(3):
        stripped = text.rstrip()
        if stripped.endswith(","):
            text = stripped[:-1]
            continue
        if stripped.endswith(":"):
            text = _DANGLING_KEY_RE.sub("", stripped)
            continue
        if innermost == "{":
            trimmed = _DANGLING_MEMBER_RE.sub("", stripped)
            if trimmed != stripped:
                text = trimmed
                continue
        break
    return text


def _balance_brackets(text: str) -> str:
    out: list[str] = []
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            out.append(ch)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            out.append(ch)
        elif ch in _OPENERS:
            stack.append(ch)
            out.append(ch)
        elif ch in _CLOSERS:
            if stack and stack[-1] == _CLOSERS[ch]:
                stack.pop()
                out.append(ch)
            # Unmatched closers are dropped.
        else:
            out.append(ch)

    result = "".join(out)
    if in_string:
        if escaped:
            result = result[:-1]
        result += '"'
    if stack:
        result = _trim_dangling_tail(result, stack[-1])
        result += "".join(_OPENERS[opener] for opener in reversed(stack))
    return result


def _escape_control_characters(text: str) -> str:
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if escaped:
            out.append(ch)
            escaped = False
            continue
        if in_string and ch == "\\":
            out.append(ch)
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            out.append(ch)
            continue
        if in_string and ch in _CONTROL_ESCAPES:
            out.append(_CONTROL_ESCAPES[ch])
            continue
        out.append(ch)
    return "".join(out)


BALANCE_PASS = "balance_brackets"

_PASSES: list[tuple[str, Callable[[str], str]]] = [
    ("extract_span", _extract_json_span),
    ("strip_comments", _strip_comments),
    ("trailing_commas", _remove_trailing_commas),
    ("bare_keys", _quote_bare_keys),
    ("single_quotes", _normalize_single_quotes),
    ("literals", _normalize_literals),
    ("bare_values", _quote_bare_values),
    ("missing_open_quotes", _fix_missing_opening_quotes),
    ("quoted_fragments", _fix_quoted_fragments),
    ("interior_quotes", _escape_interior_quotes),
    (BALANCE_PASS, _balance_brackets),
    ("control_characters", _escape_control_characters),
]


def _preview(raw_text: str) -> str:
    limit = settings.REPAIR_PREVIEW_CHARS
    if len(raw_text) <= limit:
        return raw_text
    return raw_text[:limit] + "..."


def _repair(raw_text: str, safe_mode: bool) -> tuple[str, Any]:
    if not isinstance(raw_text, str):
        raise RepairFailure(
            _preview(repr(raw_text)),
            TypeError(f"expected str, got {type(raw_text).__name__}"),
            safe_mode,
        )

    try:
        return raw_text, _strict_loads(raw_text)
    except ValueError:
        pass

    candidate = raw_text
    for name, transform in _PASSES:
        if safe_mode and name == BALANCE_PASS:
            continue
        candidate = transform(candidate)

    try:
        parsed = _strict_loads(candidate)
    except ValueError as exc:
        logger.warning(
            "JSON repair exhausted all passes.",
            error=str(exc),
            preview=_preview(raw_text),
        )
        raise RepairFailure(_preview(raw_text), exc, safe_mode) from exc

    logger.debug(
        "Repaired malformed JSON output.",
        original_length=len(raw_text),
        repaired_length=len(candidate),
    )
    return candidate, parsed


def repair_json_text(raw_text: str, safe_mode: bool | None = None) -> str:
    """Return ``raw_text`` coerced into valid JSON text.

    ``safe_mode`` skips bracket balancing and keeps failure messages minimal;
    it defaults to ``settings.REPAIR_SAFE_MODE``.
    """
    if safe_mode is None:
        safe_mode = settings.REPAIR_SAFE_MODE
    text, _ = _repair(raw_text, safe_mode)
    return text


def repair_json(raw_text: str, safe_mode: bool | None = None) -> Any:
    """Return the value parsed from ``raw_text`` after repair."""
    if safe_mode is None:
        safe_mode = settings.REPAIR_SAFE_MODE
    _, parsed = _repair(raw_text, safe_mode)
    return parsed
