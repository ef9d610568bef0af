"""Strict-then-lenient parsing of JSON-shaped model output.

Results are tagged: ``Parsed(value)`` when the text (or the first bracketed
block inside it) decoded to the expected shape, ``Fallback(value)`` carrying
the caller's default otherwise.
"""
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Union

logger = logging.getLogger(__name__)

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


@dataclass(frozen=True)
class Parsed:
    value: Any
    ok = True


@dataclass(frozen=True)
class Fallback:
    value: Any
    reason: str = ""
    ok = False


ParseResult = Union[Parsed, Fallback]


def _strip_code_fences(text: str) -> str:
    content = (text or "").strip()
    if content.startswith("```"):
        lines = content.splitlines()
        if lines:
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        content = "\n".join(lines).strip()
    return content


def _parse(text: str, pattern, expected: type, default) -> ParseResult:
    content = _strip_code_fences(text)
    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        match = pattern.search(content)
        if not match:
            return Fallback(default, "no json block")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse JSON %s: %s", expected.__name__, exc)
            return Fallback(default, str(exc))
    if not isinstance(data, expected):
        return Fallback(default, f"expected {expected.__name__}")
    return Parsed(data)


def parse_json_object(text: str, default=None) -> ParseResult:
    return _parse(text, _OBJECT_RE, dict, default)


def parse_json_array(text: str, default=None) -> ParseResult:
    return _parse(text, _ARRAY_RE, list, [] if default is None else default)
