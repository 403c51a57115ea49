"""
Recovering a JSON item array from language-model output.

Models wrap the array in code fences, add prose around it, return a single
object, or put raw double quotes inside string values. Each of those has a
small pure transform below; ``candidates`` lays them out in a fixed order
(each followed by its quote-repaired variant) and ``first_success`` returns
the first candidate that parses into at least one usable item.
"""
from __future__ import annotations

import json
import re
from typing import Any, Callable, Iterable, TypeVar

from feedbrief.models.schemas import SynthesizedItem

T = TypeVar("T")

ITEM_FIELDS = ("title", "url", "summary", "category", "source")

_FENCE_OPEN_RE = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```\s*$")
_BRACKETED_RE = re.compile(r"^[^\[]*(\[[\s\S]*\])[^}\]]*$")
_SINGLE_OBJECT_RE = re.compile(r'\{[\s\S]*"title"[\s\S]*"url"[\s\S]*\}')

_CURLY_QUOTES = ("“", "”", "„", "″", "＂")
_FIELDS_ALT = "|".join(ITEM_FIELDS)
_FIELD_LINE_RE = re.compile(rf'^(\s*"(?:{_FIELDS_ALT})"\s*:\s*")(.*)(",?\s*)$')
_FIELD_START_RE = re.compile(rf'"(?:{_FIELDS_ALT})"\s*:\s*"')
_VALUE_END_RE = re.compile(rf'"\s*(?:,\s*"(?:{_FIELDS_ALT})"\s*:|\}})')
_BARE_QUOTE_RE = re.compile(r'(?<!\\)"')


# -- transforms -------------------------------------------------------------

def raw(text: str) -> str:
    return text.strip()


def strip_code_fence(text: str) -> str:
    return _FENCE_CLOSE_RE.sub("", _FENCE_OPEN_RE.sub("", text.strip())).strip()


def extract_bracketed(text: str) -> str:
    """Trim prose before the first '[' and after the closing ']' of the array."""
    m = _BRACKETED_RE.match(text.strip())
    return m.group(1).strip() if m else text.strip()


def aggressive_trim(text: str) -> str:
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end < start:
        return ""
    return text[start : end + 1]


def wrap_single_object(text: str) -> str:
    m = _SINGLE_OBJECT_RE.search(text)
    return f"[{m.group(0)}]" if m else ""


def _escape_inline_values(line: str) -> str:
    out: list[str] = []
    pos = 0
    for m in _FIELD_START_RE.finditer(line):
        if m.start() < pos:
            continue
        value_start = m.end()
        end_m = _VALUE_END_RE.search(line, value_start)
        if not end_m:
            break
        # the closing quote of this value is the last one before the terminator
        value = line[value_start : end_m.start()]
        out.append(line[pos:value_start])
        out.append(_BARE_QUOTE_RE.sub(r'\\"', value))
        pos = end_m.start()
    out.append(line[pos:])
    return "".join(out)


def fix_llm_json_quotes(text: str) -> str:
    """
    Escape stray double quotes inside known string fields.

    Curly and full-width quotes become escaped straight quotes. Lines that
    hold exactly one ``"field": "value"`` pair get every bare quote in the
    value escaped; lines with several pairs (single-line objects) are split
    on the known field names.
    """
    for q in _CURLY_QUOTES:
        text = text.replace(q, '\\"')

    lines = text.split("\n")
    for i, line in enumerate(lines):
        m = _FIELD_LINE_RE.match(line)
        if m and not _FIELD_START_RE.search(m.group(2)):
            prefix, value, suffix = m.groups()
            lines[i] = prefix + _BARE_QUOTE_RE.sub(r'\\"', value) + suffix
        elif _FIELD_START_RE.search(line):
            lines[i] = _escape_inline_values(line)
    return "\n".join(lines)


PRIMARY_TRANSFORMS: tuple[Callable[[str], str], ...] = (
    raw,
    strip_code_fence,
    extract_bracketed,
    aggressive_trim,
    wrap_single_object,
)

RESCUE_TRANSFORMS: tuple[Callable[[str], str], ...] = (
    raw,
    strip_code_fence,
    aggressive_trim,
)


def candidates(text: str, transforms: Iterable[Callable[[str], str]] = PRIMARY_TRANSFORMS) -> list[str]:
    out: list[str] = []
    for transform in transforms:
        base = transform(text)
        if not base:
            continue
        for c in (base, fix_llm_json_quotes(base)):
            if c and c not in out:
                out.append(c)
    return out


# -- parsing ----------------------------------------------------------------

def first_success(options: Iterable[str], parser: Callable[[str], T | None]) -> T | None:
    for option in options:
        try:
            result = parser(option)
        except ValueError:
            continue
        if result:
            return result
    return None


def _as_text(v: Any) -> str:
    if v is None:
        return ""
    return str(v).strip()


def to_items(parsed: Any, require_url: bool = True) -> list[SynthesizedItem]:
    entries = parsed if isinstance(parsed, list) else [parsed]
    items: list[SynthesizedItem] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        fields = {k: _as_text(entry.get(k)) for k in ITEM_FIELDS}
        if not fields["title"] or not fields["summary"]:
            continue
        if require_url and not fields["url"]:
            continue
        items.append(SynthesizedItem(**fields))
    return items


def parse_items(text: str | None, require_url: bool = True) -> list[SynthesizedItem] | None:
    """Full cascade used on the synthesizer's raw output."""
    if not text or not text.strip():
        return None
    return first_success(
        candidates(text, PRIMARY_TRANSFORMS),
        lambda c: to_items(json.loads(c), require_url=require_url),
    )


def rescue_items(text: str | None) -> list[SynthesizedItem] | None:
    """
    Last-chance recovery for a digest body that is really a JSON dump.
    Only tried when the body itself starts like JSON; url is optional.
    """
    if not text or not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed.startswith(("[", "{")):
        return None
    return first_success(
        candidates(trimmed, RESCUE_TRANSFORMS),
        lambda c: to_items(json.loads(c), require_url=False),
    )
