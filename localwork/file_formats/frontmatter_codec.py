"""
Frontmatter codec: read and surgically update the small header block at the top of
a record file.

The header is delimited by `---` lines, as with Jekyll, and holds flat `key: value`
lines where a value is either a string or a bracketed list of strings. We don't use
a full YAML parser: headers are flat and values are simple, and updates must only
touch the line for the field being changed, so ordering, comments, and hand edits
elsewhere in the header survive.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from localwork.errors import InvalidField

HEADER_START = "---"
HEADER_END = "---"

COMMENT_PREFIX = "#"


@dataclass(frozen=True)
class Scalar:
    value: str

    def __str__(self):
        return self.value


@dataclass(frozen=True)
class StrList:
    items: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    def __str__(self):
        return ", ".join(self.items)


HeaderValue = Union[Scalar, StrList]

RawValue = Union[Scalar, StrList, str, Sequence[str]]


def to_header_value(value: RawValue) -> HeaderValue:
    """
    Wrap plain strings and lists as header values. Other objects (like dates or
    numbers) become scalars of their string form.
    """
    if isinstance(value, (Scalar, StrList)):
        return value
    elif isinstance(value, str):
        return Scalar(value)
    elif isinstance(value, (list, tuple)):
        return StrList(tuple(str(item) for item in value))
    else:
        return Scalar(str(value))


class Header(Dict[str, HeaderValue]):
    """
    Ordered map of header fields, with typed accessors.
    """

    @classmethod
    def of(cls, values: Mapping[str, RawValue]) -> "Header":
        return cls((key, to_header_value(value)) for key, value in values.items())

    def get_str(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self.get(key)
        if isinstance(value, Scalar):
            return value.value
        elif isinstance(value, StrList):
            return str(value)
        else:
            return default

    def get_list(self, key: str) -> List[str]:
        value = self.get(key)
        if isinstance(value, StrList):
            return list(value.items)
        elif isinstance(value, Scalar):
            return [value.value] if value.value else []
        else:
            return []


## Value formatting


_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r"}

_UNESCAPES = {"\\": "\\", '"': '"', "n": "\n", "r": "\r", "t": "\t"}


def _escape(text: str) -> str:
    return "".join(_ESCAPES.get(c, c) for c in text)


def _unescape(text: str) -> str:
    result = []
    i = 0
    while i < len(text):
        c = text[i]
        if c == "\\" and i + 1 < len(text) and text[i + 1] in _UNESCAPES:
            result.append(_UNESCAPES[text[i + 1]])
            i += 2
        else:
            result.append(c)
            i += 1
    return "".join(result)


def _needs_quotes(text: str, in_list: bool) -> bool:
    if any(c in text for c in ':"#\n\r'):
        return True
    if text != text.strip() or text.startswith("[") or text.startswith("'"):
        return True
    # Inside a list, commas split items and an empty item would vanish.
    return in_list and ("," in text or not text)


def _format_str(text: str, in_list: bool = False) -> str:
    if _needs_quotes(text, in_list):
        return f'"{_escape(text)}"'
    return text


def format_value(value: RawValue) -> str:
    """
    Render a value for a header line. Lists render as `[a, b, c]`, and strings that
    would be ambiguous with the header syntax are double-quoted with escapes.
    """
    value = to_header_value(value)
    if isinstance(value, StrList):
        return "[" + ", ".join(_format_str(item, in_list=True) for item in value.items) + "]"
    else:
        return _format_str(value.value)


def _unquote(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] == '"':
        return _unescape(text[1:-1])
    elif len(text) >= 2 and text[0] == text[-1] == "'":
        return text[1:-1].replace("''", "'")
    return text


def _split_list(inner: str) -> List[str]:
    """
    Split bracketed list content on commas that are outside quotes.
    """
    if not inner.strip():
        return []
    items = []
    current: List[str] = []
    quote: Optional[str] = None
    i = 0
    while i < len(inner):
        c = inner[i]
        if quote:
            current.append(c)
            if c == "\\" and quote == '"' and i + 1 < len(inner):
                current.append(inner[i + 1])
                i += 1
            elif c == quote:
                quote = None
        elif c in "\"'" and not "".join(current).strip():
            quote = c
            current.append(c)
        elif c == ",":
            items.append("".join(current))
            current = []
        else:
            current.append(c)
        i += 1
    items.append("".join(current))
    return [_unquote(item.strip()) for item in items]


def parse_value(raw: str) -> HeaderValue:
    """
    Parse the raw text after `key:`. Inverts `format_value()`.
    """
    raw = raw.strip()
    if len(raw) >= 2 and raw[0] == "[" and raw[-1] == "]":
        return StrList(tuple(_split_list(raw[1:-1])))
    return Scalar(_unquote(raw))


## Header lines


def _strip_eol(line: str) -> str:
    return line.rstrip("\r\n")


def _line_ending(line: str) -> str:
    return line[len(_strip_eol(line)) :]


_line_break = re.compile(r"(?<=\n)")


def _find_header(text: str) -> Optional[Tuple[List[str], int]]:
    """
    Split text into lines (keeping line endings) and find the closing delimiter.
    Returns the lines and the index of the closing line, or None if the text has no
    complete header. Only newline characters end a line, so other separators that
    `str.splitlines()` would break on stay inside values.
    """
    lines = [line for line in _line_break.split(text) if line]
    if not lines or lines[0].rstrip() != HEADER_START:
        return None
    for i in range(1, len(lines)):
        if lines[i].rstrip() == HEADER_END:
            return lines, i
    return None


def _parse_field_line(line: str) -> Optional[Tuple[str, str]]:
    stripped = line.strip()
    if not stripped or stripped.startswith(COMMENT_PREFIX):
        return None
    key, sep, raw = stripped.partition(":")
    key = key.strip()
    if not sep or not key:
        return None
    return key, raw


def _check_key(field: str) -> None:
    if (
        not field
        or field != field.strip()
        or ":" in field
        or "\n" in field
        or field.startswith(COMMENT_PREFIX)
    ):
        raise InvalidField(f"Invalid header field name: {field!r}")


def format_line(field: str, value: RawValue) -> str:
    _check_key(field)
    formatted = format_value(value)
    return f"{field}: {formatted}" if formatted else f"{field}:"


## Reading


def has_header(text: str) -> bool:
    """
    True if the text starts with a complete header block. Updates to text without one
    are no-ops, so callers should check this first.
    """
    return _find_header(text) is not None


def parse_header(text: str) -> Header:
    """
    Parse the header into an ordered map. Soft failure: returns an empty map if
    there is no header or it has no closing delimiter. If a key appears more than
    once the first line wins, matching the line `update_field()` replaces.
    """
    found = _find_header(text)
    header = Header()
    if not found:
        return header
    lines, end = found
    for line in lines[1:end]:
        parsed = _parse_field_line(line)
        if parsed:
            key, raw = parsed
            if key not in header:
                header[key] = parse_value(raw)
    return header


def parse_record(text: str) -> Tuple[Header, str]:
    """
    Parse a record into its header and body. The body is everything after the
    closing delimiter line, or the whole text if there is no header.
    """
    found = _find_header(text)
    if not found:
        return Header(), text
    lines, end = found
    return parse_header(text), "".join(lines[end + 1 :])


## Writing


def serialize_header(header: Mapping[str, RawValue]) -> str:
    lines = [HEADER_START]
    lines.extend(format_line(key, value) for key, value in header.items())
    lines.append(HEADER_END)
    return "\n".join(lines) + "\n"


def render_record(header: Mapping[str, RawValue], body: str) -> str:
    return serialize_header(header) + body


def update_field(text: str, field: str, value: RawValue) -> str:
    """
    Set one header field. Replaces that field's line if present, otherwise inserts
    it just before the closing delimiter. Every other line and the body are left
    byte for byte as they were. Returns the text unchanged if it has no complete
    header.
    """
    found = _find_header(text)
    if not found:
        return text
    lines, end = found
    new_line = format_line(field, value)

    for i in range(1, end):
        parsed = _parse_field_line(lines[i])
        if parsed and parsed[0] == field:
            lines[i] = new_line + _line_ending(lines[i])
            return "".join(lines)

    lines.insert(end, new_line + _line_ending(lines[0]))
    return "".join(lines)


def update_fields(text: str, updates: Mapping[str, RawValue]) -> str:
    for field, value in updates.items():
        text = update_field(text, field, value)
    return text


## Tests


_SAMPLE = """---
id: TASK-001
title: "Fix login: SSO"
status: backlog
# a hand-written comment
tags: [auth, urgent]
updated: 2024-01-01
last_updated: keep-me
---

## Description

status: this body line is not a header
"""


def test_parse_header():
    header = parse_header(_SAMPLE)
    assert list(header.keys()) == ["id", "title", "status", "tags", "updated", "last_updated"]
    assert header["title"] == Scalar("Fix login: SSO")
    assert header.get_list("tags") == ["auth", "urgent"]
    assert header.get_str("status") == "backlog"
    assert header.get_str("missing", "x") == "x"

    header, body = parse_record(_SAMPLE)
    assert body.startswith("\n## Description")


def test_missing_or_unclosed_header():
    assert parse_header("no header here\n") == {}
    assert parse_header("---\ntitle: x\nno close\n") == {}
    assert not has_header("---\ntitle: x\n")
    assert update_field("---\ntitle: x\n", "title", "y") == "---\ntitle: x\n"
    assert parse_record("plain body") == ({}, "plain body")


def test_update_field_is_surgical():
    updated = update_field(_SAMPLE, "status", "active")
    assert parse_header(updated)["status"] == Scalar("active")
    assert updated == _SAMPLE.replace("status: backlog", "status: active", 1)

    # Only the exact key is matched, not keys that merely contain it.
    updated = update_field(_SAMPLE, "updated", "2024-02-02")
    assert "last_updated: keep-me" in updated
    assert "updated: 2024-02-02\n" in updated

    # New fields go just before the closing delimiter.
    updated = update_field(_SAMPLE, "assignee", "ana")
    assert "last_updated: keep-me\nassignee: ana\n---\n" in updated
    assert updated.endswith(_SAMPLE.split("---\n", 2)[2])


def test_update_preserves_crlf():
    text = "---\r\ntitle: a\r\n---\r\nbody\r\n"
    assert update_field(text, "title", "b") == "---\r\ntitle: b\r\n---\r\nbody\r\n"
    assert update_field(text, "x", "1") == "---\r\ntitle: a\r\nx: 1\r\n---\r\nbody\r\n"


def test_format_value():
    assert format_value(["a", "b", "c"]) == "[a, b, c]"
    assert format_value([]) == "[]"
    assert format_value("plain") == "plain"
    assert format_value("a: b") == '"a: b"'
    assert format_value('say "hi"') == '"say \\"hi\\""'
    assert format_value("#1") == '"#1"'
    assert format_value(["x, y", "z"]) == '["x, y", z]'


def test_round_trip():
    header = Header.of(
        {
            "title": 'Quotes " and colons: and # hashes',
            "empty": "",
            "spaces": "  padded  ",
            "bracketed": "[not a list]",
            "backslash": "C:\\temp\\new",
            "multiline": "line one\nline two",
            "tags": ["a", "b, c", "", 'd"e', "[x]"],
            "none": [],
            "single": "'quoted'",
            "separators": "a\u2028b\u2029c\x85d\x0ce\x0bf\x1cg\x1eh",
            "separator_list": ["x\u2028y", "z\x85"],
        }
    )
    assert parse_header(serialize_header(header)) == header

    for key, value in header.items():
        text = update_field(serialize_header({"id": "1"}) + "body\n", key, value)
        assert parse_header(text)[key] == value
        assert text.endswith("---\nbody\n")


def test_duplicate_keys():
    text = "---\nstatus: a\nstatus: b\n---\n"
    assert parse_header(text)["status"] == Scalar("a")

    updated = update_field(text, "status", "c")
    assert updated == "---\nstatus: c\nstatus: b\n---\n"
    assert parse_header(updated)["status"] == Scalar("c")
