"""C-style quoting of tree entry names.

git prints entry names that contain control characters, quotes or
backslashes (and, with ``core.quotePath``, non-ASCII bytes) as a double
quoted C string literal.  :func:`decode_name` turns such a literal back
into the real name; :func:`encode_name` produces a literal that git's
``mktree`` and :func:`decode_name` both accept.
"""

from __future__ import annotations

import string

from .exceptions import FormatError

__all__ = ["decode_name", "encode_name", "needs_quoting"]

_UNESCAPES = {
    "a": 0x07,
    "b": 0x08,
    "f": 0x0C,
    "n": 0x0A,
    "r": 0x0D,
    "t": 0x09,
    "v": 0x0B,
    "\\": 0x5C,
    "'": 0x27,
    '"': 0x22,
    "?": 0x3F,
}

# Only these are escaped on output; ' and ? are accepted but never produced.
_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    "\\": "\\\\",
    '"': '\\"',
}

_OCTAL_DIGITS = frozenset("01234567")
_HEX_DIGITS = frozenset(string.hexdigits)


def _escape_char(ch: str) -> str | None:
    if ch in _ESCAPES:
        return _ESCAPES[ch]
    if ord(ch) < 0x20 or ord(ch) == 0x7F:
        return f"\\{ord(ch):03o}"
    return None


def needs_quoting(name: str) -> bool:
    """Return True if *name* has to be written as a quoted literal."""
    return any(_escape_char(ch) is not None for ch in name)


def encode_name(name: str) -> str:
    """Return *name* as a C string literal, or unchanged if nothing needs escaping."""
    if not needs_quoting(name):
        return name
    parts = ['"']
    for ch in name:
        escaped = _escape_char(ch)
        parts.append(ch if escaped is None else escaped)
    parts.append('"')
    return "".join(parts)


def decode_name(literal: str) -> str:
    """Decode a possibly quoted entry name.

    A bare name is returned as is.  A quoted one must be closed by a
    matching double quote; its escapes are expanded into bytes and the
    result is decoded as UTF-8.

    Raises:
        FormatError: On an unterminated literal, an unknown or truncated
            escape, a stray quote, or bytes that are not valid UTF-8.
    """
    if not literal.startswith('"'):
        return literal
    if len(literal) < 2 or not literal.endswith('"'):
        raise FormatError(f"Unterminated quoted name: {literal!r}")

    body = literal[1:-1]
    out = bytearray()
    i = 0
    n = len(body)
    while i < n:
        ch = body[i]
        if ch == '"':
            raise FormatError(f"Unescaped quote at offset {i + 1} in {literal!r}")
        if ch != "\\":
            out += ch.encode("utf-8")
            i += 1
            continue

        i += 1
        if i >= n:
            raise FormatError(f"Unterminated escape in {literal!r}")
        esc = body[i]
        if esc in _OCTAL_DIGITS:
            digits = body[i:i + 3]
            if len(digits) != 3 or not set(digits) <= _OCTAL_DIGITS:
                raise FormatError(f"Bad octal escape \\{digits} in {literal!r}")
            value = int(digits, 8)
            if value > 0xFF:
                raise FormatError(f"Octal escape \\{digits} out of range in {literal!r}")
            out.append(value)
            i += 3
        elif esc == "x":
            digits = body[i + 1:i + 3]
            if len(digits) != 2 or not set(digits) <= _HEX_DIGITS:
                raise FormatError(f"Bad hex escape \\x{digits} in {literal!r}")
            out.append(int(digits, 16))
            i += 3
        elif esc in _UNESCAPES:
            out.append(_UNESCAPES[esc])
            i += 1
        else:
            raise FormatError(
                f"Unrecognized escape \\{esc} at offset {i + 1} in {literal!r}"
            )

    try:
        return out.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise FormatError(f"Name is not valid UTF-8: {literal!r}") from exc
