"""
Distinguished-name attribute lookup.

Parses the string form of an issuer/subject name (RFC 4514 style,
e.g. ``CN=Alice,OU=Sales,O=Acme``) into ordered (key, value) pairs and returns
the value of a requested attribute.

Values may be double-quoted (commas inside quotes are literal) or use
backslash escapes, including ``\\XX`` hex pairs. Multi-valued RDNs joined with
``+`` are flattened into separate pairs. Any string that cannot be read as a
DN yields None rather than raising.
"""

from __future__ import annotations

import re

_KEY_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9-]*|\d+(?:\.\d+)+")
_HEX = "0123456789abcdefABCDEF"


class _MalformedName(ValueError):
    pass


def _unescape(raw: str) -> str:
    out = bytearray()
    i = 0
    while i < len(raw):
        char = raw[i]
        if char != "\\":
            out.extend(char.encode("utf-8"))
            i += 1
            continue
        if i + 1 >= len(raw):
            raise _MalformedName("dangling escape")
        pair = raw[i + 1 : i + 3]
        if len(pair) == 2 and pair[0] in _HEX and pair[1] in _HEX:
            out.append(int(pair, 16))
            i += 3
        else:
            out.extend(raw[i + 1].encode("utf-8"))
            i += 2
    return out.decode("utf-8", errors="replace")


def _split_unquoted(text: str) -> list[str]:
    """Split on ',' and '+' that are neither quoted nor escaped."""
    parts: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    while i < len(text):
        char = text[i]
        if char == "\\" and i + 1 < len(text):
            current.append(text[i : i + 2])
            i += 2
            continue
        if char == '"':
            in_quotes = not in_quotes
        elif char in ",+" and not in_quotes:
            parts.append("".join(current))
            current = []
            i += 1
            continue
        current.append(char)
        i += 1
    if in_quotes:
        raise _MalformedName("unterminated quote")
    parts.append("".join(current))
    return parts


def _parse_value(raw: str) -> str:
    value = raw.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return _unescape(value[1:-1])
    if '"' in value.replace('\\"', ""):
        raise _MalformedName("stray quote")
    return _unescape(value)


def parse_distinguished_name(name: str) -> list[tuple[str, str]] | None:
    """Ordered (key, value) pairs of name, or None if it is not a DN."""
    if not name or not name.strip():
        return None
    try:
        pairs: list[tuple[str, str]] = []
        for component in _split_unquoted(name):
            key, sep, raw_value = component.partition("=")
            key = key.strip()
            if not sep or not _KEY_PATTERN.fullmatch(key):
                return None
            pairs.append((key, _parse_value(raw_value)))
        return pairs
    except _MalformedName:
        return None


def extract_attribute(name: str | None, key: str) -> str | None:
    """
    Value of the first attribute named key (case-sensitive), or None.

        >>> extract_attribute("CN=Alice,OU=Sales,O=Acme", "CN")
        'Alice'
    """
    if name is None:
        return None
    pairs = parse_distinguished_name(name)
    if pairs is None:
        return None
    return next((value for attr, value in pairs if attr == key), None)
