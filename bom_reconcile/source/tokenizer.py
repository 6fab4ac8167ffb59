from __future__ import annotations

"""Permissive CSV tokenizer.

Rules:
- rows are newline-delimited; carriage returns are dropped wherever they occur
- fields are separated by ',' or '\\t' outside a double-quoted span
- '""' inside a quoted span is a literal '"'
- lines that are empty or whitespace-only are skipped entirely
- malformed quoting never raises: an unterminated quote consumes to end of row

Quoted fields cannot span lines. Fields are not trimmed here; the mapper
strips values it uses.
"""

__all__ = [
    "tokenize",
    "parse_row",
]

DELIMITERS = frozenset(",\t")


def parse_row(line: str) -> list[str]:
    """Split a single line into fields."""
    values: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif ch in DELIMITERS and not in_quotes:
            values.append("".join(current))
            current = []
        elif ch != "\r":
            current.append(ch)
        i += 1
    values.append("".join(current))
    return values


def tokenize(raw_text: str) -> list[list[str]]:
    """Split raw text into rows of fields, dropping blank lines."""
    return [parse_row(line) for line in raw_text.split("\n") if line.strip()]
