from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .tokenizer import tokenize

"""Source file reader.

The first non-blank line is the header. It is kept only for its column count;
the column map addresses cells by index, not by header name. Everything after
it is data.
"""


class SourceFileError(Exception):
    """Raised when the source CSV cannot be read or has no data rows."""


@dataclass(frozen=True)
class SourceFile:
    path: Path
    header: list[str]
    rows: list[list[str]]  # data rows only, blank lines already dropped

    @property
    def column_count(self) -> int:
        return len(self.header)


def read_source_file(path: Path, encoding: str = "utf-8-sig") -> SourceFile:
    """Read and tokenize a CSV file.

    utf-8-sig strips a leading byte-order mark (spreadsheet exports often
    write one) and otherwise decodes as plain UTF-8.

    Raises:
        SourceFileError: missing/unreadable file, or fewer than one data row
    """
    if not path.exists():
        raise SourceFileError(f"source file not found: {path}")
    try:
        text = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        raise SourceFileError(f"cannot read source file {path}: {e}") from e

    lines = tokenize(text)
    if len(lines) < 2:
        raise SourceFileError(
            f"source file {path.name} must have a header row and at least one data row"
        )
    return SourceFile(path=path, header=lines[0], rows=lines[1:])
