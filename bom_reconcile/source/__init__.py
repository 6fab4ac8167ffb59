"""CSV source reading: permissive tokenizer and file loader."""

from .reader import SourceFile, SourceFileError, read_source_file
from .tokenizer import parse_row, tokenize

__all__ = ["SourceFile", "SourceFileError", "parse_row", "read_source_file", "tokenize"]
