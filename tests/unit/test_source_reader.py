from __future__ import annotations

from pathlib import Path

import pytest

from bom_reconcile.source.reader import SourceFileError, read_source_file


def test_reads_header_and_data_rows(tmp_path: Path):
    f = tmp_path / "bom.csv"
    f.write_text("Level,Part\n1.0,ASM\n\n1.1,PRT\n", encoding="utf-8")
    src = read_source_file(f)
    assert src.header == ["Level", "Part"]
    assert src.column_count == 2
    assert src.rows == [["1.0", "ASM"], ["1.1", "PRT"]]


def test_byte_order_mark_is_stripped(tmp_path: Path):
    f = tmp_path / "bom.csv"
    f.write_bytes("\ufeffLevel,Part\n1.0,ASM\n".encode("utf-8"))
    assert read_source_file(f).header == ["Level", "Part"]


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(SourceFileError, match="not found"):
        read_source_file(tmp_path / "nope.csv")


@pytest.mark.parametrize("content", ["", "\n\n", "Level,Part\n", "Level,Part\n   \n"])
def test_header_only_or_empty_raises(tmp_path: Path, content: str):
    f = tmp_path / "bom.csv"
    f.write_text(content, encoding="utf-8")
    with pytest.raises(SourceFileError, match="at least one data row"):
        read_source_file(f)


def test_undecodable_file_raises(tmp_path: Path):
    f = tmp_path / "bom.csv"
    f.write_bytes(b"Level,Part\n1.0,\xff\xfe\xfa\n")
    with pytest.raises(SourceFileError, match="cannot read"):
        read_source_file(f)
