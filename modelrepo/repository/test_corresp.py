"""Tests for the correspondence table."""

import logging

import pytest

from .corresp import CorrespondenceTable


def _write(path, content):
    path.write_text(content, encoding="utf-8")
    return path


class TestCorrespondenceTable:
    """Tests for CorrespondenceTable loading and lookups."""

    @pytest.mark.unit
    def test_lookup_known_and_unknown(self, tmp_path):
        table = CorrespondenceTable.load(_write(tmp_path / "c.txt", "3 cat\n5 dog\n"))
        assert table.lookup(3) == "cat"
        assert table.lookup(5) == "dog"
        assert table.lookup(4) == "4"
        assert len(table) == 2

    @pytest.mark.unit
    def test_label_keeps_spaces_after_first(self, tmp_path):
        table = CorrespondenceTable.load(
            _write(tmp_path / "c.txt", "0 golden retriever\n1  leading space\n")
        )
        assert table.lookup(0) == "golden retriever"
        assert table.lookup(1) == " leading space"

    @pytest.mark.unit
    def test_line_without_space_uses_whole_line(self, tmp_path):
        table = CorrespondenceTable.load(_write(tmp_path / "c.txt", "7\n"))
        assert table.lookup(7) == "7"
        assert 7 in table

    @pytest.mark.unit
    def test_empty_lines_skipped(self, tmp_path):
        table = CorrespondenceTable.load(_write(tmp_path / "c.txt", "\n0 a\n\n 1 b\n"))
        assert dict(table.items()) == {0: "a"}

    @pytest.mark.unit
    def test_duplicate_keys_last_wins(self, tmp_path):
        table = CorrespondenceTable.load(_write(tmp_path / "c.txt", "1 first\n1 second\n"))
        assert table.lookup(1) == "second"
        assert len(table) == 1

    @pytest.mark.unit
    def test_crlf_line_endings(self, tmp_path):
        path = tmp_path / "c.txt"
        path.write_bytes(b"0 cat\r\n1 dog\r\n")
        table = CorrespondenceTable.load(path)
        assert table.lookup(0) == "cat"
        assert table.lookup(1) == "dog"

    @pytest.mark.unit
    @pytest.mark.parametrize("key", ["abc", "-1", "1.5", "1_0", "+3", "\u0663"])
    def test_invalid_keys_skipped_with_warning(self, tmp_path, caplog, key):
        path = _write(tmp_path / "c.txt", f"{key} bad\n2 good\n")
        with caplog.at_level(logging.WARNING):
            table = CorrespondenceTable.load(path)
        assert dict(table.items()) == {2: "good"}
        assert "not a class index" in caplog.text

    @pytest.mark.unit
    def test_missing_file_gives_empty_table(self, tmp_path, caplog):
        with caplog.at_level(logging.INFO):
            table = CorrespondenceTable.load(tmp_path / "absent.txt")
        assert len(table) == 0
        assert table.lookup(9) == "9"
        assert "cannot open model corresp file" in caplog.text

    @pytest.mark.unit
    @pytest.mark.parametrize("path", [None, ""])
    def test_no_path_gives_empty_table(self, path):
        assert len(CorrespondenceTable.load(path)) == 0

    @pytest.mark.unit
    def test_constructed_from_mapping(self):
        table = CorrespondenceTable({1: "one"})
        assert list(table) == [1]
        assert table.lookup(1) == "one"
        assert repr(table) == "CorrespondenceTable(1 labels)"
