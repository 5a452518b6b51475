"""
Tests for diff parsing, file filtering and inline line mapping.
"""

import pytest

from diff_parser import (
    DiffLineMapping,
    build_line_mapping,
    changed_filenames,
    extract_added_code,
    filter_files,
    find_nearest_valid_line,
    map_findings_to_lines,
    parse_diff,
    should_review_file,
)


@pytest.fixture
def files(sample_diff):
    return parse_diff(sample_diff)


class TestParseDiff:
    def test_files_in_diff_order(self, files):
        assert [f.filename for f in files] == ["app/db.py", "app/new.py", "README.md"]

    def test_statuses_and_counts(self, files):
        db, new, readme = files

        assert (db.status, db.additions, db.deletions) == ("modified", 1, 0)
        assert (new.status, new.additions) == ("added", 2)
        assert readme.status == "modified"

    def test_added_lines(self, files):
        db, new, _ = files

        assert db.added_lines == ((2, "import os"),)
        assert new.added_lines == ((1, "def hello():"), (2, '    return "hi"'))

    def test_extract_added_code(self, files):
        new = files[1]

        assert extract_added_code(new, include_line_numbers=False) == 'def hello():\n    return "hi"'
        assert extract_added_code(new).startswith("   1| def hello():")

    def test_changed_filenames(self, files):
        assert changed_filenames(files) == {"app/db.py", "app/new.py", "README.md"}
        assert changed_filenames(["a.py", "b.py"]) == {"a.py", "b.py"}


class TestFiltering:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("app/db.py", True),
            ("README.md", False),
            ("poetry.lock", False),
            ("web/node_modules/lib/index.js", False),
            ("static/app.min.js", False),
        ],
    )
    def test_should_review_file(self, filename, expected):
        assert should_review_file(filename) is expected

    def test_filter_files_drops_docs(self, files):
        assert [f.filename for f in filter_files(files)] == ["app/db.py", "app/new.py"]


class TestLineMapping:
    def test_valid_lines(self, sample_diff):
        mappings = build_line_mapping(sample_diff)

        assert mappings["app/db.py"].valid_lines == {1, 2, 3, 4}
        assert mappings["app/db.py"].line_to_position[2] == 2
        assert mappings["app/new.py"].valid_lines == {1, 2}

    def test_nearest_valid_line(self):
        mapping = DiffLineMapping(filename="a.py", valid_lines={10, 20})

        assert find_nearest_valid_line(mapping, 10) == 10
        assert find_nearest_valid_line(mapping, 13) == 10
        assert find_nearest_valid_line(mapping, 16) == 20
        assert find_nearest_valid_line(mapping, 40) is None

    def test_map_findings_to_lines(self, sample_diff, make_finding):
        mappings = build_line_mapping(sample_diff)
        near = make_finding(file="app/db.py", line=6)
        far = make_finding(file="app/db.py", line=60)
        general = make_finding(file=None, line=None)
        other = make_finding(file="lib/x.py", line=1)

        inline, unmapped = map_findings_to_lines([near, far, general, other], mappings)

        assert inline == [(near, 4)]
        assert unmapped == [far, general, other]
