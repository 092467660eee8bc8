"""Tests for the diff model: positions are what GitHub anchors comments on."""

import logging

import pytest

from prwarden_core.diff import ADDED, DELETED, MODIFIED, RENAMED, DiffParseError, LineKind, parse_diff, parse_patch

TWO_FILE_DIFF = """\
diff --git a/a.py b/a.py
index 1111111..2222222 100644
--- a/a.py
+++ b/a.py
@@ -1,3 +1,4 @@
 one
+two
 three
 four
diff --git a/b.py b/b.py
index 3333333..4444444 100644
--- a/b.py
+++ b/b.py
@@ -1,2 +1,2 @@
-old
+new
"""

# Adds `x = x + 1` as new line 10, where old line 10 (`c = 3`) used to be.
SELF_ASSIGN_DIFF = """\
diff --git a/a.py b/a.py
index 1111111..2222222 100644
--- a/a.py
+++ b/a.py
@@ -8,4 +8,5 @@ def bump(x):
 a = 1
 b = 2
+x = x + 1
 c = 3
 d = 4
"""


class TestPositions:
    def test_positions_restart_per_file(self):
        a, b = parse_diff(TWO_FILE_DIFF)
        assert [line.position for line in a.lines] == [1, 2, 3, 4]
        assert [line.position for line in b.lines] == [1, 2]

    def test_last_position_equals_line_count_of_file_block(self):
        a, b = parse_diff(TWO_FILE_DIFF)
        assert a.lines[-1].position == 4
        assert b.lines[-1].position == 2

    def test_later_hunk_headers_consume_a_position(self):
        patch = "@@ -1,2 +1,3 @@\n a\n+b\n c\n@@ -10,2 +11,3 @@\n d\n+e\n f"
        f = parse_patch("f.py", patch)
        assert [line.position for line in f.hunks[0].lines] == [1, 2, 3]
        assert f.hunks[1].header_position == 4
        assert [line.position for line in f.hunks[1].lines] == [5, 6, 7]

    def test_first_hunk_header_is_not_addressable(self):
        f = parse_patch("f.py", "@@ -1 +1 @@\n-x\n+y")
        assert f.hunks[0].header_position == 0
        assert f.line_at(0) is None
        assert f.positions == {1, 2}

    def test_no_newline_marker_occupies_a_position(self):
        patch = "@@ -1,1 +1,1 @@\n-old\n\\ No newline at end of file\n+new"
        f = parse_patch("f.py", patch)
        assert [line.position for line in f.lines] == [1, 3]

    def test_line_numbers_follow_hunk_header(self):
        (f,) = parse_diff(SELF_ASSIGN_DIFF)
        added = f.line_at(3)
        assert added.kind is LineKind.ADDITION
        assert added.content == "x = x + 1"
        assert added.new_lineno == 10
        assert added.old_lineno is None
        assert f.line_at(4).old_lineno == 10
        assert f.line_at(4).new_lineno == 11

    def test_position_for_line_per_side(self):
        (_, b) = parse_diff(TWO_FILE_DIFF)
        assert b.position_for_line(1, side="LEFT") == 1
        assert b.position_for_line(1, side="RIGHT") == 2
        assert b.position_for_line(99) is None

    def test_deleted_line_is_on_left_side(self):
        (_, b) = parse_diff(TWO_FILE_DIFF)
        assert b.line_at(1).side == "LEFT"
        assert b.line_at(2).side == "RIGHT"

    def test_hunk_for_position(self):
        patch = "@@ -1,2 +1,3 @@\n a\n+b\n c\n@@ -10,2 +11,3 @@\n d\n+e\n f"
        f = parse_patch("f.py", patch)
        assert f.hunk_for(2) is f.hunks[0]
        assert f.hunk_for(6) is f.hunks[1]
        assert f.hunk_for(None) is None


class TestParseDiff:
    def test_empty_diff(self):
        assert parse_diff("") == []
        assert parse_diff("   \n") == []

    def test_binary_files_are_skipped(self):
        diff = (
            "diff --git a/logo.png b/logo.png\n"
            "index 1111111..2222222 100644\n"
            "Binary files a/logo.png and b/logo.png differ\n" + TWO_FILE_DIFF
        )
        assert [f.path for f in parse_diff(diff)] == ["a.py", "b.py"]

    def test_malformed_hunk_header_skips_only_that_file(self, caplog):
        diff = "diff --git a/bad.py b/bad.py\n--- a/bad.py\n+++ b/bad.py\n@@ nonsense @@\n+x\n" + TWO_FILE_DIFF
        with caplog.at_level(logging.WARNING, logger="prwarden_core.diff"):
            files = parse_diff(diff)
        assert [f.path for f in files] == ["a.py", "b.py"]
        assert "bad.py" in caplog.text

    def test_statuses(self):
        diff = (
            "diff --git a/new.py b/new.py\n"
            "new file mode 100644\n"
            "--- /dev/null\n"
            "+++ b/new.py\n"
            "@@ -0,0 +1 @@\n"
            "+x = 1\n"
            "diff --git a/gone.py b/gone.py\n"
            "deleted file mode 100644\n"
            "--- a/gone.py\n"
            "+++ /dev/null\n"
            "@@ -1 +0,0 @@\n"
            "-x = 1\n"
            "diff --git a/old_name.py b/new_name.py\n"
            "similarity index 90%\n"
            "rename from old_name.py\n"
            "rename to new_name.py\n"
            "--- a/old_name.py\n"
            "+++ b/new_name.py\n"
            "@@ -1 +1 @@\n"
            "-a\n"
            "+b\n"
        )
        new, gone, renamed = parse_diff(diff)
        assert (new.path, new.status) == ("new.py", ADDED)
        assert (gone.path, gone.status) == ("gone.py", DELETED)
        assert (renamed.path, renamed.status, renamed.old_path) == ("new_name.py", RENAMED, "old_name.py")

    def test_modified_is_default_status(self):
        a, _ = parse_diff(TWO_FILE_DIFF)
        assert a.status == MODIFIED
        assert a.hunks[0].old_count == 3
        assert a.hunks[0].new_count == 4

    def test_pure_rename_has_no_hunks(self):
        diff = "diff --git a/x.py b/y.py\nsimilarity index 100%\nrename from x.py\nrename to y.py\n"
        (f,) = parse_diff(diff)
        assert f.path == "y.py"
        assert f.hunks == []


class TestParsePatch:
    def test_malformed_header_raises(self):
        with pytest.raises(DiffParseError):
            parse_patch("f.py", "@@ oops @@\n+line")

    def test_omitted_counts_default_to_one(self):
        f = parse_patch("f.py", "@@ -3 +3 @@\n-a\n+b")
        assert (f.hunks[0].old_count, f.hunks[0].new_count) == (1, 1)

    def test_render_with_positions(self):
        (f,) = parse_diff(SELF_ASSIGN_DIFF)
        rendered = f.render()
        assert "    3 +x = x + 1" in rendered
        assert f.patch.splitlines()[1] == " a = 1"
