"""Tests for the reversible diff engine."""

import pytest

from driftsync.diff import (
    Hunk,
    Patch,
    PatchApplyError,
    PatchParseError,
    apply_diff,
    compute_diff,
    reverse_apply,
    split_lines,
)


class TestSplitLines:
    """Tests for line splitting."""

    def test_empty(self):
        assert split_lines("") == []

    def test_keeps_newlines(self):
        assert split_lines("a\nb\n") == ["a\n", "b\n"]

    def test_last_line_without_newline(self):
        assert split_lines("a\nb") == ["a\n", "b"]

    def test_only_newline_splits(self):
        """Form feeds and carriage returns stay inside their line."""
        assert split_lines("a\x0cb\r\nc") == ["a\x0cb\r\n", "c"]


class TestComputeDiff:
    """Tests for diff text and statistics."""

    def test_identical_content(self):
        result = compute_diff("same\ntext\n", "same\ntext\n")

        assert result.text == ""
        assert result.additions == 0
        assert result.deletions == 0
        assert result.is_empty

    def test_single_line_change(self):
        result = compute_diff("a\nb\nc\n", "a\nB\nc\n")

        assert result.text == "@@ -1,3 +1,3 @@\n a\n-b\n+B\n c"
        assert result.additions == 1
        assert result.deletions == 1

    def test_from_empty(self):
        result = compute_diff("", "one\ntwo\n")

        assert result.text == "@@ -0,0 +1,2 @@\n+one\n+two"
        assert result.additions == 2
        assert result.deletions == 0

    def test_missing_trailing_newline_marker(self):
        result = compute_diff("hello", "hello world")

        assert result.text == (
            "@@ -1,1 +1,1 @@\n"
            "-hello\n"
            "\\ No newline at end of file\n"
            "+hello world\n"
            "\\ No newline at end of file"
        )

    def test_context_is_bounded(self):
        original = "".join(f"line {i}\n" for i in range(20))
        modified = original.replace("line 10\n", "changed\n")

        result = compute_diff(original, modified, context_lines=2)

        assert result.text.startswith("@@ -9,5 +9,5 @@")
        assert "line 7" not in result.text
        assert " line 8" in result.text

    def test_separate_hunks(self):
        original = "".join(f"{i}\n" for i in range(30))
        modified = original.replace("2\n", "two\n", 1).replace("25\n", "twenty-five\n")

        patch = Patch.between(original, modified, context_lines=3)

        assert len(patch.hunks) == 2

    def test_deterministic(self):
        a, b = "x\ny\nz\n", "x\nz\nw\n"
        assert compute_diff(a, b).text == compute_diff(a, b).text


class TestRoundTrip:
    """reverse_apply(B, diff(A, B)) == A."""

    @pytest.mark.parametrize(
        "original,modified",
        [
            ("", "new file\n"),
            ("content\n", ""),
            ("hello", "hello world"),
            ("hello\n", "hello"),
            ("a\nb\nc\nd\ne\nf\ng\nh\n", "a\nc\nd\nX\ne\nf\nh\ni\n"),
            ("\n\n\n", "\n"),
            ("same\n" * 10, "same\n" * 12),
            ("crlf\r\nline\r\n", "crlf\r\nchanged\r\n"),
            ("  indented\n-dash\n+plus\n", "+plus\n  indented\n-dash\n"),
            ("@@ -1,1 +1,1 @@\n", "@@ not a header\n"),
            ("\\ backslash\n", "\\ backslash\nmore\n"),
        ],
    )
    def test_reverse_apply_recovers_original(self, original, modified):
        diff = compute_diff(original, modified)

        assert reverse_apply(modified, diff.text) == original

    @pytest.mark.parametrize(
        "original,modified",
        [
            ("", "x"),
            ("one\ntwo\nthree\n", "one\n2\nthree\nfour"),
            ("tail", "head\ntail"),
        ],
    )
    def test_forward_apply_recovers_modified(self, original, modified):
        diff = compute_diff(original, modified)

        assert apply_diff(original, diff.text) == modified

    def test_empty_diff_is_identity(self):
        assert reverse_apply("anything\n", "") == "anything\n"


class TestHunkModel:
    """Tests for the structured hunk representation."""

    def test_invert_swaps_ranges_and_tags(self):
        hunk = Hunk(
            old_start=1,
            old_lines=2,
            new_start=1,
            new_lines=1,
            lines=[(" ", "a\n"), ("-", "b\n")],
        )

        inverted = hunk.invert()

        assert (inverted.old_start, inverted.old_lines) == (1, 1)
        assert (inverted.new_start, inverted.new_lines) == (1, 2)
        assert inverted.lines == [(" ", "a\n"), ("+", "b\n")]

    def test_invert_twice_is_identity(self):
        patch = Patch.between("a\nb\nc\n", "a\nc\nd\n")

        assert patch.invert().invert() == patch

    def test_parse_format_preserves_text(self):
        text = compute_diff("x\ny\nz", "x\nY\nz").text

        assert Patch.parse(text).format() == text

    def test_parse_ignores_file_headers(self):
        text = "--- original\n+++ modified\n@@ -1,1 +1,1 @@\n-a\n+b\n"

        patch = Patch.parse(text)

        assert len(patch.hunks) == 1
        assert patch.apply("a\n") == "b\n"

    def test_parse_rejects_garbage(self):
        with pytest.raises(PatchParseError):
            Patch.parse("not a diff")

    def test_parse_rejects_truncated_hunk(self):
        with pytest.raises(PatchParseError):
            Patch.parse("@@ -1,3 +1,3 @@\n a\n-b")

    def test_parse_rejects_overlong_hunk(self):
        with pytest.raises(PatchParseError):
            Patch.parse("@@ -1,1 +1,1 @@\n-a\n-b\n+c")


class TestApplyFailures:
    """Mismatched context yields FAILURE, never an exception."""

    def test_reverse_apply_context_mismatch(self):
        diff = compute_diff("a\nb\nc\n", "a\nB\nc\n")

        assert reverse_apply("completely\ndifferent\n", diff.text) is None

    def test_reverse_apply_malformed(self):
        assert reverse_apply("content", "@@ garbage") is None

    def test_apply_raises_structured_error(self):
        patch = Patch.between("a\n", "b\n")

        with pytest.raises(PatchApplyError):
            patch.apply("c\n")

    def test_apply_with_offset(self):
        """A hunk still applies when lines were inserted above it."""
        original = "".join(f"{i}\n" for i in range(10))
        modified = original.replace("7\n", "seven\n")
        diff = compute_diff(original, modified)

        shifted = "new first line\n" + modified

        assert reverse_apply(shifted, diff.text) == "new first line\n" + original

    def test_non_text_diff_fails(self):
        assert reverse_apply("x\n", 5) is None
        assert apply_diff("x\n", None) is None
