"""Context-bounded unified diffs that can be applied forwards and backwards.

Patches are held as structured hunks and only turned into text at the
storage boundary. The text form is the hunk body of a unified diff:

    @@ -oldStart,oldLines +newStart,newLines @@
     context
    -removed
    +added

A line that has no trailing newline is followed by
``\\ No newline at end of file``. There are no ``---``/``+++`` file headers
and the text carries no trailing newline.
"""

import difflib
import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

NO_NEWLINE_MARKER = "\\ No newline at end of file"

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

CONTEXT = " "
DELETE = "-"
INSERT = "+"

_FLIP = {CONTEXT: CONTEXT, DELETE: INSERT, INSERT: DELETE}


class PatchError(Exception):
    """Base error for patch handling."""


class PatchParseError(PatchError):
    """Diff text does not follow the hunk grammar."""


class PatchApplyError(PatchError):
    """A hunk's context does not match the content it is applied to."""


def split_lines(text: str) -> list[str]:
    """Split text into lines, keeping each line's trailing newline.

    Only ``\\n`` terminates a line. The final element lacks a newline when
    the text does not end with one.
    """
    if not text:
        return []
    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


@dataclass
class Hunk:
    """One contiguous change region.

    ``lines`` holds ``(tag, text)`` pairs where ``text`` includes its line
    terminator, if any.
    """

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    lines: list[tuple[str, str]] = field(default_factory=list)

    @property
    def old_text(self) -> list[str]:
        return [text for tag, text in self.lines if tag != INSERT]

    @property
    def new_text(self) -> list[str]:
        return [text for tag, text in self.lines if tag != DELETE]

    def invert(self) -> "Hunk":
        """Return the hunk that undoes this one."""
        return Hunk(
            old_start=self.new_start,
            old_lines=self.new_lines,
            new_start=self.old_start,
            new_lines=self.old_lines,
            lines=[(_FLIP[tag], text) for tag, text in self.lines],
        )

    def format(self) -> list[str]:
        out = [
            f"@@ -{self.old_start},{self.old_lines} "
            f"+{self.new_start},{self.new_lines} @@"
        ]
        for tag, text in self.lines:
            if text.endswith("\n"):
                out.append(tag + text[:-1])
            else:
                out.append(tag + text)
                out.append(NO_NEWLINE_MARKER)
        return out


@dataclass
class Patch:
    """An ordered list of non-overlapping hunks."""

    hunks: list[Hunk] = field(default_factory=list)

    @property
    def additions(self) -> int:
        return sum(1 for h in self.hunks for tag, _ in h.lines if tag == INSERT)

    @property
    def deletions(self) -> int:
        return sum(1 for h in self.hunks for tag, _ in h.lines if tag == DELETE)

    @classmethod
    def between(cls, original: str, modified: str, context_lines: int = 3) -> "Patch":
        """Build the patch that turns ``original`` into ``modified``."""
        a = split_lines(original)
        b = split_lines(modified)
        matcher = difflib.SequenceMatcher(None, a, b, autojunk=False)

        hunks = []
        for group in matcher.get_grouped_opcodes(context_lines):
            i1, i2 = group[0][1], group[-1][2]
            j1, j2 = group[0][3], group[-1][4]
            lines: list[tuple[str, str]] = []
            for tag, a1, a2, b1, b2 in group:
                if tag == "equal":
                    lines.extend((CONTEXT, line) for line in a[a1:a2])
                    continue
                if tag in ("replace", "delete"):
                    lines.extend((DELETE, line) for line in a[a1:a2])
                if tag in ("replace", "insert"):
                    lines.extend((INSERT, line) for line in b[b1:b2])

            old_lines = i2 - i1
            new_lines = j2 - j1
            hunks.append(
                Hunk(
                    # Empty ranges point at the line before them
                    old_start=i1 + 1 if old_lines else i1,
                    old_lines=old_lines,
                    new_start=j1 + 1 if new_lines else j1,
                    new_lines=new_lines,
                    lines=lines,
                )
            )
        return cls(hunks)

    @classmethod
    def parse(cls, text: str) -> "Patch":
        """Parse diff text produced by :meth:`format`.

        Raises:
            PatchParseError: If the text is not valid hunk grammar or a
                hunk's body disagrees with its header counts.
        """
        hunks: list[Hunk] = []
        current: Hunk | None = None
        old_seen = new_seen = 0

        for raw in text.split("\n") if text else []:
            if current is not None and (
                old_seen < current.old_lines or new_seen < current.new_lines
            ):
                if raw.startswith("\\"):
                    if not current.lines:
                        raise PatchParseError("Newline marker before any hunk line")
                    _strip_last_newline(current)
                    continue
                tag, body = (raw[0], raw[1:]) if raw else (CONTEXT, "")
                if tag not in _FLIP:
                    raise PatchParseError(f"Unexpected line in hunk: {raw!r}")
                if tag != INSERT:
                    old_seen += 1
                if tag != DELETE:
                    new_seen += 1
                if old_seen > current.old_lines or new_seen > current.new_lines:
                    raise PatchParseError("Hunk body longer than its header")
                current.lines.append((tag, body + "\n"))
                continue

            if raw.startswith("\\"):
                if current is None or not current.lines:
                    raise PatchParseError("Newline marker outside a hunk")
                _strip_last_newline(current)
                continue

            match = HUNK_HEADER_RE.match(raw)
            if match:
                old_start, old_lines, new_start, new_lines = match.groups()
                current = Hunk(
                    old_start=int(old_start),
                    old_lines=int(old_lines) if old_lines is not None else 1,
                    new_start=int(new_start),
                    new_lines=int(new_lines) if new_lines is not None else 1,
                )
                hunks.append(current)
                old_seen = new_seen = 0
                continue

            if raw == "" or raw.startswith(("--- ", "+++ ")):
                continue
            raise PatchParseError(f"Unexpected line outside a hunk: {raw!r}")

        if current is not None and (
            old_seen != current.old_lines or new_seen != current.new_lines
        ):
            raise PatchParseError("Truncated hunk")
        return cls(hunks)

    def format(self) -> str:
        lines: list[str] = []
        for hunk in self.hunks:
            lines.extend(hunk.format())
        return "\n".join(lines)

    def invert(self) -> "Patch":
        return Patch([hunk.invert() for hunk in self.hunks])

    def apply(self, content: str) -> str:
        """Apply the patch to ``content``.

        Each hunk is tried at its recorded position first and then at the
        nearest position after the previous hunk where its old side matches
        exactly.

        Raises:
            PatchApplyError: If some hunk's old side cannot be found.
        """
        source = split_lines(content)
        out: list[str] = []
        cursor = 0
        offset = 0

        for hunk in self.hunks:
            old = hunk.old_text
            expected = (hunk.old_start - 1 if hunk.old_lines else hunk.old_start) + offset
            index = _locate(source, old, expected, cursor)
            if index is None:
                raise PatchApplyError(
                    f"Hunk @@ -{hunk.old_start},{hunk.old_lines} @@ does not match"
                )
            offset = index - (expected - offset)
            out.extend(source[cursor:index])
            out.extend(hunk.new_text)
            cursor = index + len(old)

        out.extend(source[cursor:])
        return "".join(out)


def _strip_last_newline(hunk: Hunk) -> None:
    tag, text = hunk.lines[-1]
    if text.endswith("\n"):
        hunk.lines[-1] = (tag, text[:-1])


def _locate(source: list[str], old: list[str], expected: int, cursor: int) -> int | None:
    last = len(source) - len(old)
    if last < cursor:
        return None

    def matches(index: int) -> bool:
        return source[index:index + len(old)] == old

    expected = min(max(expected, cursor), last)
    if matches(expected):
        return expected
    for distance in range(1, max(expected - cursor, last - expected) + 1):
        for index in (expected - distance, expected + distance):
            if cursor <= index <= last and matches(index):
                return index
    return None


@dataclass
class DiffResult:
    """Diff text plus line statistics."""

    text: str
    additions: int = 0
    deletions: int = 0

    @property
    def is_empty(self) -> bool:
        return self.additions == 0 and self.deletions == 0


def compute_diff(original: str, modified: str, context_lines: int = 3) -> DiffResult:
    """Compute the patch text turning ``original`` into ``modified``."""
    patch = Patch.between(original, modified, context_lines)
    return DiffResult(
        text=patch.format(),
        additions=patch.additions,
        deletions=patch.deletions,
    )


def reverse_apply(content: str, diff_text: str) -> str | None:
    """Undo ``diff_text`` on ``content``.

    Returns:
        The content before the diff, or None when the diff is malformed or
        its context no longer matches ``content``.
    """
    if not isinstance(diff_text, str):
        return None
    try:
        return Patch.parse(diff_text).invert().apply(content)
    except PatchError as e:
        logger.debug(f"Reverse-apply failed: {e}")
        return None


def apply_diff(content: str, diff_text: str) -> str | None:
    """Apply ``diff_text`` forwards; None on malformed or mismatched diffs."""
    if not isinstance(diff_text, str):
        return None
    try:
        return Patch.parse(diff_text).apply(content)
    except PatchError as e:
        logger.debug(f"Apply failed: {e}")
        return None
