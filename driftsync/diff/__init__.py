"""Reversible unified diffs for edit history."""

from .patch import (
    DiffResult,
    Hunk,
    Patch,
    PatchApplyError,
    PatchError,
    PatchParseError,
    apply_diff,
    compute_diff,
    reverse_apply,
    split_lines,
)

__all__ = [
    "DiffResult",
    "Hunk",
    "Patch",
    "PatchApplyError",
    "PatchError",
    "PatchParseError",
    "apply_diff",
    "compute_diff",
    "reverse_apply",
    "split_lines",
]
