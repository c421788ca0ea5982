"""
Line Diff Utilities

Generic line-level diff between two texts, plus the presentation policy
that collapses long unchanged runs for review.
"""

from difflib import SequenceMatcher
from enum import Enum
from typing import List

from pydantic import BaseModel, Field, computed_field

# Unchanged runs longer than this are collapsed
COLLAPSE_THRESHOLD = 6
# Lines kept on each side of a collapsed run
CONTEXT_LINES = 3


class SegmentKind(str, Enum):
    EQUAL = "equal"
    ADDED = "added"
    REMOVED = "removed"


class DiffSegment(BaseModel):
    """A run of consecutive lines sharing the same classification."""

    kind: SegmentKind
    lines: List[str] = Field(default_factory=list)


class DisplayBlock(BaseModel):
    """
    A segment prepared for display.

    For collapsed unchanged runs `lines` holds the head context,
    `tail_lines` the tail context and `hidden_count` the number of lines
    left out in between.
    """

    kind: SegmentKind
    lines: List[str] = Field(default_factory=list)
    hidden_count: int = 0
    tail_lines: List[str] = Field(default_factory=list)

    @computed_field
    @property
    def collapsed(self) -> bool:
        return self.hidden_count > 0

    @computed_field
    @property
    def marker(self) -> str:
        return f"... {self.hidden_count} unchanged lines ..." if self.collapsed else ""


def compute_line_diff(original: str, updated: str) -> List[DiffSegment]:
    """
    Compute a line-level diff between two texts.

    Args:
        original: Text before the change
        updated: Text after the change

    Returns:
        Ordered segments; replaced lines appear as a removed segment followed
        by an added segment
    """
    old_lines = original.splitlines()
    new_lines = updated.splitlines()
    matcher = SequenceMatcher(None, old_lines, new_lines, autojunk=False)

    segments: List[DiffSegment] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            _append(segments, SegmentKind.EQUAL, old_lines[i1:i2])
        elif tag == "delete":
            _append(segments, SegmentKind.REMOVED, old_lines[i1:i2])
        elif tag == "insert":
            _append(segments, SegmentKind.ADDED, new_lines[j1:j2])
        elif tag == "replace":
            _append(segments, SegmentKind.REMOVED, old_lines[i1:i2])
            _append(segments, SegmentKind.ADDED, new_lines[j1:j2])
    return segments


def _append(segments: List[DiffSegment], kind: SegmentKind, lines: List[str]) -> None:
    if not lines:
        return
    if segments and segments[-1].kind == kind:
        segments[-1].lines.extend(lines)
    else:
        segments.append(DiffSegment(kind=kind, lines=list(lines)))


def collapse_unchanged(segments: List[DiffSegment]) -> List[DisplayBlock]:
    """
    Collapse unchanged runs of more than six lines to the first three
    lines, a hidden-line marker, and the last three lines.
    """
    blocks: List[DisplayBlock] = []
    for segment in segments:
        if (
            segment.kind == SegmentKind.EQUAL
            and len(segment.lines) > COLLAPSE_THRESHOLD
        ):
            blocks.append(
                DisplayBlock(
                    kind=segment.kind,
                    lines=segment.lines[:CONTEXT_LINES],
                    hidden_count=len(segment.lines) - 2 * CONTEXT_LINES,
                    tail_lines=segment.lines[-CONTEXT_LINES:],
                )
            )
        else:
            blocks.append(DisplayBlock(kind=segment.kind, lines=list(segment.lines)))
    return blocks


def count_changes(segments: List[DiffSegment]) -> int:
    """Number of added or removed segments."""
    return sum(1 for s in segments if s.kind != SegmentKind.EQUAL)
