"""
Unit Tests for Line Diff Utilities

Tests line-level diffing and the collapse policy for unchanged runs.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from bulk_import.utils.diff import (
    SegmentKind,
    collapse_unchanged,
    compute_line_diff,
    count_changes,
)


def test_identical_content_has_no_changes():
    """Diffing identical content yields only equal segments."""
    text = "line 1\nline 2\nline 3"
    segments = compute_line_diff(text, text)

    assert [s.kind for s in segments] == [SegmentKind.EQUAL]
    assert count_changes(segments) == 0


def test_empty_texts():
    assert compute_line_diff("", "") == []


def test_added_lines():
    segments = compute_line_diff("a\nb", "a\nb\nc")

    assert [s.kind for s in segments] == [SegmentKind.EQUAL, SegmentKind.ADDED]
    assert segments[1].lines == ["c"]


def test_removed_lines():
    segments = compute_line_diff("a\nb\nc", "a\nc")

    assert [s.kind for s in segments] == [
        SegmentKind.EQUAL,
        SegmentKind.REMOVED,
        SegmentKind.EQUAL,
    ]
    assert segments[1].lines == ["b"]


def test_replaced_line_is_removed_then_added():
    segments = compute_line_diff("a\nold\nc", "a\nnew\nc")

    kinds = [s.kind for s in segments]
    assert kinds == [
        SegmentKind.EQUAL,
        SegmentKind.REMOVED,
        SegmentKind.ADDED,
        SegmentKind.EQUAL,
    ]
    assert segments[1].lines == ["old"]
    assert segments[2].lines == ["new"]
    assert count_changes(segments) == 2


def test_everything_new_against_empty_prior():
    segments = compute_line_diff("", "# Title\nbody")

    assert len(segments) == 1
    assert segments[0].kind == SegmentKind.ADDED
    assert segments[0].lines == ["# Title", "body"]


def test_collapse_long_unchanged_run():
    """Equal runs longer than six lines keep three lines on each side."""
    lines = [f"line {i}" for i in range(10)]
    segments = compute_line_diff("\n".join(lines), "\n".join(lines + ["new"]))

    blocks = collapse_unchanged(segments)

    equal_block = blocks[0]
    assert equal_block.collapsed
    assert equal_block.lines == ["line 0", "line 1", "line 2"]
    assert equal_block.tail_lines == ["line 7", "line 8", "line 9"]
    assert equal_block.hidden_count == 4
    assert equal_block.marker == "... 4 unchanged lines ..."

    assert blocks[1].kind == SegmentKind.ADDED
    assert not blocks[1].collapsed


def test_six_line_run_is_not_collapsed():
    lines = [f"line {i}" for i in range(6)]
    segments = compute_line_diff("\n".join(lines), "\n".join(lines + ["new"]))

    blocks = collapse_unchanged(segments)

    assert not blocks[0].collapsed
    assert blocks[0].lines == lines
    assert blocks[0].marker == ""


def test_changed_runs_are_never_collapsed():
    added = [f"new {i}" for i in range(20)]
    segments = compute_line_diff("", "\n".join(added))

    blocks = collapse_unchanged(segments)

    assert len(blocks) == 1
    assert blocks[0].lines == added
    assert not blocks[0].collapsed


def test_collapsed_block_serializes_marker():
    lines = [f"line {i}" for i in range(8)]
    segments = compute_line_diff("\n".join(lines), "\n".join(lines))

    data = collapse_unchanged(segments)[0].model_dump()

    assert data["collapsed"] is True
    assert data["marker"] == "... 2 unchanged lines ..."
