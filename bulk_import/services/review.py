"""
Review Engine

Human review of generated drafts: render the draft against the unit's
prior content, edit the draft, then approve or skip it.
"""

import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from bulk_import.errors import InvalidTransitionError
from bulk_import.models.group import ChangeLevel, Group, GroupKind, GroupStatus
from bulk_import.services.working_set import WorkingSet
from bulk_import.utils.diff import (
    DisplayBlock,
    SegmentKind,
    collapse_unchanged,
    compute_line_diff,
)

logger = logging.getLogger(__name__)


class ReviewMode(str, Enum):
    DIFF = "diff"
    PREVIEW = "preview"


class ReviewView(BaseModel):
    """What the operator sees when reviewing one group's draft."""

    group_id: str
    kind: GroupKind
    status: GroupStatus
    title: str
    mode: ReviewMode
    no_changes_needed: bool = Field(
        False, description="Update group whose sources add nothing"
    )
    blocks: List[DisplayBlock] = Field(
        default_factory=list, description="Diff blocks (diff mode)"
    )
    preview: Optional[str] = Field(None, description="Draft content (preview mode)")
    added_lines: int = 0
    removed_lines: int = 0
    change_highlights: List[str] = Field(default_factory=list)
    change_level: Optional[ChangeLevel] = None


def render_review(group: Group) -> ReviewView:
    """
    Build the review view of a group with a draft.

    Update groups with changes get a collapsed line diff against the prior
    content; create groups and update groups without changes get a plain
    preview.
    """
    if group.draft is None:
        raise InvalidTransitionError(f"Group {group.id} has no draft to review")

    draft = group.draft
    view = ReviewView(
        group_id=group.id,
        kind=group.kind,
        status=group.status,
        title=draft.title,
        mode=ReviewMode.PREVIEW,
        change_highlights=list(draft.change_highlights),
        change_level=group.discrepancy.change_level if group.discrepancy else None,
    )

    if group.kind == GroupKind.CREATE:
        view.preview = draft.content
        return view

    if draft.has_changes is False:
        view.preview = draft.content
        view.no_changes_needed = True
        return view

    segments = compute_line_diff(group.prior_content or "", draft.content)
    view.mode = ReviewMode.DIFF
    view.blocks = collapse_unchanged(segments)
    view.added_lines = sum(len(s.lines) for s in segments if s.kind == SegmentKind.ADDED)
    view.removed_lines = sum(
        len(s.lines) for s in segments if s.kind == SegmentKind.REMOVED
    )
    return view


def render_text(view: ReviewView) -> str:
    """
    Plain-text rendering of a review view ("+ " added, "- " removed,
    "  " unchanged), for logs and terminals.
    """
    if view.mode == ReviewMode.PREVIEW:
        header = "No changes needed\n\n" if view.no_changes_needed else ""
        return header + (view.preview or "")

    prefixes = {
        SegmentKind.EQUAL: "  ",
        SegmentKind.ADDED: "+ ",
        SegmentKind.REMOVED: "- ",
    }
    out: List[str] = []
    for block in view.blocks:
        prefix = prefixes[block.kind]
        out.extend(prefix + line for line in block.lines)
        if block.collapsed:
            out.append(block.marker)
            out.extend(prefix + line for line in block.tail_lines)
    return "\n".join(out)


class ReviewEngine:
    """
    Review-stage operations over a working set.
    """

    def __init__(self, working_set: WorkingSet):
        self.working_set = working_set

    def render(self, group_id: str) -> ReviewView:
        return render_review(self.working_set.get(group_id))

    def approve_draft(self, group_id: str) -> Group:
        group = self._require_ready(group_id)
        logger.info(f"Draft approved for '{group.title}'")
        return self.working_set.transition(group_id, GroupStatus.REVIEWED)

    def reject_draft(self, group_id: str) -> Group:
        self._require_ready(group_id)
        logger.info(f"Draft rejected for group {group_id}")
        return self.working_set.transition(group_id, GroupStatus.REJECTED)

    def approve_all_drafts(self) -> List[str]:
        approved = []
        for group_id in self.working_set.ids_with_status(GroupStatus.READY_FOR_REVIEW):
            self.working_set.transition(group_id, GroupStatus.REVIEWED)
            approved.append(group_id)
        logger.info(f"Approved {len(approved)} drafts")
        return approved

    def edit_draft(self, group_id: str, field: str, value: str) -> Group:
        return self.working_set.edit_draft(group_id, field, value)

    def _require_ready(self, group_id: str) -> Group:
        group = self.working_set.get(group_id)
        if group.status != GroupStatus.READY_FOR_REVIEW:
            raise InvalidTransitionError(
                f"Group {group_id} is {group.status.value}, expected ready_for_review"
            )
        return group
