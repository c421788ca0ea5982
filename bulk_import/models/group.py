"""
Group Models

A group is one proposed knowledge unit of a batch: the sources bundled
together, the advisory analyses attached to them, the generated draft, and
the status of the group in the review-and-commit state machine.
"""

import uuid
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, PrivateAttr, model_validator

from bulk_import.errors import InvalidTransitionError
from bulk_import.models.sources import DocumentSource, SourceRef, SourceType


class GroupKind(str, Enum):
    """What committing the group does to the knowledge base."""

    CREATE = "create"  # Create a new unit
    UPDATE = "update"  # Revise an existing unit


class GroupStatus(str, Enum):
    """Status of a group in the bulk import state machine."""

    PENDING = "pending"
    APPROVED = "approved"
    GENERATING = "generating"
    READY_FOR_REVIEW = "ready_for_review"
    REVIEWED = "reviewed"
    SAVING = "saving"
    DONE = "done"
    ERROR = "error"
    REJECTED = "rejected"


ALLOWED_TRANSITIONS: Dict[GroupStatus, FrozenSet[GroupStatus]] = {
    GroupStatus.PENDING: frozenset({GroupStatus.APPROVED, GroupStatus.REJECTED}),
    GroupStatus.APPROVED: frozenset({GroupStatus.GENERATING, GroupStatus.PENDING}),
    GroupStatus.GENERATING: frozenset(
        {GroupStatus.READY_FOR_REVIEW, GroupStatus.ERROR}
    ),
    GroupStatus.READY_FOR_REVIEW: frozenset(
        {GroupStatus.REVIEWED, GroupStatus.REJECTED}
    ),
    GroupStatus.REVIEWED: frozenset({GroupStatus.SAVING}),
    GroupStatus.SAVING: frozenset({GroupStatus.DONE, GroupStatus.ERROR}),
    GroupStatus.DONE: frozenset(),
    GroupStatus.ERROR: frozenset(),
    GroupStatus.REJECTED: frozenset(),
}

# Operator-triggered re-entry into the failed stage
RECOVERY_TRANSITIONS: Dict[GroupStatus, FrozenSet[GroupStatus]] = {
    GroupStatus.ERROR: frozenset({GroupStatus.APPROVED, GroupStatus.REVIEWED}),
}

# A draft exists only in these statuses
DRAFT_STATUSES = frozenset(
    {
        GroupStatus.READY_FOR_REVIEW,
        GroupStatus.REVIEWED,
        GroupStatus.SAVING,
        GroupStatus.DONE,
    }
)

TERMINAL_STATUSES = frozenset(
    {GroupStatus.DONE, GroupStatus.ERROR, GroupStatus.REJECTED}
)

# Every status must be handled by the transition table
_unhandled = set(GroupStatus) - set(ALLOWED_TRANSITIONS)
if _unhandled:
    raise RuntimeError(f"No transition rules for statuses: {sorted(s.value for s in _unhandled)}")


class ChangeLevel(str, Enum):
    """Magnitude of change reported by discrepancy analysis."""

    NONE = "none"
    MODERATE = "moderate"
    SIGNIFICANT = "significant"


class ChangeSummary(BaseModel):
    """Topics that new sources add, change or drop."""

    new_topics: List[str] = Field(default_factory=list)
    updated_content: List[str] = Field(default_factory=list)
    removed_content: List[str] = Field(default_factory=list)


class DiscrepancyAnalysis(BaseModel):
    """
    Comparison of new sources against an existing unit's content.
    """

    change_level: ChangeLevel = Field(..., description="none, moderate or significant")
    change_percentage: int = Field(
        ..., ge=0, le=100, description="Approximate share of content that differs"
    )
    recommendation: str = Field(..., description="Advice for the operator")
    change_summary: ChangeSummary = Field(default_factory=ChangeSummary)


class ConflictType(str, Enum):
    TECHNICAL_CONTRADICTION = "technical_contradiction"
    VERSION_MISMATCH = "version_mismatch"
    SCOPE_MISMATCH = "scope_mismatch"
    OUTDATED_VS_CURRENT = "outdated_vs_current"
    DIFFERENT_PERSPECTIVES = "different_perspectives"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CoherenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class CoherenceConflict(BaseModel):
    """A contradiction found between sources of one group."""

    type: ConflictType
    description: str = Field(..., description="Specific conflict with examples")
    severity: Severity
    affected_sources: List[int] = Field(
        default_factory=list, description="Indices of the sources involved"
    )


class CoherenceAnalysis(BaseModel):
    """Check of a group's sources for mutual contradiction."""

    coherent: bool
    coherence_level: CoherenceLevel
    coherence_percentage: int = Field(..., ge=0, le=100)
    conflicts: List[CoherenceConflict] = Field(default_factory=list)
    recommendation: str = ""
    summary: str = ""


class Draft(BaseModel):
    """AI-generated candidate title/content awaiting human review."""

    title: str
    content: str
    has_changes: Optional[bool] = Field(
        None, description="False signals that an update is not needed"
    )
    change_highlights: List[str] = Field(default_factory=list)
    reasoning: Optional[str] = None
    inference: Optional[str] = None
    sources: Optional[str] = None


def new_group_id() -> str:
    return f"group-{uuid.uuid4().hex[:12]}"


class Group(BaseModel):
    """
    A proposed knowledge unit and its position in the workflow.
    """

    id: str = Field(default_factory=new_group_id)
    kind: GroupKind
    title: str
    existing_unit_id: Optional[str] = None
    urls: List[str] = Field(default_factory=list)
    documents: List[DocumentSource] = Field(default_factory=list)
    status: GroupStatus = GroupStatus.PENDING

    # Display-only information from the grouping step
    rationale: Optional[str] = None
    scope: Optional[str] = None
    questions: List[str] = Field(default_factory=list)
    category: Optional[str] = None

    # Operator guidance for generation
    notes: str = ""

    # Advisory annotations
    discrepancy: Optional[DiscrepancyAnalysis] = None
    coherence: Optional[CoherenceAnalysis] = None

    draft: Optional[Draft] = None
    prior_content: Optional[str] = None
    prior_title: Optional[str] = None
    error: Optional[str] = None
    committed_unit_id: Optional[str] = None

    status_history: List[GroupStatus] = Field(default_factory=list)

    # Draft kept aside while the group sits in error after a failed save
    _parked_draft: Optional[Draft] = PrivateAttr(default=None)

    @model_validator(mode="after")
    def _check_kind(self) -> "Group":
        if self.kind == GroupKind.UPDATE and not self.existing_unit_id:
            raise ValueError("update groups require existing_unit_id")
        if self.kind == GroupKind.CREATE and self.existing_unit_id:
            raise ValueError("create groups cannot reference an existing unit")
        if not self.status_history:
            self.status_history.append(self.status)
        return self

    @property
    def source_count(self) -> int:
        return len(self.urls) + len(self.documents)

    @property
    def document_ids(self) -> List[str]:
        return [d.id for d in self.documents]

    def source_refs(self) -> List[SourceRef]:
        refs = [SourceRef.url(u) for u in self.urls]
        refs.extend(SourceRef.document(d.id) for d in self.documents)
        return refs

    def has_source(self, ref: SourceRef) -> bool:
        if ref.type == SourceType.URL:
            return ref.value in self.urls
        return ref.value in self.document_ids

    def passed_through(self, status: GroupStatus) -> bool:
        return status in self.status_history

    def transition_to(self, status: GroupStatus) -> None:
        """
        Move the group to a new status.

        Raises:
            InvalidTransitionError: If the state machine does not allow it
        """
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Group {self.id} cannot go from {self.status.value} to {status.value}"
            )
        self._apply_status(status)

    def recover(self) -> GroupStatus:
        """
        Re-enter the stage that failed: generation failures go back to
        approved, save failures go back to reviewed with their draft.

        Returns:
            The status the group was moved to
        """
        if self.status not in RECOVERY_TRANSITIONS:
            raise InvalidTransitionError(
                f"Group {self.id} is {self.status.value}, only failed groups can be retried"
            )
        target = (
            GroupStatus.REVIEWED
            if self._parked_draft is not None
            else GroupStatus.APPROVED
        )
        self.error = None
        self._apply_status(target)
        return target

    def _apply_status(self, status: GroupStatus) -> None:
        if status in DRAFT_STATUSES:
            if self.draft is None and self._parked_draft is not None:
                self.draft = self._parked_draft
            self._parked_draft = None
        elif self.draft is not None:
            # Only a failed save keeps its draft for a later retry
            if status == GroupStatus.ERROR and self.status == GroupStatus.SAVING:
                self._parked_draft = self.draft
            self.draft = None
        self.status = status
        self.status_history.append(status)
