"""
API Response Models

Pydantic models for consistent API response structures.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from enum import Enum

from bulk_import.models.group import Group


class WorkflowStep(str, Enum):
    """Coarse position of a batch in the import workflow."""

    INPUT = "input"
    ANALYZING = "analyzing"
    REVIEW_GROUPS = "review_groups"
    GENERATING = "generating"
    REVIEW_DRAFTS = "review_drafts"
    SAVING = "saving"
    DONE = "done"


class ProcessedResult(BaseModel):
    """Summary of a commit run."""

    created: int = Field(0, description="Units created")
    updated: int = Field(0, description="Units updated")
    skipped: int = Field(0, description="Groups rejected or left without changes")
    errors: int = Field(0, description="Groups that failed")


class StatusCounts(BaseModel):
    """Group counts per status."""

    total: int = 0
    by_status: Dict[str, int] = Field(default_factory=dict)


class BatchResponse(BaseModel):
    """
    Full state of one batch, returned by every batch endpoint.
    """

    batch_id: str = Field(..., description="Batch identifier")
    workflow_step: WorkflowStep
    groups: List[Group] = Field(default_factory=list)
    counts: StatusCounts = Field(default_factory=StatusCounts)
    processed_result: Optional[ProcessedResult] = None
    error_message: Optional[str] = Field(
        None, description="Batch-level error (e.g. grouping failed)"
    )
