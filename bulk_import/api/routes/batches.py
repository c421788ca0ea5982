"""
Bulk Import Batch API Routes

Drives one batch through the workflow:
1. POST /api/batches - Collect sources, group them and run conflict checks
2. /groups/... and /sources/... - Edit and approve the proposed groups
3. POST /{batch_id}/generate - Generate drafts for approved groups
4. /groups/{group_id}/review and /draft... - Review drafts
5. POST /{batch_id}/commit - Save reviewed drafts
"""

import logging
from contextlib import contextmanager
from functools import lru_cache
from typing import List, Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from bulk_import.errors import (
    BatchNotFoundError,
    BulkImportError,
    EmptyWorkSetError,
    GroupingError,
    GroupNotFoundError,
    InvalidTransitionError,
    SourceNotFoundError,
    UnitNotFoundError,
)
from bulk_import.models.api_responses import BatchResponse
from bulk_import.models.sources import DocumentSource, SourceRef
from bulk_import.services.batch_orchestrator import (
    BatchRegistry,
    BulkImportOrchestrator,
    build_capabilities,
)
from bulk_import.services.knowledge_store import InMemoryKnowledgeStore
from bulk_import.services.review import ReviewView

logger = logging.getLogger(__name__)
router = APIRouter()


@lru_cache
def get_registry() -> BatchRegistry:
    """Process-wide batch registry sharing one store and one capability backend."""
    store = InMemoryKnowledgeStore()
    capabilities = build_capabilities()
    return BatchRegistry(
        lambda: BulkImportOrchestrator(capabilities=capabilities, store=store)
    )


def _status_code(error: Exception) -> int:
    if isinstance(error, InvalidTransitionError):
        return 409
    if isinstance(
        error,
        (BatchNotFoundError, GroupNotFoundError, SourceNotFoundError, UnitNotFoundError),
    ):
        return 404
    if isinstance(error, GroupingError):
        return 502
    return 400


@contextmanager
def _http_errors():
    """Translate bulk import and validation errors into HTTP errors."""
    try:
        yield
    except (BulkImportError, ValueError) as e:
        status_code = _status_code(e)
        logger.info(f"Request rejected ({status_code}): {e}")
        raise HTTPException(status_code=status_code, detail=str(e))


def _batch(registry: BatchRegistry, batch_id: str) -> BulkImportOrchestrator:
    with _http_errors():
        return registry.get(batch_id)


# Request models


class CreateBatchRequest(BaseModel):
    """Request model for starting a batch."""

    urls: str = Field("", description="Free text with URLs separated by newlines or commas")
    documents: List[DocumentSource] = Field(
        default_factory=list, description="Documents with already extracted text"
    )


class NotesRequest(BaseModel):
    notes: str = Field(..., description="Guidance for draft generation")


class RenameRequest(BaseModel):
    title: str = Field(..., description="New working title")


class MoveSourceRequest(BaseModel):
    source: SourceRef
    from_group_id: str
    to_group_id: str


class SplitSourceRequest(BaseModel):
    source: SourceRef
    from_group_id: str
    title: str = Field(..., description="Title of the new group")


class AttachSourceRequest(BaseModel):
    source: SourceRef
    from_group_id: str
    existing_unit_id: str


class DraftEditRequest(BaseModel):
    field: Literal["title", "content"]
    value: str


# Batch lifecycle


@router.post("", response_model=BatchResponse)
async def create_batch(
    request: CreateBatchRequest, registry: BatchRegistry = Depends(get_registry)
):
    """
    Start a batch from URL text and documents, then group the sources.

    Example request body:
    ```json
    {
        "urls": "https://docs.example.com/a\\nhttps://docs.example.com/b",
        "documents": [{"id": "doc-1", "filename": "guide.pdf", "content": "..."}]
    }
    ```
    """
    batch = registry.create()
    try:
        await batch.start(request.urls, request.documents)
    except EmptyWorkSetError as e:
        registry.remove(batch.batch_id)
        raise HTTPException(status_code=400, detail=str(e))
    except GroupingError as e:
        # The batch stays registered so the analysis can be retried
        raise HTTPException(
            status_code=502,
            detail={"batch_id": batch.batch_id, "message": str(e)},
        )
    return batch.to_response()


@router.get("/{batch_id}", response_model=BatchResponse)
async def get_batch(batch_id: str, registry: BatchRegistry = Depends(get_registry)):
    return _batch(registry, batch_id).to_response()


@router.post("/{batch_id}/analyze", response_model=BatchResponse)
async def reanalyze_batch(batch_id: str, registry: BatchRegistry = Depends(get_registry)):
    """Re-run grouping, e.g. after a grouping failure."""
    batch = _batch(registry, batch_id)
    with _http_errors():
        await batch.analyze()
    return batch.to_response()


@router.delete("/{batch_id}")
async def delete_batch(batch_id: str, registry: BatchRegistry = Depends(get_registry)):
    with _http_errors():
        registry.remove(batch_id)
    return {"batch_id": batch_id, "deleted": True}


# Group editing


@router.post("/{batch_id}/groups/approve-all", response_model=BatchResponse)
async def approve_all_groups(batch_id: str, registry: BatchRegistry = Depends(get_registry)):
    batch = _batch(registry, batch_id)
    batch.approve_all()
    return batch.to_response()


@router.post("/{batch_id}/groups/{group_id}/approve", response_model=BatchResponse)
async def approve_group(
    batch_id: str, group_id: str, registry: BatchRegistry = Depends(get_registry)
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.approve(group_id)
    return batch.to_response()


@router.post("/{batch_id}/groups/{group_id}/reject", response_model=BatchResponse)
async def reject_group(
    batch_id: str, group_id: str, registry: BatchRegistry = Depends(get_registry)
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.reject(group_id)
    return batch.to_response()


@router.post("/{batch_id}/groups/{group_id}/unapprove", response_model=BatchResponse)
async def unapprove_group(
    batch_id: str, group_id: str, registry: BatchRegistry = Depends(get_registry)
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.unapprove(group_id)
    return batch.to_response()


@router.post("/{batch_id}/groups/{group_id}/notes", response_model=BatchResponse)
async def set_group_notes(
    batch_id: str,
    group_id: str,
    request: NotesRequest,
    registry: BatchRegistry = Depends(get_registry),
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.set_notes(group_id, request.notes)
    return batch.to_response()


@router.post("/{batch_id}/groups/{group_id}/rename", response_model=BatchResponse)
async def rename_group(
    batch_id: str,
    group_id: str,
    request: RenameRequest,
    registry: BatchRegistry = Depends(get_registry),
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.rename(group_id, request.title)
    return batch.to_response()


@router.post("/{batch_id}/sources/move", response_model=BatchResponse)
async def move_source(
    batch_id: str,
    request: MoveSourceRequest,
    registry: BatchRegistry = Depends(get_registry),
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.move_source(request.source, request.from_group_id, request.to_group_id)
    return batch.to_response()


@router.post("/{batch_id}/sources/split", response_model=BatchResponse)
async def split_source(
    batch_id: str,
    request: SplitSourceRequest,
    registry: BatchRegistry = Depends(get_registry),
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.split_new(request.source, request.from_group_id, request.title)
    return batch.to_response()


@router.post("/{batch_id}/sources/attach", response_model=BatchResponse)
async def attach_source(
    batch_id: str,
    request: AttachSourceRequest,
    registry: BatchRegistry = Depends(get_registry),
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        await batch.attach_to_existing(
            request.source, request.from_group_id, request.existing_unit_id
        )
    return batch.to_response()


# Generation and review


@router.post("/{batch_id}/generate", response_model=BatchResponse)
async def generate_drafts(batch_id: str, registry: BatchRegistry = Depends(get_registry)):
    """
    Generate drafts for every approved group.

    Per-group failures are reported on the groups (status "error").
    """
    batch = _batch(registry, batch_id)
    await batch.generate()
    return batch.to_response()


@router.get("/{batch_id}/groups/{group_id}/review", response_model=ReviewView)
async def review_group(
    batch_id: str, group_id: str, registry: BatchRegistry = Depends(get_registry)
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        return batch.render_review(group_id)


@router.post("/{batch_id}/groups/{group_id}/draft", response_model=BatchResponse)
async def edit_draft(
    batch_id: str,
    group_id: str,
    request: DraftEditRequest,
    registry: BatchRegistry = Depends(get_registry),
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.edit_draft(group_id, request.field, request.value)
    return batch.to_response()


@router.post("/{batch_id}/groups/{group_id}/draft/approve", response_model=BatchResponse)
async def approve_draft(
    batch_id: str, group_id: str, registry: BatchRegistry = Depends(get_registry)
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.approve_draft(group_id)
    return batch.to_response()


@router.post("/{batch_id}/groups/{group_id}/draft/reject", response_model=BatchResponse)
async def reject_draft(
    batch_id: str, group_id: str, registry: BatchRegistry = Depends(get_registry)
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.reject_draft(group_id)
    return batch.to_response()


@router.post("/{batch_id}/drafts/approve-all", response_model=BatchResponse)
async def approve_all_drafts(batch_id: str, registry: BatchRegistry = Depends(get_registry)):
    batch = _batch(registry, batch_id)
    batch.approve_all_drafts()
    return batch.to_response()


# Commit and recovery


@router.post("/{batch_id}/commit", response_model=BatchResponse)
async def commit_batch(batch_id: str, registry: BatchRegistry = Depends(get_registry)):
    batch = _batch(registry, batch_id)
    await batch.commit()
    return batch.to_response()


@router.post("/{batch_id}/groups/{group_id}/retry", response_model=BatchResponse)
async def retry_group(
    batch_id: str, group_id: str, registry: BatchRegistry = Depends(get_registry)
):
    batch = _batch(registry, batch_id)
    with _http_errors():
        batch.retry(group_id)
    return batch.to_response()
