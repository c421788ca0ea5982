"""
Bulk Import Orchestrator Service

Owns one batch and sequences the pipeline:
1. Collect sources and group them (with conflict checks)
2. Let the operator edit and approve groups
3. Generate drafts for approved groups
4. Let the operator review drafts
5. Commit reviewed drafts to the knowledge store
"""

import logging
import threading
import uuid
from typing import Callable, Dict, List, Optional

from bulk_import.ai_core.analysis import ConflictDetector
from bulk_import.ai_core.capabilities import KnowledgeCapabilities
from bulk_import.ai_core.generation import DraftGenerator
from bulk_import.ai_core.grouping import SourceGrouper
from bulk_import.config import get_settings
from bulk_import.errors import BatchNotFoundError, GroupingError, UnitNotFoundError
from bulk_import.models.api_responses import (
    BatchResponse,
    ProcessedResult,
    StatusCounts,
    WorkflowStep,
)
from bulk_import.models.group import Group, GroupStatus
from bulk_import.models.sources import DocumentSource, ExistingUnitSummary, SourceRef
from bulk_import.services.committer import PersistenceCommitter, summarize
from bulk_import.services.knowledge_store import InMemoryKnowledgeStore, KnowledgeStore
from bulk_import.services.review import ReviewEngine, ReviewView
from bulk_import.services.source_collector import SourceCollector, SourceTextLoader
from bulk_import.services.working_set import WorkingSet

logger = logging.getLogger(__name__)


def build_capabilities() -> KnowledgeCapabilities:
    """Capabilities selected by the capability_backend setting."""
    backend = get_settings().capability_backend
    if backend == "stub":
        from bulk_import.ai_core.stub import StubCapabilities

        return StubCapabilities()
    if backend != "llm":
        raise ValueError(f"Unknown capability backend: {backend}")

    from bulk_import.ai_core.llm_capabilities import LLMCapabilities

    return LLMCapabilities()


class BulkImportOrchestrator:
    """
    One bulk import batch, from source input to commit.
    """

    def __init__(
        self,
        capabilities: Optional[KnowledgeCapabilities] = None,
        store: Optional[KnowledgeStore] = None,
        loader: Optional[SourceTextLoader] = None,
        batch_id: Optional[str] = None,
    ):
        self.batch_id = batch_id or f"batch-{uuid.uuid4().hex[:12]}"
        self.capabilities = capabilities or build_capabilities()
        self.store = store or InMemoryKnowledgeStore()
        self.loader = loader or SourceTextLoader()

        self.collector = SourceCollector()
        self.working_set = WorkingSet()
        self.grouper = SourceGrouper(self.capabilities)
        self.detector = ConflictDetector(self.capabilities, self.loader)
        self.generator = DraftGenerator(self.capabilities, self.loader)
        self.review = ReviewEngine(self.working_set)
        self.committer = PersistenceCommitter(self.store)

        self.workflow_step = WorkflowStep.INPUT
        self.existing_units: List[ExistingUnitSummary] = []
        self.processed_result: Optional[ProcessedResult] = None
        self.error_message: Optional[str] = None

    # Step 1: sources and grouping

    async def start(
        self,
        url_input: str = "",
        documents: Optional[List[DocumentSource]] = None,
    ) -> List[Group]:
        """
        Collect sources and run the analysis step.

        Raises:
            EmptyWorkSetError: If no valid URL or document was given
            GroupingError: If grouping fails (the batch returns to input)
        """
        if url_input:
            self.collector.add_urls(url_input)
        for document in documents or []:
            self.collector.add_document(document)
        return await self.analyze()

    async def analyze(self) -> List[Group]:
        """
        Group the collected sources and attach the advisory analyses.

        Returns:
            The groups of the new working set
        """
        work_set = self.collector.build_work_set()
        self.workflow_step = WorkflowStep.ANALYZING
        self.error_message = None
        logger.info(
            f"Batch {self.batch_id}: analyzing {len(work_set.urls)} URLs "
            f"and {len(work_set.documents)} documents"
        )

        try:
            units = await self.store.list_units()
            self.existing_units = [ExistingUnitSummary.from_unit(u) for u in units]
            contents = await self.loader.load_work_set(work_set)
            groups = await self.grouper.group_sources(
                work_set, contents, self.existing_units
            )
        except GroupingError as e:
            logger.error(f"Batch {self.batch_id}: grouping failed: {e}")
            self.workflow_step = WorkflowStep.INPUT
            self.error_message = str(e)
            raise

        self.working_set.load(groups)

        reports = await self.detector.analyze_groups(self.working_set.groups())
        for group_id, report in reports.items():
            self.working_set.annotate(group_id, report.discrepancy, report.coherence)

        self.workflow_step = WorkflowStep.REVIEW_GROUPS
        return self.working_set.groups()

    # Step 2: group editing

    def approve(self, group_id: str) -> Group:
        return self.working_set.approve(group_id)

    def reject(self, group_id: str) -> Group:
        return self.working_set.reject(group_id)

    def unapprove(self, group_id: str) -> Group:
        return self.working_set.unapprove(group_id)

    def approve_all(self) -> List[str]:
        return self.working_set.approve_all()

    def set_notes(self, group_id: str, notes: str) -> Group:
        return self.working_set.set_notes(group_id, notes)

    def rename(self, group_id: str, title: str) -> Group:
        return self.working_set.rename(group_id, title)

    def move_source(self, ref: SourceRef, from_id: str, to_id: str) -> Group:
        return self.working_set.move_source(ref, from_id, to_id)

    def split_new(self, ref: SourceRef, from_id: str, new_title: str) -> Group:
        return self.working_set.split_new(ref, from_id, new_title)

    async def attach_to_existing(
        self, ref: SourceRef, from_id: str, existing_unit_id: str
    ) -> Group:
        """
        Move a source into the group updating an existing unit.

        Raises:
            UnitNotFoundError: If the unit is unknown to the store
        """
        unit = next((u for u in self.existing_units if u.id == existing_unit_id), None)
        if unit is None:
            stored = await self.store.get_unit(existing_unit_id)
            if stored is None:
                raise UnitNotFoundError(f"Knowledge unit not found: {existing_unit_id}")
            unit = ExistingUnitSummary.from_unit(stored)
            self.existing_units.append(unit)
        return self.working_set.attach_to_existing(ref, from_id, unit)

    # Step 3: generation

    async def generate(self) -> Dict[str, GroupStatus]:
        self.workflow_step = WorkflowStep.GENERATING
        statuses = await self.generator.generate_all(self.working_set)
        self.workflow_step = WorkflowStep.REVIEW_DRAFTS
        logger.info(
            f"Batch {self.batch_id}: {len(statuses)} groups generated, "
            f"{sum(1 for s in statuses.values() if s == GroupStatus.ERROR)} failed"
        )
        return statuses

    # Step 4: review

    def render_review(self, group_id: str) -> ReviewView:
        return self.review.render(group_id)

    def edit_draft(self, group_id: str, field: str, value: str) -> Group:
        return self.review.edit_draft(group_id, field, value)

    def approve_draft(self, group_id: str) -> Group:
        return self.review.approve_draft(group_id)

    def reject_draft(self, group_id: str) -> Group:
        return self.review.reject_draft(group_id)

    def approve_all_drafts(self) -> List[str]:
        return self.review.approve_all_drafts()

    # Step 5: commit

    async def commit(self) -> ProcessedResult:
        """
        Save every reviewed group and summarize the batch.

        Returns:
            Counts of created, updated, skipped and failed groups
        """
        self.workflow_step = WorkflowStep.SAVING
        outcomes = await self.committer.commit_all(self.working_set)
        summary = summarize(outcomes)

        groups = self.working_set.groups()
        skipped = sum(
            1
            for g in groups
            if g.status == GroupStatus.REJECTED
            or (
                g.status == GroupStatus.READY_FOR_REVIEW
                and g.draft is not None
                and not g.draft.has_changes
            )
        )
        errors = sum(1 for g in groups if g.status == GroupStatus.ERROR)

        self.processed_result = ProcessedResult(
            created=summary["created"],
            updated=summary["updated"],
            skipped=skipped,
            errors=errors,
        )
        if not self.working_set.is_settled():
            logger.info(f"Batch {self.batch_id}: some groups were left open after commit")
        self.workflow_step = WorkflowStep.DONE
        logger.info(f"Batch {self.batch_id} committed: {self.processed_result.model_dump()}")
        return self.processed_result

    # Recovery

    def retry(self, group_id: str) -> Group:
        """
        Put a failed group back into the stage that failed.
        """
        target = self.working_set.mutate(group_id, lambda g: g.recover())
        logger.info(f"Group {group_id} recovered to {target.value}")
        return self.working_set.get(group_id)

    def reset(self) -> None:
        self.collector = SourceCollector()
        self.loader.clear_cache()
        self.working_set.clear()
        self.existing_units = []
        self.workflow_step = WorkflowStep.INPUT
        self.processed_result = None
        self.error_message = None
        logger.info(f"Batch {self.batch_id} reset")

    def to_response(self) -> BatchResponse:
        counts = self.working_set.counts()
        return BatchResponse(
            batch_id=self.batch_id,
            workflow_step=self.workflow_step,
            groups=self.working_set.groups(),
            counts=StatusCounts(total=sum(counts.values()), by_status=counts),
            processed_result=self.processed_result,
            error_message=self.error_message,
        )


class BatchRegistry:
    """
    In-flight batches keyed by batch id.
    Stored in-memory only - batches do not survive server restarts.
    """

    def __init__(self, factory: Callable[[], BulkImportOrchestrator]):
        self._factory = factory
        self._lock = threading.Lock()
        self._batches: Dict[str, BulkImportOrchestrator] = {}

    def create(self) -> BulkImportOrchestrator:
        batch = self._factory()
        with self._lock:
            self._batches[batch.batch_id] = batch
        return batch

    def get(self, batch_id: str) -> BulkImportOrchestrator:
        with self._lock:
            batch = self._batches.get(batch_id)
        if batch is None:
            raise BatchNotFoundError(f"Batch not found: {batch_id}")
        return batch

    def remove(self, batch_id: str) -> None:
        with self._lock:
            if self._batches.pop(batch_id, None) is None:
                raise BatchNotFoundError(f"Batch not found: {batch_id}")

    def __len__(self) -> int:
        return len(self._batches)
