"""
Persistence Committer

Saves reviewed drafts to the knowledge store, one independent task per
group. A failed save is recorded on its group and leaves the rest of the
batch untouched.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from bulk_import.config import get_settings
from bulk_import.errors import InvalidTransitionError
from bulk_import.models.group import GroupKind, GroupStatus
from bulk_import.services.knowledge_store import KnowledgeStore
from bulk_import.services.working_set import WorkingSet

logger = logging.getLogger(__name__)


class CommitOutcome(BaseModel):
    """Result of committing one group."""

    group_id: str
    status: GroupStatus
    kind: GroupKind
    unit_id: Optional[str] = Field(None, description="Created or updated unit")
    error: Optional[str] = None


class PersistenceCommitter:
    """
    Commits reviewed groups as create/update operations on a store.
    """

    def __init__(self, store: KnowledgeStore, concurrency: Optional[int] = None):
        self.store = store
        self.concurrency = concurrency or get_settings().commit_concurrency

    async def commit_all(self, working_set: WorkingSet) -> List[CommitOutcome]:
        """
        Commit every reviewed group.

        Returns:
            One outcome per group that was processed
        """
        group_ids = working_set.ids_with_status(GroupStatus.REVIEWED)
        logger.info(f"Committing {len(group_ids)} reviewed groups")
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(group_id: str) -> CommitOutcome:
            async with semaphore:
                return await self.commit_one(working_set, group_id)

        results = await asyncio.gather(
            *(run(gid) for gid in group_ids), return_exceptions=True
        )

        outcomes: List[CommitOutcome] = []
        for group_id, result in zip(group_ids, results):
            if isinstance(result, BaseException):
                logger.error(f"Unexpected failure while committing group {group_id}: {result!r}")
                group = working_set.get(group_id)
                if group.status == GroupStatus.ERROR:
                    outcomes.append(
                        CommitOutcome(
                            group_id=group_id,
                            status=GroupStatus.ERROR,
                            kind=group.kind,
                            error=group.error,
                        )
                    )
                continue
            outcomes.append(result)
        return outcomes

    async def commit_one(self, working_set: WorkingSet, group_id: str) -> CommitOutcome:
        """
        Save one group.

        A group already done is not saved again; its recorded unit id is
        returned.

        Raises:
            InvalidTransitionError: If the group is neither reviewed nor done
        """
        group = working_set.get(group_id)

        if group.status == GroupStatus.DONE:
            logger.info(f"Group {group_id} already committed as {group.committed_unit_id}")
            return CommitOutcome(
                group_id=group_id,
                status=GroupStatus.DONE,
                kind=group.kind,
                unit_id=group.committed_unit_id,
            )
        if group.status != GroupStatus.REVIEWED:
            raise InvalidTransitionError(
                f"Group {group_id} is {group.status.value}, expected reviewed"
            )

        group = working_set.transition(group_id, GroupStatus.SAVING)
        draft = group.draft

        try:
            if group.kind == GroupKind.UPDATE:
                unit_id = await self.store.update_unit(
                    group.existing_unit_id,
                    title=draft.title,
                    content=draft.content,
                    urls=list(group.urls),
                    document_ids=group.document_ids,
                )
            else:
                unit_id = await self.store.create_unit(
                    title=draft.title,
                    content=draft.content,
                    urls=list(group.urls),
                    document_ids=group.document_ids,
                )
        except Exception as e:
            logger.error(f"Error saving '{draft.title}': {e}", exc_info=True)
            message = str(e) or type(e).__name__
            working_set.transition(group_id, GroupStatus.ERROR, error=message)
            return CommitOutcome(
                group_id=group_id,
                status=GroupStatus.ERROR,
                kind=group.kind,
                error=message,
            )
        except asyncio.CancelledError:
            logger.error(f"Save cancelled for '{draft.title}'")
            working_set.transition(group_id, GroupStatus.ERROR, error="Save was cancelled")
            raise

        working_set.transition(group_id, GroupStatus.DONE, committed_unit_id=unit_id)
        logger.info(f"Saved '{draft.title}' as unit {unit_id} ({group.kind.value})")
        return CommitOutcome(
            group_id=group_id,
            status=GroupStatus.DONE,
            kind=group.kind,
            unit_id=unit_id,
        )


def summarize(outcomes: List[CommitOutcome]) -> Dict[str, int]:
    """Count created, updated and failed groups among commit outcomes."""
    summary = {"created": 0, "updated": 0, "errors": 0}
    for outcome in outcomes:
        if outcome.status == GroupStatus.ERROR:
            summary["errors"] += 1
        elif outcome.kind == GroupKind.CREATE:
            summary["created"] += 1
        else:
            summary["updated"] += 1
    return summary
