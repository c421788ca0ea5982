"""
Source Grouper

Responsibilities:
- Ask the classification capability to bundle sources into units
- Decide create vs update per group
- Reconcile the answer so every source lands in exactly one group
"""

import logging
from typing import Dict, List, Optional, Set

from bulk_import.ai_core.capabilities import (
    GroupAction,
    KnowledgeCapabilities,
    ProposedGroup,
)
from bulk_import.errors import GroupingError
from bulk_import.models.group import Group, GroupKind
from bulk_import.models.sources import (
    DocumentSource,
    ExistingUnitSummary,
    SourceContent,
    WorkSet,
)

logger = logging.getLogger(__name__)

UNGROUPED_TITLE = "Ungrouped sources"


class SourceGrouper:
    """
    Turns a work set into the initial working set of groups.

    Any failure of the classification call is batch-fatal and surfaces as
    GroupingError; reconciliation problems in an otherwise usable answer
    are repaired instead.
    """

    def __init__(self, capabilities: KnowledgeCapabilities):
        self.capabilities = capabilities

    async def group_sources(
        self,
        work_set: WorkSet,
        source_contents: List[SourceContent],
        existing_units: List[ExistingUnitSummary],
    ) -> List[Group]:
        """
        Propose groups for a work set.

        Args:
            work_set: URLs and documents of the batch
            source_contents: Loaded text of every source (for the model)
            existing_units: Existing knowledge units the batch may update

        Returns:
            Ordered list of pending groups, each with at least one source

        Raises:
            GroupingError: If classification fails or yields nothing usable
        """
        logger.info(
            f"Grouping {len(work_set.urls)} URLs and {len(work_set.documents)} documents"
        )

        try:
            proposals = await self.capabilities.classify(source_contents, existing_units)
        except Exception as e:
            logger.error(f"Source classification failed: {e}", exc_info=True)
            raise GroupingError(f"Analysis failed: {e}") from e

        if proposals is None or not isinstance(proposals, list):
            raise GroupingError("Analysis returned an unparseable result")

        groups = self.reconcile(work_set, proposals, existing_units)
        if not groups:
            raise GroupingError("Analysis returned no groups")

        logger.info(f"Proposed {len(groups)} groups")
        return groups

    def reconcile(
        self,
        work_set: WorkSet,
        proposals: List[ProposedGroup],
        existing_units: List[ExistingUnitSummary],
    ) -> List[Group]:
        """
        Build groups from proposals so that every source of the work set
        appears in exactly one group.
        """
        units_by_id = {u.id: u for u in existing_units}
        documents_by_id: Dict[str, DocumentSource] = {
            d.id: d for d in work_set.documents
        }
        known_urls = set(work_set.urls)
        claimed_urls: Set[str] = set()
        claimed_docs: Set[str] = set()

        groups: List[Group] = []
        for proposal in proposals:
            urls = []
            for url in proposal.urls:
                if url not in known_urls:
                    logger.warning(f"Dropping unknown URL from proposal: {url}")
                    continue
                if url in claimed_urls:
                    logger.warning(f"URL proposed in more than one group: {url}")
                    continue
                claimed_urls.add(url)
                urls.append(url)

            documents = []
            for doc_id in proposal.document_ids:
                if doc_id not in documents_by_id or doc_id in claimed_docs:
                    logger.warning(f"Dropping unknown or duplicate document: {doc_id}")
                    continue
                claimed_docs.add(doc_id)
                documents.append(documents_by_id[doc_id])

            if not urls and not documents:
                logger.info(f"Skipping empty proposal '{proposal.title}'")
                continue

            groups.append(self._to_group(proposal, urls, documents, units_by_id))

        orphan_urls = [u for u in work_set.urls if u not in claimed_urls]
        orphan_docs = [d for d in work_set.documents if d.id not in claimed_docs]
        if orphan_urls or orphan_docs:
            logger.warning(
                f"{len(orphan_urls)} URLs and {len(orphan_docs)} documents were not grouped, "
                f"adding '{UNGROUPED_TITLE}'"
            )
            groups.append(
                Group(
                    kind=GroupKind.CREATE,
                    title=UNGROUPED_TITLE,
                    urls=orphan_urls,
                    documents=orphan_docs,
                    rationale="These sources were not assigned to any group by the analysis.",
                )
            )

        return groups

    def _to_group(
        self,
        proposal: ProposedGroup,
        urls: List[str],
        documents: List[DocumentSource],
        units_by_id: Dict[str, ExistingUnitSummary],
    ) -> Group:
        unit: Optional[ExistingUnitSummary] = None
        if proposal.action == GroupAction.UPDATE:
            unit = units_by_id.get(proposal.existing_unit_id or "")
            if unit is None:
                logger.warning(
                    f"Proposal '{proposal.title}' updates unknown unit "
                    f"{proposal.existing_unit_id}, creating instead"
                )

        if unit is not None:
            return Group(
                kind=GroupKind.UPDATE,
                title=proposal.title or unit.title,
                existing_unit_id=unit.id,
                urls=urls,
                documents=documents,
                rationale=proposal.rationale,
                scope=proposal.scope,
                questions=proposal.questions,
                category=proposal.category,
                prior_content=unit.content,
                prior_title=unit.title,
            )

        return Group(
            kind=GroupKind.CREATE,
            title=proposal.title,
            urls=urls,
            documents=documents,
            rationale=proposal.rationale,
            scope=proposal.scope,
            questions=proposal.questions,
            category=proposal.category,
        )
