"""
Draft Generator

Generates a draft for every approved group. Each group is generated in its
own task; a failure is recorded on that group only and never reaches its
siblings.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from bulk_import.ai_core.capabilities import GeneratedDraft, KnowledgeCapabilities
from bulk_import.config import get_settings
from bulk_import.errors import DraftGenerationError
from bulk_import.models.group import Draft, Group, GroupKind, GroupStatus
from bulk_import.models.sources import SourceContent
from bulk_import.services.source_collector import SourceTextLoader
from bulk_import.services.working_set import WorkingSet

logger = logging.getLogger(__name__)


class DraftGenerator:
    """
    Drives the generation capability over the approved groups of a batch.
    """

    def __init__(
        self,
        capabilities: KnowledgeCapabilities,
        loader: SourceTextLoader,
        concurrency: Optional[int] = None,
        max_urls_per_call: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        config = get_settings()
        self.capabilities = capabilities
        self.loader = loader
        self.concurrency = concurrency or config.generation_concurrency
        self.max_urls_per_call = max_urls_per_call or config.max_urls_per_generation
        self.timeout = timeout if timeout is not None else config.generation_timeout

    async def generate_all(self, working_set: WorkingSet) -> Dict[str, GroupStatus]:
        """
        Generate drafts for every approved group.

        Returns:
            Final status per processed group id (ready_for_review or error)
        """
        group_ids = working_set.ids_with_status(GroupStatus.APPROVED)
        logger.info(f"Generating drafts for {len(group_ids)} approved groups")
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(group_id: str) -> GroupStatus:
            async with semaphore:
                return await self.generate_one(working_set, group_id)

        results = await asyncio.gather(
            *(run(gid) for gid in group_ids), return_exceptions=True
        )

        statuses: Dict[str, GroupStatus] = {}
        for group_id, result in zip(group_ids, results):
            if isinstance(result, BaseException):
                logger.error(
                    f"Unexpected failure while generating group {group_id}: {result!r}"
                )
                if working_set.get(group_id).status == GroupStatus.ERROR:
                    statuses[group_id] = GroupStatus.ERROR
                continue
            statuses[group_id] = result
        return statuses

    async def generate_one(self, working_set: WorkingSet, group_id: str) -> GroupStatus:
        """
        Run generation for a single approved group.

        Returns:
            The group's status afterwards
        """
        group = working_set.transition(group_id, GroupStatus.GENERATING, error=None)

        try:
            if self.timeout:
                draft = await asyncio.wait_for(self._generate(group), self.timeout)
            else:
                draft = await self._generate(group)
        except asyncio.TimeoutError:
            logger.error(f"Generation timed out for '{group.title}'")
            working_set.transition(
                group_id,
                GroupStatus.ERROR,
                error=f"Generation timed out after {self.timeout}s",
            )
            return GroupStatus.ERROR
        except Exception as e:
            logger.error(f"Error generating draft for '{group.title}': {e}", exc_info=True)
            working_set.transition(
                group_id, GroupStatus.ERROR, error=str(e) or type(e).__name__
            )
            return GroupStatus.ERROR
        except asyncio.CancelledError:
            logger.error(f"Generation cancelled for '{group.title}'")
            working_set.transition(
                group_id, GroupStatus.ERROR, error="Generation was cancelled"
            )
            raise

        working_set.transition(group_id, GroupStatus.READY_FOR_REVIEW, draft=draft)
        logger.info(
            f"Draft ready for '{draft.title}' (has_changes={draft.has_changes})"
        )
        return GroupStatus.READY_FOR_REVIEW

    async def _generate(self, group: Group) -> Draft:
        if group.kind == GroupKind.UPDATE and len(group.urls) > self.max_urls_per_call:
            return await self._generate_iteratively(group)

        sources = await self.loader.load(group.urls, group.documents)
        result = await self.capabilities.generate(
            sources,
            notes=group.notes,
            prior_content=group.prior_content if group.kind == GroupKind.UPDATE else None,
            prior_title=group.prior_title,
            working_title=group.title,
        )
        return self._to_draft(group, result)

    async def _generate_iteratively(self, group: Group) -> Draft:
        """
        Update a unit from many URLs a few at a time, each call refining
        the content produced by the previous one.
        """
        current_content = group.prior_content or ""
        current_title = group.prior_title or group.title
        highlights: List[str] = []
        source_notes: List[str] = []
        reasoning: List[str] = []
        inference: List[str] = []
        has_any_changes = False

        for start in range(0, len(group.urls), self.max_urls_per_call):
            batch_urls = group.urls[start : start + self.max_urls_per_call]
            # Documents go with the first slice only
            documents = group.documents if start == 0 else []
            sources: List[SourceContent] = await self.loader.load(batch_urls, documents)

            result = await self.capabilities.generate(
                sources,
                notes=group.notes,
                prior_content=current_content,
                prior_title=current_title,
                working_title=group.title,
            )
            content = self._resolve_content(result, current_content)
            logger.debug(
                f"Slice {start // self.max_urls_per_call + 1} of '{group.title}': "
                f"has_changes={result.has_changes}"
            )

            if result.has_changes:
                has_any_changes = True
                current_content = content
                if result.title:
                    current_title = result.title
                highlights.extend(result.change_highlights)
            if result.sources:
                source_notes.append(result.sources)
            if result.reasoning:
                reasoning.append(result.reasoning)
            if result.inference:
                inference.append(result.inference)

        return Draft(
            title=current_title,
            content=current_content,
            has_changes=has_any_changes,
            change_highlights=highlights,
            reasoning="\n".join(reasoning) or None,
            inference="\n".join(inference) or None,
            sources="\n".join(source_notes) or None,
        )

    @staticmethod
    def _resolve_content(
        result: GeneratedDraft, prior_content: Optional[str] = None
    ) -> str:
        """
        Content to draft from a generation result.

        An update that reports no changes may leave its content blank; the
        prior content stands in for it.
        """
        if not isinstance(result, GeneratedDraft):
            raise DraftGenerationError("Generation returned a malformed result")

        content = result.content or ""
        if not content.strip() and result.has_changes is False and prior_content:
            content = prior_content
        if not content.strip():
            raise DraftGenerationError("Generation returned empty content")
        return content

    def _to_draft(self, group: Group, result: GeneratedDraft) -> Draft:
        if group.kind == GroupKind.UPDATE:
            content = self._resolve_content(result, group.prior_content)
            title = result.title or group.prior_title or group.title
            has_changes = result.has_changes
        else:
            content = self._resolve_content(result)
            title = result.title or group.title
            has_changes = True if result.has_changes is None else result.has_changes

        return Draft(
            title=title,
            content=content,
            has_changes=has_changes,
            change_highlights=list(result.change_highlights),
            reasoning=result.reasoning,
            inference=result.inference,
            sources=result.sources,
        )
