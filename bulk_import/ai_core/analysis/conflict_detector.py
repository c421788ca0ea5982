"""
Conflict Detector

Runs the two advisory checks on proposed groups:
- Discrepancy analysis: new sources vs. the existing unit (update groups)
- Coherence analysis: contradictions among a group's own sources

Neither check can block a group. A failed or skipped check simply leaves
the corresponding annotation empty.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from bulk_import.ai_core.capabilities import KnowledgeCapabilities
from bulk_import.config import get_settings
from bulk_import.models.group import (
    CoherenceAnalysis,
    DiscrepancyAnalysis,
    Group,
    GroupKind,
)
from bulk_import.services.source_collector import SourceTextLoader

logger = logging.getLogger(__name__)


@dataclass
class ConflictReport:
    """Advisory results for one group."""

    group_id: str
    discrepancy: Optional[DiscrepancyAnalysis] = None
    coherence: Optional[CoherenceAnalysis] = None


class ConflictDetector:
    """
    Attaches discrepancy and coherence analyses to groups.
    """

    def __init__(
        self,
        capabilities: KnowledgeCapabilities,
        loader: SourceTextLoader,
        min_coherence_sources: Optional[int] = None,
        max_coherence_sources: Optional[int] = None,
        concurrency: Optional[int] = None,
    ):
        config = get_settings()
        self.capabilities = capabilities
        self.loader = loader
        self.min_coherence_sources = min_coherence_sources or config.coherence_min_sources
        self.max_coherence_sources = max_coherence_sources or config.coherence_max_sources
        self.concurrency = concurrency or config.analysis_concurrency

    def needs_discrepancy(self, group: Group) -> bool:
        return (
            group.kind == GroupKind.UPDATE
            and group.source_count >= 1
            and group.prior_content is not None
        )

    def needs_coherence(self, group: Group) -> bool:
        # Single sources have nothing to contradict; large groups are skipped for cost
        return (
            self.min_coherence_sources
            <= group.source_count
            <= self.max_coherence_sources
        )

    async def analyze_groups(self, groups: List[Group]) -> Dict[str, ConflictReport]:
        """
        Run the eligible checks for every group with bounded concurrency.

        Returns:
            Reports keyed by group id (every group gets one, possibly empty)
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(group: Group) -> ConflictReport:
            async with semaphore:
                return await self.analyze_group(group)

        reports = await asyncio.gather(*(run(g) for g in groups))
        return {r.group_id: r for r in reports}

    async def analyze_group(self, group: Group) -> ConflictReport:
        report = ConflictReport(group_id=group.id)
        wants_discrepancy = self.needs_discrepancy(group)
        wants_coherence = self.needs_coherence(group)

        if not wants_discrepancy and not wants_coherence:
            logger.debug(f"No conflict checks needed for group {group.id}")
            return report

        sources = await self.loader.load(group.urls, group.documents)

        if wants_discrepancy:
            try:
                new_text = "\n\n".join(f"{s.label}\n{s.text}" for s in sources)
                report.discrepancy = await self.capabilities.analyze_discrepancy(
                    group.prior_content or "", new_text, title=group.prior_title or group.title
                )
                logger.info(
                    f"Discrepancy for '{group.title}': {report.discrepancy.change_level.value} "
                    f"({report.discrepancy.change_percentage}%)"
                )
            except Exception as e:
                # Advisory only
                logger.warning(f"Discrepancy analysis failed for group {group.id}: {e}")

        if wants_coherence:
            try:
                report.coherence = await self.capabilities.analyze_coherence(
                    sources, title=group.title
                )
                logger.info(
                    f"Coherence for '{group.title}': {report.coherence.coherence_level.value} "
                    f"({len(report.coherence.conflicts)} conflicts)"
                )
            except Exception as e:
                logger.warning(f"Coherence analysis failed for group {group.id}: {e}")

        return report
