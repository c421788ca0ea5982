"""
Stub Capabilities

Deterministic implementation of KnowledgeCapabilities for tests and
offline runs. No model is called; behavior is derived from the inputs and
from the failure switches given to the constructor.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional
from urllib.parse import urlparse

from bulk_import.ai_core.capabilities import (
    GeneratedDraft,
    GroupAction,
    KnowledgeCapabilities,
    ProposedGroup,
)
from bulk_import.models.group import (
    ChangeLevel,
    ChangeSummary,
    CoherenceAnalysis,
    CoherenceLevel,
    DiscrepancyAnalysis,
)
from bulk_import.models.sources import ExistingUnitSummary, SourceContent, SourceType
from bulk_import.utils.helpers import normalize_url

logger = logging.getLogger(__name__)


class StubCapabilityError(RuntimeError):
    """Raised by StubCapabilities when a failure is requested."""

    pass


class StubCapabilities(KnowledgeCapabilities):
    """
    Scriptable stand-in for the model-backed capabilities.

    Default grouping puts URLs of the same host together and all documents
    in one group; a group whose URLs were all used to build an existing
    unit becomes an update of that unit.
    """

    def __init__(
        self,
        proposed_groups: Optional[List[ProposedGroup]] = None,
        fail_classify: bool = False,
        fail_discrepancy: bool = False,
        fail_coherence: bool = False,
        fail_generation_for: Iterable[str] = (),
        generation_delay: float = 0.0,
    ):
        """
        Args:
            proposed_groups: Fixed classification output, returned as-is
            fail_classify: Raise from classify
            fail_discrepancy: Raise from analyze_discrepancy
            fail_coherence: Raise from analyze_coherence
            fail_generation_for: Working titles whose generation raises
            generation_delay: Seconds to sleep in generate
        """
        self.proposed_groups = proposed_groups
        self.fail_classify = fail_classify
        self.fail_discrepancy = fail_discrepancy
        self.fail_coherence = fail_coherence
        self.fail_generation_for = set(fail_generation_for)
        self.generation_delay = generation_delay
        self.calls: Dict[str, int] = {
            "classify": 0,
            "discrepancy": 0,
            "coherence": 0,
            "generate": 0,
        }

    async def classify(
        self,
        sources: List[SourceContent],
        existing_units: List[ExistingUnitSummary],
    ) -> List[ProposedGroup]:
        self.calls["classify"] += 1
        if self.fail_classify:
            raise StubCapabilityError("classification unavailable")
        if self.proposed_groups is not None:
            return [g.model_copy(deep=True) for g in self.proposed_groups]

        by_host: Dict[str, List[str]] = {}
        document_ids: List[str] = []
        for source in sources:
            if source.ref.type == SourceType.URL:
                host = urlparse(source.ref.value).netloc
                by_host.setdefault(host, []).append(source.ref.value)
            else:
                document_ids.append(source.ref.value)

        groups = []
        for host, urls in by_host.items():
            unit = self._unit_built_from(urls, existing_units)
            if unit:
                groups.append(
                    ProposedGroup(
                        action=GroupAction.UPDATE,
                        title=unit.title,
                        existing_unit_id=unit.id,
                        urls=urls,
                        rationale=f"All URLs were used to build '{unit.title}'",
                    )
                )
            else:
                groups.append(
                    ProposedGroup(
                        action=GroupAction.CREATE,
                        title=host,
                        urls=urls,
                        rationale=f"Pages from {host}",
                    )
                )
        if document_ids:
            groups.append(
                ProposedGroup(
                    action=GroupAction.CREATE,
                    title="Uploaded documents",
                    document_ids=document_ids,
                    rationale="Uploaded together",
                )
            )
        return groups

    @staticmethod
    def _unit_built_from(
        urls: List[str], existing_units: List[ExistingUnitSummary]
    ) -> Optional[ExistingUnitSummary]:
        wanted = {normalize_url(u) for u in urls}
        for unit in existing_units:
            known = {normalize_url(u) for u in unit.source_urls}
            if known and wanted <= known:
                return unit
        return None

    async def analyze_discrepancy(
        self, prior_content: str, new_source_text: str, title: str = ""
    ) -> DiscrepancyAnalysis:
        self.calls["discrepancy"] += 1
        if self.fail_discrepancy:
            raise StubCapabilityError("discrepancy analysis unavailable")

        prior_lines = {line.strip() for line in prior_content.splitlines() if line.strip()}
        new_lines = [line.strip() for line in new_source_text.splitlines() if line.strip()]
        unseen = [line for line in new_lines if line not in prior_lines]

        if not unseen:
            level, percentage = ChangeLevel.NONE, 0
        else:
            percentage = min(100, round(100 * len(unseen) / max(len(new_lines), 1)))
            level = ChangeLevel.SIGNIFICANT if percentage > 50 else ChangeLevel.MODERATE

        return DiscrepancyAnalysis(
            change_level=level,
            change_percentage=percentage,
            recommendation=(
                "No update needed" if level == ChangeLevel.NONE else "Review the new material"
            ),
            change_summary=ChangeSummary(new_topics=unseen[:5]),
        )

    async def analyze_coherence(
        self, sources: List[SourceContent], title: str = ""
    ) -> CoherenceAnalysis:
        self.calls["coherence"] += 1
        if self.fail_coherence:
            raise StubCapabilityError("coherence analysis unavailable")

        return CoherenceAnalysis(
            coherent=True,
            coherence_level=CoherenceLevel.HIGH,
            coherence_percentage=100,
            conflicts=[],
            recommendation="Safe to proceed",
            summary=f"{len(sources)} sources are aligned",
        )

    async def generate(
        self,
        sources: List[SourceContent],
        notes: str = "",
        prior_content: Optional[str] = None,
        prior_title: Optional[str] = None,
        working_title: str = "",
    ) -> GeneratedDraft:
        self.calls["generate"] += 1
        if self.generation_delay:
            await asyncio.sleep(self.generation_delay)
        if working_title in self.fail_generation_for:
            raise StubCapabilityError(f"generation failed for '{working_title}'")

        source_lines = [s.text.strip() for s in sources if s.text.strip()]
        sources_text = "\n".join(s.label for s in sources)

        if prior_content is None:
            body = "\n\n".join(source_lines)
            if notes:
                body += f"\n\nNotes: {notes}"
            return GeneratedDraft(
                title=working_title,
                content=f"# {working_title}\n\n{body}".rstrip() + "\n",
                has_changes=True,
                reasoning="Combined source text",
                sources=sources_text,
            )

        existing = set(prior_content.splitlines())
        additions = [line for line in source_lines if line not in existing]
        if not additions:
            return GeneratedDraft(
                title=prior_title,
                content=prior_content,
                has_changes=False,
                reasoning="Sources add nothing new",
                sources=sources_text,
            )

        content = prior_content.rstrip("\n") + "\n" + "\n".join(additions) + "\n"
        return GeneratedDraft(
            title=prior_title,
            content=content,
            has_changes=True,
            change_highlights=[f"Added: {line[:60]}" for line in additions],
            reasoning="Appended new source lines",
            sources=sources_text,
        )
