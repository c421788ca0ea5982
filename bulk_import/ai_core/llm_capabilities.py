"""
LLM-backed Capabilities

Implements KnowledgeCapabilities with LangChain prompts piped into a
gen_ai_hub proxied ChatOpenAI model using structured output (Pydantic).
"""

import logging
from typing import List, Optional

from langchain_core.prompts import ChatPromptTemplate

from bulk_import.ai_core.capabilities import (
    GeneratedDraft,
    GroupingResult,
    KnowledgeCapabilities,
    ProposedGroup,
)
from bulk_import.ai_core.prompts import load_system_prompt
from bulk_import.ai_core.prompts.analysis import (
    COHERENCE_SYSTEM_PROMPT,
    COHERENCE_USER_PROMPT_TEMPLATE,
    DISCREPANCY_SYSTEM_PROMPT,
    DISCREPANCY_USER_PROMPT_TEMPLATE,
)
from bulk_import.ai_core.prompts.generation import (
    CREATE_SYSTEM_PROMPT,
    CREATE_USER_PROMPT_TEMPLATE,
    UPDATE_SYSTEM_PROMPT,
    UPDATE_USER_PROMPT_TEMPLATE,
)
from bulk_import.ai_core.prompts.grouping import (
    GROUPING_SYSTEM_PROMPT,
    GROUPING_USER_PROMPT_TEMPLATE,
)
from bulk_import.config import get_settings
from bulk_import.models.group import CoherenceAnalysis, DiscrepancyAnalysis
from bulk_import.models.sources import ExistingUnitSummary, SourceContent

logger = logging.getLogger(__name__)


def _prompt(user_template: str) -> ChatPromptTemplate:
    # System prompt goes in as a variable so overrides may contain braces
    return ChatPromptTemplate.from_messages(
        [("system", "{system_prompt}"), ("human", user_template)]
    )


def format_sources(sources: List[SourceContent]) -> str:
    """Format source texts for a prompt, numbered from 0."""
    if not sources:
        return "No source material."

    separator = "=" * 80
    return "\n\n".join(
        f"SOURCE {i}: {s.label}\n\n{s.text}\n\n{separator}"
        for i, s in enumerate(sources)
    )


def format_existing_units(units: List[ExistingUnitSummary], preview_chars: int) -> str:
    """Format existing units for the grouping prompt."""
    if not units:
        return "No existing units in the knowledge base."

    formatted = []
    for unit in units:
        known = ", ".join(unit.source_urls) if unit.source_urls else "None"
        formatted.append(
            f"""### {unit.title}
- **ID**: {unit.id}
- **Known sources**: {known}
- **Preview**: {unit.preview(preview_chars)}
"""
        )
    return "\n".join(formatted)


def _format_source_list(sources: List[SourceContent]) -> str:
    lines = []
    for s in sources:
        key = "URL" if s.ref.type.value == "url" else "Document id"
        lines.append(f"- {key}: {s.ref.value} ({s.label})\n  {s.text}")
    return "\n".join(lines)


class LLMCapabilities(KnowledgeCapabilities):
    """
    Model-backed implementation of the four bulk import capabilities.

    Uses LLM with structured output (Pydantic models) for every call.
    """

    def __init__(self, llm=None):
        """
        Args:
            llm: Optional LangChain chat model; defaults to the gen_ai_hub proxied ChatOpenAI
        """
        self.config = get_settings()

        if llm is None:
            from gen_ai_hub.proxy.langchain.openai import ChatOpenAI
            from gen_ai_hub.proxy.core.proxy_clients import get_proxy_client

            self.proxy_client = get_proxy_client("gen-ai-hub")
            llm = ChatOpenAI(
                proxy_model_name=self.config.openai_model,
                proxy_client=self.proxy_client,
                temperature=self.config.temperature,
            )

        self.llm = llm
        logger.info("LLMCapabilities initialized with structured output (Pydantic)")

    async def classify(
        self,
        sources: List[SourceContent],
        existing_units: List[ExistingUnitSummary],
    ) -> List[ProposedGroup]:
        logger.info(
            f"Classifying {len(sources)} sources against {len(existing_units)} existing units"
        )
        chain = _prompt(GROUPING_USER_PROMPT_TEMPLATE) | self.llm.with_structured_output(
            GroupingResult
        )
        result = await chain.ainvoke(
            {
                "system_prompt": load_system_prompt(
                    "source_grouping", GROUPING_SYSTEM_PROMPT
                ),
                "existing_units": format_existing_units(
                    existing_units, self.config.max_preview_chars
                ),
                "source_count": len(sources),
                "sources": _format_source_list(sources),
            }
        )
        logger.info(f"Structured output received: {len(result.groups)} groups")
        return result.groups

    async def analyze_discrepancy(
        self, prior_content: str, new_source_text: str, title: str = ""
    ) -> DiscrepancyAnalysis:
        chain = _prompt(
            DISCREPANCY_USER_PROMPT_TEMPLATE
        ) | self.llm.with_structured_output(DiscrepancyAnalysis)
        return await chain.ainvoke(
            {
                "system_prompt": load_system_prompt(
                    "discrepancy_analysis", DISCREPANCY_SYSTEM_PROMPT
                ),
                "title": title or "Untitled",
                "prior_content": prior_content,
                "new_source_text": new_source_text,
            }
        )

    async def analyze_coherence(
        self, sources: List[SourceContent], title: str = ""
    ) -> CoherenceAnalysis:
        chain = _prompt(COHERENCE_USER_PROMPT_TEMPLATE) | self.llm.with_structured_output(
            CoherenceAnalysis
        )
        result = await chain.ainvoke(
            {
                "system_prompt": load_system_prompt(
                    "group_coherence_analysis", COHERENCE_SYSTEM_PROMPT
                ),
                "title": title or "Untitled",
                "source_count": len(sources),
                "sources": format_sources(sources),
            }
        )

        if not result.coherent and not result.conflicts:
            logger.warning(
                f"Coherence analysis for '{title}' reported incoherent without conflicts"
            )
        return result

    async def generate(
        self,
        sources: List[SourceContent],
        notes: str = "",
        prior_content: Optional[str] = None,
        prior_title: Optional[str] = None,
        working_title: str = "",
    ) -> GeneratedDraft:
        is_update = prior_content is not None
        if is_update:
            template = UPDATE_USER_PROMPT_TEMPLATE
            system_prompt = load_system_prompt("unit_update", UPDATE_SYSTEM_PROMPT)
        else:
            template = CREATE_USER_PROMPT_TEMPLATE
            system_prompt = load_system_prompt("unit_create", CREATE_SYSTEM_PROMPT)

        chain = _prompt(template) | self.llm.with_structured_output(GeneratedDraft)

        variables = {
            "system_prompt": system_prompt,
            "notes": notes or "None",
            "sources": format_sources(sources),
        }
        if is_update:
            variables["prior_title"] = prior_title or working_title
            variables["prior_content"] = prior_content
        else:
            variables["working_title"] = working_title

        draft = await chain.ainvoke(variables)
        logger.info(
            f"Generated draft '{draft.title or working_title}' ({len(draft.content)} chars)"
        )
        return draft
