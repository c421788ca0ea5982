"""
Unit Tests for LLMCapabilities and Prompt Loading

Uses a fake chat model in place of the proxied model, so prompts are
rendered exactly as in production but no request leaves the process.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest
from langchain_core.runnables import RunnableLambda

from bulk_import.ai_core import prompts
from bulk_import.ai_core.capabilities import (
    GeneratedDraft,
    GroupAction,
    GroupingResult,
    ProposedGroup,
)
from bulk_import.ai_core.llm_capabilities import LLMCapabilities
from bulk_import.ai_core.prompts.generation import CREATE_SYSTEM_PROMPT
from bulk_import.config import Settings
from bulk_import.models.group import (
    ChangeLevel,
    CoherenceAnalysis,
    CoherenceLevel,
    DiscrepancyAnalysis,
)
from bulk_import.models.sources import ExistingUnitSummary, SourceContent, SourceRef


class FakeStructuredLLM:
    """Returns a canned object per output schema and records the prompts."""

    def __init__(self, outputs):
        self.outputs = outputs
        self.prompts = []

    def with_structured_output(self, schema):
        def respond(prompt_value):
            self.prompts.append(prompt_value.to_messages())
            return self.outputs[schema]

        return RunnableLambda(respond)


@pytest.fixture
def sources():
    return [
        SourceContent(
            ref=SourceRef.url("https://docs.example.com/install"),
            label="https://docs.example.com/install",
            text="Run the installer.",
        ),
        SourceContent(
            ref=SourceRef.document("doc-1"), label="runbook.pdf", text="Restart the service."
        ),
    ]


@pytest.mark.asyncio
async def test_classify_returns_groups_and_renders_units(sources):
    result = GroupingResult(
        groups=[
            ProposedGroup(
                action=GroupAction.CREATE,
                title="Installation",
                urls=["https://docs.example.com/install"],
                document_ids=["doc-1"],
            )
        ]
    )
    llm = FakeStructuredLLM({GroupingResult: result})
    capabilities = LLMCapabilities(llm=llm)
    units = [
        ExistingUnitSummary(
            id="unit-1",
            title="FAQ",
            content="Questions and answers",
            source_urls=["https://wiki.example.com/faq"],
        )
    ]

    groups = await capabilities.classify(sources, units)

    assert groups == result.groups
    system, human = llm.prompts[0]
    assert "unit-1" in human.content
    assert "https://wiki.example.com/faq" in human.content
    assert "doc-1" in human.content
    assert system.content


@pytest.mark.asyncio
async def test_generate_create_and_update_use_different_prompts(sources):
    draft = GeneratedDraft(title="Installation", content="# Installation", has_changes=True)
    llm = FakeStructuredLLM({GeneratedDraft: draft})
    capabilities = LLMCapabilities(llm=llm)

    await capabilities.generate(sources, notes="Be brief", working_title="Installation")
    await capabilities.generate(
        sources, prior_content="# Old content {with braces}", prior_title="Old"
    )

    create_system, create_human = llm.prompts[0]
    update_system, update_human = llm.prompts[1]
    assert create_system.content == CREATE_SYSTEM_PROMPT
    assert "Be brief" in create_human.content
    assert update_system.content != create_system.content
    assert "# Old content {with braces}" in update_human.content


@pytest.mark.asyncio
async def test_analysis_calls(sources):
    discrepancy = DiscrepancyAnalysis(
        change_level=ChangeLevel.MODERATE, change_percentage=30, recommendation="Review"
    )
    coherence = CoherenceAnalysis(
        coherent=True, coherence_level=CoherenceLevel.HIGH, coherence_percentage=95
    )
    llm = FakeStructuredLLM({DiscrepancyAnalysis: discrepancy, CoherenceAnalysis: coherence})
    capabilities = LLMCapabilities(llm=llm)

    assert await capabilities.analyze_discrepancy("old", "new", title="Guide") == discrepancy
    assert await capabilities.analyze_coherence(sources, title="Guide") == coherence


def test_prompt_override_from_yaml(tmp_path, monkeypatch):
    prompts_file = tmp_path / "prompts.yaml"
    prompts_file.write_text("unit_create: |\n  Custom {literal} prompt\n", encoding="utf-8")
    monkeypatch.setattr(
        prompts, "get_settings", lambda: Settings(prompts_file=str(prompts_file))
    )

    assert prompts.load_system_prompt("unit_create", "default") == "Custom {literal} prompt\n"
    assert prompts.load_system_prompt("unit_update", "default") == "default"


def test_missing_prompt_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.setattr(
        prompts,
        "get_settings",
        lambda: Settings(prompts_file=str(tmp_path / "missing.yaml")),
    )

    assert prompts.load_system_prompt("unit_create", "default") == "default"
