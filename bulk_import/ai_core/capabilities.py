"""
AI Capabilities Interface

The four model-backed operations the bulk import pipeline depends on.
Implementations:
- LLMCapabilities (llm_capabilities.py): LangChain + gen_ai_hub proxy
- StubCapabilities (stub.py): deterministic, for tests and offline runs
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from bulk_import.models.group import CoherenceAnalysis, DiscrepancyAnalysis
from bulk_import.models.sources import ExistingUnitSummary, SourceContent
from bulk_import.utils.helpers import flatten_list


class GroupAction(str, Enum):
    """Action proposed for a group of sources."""

    CREATE = "create"
    UPDATE = "update"


class ProposedGroup(BaseModel):
    """One group proposed by the classification capability."""

    action: GroupAction = Field(..., description="create a new unit or update an existing one")
    title: str = Field(..., description="Concise, specific title of the knowledge unit")
    existing_unit_id: Optional[str] = Field(
        None, description="For update: id of the existing unit to revise"
    )
    urls: List[str] = Field(default_factory=list, description="URLs belonging to this group")
    document_ids: List[str] = Field(
        default_factory=list, description="Document ids belonging to this group"
    )
    rationale: str = Field("", description="Why these sources belong together")
    scope: str = Field("", description="What the unit should cover")
    questions: List[str] = Field(
        default_factory=list, description="Open questions for the operator"
    )
    category: Optional[str] = Field(None, description="Suggested category")

    @field_validator("urls", "document_ids", "questions", mode="before")
    @classmethod
    def _flatten(cls, value):
        # Models sometimes nest lists or return a bare string
        return flatten_list(value)


class GroupingResult(BaseModel):
    """Structured output of the classification call."""

    groups: List[ProposedGroup] = Field(..., description="Proposed groups, in display order")


class GeneratedDraft(BaseModel):
    """Structured output of the generation call."""

    title: Optional[str] = Field(None, description="Title of the unit")
    content: str = Field(..., description="Full content of the unit")
    has_changes: Optional[bool] = Field(
        None,
        description="For updates: false when the sources add nothing to the existing content",
    )
    change_highlights: List[str] = Field(
        default_factory=list, description="Short bullet list of what changed"
    )
    reasoning: Optional[str] = Field(None, description="What was taken from the sources and why")
    inference: Optional[str] = Field(
        None, description="Anything inferred rather than stated in the sources"
    )
    sources: Optional[str] = Field(None, description="Sources used, one per line")

    @field_validator("change_highlights", mode="before")
    @classmethod
    def _flatten(cls, value):
        return flatten_list(value)


class KnowledgeCapabilities(ABC):
    """Interface for the model-backed steps of a batch."""

    @abstractmethod
    async def classify(
        self,
        sources: List[SourceContent],
        existing_units: List[ExistingUnitSummary],
    ) -> List[ProposedGroup]:
        """Group sources into proposed knowledge units."""

    @abstractmethod
    async def analyze_discrepancy(
        self, prior_content: str, new_source_text: str, title: str = ""
    ) -> DiscrepancyAnalysis:
        """Compare new source text with an existing unit's content."""

    @abstractmethod
    async def analyze_coherence(
        self, sources: List[SourceContent], title: str = ""
    ) -> CoherenceAnalysis:
        """Check the sources of one group for contradictions."""

    @abstractmethod
    async def generate(
        self,
        sources: List[SourceContent],
        notes: str = "",
        prior_content: Optional[str] = None,
        prior_title: Optional[str] = None,
        working_title: str = "",
    ) -> GeneratedDraft:
        """Generate unit content from sources (and prior content for updates)."""
