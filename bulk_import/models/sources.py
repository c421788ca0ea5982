"""
Source Models

Data models for the raw material of a batch: URLs, extracted documents,
and summaries of existing knowledge units.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class SourceType(str, Enum):
    """Kind of source contributing to a group."""

    URL = "url"
    DOCUMENT = "document"


class SourceRef(BaseModel):
    """
    Reference to a single source inside the working set.

    URLs are referenced by the URL itself, documents by their id.
    """

    type: SourceType = Field(..., description="Source kind: url or document")
    value: str = Field(..., description="The URL, or the document id")

    @classmethod
    def url(cls, url: str) -> "SourceRef":
        return cls(type=SourceType.URL, value=url)

    @classmethod
    def document(cls, document_id: str) -> "SourceRef":
        return cls(type=SourceType.DOCUMENT, value=document_id)

    def __str__(self) -> str:
        return f"{self.type.value}:{self.value}"


class DocumentSource(BaseModel):
    """
    An uploaded document whose text has already been extracted.

    Produced by the upstream document extraction service.
    """

    id: str = Field(..., description="Document identifier")
    filename: str = Field(..., description="Original filename")
    content: str = Field("", description="Extracted plain text")
    title: Optional[str] = Field(None, description="Optional display title")


class SourceContent(BaseModel):
    """Text of one source as handed to an AI capability."""

    ref: SourceRef
    label: str = Field(..., description="Human readable label (URL or filename)")
    text: str = Field("", description="Source text, possibly truncated")


class SourceUrl(BaseModel):
    """A URL recorded on a persisted knowledge unit."""

    url: str
    added_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_fetched_at: Optional[datetime] = None


class HistoryEntry(BaseModel):
    """One entry of a knowledge unit's change history."""

    date: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    action: str = Field(..., description="created or updated")
    summary: str


class KnowledgeUnit(BaseModel):
    """
    A persisted knowledge unit (the record a group creates or updates).
    """

    id: str
    title: str
    content: str = ""
    source_urls: List[SourceUrl] = Field(default_factory=list)
    document_ids: List[str] = Field(default_factory=list)
    history: List[HistoryEntry] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_refreshed_at: Optional[datetime] = None


class ExistingUnitSummary(BaseModel):
    """
    What the grouping step knows about an existing knowledge unit.
    """

    id: str
    title: str
    content: str = ""
    source_urls: List[str] = Field(default_factory=list)

    def preview(self, max_chars: int) -> str:
        return self.content[:max_chars]

    @classmethod
    def from_unit(cls, unit: KnowledgeUnit) -> "ExistingUnitSummary":
        return cls(
            id=unit.id,
            title=unit.title,
            content=unit.content,
            source_urls=[u.url for u in unit.source_urls],
        )


class WorkSet(BaseModel):
    """The input of a batch: URLs plus already extracted documents."""

    urls: List[str] = Field(default_factory=list)
    documents: List[DocumentSource] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.urls and not self.documents

    def source_refs(self) -> List[SourceRef]:
        refs = [SourceRef.url(u) for u in self.urls]
        refs.extend(SourceRef.document(d.id) for d in self.documents)
        return refs
