# Shared data models
from bulk_import.models.sources import (
    SourceType,
    SourceRef,
    DocumentSource,
    SourceContent,
    KnowledgeUnit,
    ExistingUnitSummary,
    WorkSet,
)
from bulk_import.models.group import (
    Group,
    GroupKind,
    GroupStatus,
    Draft,
    DiscrepancyAnalysis,
    CoherenceAnalysis,
    ChangeLevel,
)

__all__ = [
    "SourceType",
    "SourceRef",
    "DocumentSource",
    "SourceContent",
    "KnowledgeUnit",
    "ExistingUnitSummary",
    "WorkSet",
    "Group",
    "GroupKind",
    "GroupStatus",
    "Draft",
    "DiscrepancyAnalysis",
    "CoherenceAnalysis",
    "ChangeLevel",
]
