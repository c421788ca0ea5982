from bulk_import.ai_core.grouping.source_grouper import SourceGrouper

__all__ = ["SourceGrouper"]
