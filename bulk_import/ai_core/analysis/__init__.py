from bulk_import.ai_core.analysis.conflict_detector import ConflictDetector, ConflictReport

__all__ = ["ConflictDetector", "ConflictReport"]
