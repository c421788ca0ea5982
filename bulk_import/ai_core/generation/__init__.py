from bulk_import.ai_core.generation.draft_generator import DraftGenerator

__all__ = ["DraftGenerator"]
