# AI Core module

"""
AI Core Module - The model-facing half of the bulk import.

Key responsibilities:
- Source grouping - create/update decision per group (grouping/)
- Discrepancy and coherence checks (analysis/)
- Draft generation for create and update groups (generation/)
"""
