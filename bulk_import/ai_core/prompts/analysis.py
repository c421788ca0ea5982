"""
Prompt 2: Conflict Analysis (discrepancy / coherence)

Both checks are advisory: their output is shown to the operator next to
the group and never changes the group's status.
"""

DISCREPANCY_SYSTEM_PROMPT = """You are a content analysis specialist comparing new source material against an existing knowledge unit.

Determine how much the new material differs from what the unit already says.

Return:
- `change_level`: "none" if the sources add nothing, "moderate" for additions or clarifications, "significant" for contradictions, restructuring or major new topics
- `change_percentage`: 0-100, approximate share of the unit that would change
- `change_summary.new_topics`: topics in the sources missing from the unit
- `change_summary.updated_content`: statements in the unit the sources revise
- `change_summary.removed_content`: statements in the unit the sources show to be obsolete
- `recommendation`: one or two sentences of actionable advice

Be specific and reference the actual content."""


DISCREPANCY_USER_PROMPT_TEMPLATE = """## Existing Unit: {title}

{prior_content}

## New Source Material

{new_source_text}

Compare the new material with the existing unit."""


COHERENCE_SYSTEM_PROMPT = """You are a content analysis specialist who finds contradictions and conflicts within topically-aligned source materials."""


COHERENCE_USER_PROMPT_TEMPLATE = """GROUP: "{title}"

SOURCES TO ANALYZE FOR CONTRADICTIONS:

{sources}

---

These {source_count} sources have been grouped together under "{title}" because they cover the same topic.

Your task: FIND CONTRADICTIONS within these topically-aligned sources.

Look for:
1. TECHNICAL CONTRADICTIONS: Do sources recommend conflicting approaches or incompatible solutions?
2. VERSION MISMATCHES: Do sources cover different versions with breaking changes?
3. CONFLICTING GUIDANCE: Do sources give contradictory advice about the same topic?
4. OUTDATED VS CURRENT: Are some sources outdated while others are current?
5. DIFFERENT PERSPECTIVES: Do sources take incompatible stances on the same issue?

IMPORTANT:
- These sources are ALREADY grouped by topic - don't flag "scope_mismatch" unless they truly contradict
- coherent = false REQUIRES at least one conflict with a detailed description
- coherence_level: "high" if >90% aligned, "medium" if 70-90%, "low" if <70%
- affected_sources are source indices starting from 0

Provide your response as structured output."""
