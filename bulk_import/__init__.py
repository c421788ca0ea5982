"""
Knowledge bulk import: group sources into knowledge units, generate drafts
with AI assistance, and commit them after human review.
"""
