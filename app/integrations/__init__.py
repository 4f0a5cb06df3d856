"""app.integrations — collaborator-facing modules.

translation_docs: registry of documents rendered from pillar content,
flagged STALE when their source pillars change.
"""
