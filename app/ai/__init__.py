"""
Brand Strategy Orchestrator
AI module.

Submodules:
    - gateway: generation collaborator (provider routing, prompt building, output parsing)
"""
