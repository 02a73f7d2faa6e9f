"""
Governance Signal Engine
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, JSON responses)
"""
