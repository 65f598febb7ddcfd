"""
Phase Planning Platform
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, token logging)
"""
