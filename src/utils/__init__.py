"""Utility modules for Research Agents.

This package provides reusable components for agents and the CLI:
- llm: ProviderManager, the provider registry with fallback
- llm_adapters: OpenAI, Gemini and Claude adapters
- llm_errors: Provider error hierarchy
- prompts: Jinja2 prompt template rendering
- storage: Research plan SQLite store
"""
