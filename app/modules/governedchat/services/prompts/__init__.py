# Prompt utilities for the governed chat answer engine.

from .system_prompt import build_rag_system_prompt, format_document, format_sources

__all__ = ["build_rag_system_prompt", "format_document", "format_sources"]
