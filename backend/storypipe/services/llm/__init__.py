"""LLM providers used by storyboard decomposition and scene generation.

Usage:
    from storypipe.services.llm import get_adapter
    from storypipe.schemas.storyboard import StoryboardOutput

    adapter = get_adapter("ollama/llama3.1")
    storyboard = await adapter.generate_text(prompt, StoryboardOutput, max_retries=1)
"""

from storypipe.services.llm.base import LLMAdapter
from storypipe.services.llm.registry import get_adapter, is_ollama_provider

__all__ = ["LLMAdapter", "get_adapter", "is_ollama_provider"]
