"""Provider registry for LLM adapters.

A provider id is a model id. "ollama/<model>" runs on an Ollama server; any
other id (normally "gemini-*") runs on Vertex AI.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from storypipe.services.llm.base import LLMAdapter

if TYPE_CHECKING:
    from storypipe.config import OllamaConfig

logger = logging.getLogger(__name__)

OLLAMA_PREFIX = "ollama/"
LOCAL_OLLAMA_URL = "http://localhost:11434"
CLOUD_OLLAMA_URL = "https://ollama.com"


def is_ollama_provider(provider: str) -> bool:
    return provider.startswith(OLLAMA_PREFIX)


def ollama_endpoint(config: "OllamaConfig") -> tuple[str, Optional[str]]:
    """(base_url, api_key) for the configured Ollama deployment.

    The API key is only sent to cloud deployments.
    """
    if config.use_cloud:
        return config.endpoint or CLOUD_OLLAMA_URL, config.api_key
    return config.endpoint or LOCAL_OLLAMA_URL, None


def get_adapter(
    provider: str,
    ollama_config: Optional["OllamaConfig"] = None,
) -> LLMAdapter:
    """Adapter for `provider`.

    Args:
        provider: Provider id, e.g. "gemini-2.5-flash" or "ollama/llama3.1".
        ollama_config: Ollama settings; defaults to settings.ollama.
    """
    if is_ollama_provider(provider):
        from storypipe.services.llm.ollama_adapter import OllamaAdapter

        if ollama_config is None:
            from storypipe.config import settings
            ollama_config = settings.ollama

        base_url, api_key = ollama_endpoint(ollama_config)
        logger.debug(f"Routing {provider} to Ollama at {base_url} (key: {bool(api_key)})")
        return OllamaAdapter(model_id=provider, base_url=base_url, api_key=api_key)

    from storypipe.services.llm.vertex_adapter import VertexAIAdapter

    logger.debug(f"Routing {provider} to Vertex AI")
    return VertexAIAdapter(model_id=provider)
