"""Storypipe - resumable storyboard generation.

This module provides startup helpers shared by the CLI and API entry points.
Call configure_logging() and validate_dependencies() during startup.
"""

import logging

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Apply the configured log level to the root logger."""
    from storypipe.config import settings

    logging.basicConfig(
        level=settings.logging.level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def validate_dependencies(provider: str) -> None:
    """Validate that the given provider can be reached with the current settings.

    Fails fast with a clear message instead of letting every scene fail
    with the same configuration error.

    Args:
        provider: Provider (model) id, e.g. "gemini-2.5-flash" or "ollama/llama3.1".

    Raises:
        RuntimeError: If the provider needs configuration that is missing.
    """
    from storypipe.config import settings
    from storypipe.services.llm import is_ollama_provider

    if is_ollama_provider(provider):
        if settings.ollama.use_cloud and not settings.ollama.api_key:
            raise RuntimeError(
                "Ollama cloud is enabled but no API key is configured.\n"
                "Set STORYPIPE_OLLAMA__API_KEY or ollama.api_key in config.yaml"
            )
        logger.info(f"Provider validated: {provider}")
        return

    if not settings.google_cloud.project_id:
        raise RuntimeError(
            f"Provider {provider} requires a Google Cloud project.\n"
            "Set STORYPIPE_GOOGLE_CLOUD__PROJECT_ID or google_cloud.project_id in config.yaml"
        )
    logger.info(f"Provider validated: {provider}")
