"""Vertex AI clients for the Gemini providers.

Clients run in Vertex AI mode and authenticate with Application Default
Credentials; GOOGLE_APPLICATION_CREDENTIALS may come from a `.env` file in the
working directory. One client is cached per (project, location) pair, so
changing google_cloud.project_id at runtime never reuses a stale client.
"""

from typing import Optional

from dotenv import load_dotenv
from google import genai

from storypipe.config import settings

load_dotenv()

_clients: dict[tuple[str, str], genai.Client] = {}

# Preview model families only served from the global endpoint
GLOBAL_MODEL_PREFIXES = ("gemini-3-",)


def location_for_model(model_id: str) -> str:
    """Vertex AI location that serves `model_id`."""
    if model_id.startswith(GLOBAL_MODEL_PREFIXES):
        return "global"
    return settings.google_cloud.location


def get_vertex_client(location: Optional[str] = None) -> genai.Client:
    """Cached client for the configured project at `location`.

    Raises:
        RuntimeError: If google_cloud.project_id is not configured.
    """
    project = settings.google_cloud.project_id
    if not project:
        raise RuntimeError(
            "google_cloud.project_id is not configured "
            "(set STORYPIPE_GOOGLE_CLOUD__PROJECT_ID)"
        )

    key = (project, location or settings.google_cloud.location)
    if key not in _clients:
        _clients[key] = genai.Client(vertexai=True, project=key[0], location=key[1])
    return _clients[key]


def clear_clients() -> None:
    """Drop every cached client."""
    _clients.clear()
