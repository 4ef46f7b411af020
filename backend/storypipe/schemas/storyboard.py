"""Pydantic schemas for structured LLM output.

These schemas define the expected structure for LLM-generated storyboards and
per-scene animations, enabling structured output constraints via the
response_schema parameter (Vertex AI) or schema instructions (Ollama).
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, Field


def _coerce_to_str(v: Any) -> str:
    """Coerce list/non-str values to comma-separated string.

    Some LLM providers (e.g. Ollama) return arrays for fields declared as
    string in the JSON schema.  This validator normalises them so Pydantic
    validation succeeds regardless of provider quirks.
    """
    if isinstance(v, list):
        return ", ".join(str(item) for item in v)
    return v


def _coerce_duration(v: Any) -> Optional[float]:
    """Drop durations the model returned as text or nonsense."""
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v) if v > 0 else None
    if isinstance(v, str):
        try:
            parsed = float(v)
        except ValueError:
            return None
        return parsed if parsed > 0 else None
    return None


CoercedStr = Annotated[str, BeforeValidator(_coerce_to_str)]
CoercedDuration = Annotated[Optional[float], BeforeValidator(_coerce_duration)]


class SceneSchema(BaseModel):
    """Individual scene definition with an animation prompt."""

    id: Optional[str] = Field(
        default=None,
        description="Short unique identifier for the scene (e.g., 'scene1')",
    )
    description: Optional[CoercedStr] = Field(
        default=None,
        description="Detailed description of what happens in this scene",
    )
    svg_prompt: Optional[CoercedStr] = Field(
        default=None,
        description="Detailed prompt for generating an SVG animation of this scene: "
        "visual elements, how they move, simple SVG-friendly shapes only",
    )
    duration: CoercedDuration = Field(
        default=None,
        description="Duration of the scene in seconds",
    )


class StoryboardOutput(BaseModel):
    """Complete storyboard output from structured generation.

    Contains the movie title, overall description, and the ordered scenes
    that will be generated one animation each.
    """

    title: CoercedStr = Field(description="A concise title for the movie")
    description: CoercedStr = Field(
        description="Overall description of the movie and its story arc"
    )
    scenes: list[SceneSchema] = Field(
        description="Sequential scenes that tell a cohesive story"
    )


class AnimationOutput(BaseModel):
    """Structured output for a single scene animation."""

    svg: str = Field(
        description="A complete, self-contained animated SVG document starting with <svg"
    )
    message: CoercedStr = Field(
        default="",
        description="One or two sentences describing what the animation shows",
    )
