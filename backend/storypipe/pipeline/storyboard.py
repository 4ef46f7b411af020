"""Storyboard decomposition using structured LLM output.

Transforms a movie concept prompt into an ordered ScenePlan with:
- One animation prompt per scene
- A target duration per scene
- A title and description for the storyboard as a whole

The plan is produced once per job and stored with the job, so a resumed run
never calls the decomposition service again.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from pydantic import ValidationError
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt

from storypipe.config import settings
from storypipe.schemas.job import SceneDescription, ScenePlan
from storypipe.schemas.storyboard import SceneSchema, StoryboardOutput
from storypipe.services.llm import LLMAdapter, get_adapter

logger = logging.getLogger(__name__)


class DecompositionError(Exception):
    """The prompt could not be turned into a scene plan; the job never starts."""


@dataclass(frozen=True)
class Decomposition:
    """Result of decomposing a prompt."""

    title: str
    description: str
    plan: ScenePlan


class DecompositionService(ABC):
    """Contract for the external decomposition service."""

    @abstractmethod
    async def decompose(
        self,
        prompt: str,
        provider: str,
        scene_count_hint: Optional[int] = None,
    ) -> Decomposition:
        """Return the plan for `prompt`.

        Raises:
            DecompositionError: If no usable plan could be produced.
        """
        ...


STORYBOARD_SYSTEM_PROMPT = """You are a storyboard generator for movies.
Your job is to create a cohesive, engaging storyboard based on a movie concept.
You will return a JSON structure that describes the complete movie and its scenes.

Each scene should:
1. Tell part of a cohesive story that flows naturally from one scene to the next
2. Have a clear description of what happens in that scene
3. Include a detailed SVG prompt that will be used to generate the animation

The SVG prompts should:
1. Be detailed and specific about what elements should be in the scene
2. Describe any motion or animation that should occur
3. Focus on simple, clear visuals that can be represented in SVG format
4. Avoid complex textures, gradients, or photorealistic elements

NEVER generate SVG content or code. Only generate a JSON structure."""


def build_user_prompt(prompt: str, scene_count_hint: Optional[int] = None) -> str:
    """Build the decomposition request for a movie concept."""
    if scene_count_hint:
        plural = "s" if scene_count_hint > 1 else ""
        scenes_instruction = (
            f"3. Include EXACTLY {scene_count_hint} scene{plural} that tell a cohesive story."
        )
    else:
        scenes_instruction = "3. Include 3-7 scenes that tell a cohesive story."

    return f"""Create a storyboard for this movie concept: "{prompt}"

IMPORTANT INSTRUCTIONS:
1. Return a title, an overall description of the movie and its story arc, and the scenes.
2. Each scene needs an id (e.g. "scene1"), a description, an svg_prompt and a duration.
{scenes_instruction}
4. Make each scene's description tell part of a cohesive story that flows naturally from one scene to the next.
5. For each scene's svg_prompt, write a detailed prompt that describes:
   - What visual elements should be in the scene
   - How those elements should move or animate
   - Keep the visuals simple and SVG-friendly (basic shapes, lines, paths)
   - Avoid complex textures, gradients, or photorealistic elements
6. Set an appropriate duration for each scene (in seconds) based on its complexity."""


def sanitize_scene(scene: SceneSchema, index: int, default_duration: float) -> SceneDescription:
    """Fill in whatever the model left out of scene `index` (0-based)."""
    number = index + 1
    return SceneDescription(
        id=scene.id or f"scene{number}",
        prompt=scene.svg_prompt or f"Create an animation for scene {number}",
        target_duration_seconds=scene.duration or default_duration,
        description=scene.description or f"Scene {number}",
    )


def fallback_name(prompt: str) -> str:
    """Storyboard name derived from the prompt when the model gives no title."""
    prompt = prompt.strip()
    return prompt if len(prompt) <= 50 else prompt[:50] + "..."


def build_decomposition(
    storyboard: StoryboardOutput,
    prompt: str,
    *,
    max_scenes: Optional[int] = None,
    default_duration: Optional[float] = None,
) -> Decomposition:
    """Turn validated model output into a Decomposition.

    Raises:
        DecompositionError: If the storyboard has no scenes.
    """
    max_scenes = max_scenes or settings.pipeline.max_scenes
    default_duration = default_duration or settings.pipeline.default_scene_duration

    if not storyboard.scenes:
        raise DecompositionError("Storyboard contains no scenes")

    raw_scenes = storyboard.scenes
    if len(raw_scenes) > max_scenes:
        logger.warning(
            f"Storyboard returned {len(raw_scenes)} scenes, truncating to {max_scenes}"
        )
        raw_scenes = raw_scenes[:max_scenes]

    scenes = tuple(
        sanitize_scene(scene, i, default_duration) for i, scene in enumerate(raw_scenes)
    )
    return Decomposition(
        title=(storyboard.title or "").strip() or fallback_name(prompt),
        description=(storyboard.description or "").strip(),
        plan=ScenePlan(scenes=scenes),
    )


class LLMDecompositionService(DecompositionService):
    """Decomposes prompts through an LLM adapter with structured output."""

    def __init__(
        self,
        adapter_factory: Callable[[str], LLMAdapter] = get_adapter,
        max_attempts: Optional[int] = None,
    ) -> None:
        self._adapter_factory = adapter_factory
        self._max_attempts = max_attempts or settings.pipeline.decomposition_max_retries

    async def decompose(
        self,
        prompt: str,
        provider: str,
        scene_count_hint: Optional[int] = None,
    ) -> Decomposition:
        if not prompt or not prompt.strip():
            raise DecompositionError("Prompt is required")

        try:
            adapter = self._adapter_factory(provider)
        except Exception as e:
            raise DecompositionError(f"Provider {provider} unavailable: {e}") from e

        user_prompt = build_user_prompt(prompt, scene_count_hint)
        logger.info(
            f"Decomposing prompt with {provider} "
            f"(scenes: {scene_count_hint or 'model choice'})"
        )

        # Retry strategy: reduce temperature on each retry
        attempt = 0
        base_temperature = 0.7

        @retry(
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception_type((json.JSONDecodeError, ValidationError)),
        )
        async def generate_with_retry() -> StoryboardOutput:
            nonlocal attempt
            temperature = base_temperature - (attempt * 0.15)
            attempt += 1

            # max_retries=1 so temperature reduction (outer retry) works correctly
            return await adapter.generate_text(
                prompt=user_prompt,
                schema=StoryboardOutput,
                temperature=max(0.0, temperature),
                system_prompt=STORYBOARD_SYSTEM_PROMPT,
                max_retries=1,
            )

        try:
            storyboard = await generate_with_retry()
        except RetryError as e:
            cause = e.last_attempt.exception()
            raise DecompositionError(
                f"Storyboard generation failed after {attempt} attempts: {cause}"
            ) from cause
        except (json.JSONDecodeError, ValidationError) as e:
            raise DecompositionError(f"Invalid storyboard format: {e}") from e
        except Exception as e:
            raise DecompositionError(f"{type(e).__name__}: {e}") from e

        decomposition = build_decomposition(storyboard, prompt)
        logger.info(
            f"Storyboard '{decomposition.title}' decomposed into "
            f"{len(decomposition.plan)} scenes"
        )
        return decomposition
