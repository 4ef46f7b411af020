"""Single-scene generation with a bounded retry policy.

Each scene of a plan is generated independently:
- One call to the generation service per attempt
- Exactly one retry, and only for transient failures (timeout, dropped connection)
- Structural validation of the returned content before it becomes a Clip
- Failures are reported as values so one scene never aborts the job

Usage:
    runner = SceneTaskRunner(LLMGenerationService())
    outcome = await runner.run(scene, index=2, provider="gemini-2.5-flash")
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from storypipe.config import settings
from storypipe.schemas.job import Clip, Message, SceneDescription
from storypipe.schemas.storyboard import AnimationOutput
from storypipe.services.llm import LLMAdapter, get_adapter
from storypipe.services.svg_parser import has_content_marker, normalize_svg

logger = logging.getLogger(__name__)


class SceneGenerationError(Exception):
    """Base class for scene-level generation failures."""


class TransientGenerationError(SceneGenerationError):
    """The request timed out or was aborted; worth exactly one retry."""


class TerminalGenerationError(SceneGenerationError):
    """The scene cannot be generated; never retried."""


class InvalidContentError(TerminalGenerationError):
    """Generated content failed the structural check."""


@dataclass(frozen=True)
class GeneratedContent:
    """What the generation service returns for one scene."""

    content: str
    message: str = ""
    external_content_id: Optional[str] = None


class GenerationService(ABC):
    """Contract for the external content-generation service.

    Implementations must raise TransientGenerationError for timeouts and
    aborted requests and TerminalGenerationError for everything else.
    """

    @abstractmethod
    async def generate(self, scene_description: str, provider: str) -> GeneratedContent:
        ...


@dataclass(frozen=True)
class SceneOutcome:
    """Settlement of one scene task, success or failure."""

    index: int
    clip: Optional[Clip] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.clip is not None

    @classmethod
    def success(cls, index: int, clip: Clip) -> "SceneOutcome":
        return cls(index=index, clip=clip)

    @classmethod
    def failure(cls, index: int, error: str) -> "SceneOutcome":
        return cls(index=index, error=error)


class SceneTaskRunner:
    """Runs one scene's generation call and turns the result into a Clip."""

    def __init__(
        self,
        generator: GenerationService,
        *,
        retry_backoff: Optional[float] = None,
        content_marker: Optional[str] = None,
    ) -> None:
        self._generator = generator
        self._retry_backoff = (
            settings.pipeline.retry_backoff_seconds if retry_backoff is None else retry_backoff
        )
        self._content_marker = content_marker or settings.pipeline.content_marker

    async def generate(self, scene: SceneDescription, index: int, provider: str) -> Clip:
        """Generate and validate one scene.

        Args:
            scene: Scene to generate.
            index: Absolute scene index in the plan; becomes Clip.order.
            provider: Provider id passed through to the generation service.

        Returns:
            The new Clip.

        Raises:
            TerminalGenerationError: On any non-transient failure, on invalid
                content, or when the single retry also fails.
        """

        @retry(
            stop=stop_after_attempt(2),
            wait=wait_fixed(self._retry_backoff),
            retry=retry_if_exception_type(TransientGenerationError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def _call() -> GeneratedContent:
            return await self._generator.generate(scene.prompt, provider)

        try:
            result = await _call()
        except TransientGenerationError as e:
            raise TerminalGenerationError(f"retry exhausted: {e}") from e
        except SceneGenerationError:
            raise
        except Exception as e:
            raise TerminalGenerationError(f"{type(e).__name__}: {e}") from e

        if not has_content_marker(result.content, self._content_marker):
            raise InvalidContentError(
                f"Invalid content generated for scene {index + 1}: "
                f"missing {self._content_marker!r}"
            )

        if not result.external_content_id:
            logger.warning(f"Scene {index + 1}: no external content id returned")

        return Clip(
            name=f"Scene {index + 1}: {scene.id or 'Untitled'}",
            content=result.content,
            duration_seconds=scene.target_duration_seconds,
            order=index,
            prompt=scene.prompt,
            dialogue_history=[
                Message(role="user", content=scene.prompt),
                Message(role="assistant", content=result.message),
            ],
            external_content_id=result.external_content_id,
            provider=provider,
        )

    async def run(self, scene: SceneDescription, index: int, provider: str) -> SceneOutcome:
        """Generate one scene and report the settlement instead of raising."""
        logger.info(f"Scene {index + 1}: dispatching generation ({provider})")
        try:
            clip = await self.generate(scene, index, provider)
        except SceneGenerationError as e:
            logger.error(f"Scene {index + 1}: generation failed: {e}")
            return SceneOutcome.failure(index, str(e))

        logger.info(f"Scene {index + 1}: generated clip {clip.id}")
        return SceneOutcome.success(index, clip)


# ---------------------------------------------------------------------------
# LLM-backed generation service
# ---------------------------------------------------------------------------
ANIMATION_SYSTEM_PROMPT = """You are an AI assistant that creates SVG animations based on user requests.

Your task is to create complete, self-contained SVG animations that include:
- Native SVG animation methods (SMIL or CSS)
- Embedded styles within the SVG (inside <style> tags)
- Proper SVG namespaces
- A viewBox of "0 0 800 600" and appropriate dimensions
- Target a dark background (the container has a black background)

ANIMATION DURATION REQUIREMENTS:
- By default, create animations that complete in approximately 3-5 seconds
- For SMIL animations, use "dur" attributes that match the intended duration
- For CSS animations, set animation-duration to match the intended duration

POSITIONING:
Keep the main scene visually centered in the viewBox (at coordinates 400,300),
ideally inside ONE container group: <g transform="translate(400, 300)">.

Return the SVG document in the "svg" field and a one or two sentence
description of the animation in the "message" field."""

# Exceptions that mean the request timed out or the connection was dropped
_TRANSIENT_ERRORS = (
    asyncio.TimeoutError,
    TimeoutError,
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    ConnectionError,
)


class LLMGenerationService(GenerationService):
    """Generates one SVG animation per scene through an LLM adapter."""

    def __init__(
        self,
        adapter_factory: Callable[[str], LLMAdapter] = get_adapter,
        timeout: Optional[float] = None,
    ) -> None:
        self._adapter_factory = adapter_factory
        self._timeout = settings.pipeline.generation_timeout_seconds if timeout is None else timeout

    async def generate(self, scene_description: str, provider: str) -> GeneratedContent:
        adapter = self._adapter_factory(provider)
        try:
            output = await asyncio.wait_for(
                adapter.generate_text(
                    scene_description,
                    AnimationOutput,
                    system_prompt=ANIMATION_SYSTEM_PROMPT,
                    max_retries=1,
                ),
                timeout=self._timeout,
            )
        except _TRANSIENT_ERRORS as e:
            raise TransientGenerationError(f"{type(e).__name__}: {e}") from e
        except Exception as e:
            raise TerminalGenerationError(f"{type(e).__name__}: {e}") from e

        svg = normalize_svg(output.svg)
        if svg is None:
            raise InvalidContentError("No SVG element found in response")

        return GeneratedContent(
            content=svg,
            message=output.message,
            external_content_id=str(uuid.uuid4()),
        )
