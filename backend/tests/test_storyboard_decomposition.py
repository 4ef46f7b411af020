"""Tests for storyboard decomposition: prompt building, sanitization and retries."""

import json

import pytest

from storypipe.pipeline.storyboard import (
    STORYBOARD_SYSTEM_PROMPT,
    DecompositionError,
    LLMDecompositionService,
    build_decomposition,
    build_user_prompt,
    fallback_name,
    sanitize_scene,
)
from storypipe.schemas.storyboard import SceneSchema, StoryboardOutput
from storypipe.services.llm.base import LLMAdapter


def _storyboard(scene_count: int = 3, title: str = "Fox Story") -> StoryboardOutput:
    return StoryboardOutput(
        title=title,
        description="A fox crosses a snowy field",
        scenes=[
            SceneSchema(id=f"s{i + 1}", description=f"desc {i}", svg_prompt=f"draw {i}", duration=3)
            for i in range(scene_count)
        ],
    )


class SequenceAdapter(LLMAdapter):
    """Replays a list of results; exceptions in the list are raised."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    async def generate_text(self, prompt, schema, *, temperature=0.7, system_prompt=None, max_retries=3):
        self.calls.append({"prompt": prompt, "temperature": temperature, "system_prompt": system_prompt, "max_retries": max_retries})
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result()
        return result


def _invalid_output():
    # Raises pydantic.ValidationError
    return StoryboardOutput.model_validate({"title": "x"})


def _service(adapter, providers=None, max_attempts=3):
    def factory(provider):
        if providers is not None:
            providers.append(provider)
        return adapter

    return LLMDecompositionService(adapter_factory=factory, max_attempts=max_attempts)


# ---------------------------------------------------------------------------
# Prompt building and sanitization
# ---------------------------------------------------------------------------

def test_user_prompt_with_scene_hint():
    text = build_user_prompt("a fox", 4)
    assert '"a fox"' in text
    assert "EXACTLY 4 scenes" in text
    assert "EXACTLY 1 scene " in build_user_prompt("a fox", 1)


def test_user_prompt_without_hint():
    assert "3-7 scenes" in build_user_prompt("a fox")


def test_sanitize_scene_fills_missing_fields():
    scene = sanitize_scene(SceneSchema(), 2, 5.0)
    assert scene.id == "scene3"
    assert scene.prompt == "Create an animation for scene 3"
    assert scene.target_duration_seconds == 5.0
    assert scene.description == "Scene 3"


def test_sanitize_scene_keeps_model_values():
    scene = sanitize_scene(SceneSchema(id="intro", svg_prompt="a sun rises", duration="7", description="dawn"), 0, 5.0)
    assert scene.id == "intro"
    assert scene.prompt == "a sun rises"
    assert scene.target_duration_seconds == 7.0
    assert scene.description == "dawn"


def test_scene_schema_drops_bad_duration():
    assert SceneSchema(duration="soon").duration is None
    assert SceneSchema(duration=-2).duration is None
    assert SceneSchema(duration=True).duration is None


def test_fallback_name():
    assert fallback_name("  short  ") == "short"
    long_prompt = "x" * 60
    assert fallback_name(long_prompt) == "x" * 50 + "..."


def test_build_decomposition():
    result = build_decomposition(_storyboard(3), "a fox", max_scenes=10, default_duration=5.0)
    assert result.title == "Fox Story"
    assert result.description == "A fox crosses a snowy field"
    assert len(result.plan) == 3
    assert [s.prompt for s in result.plan.scenes] == ["draw 0", "draw 1", "draw 2"]
    assert all(s.target_duration_seconds == 3.0 for s in result.plan.scenes)


def test_build_decomposition_truncates_to_max_scenes():
    result = build_decomposition(_storyboard(8), "a fox", max_scenes=5, default_duration=5.0)
    assert len(result.plan) == 5
    assert result.plan.scenes[-1].id == "s5"


def test_build_decomposition_falls_back_to_prompt_for_title():
    result = build_decomposition(_storyboard(1, title="  "), "a fox in the snow", max_scenes=5, default_duration=5.0)
    assert result.title == "a fox in the snow"


def test_build_decomposition_rejects_empty_storyboard():
    with pytest.raises(DecompositionError, match="no scenes"):
        build_decomposition(_storyboard(0), "a fox", max_scenes=5, default_duration=5.0)


# ---------------------------------------------------------------------------
# LLMDecompositionService
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_decompose_success():
    adapter = SequenceAdapter([_storyboard(4)])
    providers = []

    result = await _service(adapter, providers).decompose("a fox", "ollama/llama3.1", 4)

    assert len(result.plan) == 4
    assert providers == ["ollama/llama3.1"]
    call = adapter.calls[0]
    assert "EXACTLY 4 scenes" in call["prompt"]
    assert call["system_prompt"] == STORYBOARD_SYSTEM_PROMPT
    assert call["temperature"] == pytest.approx(0.7)
    assert call["max_retries"] == 1


@pytest.mark.asyncio
async def test_decompose_retries_with_lower_temperature():
    adapter = SequenceAdapter([
        json.JSONDecodeError("Expecting value", "not json", 0),
        _invalid_output,
        _storyboard(3),
    ])

    result = await _service(adapter).decompose("a fox", "ollama/test")

    assert len(result.plan) == 3
    temperatures = [c["temperature"] for c in adapter.calls]
    assert temperatures == pytest.approx([0.7, 0.55, 0.4])


@pytest.mark.asyncio
async def test_decompose_gives_up_after_max_attempts():
    adapter = SequenceAdapter([_invalid_output, _invalid_output])

    with pytest.raises(DecompositionError, match="after 2 attempts"):
        await _service(adapter, max_attempts=2).decompose("a fox", "ollama/test")
    assert len(adapter.calls) == 2


@pytest.mark.asyncio
async def test_decompose_does_not_retry_other_errors():
    adapter = SequenceAdapter([ConnectionError("refused"), _storyboard(3)])

    with pytest.raises(DecompositionError, match="ConnectionError"):
        await _service(adapter).decompose("a fox", "ollama/test")
    assert len(adapter.calls) == 1


@pytest.mark.asyncio
async def test_decompose_rejects_blank_prompt():
    adapter = SequenceAdapter([])

    with pytest.raises(DecompositionError, match="Prompt is required"):
        await _service(adapter).decompose("   ", "ollama/test")
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_decompose_empty_scene_list_fails():
    adapter = SequenceAdapter([_storyboard(0)])

    with pytest.raises(DecompositionError):
        await _service(adapter).decompose("a fox", "ollama/test")


@pytest.mark.asyncio
async def test_decompose_wraps_adapter_factory_errors():
    def factory(provider):
        raise RuntimeError("google_cloud.project_id is not configured")

    service = LLMDecompositionService(adapter_factory=factory)

    with pytest.raises(DecompositionError, match="project_id is not configured"):
        await service.decompose("a fox", "gemini-2.5-flash")
