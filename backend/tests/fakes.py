"""Fakes for the decomposition service, generation service and store.

Scene prompts are "prompt-{index}" so the scripted generator can look up the
outcome of each scene from the prompt it receives.
"""

import asyncio
import uuid
from typing import Optional

from storypipe.pipeline.scene_task import GeneratedContent, GenerationService
from storypipe.pipeline.storyboard import (
    Decomposition,
    DecompositionError,
    DecompositionService,
)
from storypipe.schemas.job import Clip, GenerationStatus, JobState, SceneDescription, ScenePlan
from storypipe.services.checkpoint_store import InMemoryCheckpointStore

SVG = '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 800 600"><circle r="10"/></svg>'


def make_plan(count: int) -> ScenePlan:
    return ScenePlan(
        scenes=tuple(
            SceneDescription(id=f"scene{i + 1}", prompt=f"prompt-{i}", target_duration_seconds=5.0)
            for i in range(count)
        )
    )


def index_of(prompt: str) -> int:
    return int(prompt.rsplit("-", 1)[1])


class ScriptedDecomposer(DecompositionService):
    """Returns a fixed plan, or raises DecompositionError when `fail` is set."""

    def __init__(self, scenes: int = 5, fail: bool = False) -> None:
        self.scenes = scenes
        self.fail = fail
        self.calls: list[tuple[str, str, Optional[int]]] = []

    async def decompose(self, prompt, provider, scene_count_hint=None) -> Decomposition:
        self.calls.append((prompt, provider, scene_count_hint))
        if self.fail:
            raise DecompositionError("model returned no scenes")
        count = scene_count_hint or self.scenes
        return Decomposition(title="Test Movie", description="A test", plan=make_plan(count))


class ScriptedGenerator(GenerationService):
    """Generation service whose per-scene behaviour is scripted.

    Args:
        failures: scene index -> list of exceptions raised on successive calls
            (once the list is exhausted the call succeeds).
        delays: scene index -> seconds to sleep before answering.
        contents: scene index -> content returned instead of a valid SVG.
    """

    def __init__(
        self,
        failures: Optional[dict[int, list[Exception]]] = None,
        delays: Optional[dict[int, float]] = None,
        contents: Optional[dict[int, str]] = None,
    ) -> None:
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.delays = delays or {}
        self.contents = contents or {}
        self.calls: list[int] = []
        self.active = 0
        self.max_active = 0

    async def generate(self, scene_description: str, provider: str) -> GeneratedContent:
        index = index_of(scene_description)
        self.calls.append(index)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delays.get(index, 0))
            pending = self.failures.get(index)
            if pending:
                raise pending.pop(0)
            return GeneratedContent(
                content=self.contents.get(index, SVG),
                message=f"animation {index}",
                external_content_id=f"ext-{index}",
            )
        finally:
            self.active -= 1


class RecordingStore(InMemoryCheckpointStore):
    """In-memory store that records every write and can fail on demand."""

    def __init__(self, rekey: bool = False, fail_writes: int = 0) -> None:
        super().__init__(rekey=rekey)
        self.fail_writes = fail_writes
        self.proposed: list[uuid.UUID] = []
        self.snapshots: list[JobState] = []
        self.reads: list[uuid.UUID] = []

    async def write(self, job: JobState) -> uuid.UUID:
        self.proposed.append(job.id)
        if self.fail_writes:
            self.fail_writes -= 1
            raise ConnectionError("store unavailable")
        canonical = await super().write(job)
        self.snapshots.append(job.model_copy(deep=True, update={"id": canonical}))
        return canonical

    async def read(self, job_id: uuid.UUID) -> Optional[JobState]:
        self.reads.append(job_id)
        return await super().read(job_id)


def make_job(total: int = 5, clips: int = 0, in_progress: bool = True, with_plan: bool = True) -> JobState:
    """JobState with `clips` committed clips for scenes 0..clips-1."""
    job = JobState(
        name="Test Movie",
        prompt="a fox in the snow",
        plan=make_plan(total) if with_plan else None,
        provider="ollama/test",
        status=GenerationStatus(in_progress=in_progress, total_scenes=total),
    )
    for i in range(clips):
        job.clips.append(make_clip(i))
    job.status.completed_scenes = clips
    return job


def make_clip(order: int, provider: str = "ollama/test") -> Clip:
    return Clip(
        name=f"Scene {order + 1}: scene{order + 1}",
        content=SVG,
        duration_seconds=5.0,
        order=order,
        prompt=f"prompt-{order}",
        provider=provider,
    )
