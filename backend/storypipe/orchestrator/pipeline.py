"""Storyboard orchestrator with checkpointed, resumable scene generation.

Coordinates a storyboard job with:
- One decomposition call per fresh job (the plan is stored with the job)
- Concurrent, bounded dispatch of one scene task per remaining scene
- Single-writer merging and a checkpoint after every committed scene
- Resume from the persisted clip count after a crash or abort
- Progress and completion callbacks for CLI/API integration
"""

import asyncio
import logging
import uuid
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from storypipe.config import settings
from storypipe.orchestrator.merger import (
    CompletionCallback,
    IdChangeCallback,
    ProgressCallback,
    StateMerger,
)
from storypipe.orchestrator.state import ResumeDecision, resume_cursor, should_resume
from storypipe.pipeline.scene_task import GenerationService, SceneTaskRunner
from storypipe.pipeline.storyboard import DecompositionError, DecompositionService
from storypipe.schemas.job import GenerationStatus, JobState, SceneDescription
from storypipe.services.checkpoint_store import CheckpointStore

logger = logging.getLogger(__name__)

MISSING_PLAN_WARNING = "Scene plan missing from checkpoint; kept existing clips only"
UNCOMMITTED_SCENE_ERROR = "not committed before resume"


class JobNotFoundError(Exception):
    """Raised when resuming an id the checkpoint store does not know."""


class GenerationRequest(BaseModel):
    """Input for a fresh storyboard job."""

    prompt: str = Field(min_length=1)
    provider: Optional[str] = None
    scene_count_hint: Optional[int] = Field(default=None, ge=1)

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prompt must not be blank")
        return v


class Orchestrator:
    """Drives one storyboard job from plan to finalized JobState.

    One instance per job run; abort() applies to the run in progress.
    """

    def __init__(
        self,
        store: CheckpointStore,
        decomposer: DecompositionService,
        generator: GenerationService,
        *,
        concurrency: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompletionCallback] = None,
        on_id_change: Optional[IdChangeCallback] = None,
    ) -> None:
        self._store = store
        self._decomposer = decomposer
        self._runner = SceneTaskRunner(generator, retry_backoff=retry_backoff)
        self._concurrency = concurrency or settings.pipeline.scene_concurrency
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._on_id_change = on_id_change
        self._aborted = asyncio.Event()
        self._merger: Optional[StateMerger] = None

    @property
    def job_id(self) -> Optional[uuid.UUID]:
        """Canonical id of the job being driven, once known."""
        return self._merger.job_id if self._merger is not None else None

    @property
    def aborted(self) -> bool:
        return self._aborted.is_set()

    def abort(self) -> None:
        """Stop dispatching new scenes; in-flight scenes still merge.

        The job is checkpointed without being finalized, so it can be resumed.
        """
        logger.info(f"Abort requested for job {self.job_id}")
        self._aborted.set()

    async def run(self, request: GenerationRequest) -> uuid.UUID:
        """Fresh run: plan, generate every scene, finalize.

        Returns:
            Canonical id of the job.

        Raises:
            DecompositionError: If no plan could be produced. Nothing is
                persisted and no progress is reported in that case.
        """
        job = await self.start(request)
        final = await self.execute(job)
        return final.id

    async def start(self, request: GenerationRequest) -> JobState:
        """Plan a fresh job and write its initial checkpoint.

        Returns:
            Snapshot of the new JobState carrying the canonical id.
        """
        provider = request.provider or settings.models.default_provider
        try:
            decomposition = await self._decomposer.decompose(
                request.prompt, provider, request.scene_count_hint
            )
        except DecompositionError:
            logger.error(f"Decomposition failed for prompt: {request.prompt[:50]}")
            raise

        plan = decomposition.plan
        job = JobState(
            name=decomposition.title,
            description=decomposition.description,
            prompt=request.prompt,
            plan=plan,
            provider=provider,
            status=GenerationStatus(total_scenes=len(plan)),
        )
        merger = self._new_merger(job)
        canonical = await merger.checkpoint()
        logger.info(f"Created storyboard {canonical} with {len(plan)} scenes ({provider})")
        return merger.snapshot()

    async def execute(self, job: JobState) -> JobState:
        """Generate the scenes of a job created by start()."""
        merger = self._merger
        if merger is None or merger.job_id != job.id:
            merger = self._new_merger(job)
        return await self._drive(merger, resume_cursor(job))

    async def resume(self, job_id: uuid.UUID) -> JobState:
        """Continue a stored job from its persisted clip count.

        Raises:
            JobNotFoundError: If the store has no job under `job_id`.
        """
        job = await self._store.read(job_id)
        if job is None:
            raise JobNotFoundError(f"Storyboard {job_id} not found")

        decision = should_resume(job)
        logger.info(
            f"Resume decision for {job_id}: {decision.value} "
            f"({len(job.clips)}/{job.status.total_scenes} scenes committed)"
        )

        if decision is ResumeDecision.NONE:
            return job

        cursor = resume_cursor(job)
        merger = self._new_merger(job, resumed_from=cursor)

        if decision is ResumeDecision.REPAIR_STATUS_ONLY:
            return await merger.finalize()

        if job.plan is None:
            logger.warning(f"Storyboard {job_id} has no stored plan, finalizing with existing clips")
            return await merger.finalize(warning=MISSING_PLAN_WARNING)

        return await self._drive(merger, cursor)

    def _new_merger(self, job: JobState, resumed_from: Optional[int] = None) -> StateMerger:
        self._merger = StateMerger(
            job,
            self._store,
            resumed_from=resumed_from,
            on_progress=self._on_progress,
            on_complete=self._on_complete,
            on_id_change=self._on_id_change,
        )
        return self._merger

    async def _drive(self, merger: StateMerger, cursor: int) -> JobState:
        job = merger.snapshot()
        plan = job.plan
        if plan is None:
            return await merger.finalize(warning=MISSING_PLAN_WARNING)

        committed = set(job.clip_orders())
        # The cursor is a clip count, so a scene that failed before a crash can
        # sit below it with no clip; it is reported rather than regenerated
        gaps = [index for index in range(min(cursor, len(plan))) if index not in committed]
        for index in gaps:
            await merger.record_failure(index, UNCOMMITTED_SCENE_ERROR)
        if gaps:
            logger.warning(f"Storyboard {job.id}: scenes {gaps} below resume cursor {cursor} have no clip")

        remaining = [
            (index, scene)
            for index, scene in enumerate(plan.remaining(cursor), start=cursor)
            if index not in committed
        ]
        if not remaining:
            logger.info(f"Storyboard {job.id}: no scenes left to generate")
            return await merger.finalize()

        logger.info(
            f"Storyboard {job.id}: dispatching {len(remaining)} scenes from index {cursor} "
            f"(concurrency {self._concurrency})"
        )
        semaphore = asyncio.Semaphore(self._concurrency)
        skipped = 0

        async def dispatch(index: int, scene: SceneDescription) -> None:
            nonlocal skipped
            async with semaphore:
                if self._aborted.is_set():
                    skipped += 1
                    return
                outcome = await self._runner.run(scene, index, job.provider)
            await merger.apply(outcome)

        await asyncio.gather(*(dispatch(index, scene) for index, scene in remaining))

        if skipped:
            canonical = await merger.checkpoint()
            logger.warning(
                f"Storyboard {canonical} aborted with {skipped} scenes not dispatched; "
                "resume to continue"
            )
            return merger.snapshot()

        return await merger.finalize()
