"""Single-writer merge point for concurrently completing scene tasks.

Scene tasks run concurrently, but every mutation of the JobState and every
checkpoint write goes through one StateMerger holding an asyncio.Lock. A
successful scene is inserted by order, counted, and checkpointed before the
next settlement is looked at.
"""

import asyncio
import bisect
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from storypipe.pipeline.scene_task import SceneOutcome
from storypipe.schemas.job import Clip, JobState, utcnow
from storypipe.services.checkpoint_store import CheckpointStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted after every merge; `current` never decreases within a run."""

    job_id: uuid.UUID
    current: int
    total: int
    resumed_from: Optional[int] = None


@dataclass(frozen=True)
class CompletionEvent:
    """Emitted once, when the job is finalized."""

    job: JobState
    errors: dict[int, str] = field(default_factory=dict)


ProgressCallback = Callable[[ProgressEvent], None]
CompletionCallback = Callable[[CompletionEvent], None]
IdChangeCallback = Callable[[uuid.UUID, uuid.UUID], None]


def summarize_errors(errors: dict[int, str], total: int) -> Optional[str]:
    """One-line summary naming every failed scene index, or None."""
    if not errors:
        return None
    details = "; ".join(f"[{index}] {errors[index]}" for index in sorted(errors))
    noun = "scene" if total == 1 else "scenes"
    return f"{len(errors)} of {total} {noun} failed: {details}"


class StateMerger:
    """The only code path allowed to mutate a JobState or write its checkpoint."""

    def __init__(
        self,
        job: JobState,
        store: CheckpointStore,
        *,
        resumed_from: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompletionCallback] = None,
        on_id_change: Optional[IdChangeCallback] = None,
    ) -> None:
        self._job = job
        self._store = store
        self._resumed_from = resumed_from
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._on_id_change = on_id_change
        self._lock = asyncio.Lock()
        self._errors: dict[int, str] = {}
        # A job loaded in a terminal state is already finalized
        self._finalized = not job.status.in_progress

    @property
    def job_id(self) -> uuid.UUID:
        return self._job.id

    @property
    def errors(self) -> dict[int, str]:
        return dict(self._errors)

    @property
    def finalized(self) -> bool:
        return self._finalized

    def snapshot(self) -> JobState:
        """Deep copy of the current state, safe to hand to other owners."""
        return self._job.model_copy(deep=True)

    async def checkpoint(self) -> uuid.UUID:
        """Write the current state; returns the (possibly new) canonical id."""
        async with self._lock:
            await self._write()
            return self._job.id

    async def apply(self, outcome: SceneOutcome) -> None:
        """Merge one scene settlement into the job."""
        async with self._lock:
            if self._finalized:
                logger.warning(
                    f"Job {self._job.id}: ignoring scene {outcome.index} settled after finalize"
                )
                return

            if outcome.ok:
                if self._insert(outcome.clip):
                    await self._write()
            else:
                self._errors[outcome.index] = outcome.error or "unknown error"
                logger.warning(
                    f"Job {self._job.id}: scene {outcome.index} recorded as failed"
                )

            self._emit_progress()

    async def record_failure(self, index: int, message: str) -> None:
        """Record a scene as failed without a settlement from a scene task."""
        async with self._lock:
            self._errors[index] = message

    async def finalize(self, warning: Optional[str] = None) -> JobState:
        """Mark the job terminal and write the final checkpoint.

        Calling finalize again re-writes the same terminal snapshot without
        touching completed_at or emitting a second completion event.

        Args:
            warning: Extra note appended to status.error, e.g. when a resume
                could not generate missing scenes.

        Returns:
            Snapshot of the terminal JobState.
        """
        async with self._lock:
            if self._finalized:
                logger.info(f"Job {self._job.id}: already finalized, rewriting checkpoint")
                await self._write()
                return self.snapshot()

            status = self._job.status
            status.in_progress = False
            status.completed_scenes = len(self._job.clips)
            status.completed_at = utcnow()

            parts = [
                part
                for part in (summarize_errors(self._errors, status.total_scenes), warning)
                if part
            ]
            if parts:
                status.error = "; ".join(parts)

            self._finalized = True
            await self._write()
            final = self.snapshot()

            logger.info(
                f"Job {final.id} finalized: {status.completed_scenes}/{status.total_scenes} "
                f"scenes, {len(self._errors)} failed"
            )
            if self._on_complete is not None:
                try:
                    self._on_complete(CompletionEvent(job=final, errors=dict(self._errors)))
                except Exception as e:
                    logger.warning(f"Completion callback failed: {type(e).__name__}: {e}")
            return final

    # ------------------------------------------------------------------
    # Lock must be held by the caller for everything below
    # ------------------------------------------------------------------
    def _insert(self, clip: Clip) -> bool:
        orders = self._job.clip_orders()
        if clip.order in orders:
            logger.warning(
                f"Job {self._job.id}: scene {clip.order} already committed, dropping duplicate clip {clip.id}"
            )
            return False

        position = bisect.bisect_right(orders, clip.order)
        self._job.clips.insert(position, clip)
        self._job.status.completed_scenes = len(self._job.clips)
        return True

    async def _write(self) -> None:
        self._job.updated_at = utcnow()
        try:
            canonical = await self._store.write(self._job.model_copy(deep=True))
        except Exception as e:
            logger.warning(
                f"Checkpoint write failed for job {self._job.id}: {type(e).__name__}: {e}"
            )
            return

        if canonical != self._job.id:
            previous = self._job.id
            self._job.id = canonical
            logger.info(f"Job {previous}: adopted canonical id {canonical}")
            if self._on_id_change is not None:
                try:
                    self._on_id_change(previous, canonical)
                except Exception as e:
                    logger.warning(f"Id change callback failed: {type(e).__name__}: {e}")

    def _emit_progress(self) -> None:
        if self._on_progress is None:
            return
        event = ProgressEvent(
            job_id=self._job.id,
            current=self._job.status.completed_scenes,
            total=self._job.status.total_scenes,
            resumed_from=self._resumed_from,
        )
        try:
            self._on_progress(event)
        except Exception as e:
            logger.warning(f"Progress callback failed: {type(e).__name__}: {e}")
