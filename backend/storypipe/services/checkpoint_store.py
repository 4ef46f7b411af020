"""Checkpoint storage for storyboard jobs.

Provides:
- CheckpointStore: the read/write contract the orchestrator depends on
- InMemoryCheckpointStore: process-local store for tests and one-shot runs
- SqlCheckpointStore: durable store on SQLAlchemy async (SQLite via aiosqlite)

Every write returns the job's canonical id. The store may assign an id other
than the one proposed (a new job whose id is missing or already taken by a
different job); callers must use the returned id from then on.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storypipe.db import StoryboardRecord, async_session
from storypipe.schemas.job import JobState

logger = logging.getLogger(__name__)


class CheckpointStore(ABC):
    """Durable storage of JobState snapshots keyed by job id."""

    @abstractmethod
    async def write(self, job: JobState) -> uuid.UUID:
        """Persist a full snapshot and return the canonical id."""
        ...

    @abstractmethod
    async def read(self, job_id: uuid.UUID) -> Optional[JobState]:
        """Return the latest snapshot, or None if the id is unknown."""
        ...

    @abstractmethod
    async def list_jobs(self) -> list[JobState]:
        """All stored jobs, newest first."""
        ...

    @abstractmethod
    async def delete(self, job_id: uuid.UUID) -> bool:
        """Remove a job; returns False if it did not exist."""
        ...


class InMemoryCheckpointStore(CheckpointStore):
    """Dict-backed store holding deep copies of every snapshot.

    With rekey=True the first write of an unknown id is stored under a fresh
    id, the way a server that assigns its own identifiers behaves.
    """

    def __init__(self, rekey: bool = False) -> None:
        self._rekey = rekey
        self._jobs: dict[uuid.UUID, JobState] = {}

    async def write(self, job: JobState) -> uuid.UUID:
        existing = self._jobs.get(job.id)
        if existing is None:
            canonical = uuid.uuid4() if self._rekey else job.id
        elif existing.created_at != job.created_at:
            canonical = uuid.uuid4()
            logger.info(f"Id {job.id} belongs to another job, assigned {canonical}")
        else:
            canonical = job.id

        self._jobs[canonical] = job.model_copy(deep=True, update={"id": canonical})
        return canonical

    async def read(self, job_id: uuid.UUID) -> Optional[JobState]:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    async def list_jobs(self) -> list[JobState]:
        jobs = sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)
        return [job.model_copy(deep=True) for job in jobs]

    async def delete(self, job_id: uuid.UUID) -> bool:
        return self._jobs.pop(job_id, None) is not None


class SqlCheckpointStore(CheckpointStore):
    """One `storyboards` row per job: JSON snapshot plus summary columns."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self._session_factory = session_factory or async_session

    async def write(self, job: JobState) -> uuid.UUID:
        async with self._session_factory() as session:
            record = await session.get(StoryboardRecord, job.id)
            canonical = job.id

            if record is not None:
                stored = JobState.model_validate(record.snapshot)
                if stored.created_at != job.created_at:
                    canonical = uuid.uuid4()
                    record = None
                    logger.info(f"Id {job.id} belongs to another storyboard, assigned {canonical}")

            snapshot = job.model_copy(update={"id": canonical}).model_dump(mode="json")

            if record is None:
                record = StoryboardRecord(id=canonical, created_at=job.created_at)
                session.add(record)

            record.name = job.name
            record.prompt = job.prompt
            record.provider = job.provider
            record.in_progress = job.status.in_progress
            record.total_scenes = job.status.total_scenes
            record.completed_scenes = job.status.completed_scenes
            record.error = job.status.error
            record.completed_at = job.status.completed_at
            record.updated_at = job.updated_at
            record.snapshot = snapshot

            await session.commit()
            logger.debug(
                f"Checkpoint written for {canonical}: "
                f"{job.status.completed_scenes}/{job.status.total_scenes} scenes"
            )
            return canonical

    async def read(self, job_id: uuid.UUID) -> Optional[JobState]:
        async with self._session_factory() as session:
            record = await session.get(StoryboardRecord, job_id)
            if record is None:
                return None
            return JobState.model_validate(record.snapshot)

    async def list_jobs(self) -> list[JobState]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(StoryboardRecord).order_by(StoryboardRecord.created_at.desc())
            )
            return [JobState.model_validate(r.snapshot) for r in result.scalars().all()]

    async def delete(self, job_id: uuid.UUID) -> bool:
        async with self._session_factory() as session:
            record = await session.get(StoryboardRecord, job_id)
            if record is None:
                return False
            await session.delete(record)
            await session.commit()
            logger.info(f"Deleted storyboard {job_id}")
            return True
