"""API route handlers and Pydantic response schemas."""

import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from storypipe import __version__, validate_dependencies
from storypipe.config import settings
from storypipe.orchestrator import (
    GenerationRequest,
    JobNotFoundError,
    Orchestrator,
    ResumeDecision,
    resume_cursor,
    should_resume,
)
from storypipe.pipeline.scene_task import GenerationService, LLMGenerationService
from storypipe.pipeline.storyboard import DecompositionService, LLMDecompositionService
from storypipe.schemas.job import JobState
from storypipe.services.checkpoint_store import CheckpointStore, SqlCheckpointStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# Runs executing in this process, keyed by storyboard id; used by abort
_active_runs: dict[uuid.UUID, Orchestrator] = {}


# ============================================================================
# Request / Response Schemas
# ============================================================================

class CreateStoryboardRequest(BaseModel):
    """Request schema for starting a storyboard job."""
    prompt: str = Field(min_length=1)
    provider: Optional[str] = None
    scene_count: Optional[int] = Field(default=None, ge=1)

    @field_validator("prompt")
    @classmethod
    def prompt_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("prompt must not be blank")
        return v


class CreateStoryboardResponse(BaseModel):
    """Response schema for POST /api/storyboards."""
    storyboard_id: str
    name: str
    total_scenes: int
    status_url: str


class StoryboardListItem(BaseModel):
    """Summary row for GET /api/storyboards."""
    storyboard_id: str
    name: str
    provider: str
    in_progress: bool
    total_scenes: int
    completed_scenes: int
    created_at: datetime
    updated_at: datetime


class StatusResponse(BaseModel):
    """Lightweight status for polling."""
    storyboard_id: str
    in_progress: bool
    total_scenes: int
    completed_scenes: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    resume_decision: str


class ResumeResponse(BaseModel):
    """Response schema for POST /api/storyboards/{id}/resume."""
    storyboard_id: str
    decision: str
    resumed_from: int
    status_url: str


class AbortResponse(BaseModel):
    """Response schema for POST /api/storyboards/{id}/abort."""
    storyboard_id: str
    status_url: str


# ============================================================================
# Dependencies
# ============================================================================

def get_store() -> CheckpointStore:
    return SqlCheckpointStore()


def get_decomposer() -> DecompositionService:
    return LLMDecompositionService()


def get_generator() -> GenerationService:
    return LLMGenerationService()


def get_orchestrator(
    store: CheckpointStore = Depends(get_store),
    decomposer: DecompositionService = Depends(get_decomposer),
    generator: GenerationService = Depends(get_generator),
) -> Orchestrator:
    return Orchestrator(store, decomposer, generator)


# ============================================================================
# Background Task Wrappers
# ============================================================================

async def run_generation_background(orchestrator: Orchestrator, job: JobState):
    """Generate the scenes of a freshly started job.

    Scene failures are recorded on the job itself; anything reaching here
    is unexpected and only logged.
    """
    try:
        await orchestrator.execute(job)
    except Exception as e:
        logger.error(f"Background generation failed for {job.id}: {type(e).__name__}: {str(e)}")
    finally:
        _active_runs.pop(job.id, None)


async def run_resume_background(orchestrator: Orchestrator, job_id: uuid.UUID):
    """Resume a stored job in the background."""
    try:
        await orchestrator.resume(job_id)
    except Exception as e:
        logger.error(f"Background resume failed for {job_id}: {type(e).__name__}: {str(e)}")
    finally:
        _active_runs.pop(job_id, None)


def _status_url(job_id: uuid.UUID) -> str:
    return f"/api/storyboards/{job_id}/status"


async def _load(store: CheckpointStore, storyboard_id: uuid.UUID) -> JobState:
    job = await store.read(storyboard_id)
    if job is None:
        raise JobNotFoundError(f"Storyboard {storyboard_id} not found")
    return job


# ============================================================================
# Endpoint Handlers
# ============================================================================

@router.post("/storyboards", status_code=202, response_model=CreateStoryboardResponse)
async def create_storyboard(
    request: CreateStoryboardRequest,
    background_tasks: BackgroundTasks,
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Plan a storyboard and generate its scenes in the background.

    The plan and the initial checkpoint are written before responding, so the
    returned id can be polled (and resumed) immediately.
    """
    provider = request.provider or settings.models.default_provider
    try:
        validate_dependencies(provider)
    except RuntimeError as e:
        raise HTTPException(status_code=503, detail=str(e))

    # DecompositionError propagates to the app handler (502)
    job = await orchestrator.start(
        GenerationRequest(
            prompt=request.prompt,
            provider=provider,
            scene_count_hint=request.scene_count,
        )
    )

    logger.info(f"Created storyboard {job.id} for prompt: {request.prompt[:50]}...")
    _active_runs[job.id] = orchestrator
    background_tasks.add_task(run_generation_background, orchestrator, job)

    return CreateStoryboardResponse(
        storyboard_id=str(job.id),
        name=job.name,
        total_scenes=job.status.total_scenes,
        status_url=_status_url(job.id),
    )


@router.get("/storyboards", response_model=list[StoryboardListItem])
async def list_storyboards(store: CheckpointStore = Depends(get_store)):
    """List all storyboards ordered by creation date (newest first)."""
    jobs = await store.list_jobs()
    return [
        StoryboardListItem(
            storyboard_id=str(job.id),
            name=job.name,
            provider=job.provider,
            in_progress=job.status.in_progress,
            total_scenes=job.status.total_scenes,
            completed_scenes=job.status.completed_scenes,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )
        for job in jobs
    ]


@router.get("/storyboards/{storyboard_id}", response_model=JobState)
async def get_storyboard(storyboard_id: uuid.UUID, store: CheckpointStore = Depends(get_store)):
    """Full storyboard snapshot including clips and plan."""
    return await _load(store, storyboard_id)


@router.get("/storyboards/{storyboard_id}/status", response_model=StatusResponse)
async def get_storyboard_status(
    storyboard_id: uuid.UUID,
    store: CheckpointStore = Depends(get_store),
):
    """Get lightweight storyboard status for polling."""
    job = await _load(store, storyboard_id)
    status = job.status
    return StatusResponse(
        storyboard_id=str(job.id),
        in_progress=status.in_progress,
        total_scenes=status.total_scenes,
        completed_scenes=status.completed_scenes,
        started_at=status.started_at,
        completed_at=status.completed_at,
        error=status.error,
        resume_decision=should_resume(job).value,
    )


@router.post("/storyboards/{storyboard_id}/resume", status_code=202, response_model=ResumeResponse)
async def resume_storyboard(
    storyboard_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    store: CheckpointStore = Depends(get_store),
    orchestrator: Orchestrator = Depends(get_orchestrator),
):
    """Resume an interrupted storyboard in the background.

    Returns 409 if the storyboard already reached a terminal state or is
    still being generated in this process.
    """
    job = await _load(store, storyboard_id)
    decision = should_resume(job)
    if decision is ResumeDecision.NONE:
        raise HTTPException(
            status_code=409,
            detail="Storyboard is not in progress and cannot be resumed",
        )
    if storyboard_id in _active_runs:
        raise HTTPException(status_code=409, detail="Storyboard is already being generated")

    logger.info(f"Resuming storyboard {storyboard_id}: {decision.value}")
    _active_runs[storyboard_id] = orchestrator
    background_tasks.add_task(run_resume_background, orchestrator, storyboard_id)

    return ResumeResponse(
        storyboard_id=str(storyboard_id),
        decision=decision.value,
        resumed_from=resume_cursor(job),
        status_url=_status_url(storyboard_id),
    )


@router.post("/storyboards/{storyboard_id}/abort", status_code=202, response_model=AbortResponse)
async def abort_storyboard(storyboard_id: uuid.UUID, store: CheckpointStore = Depends(get_store)):
    """Stop dispatching new scenes for a storyboard running in this process.

    Scenes already in flight finish and are checkpointed; the storyboard
    stays in progress and can be resumed later. Returns 409 if no run of
    this storyboard is active.
    """
    job = await _load(store, storyboard_id)
    orchestrator = _active_runs.get(job.id)
    if orchestrator is None:
        raise HTTPException(
            status_code=409,
            detail="Storyboard is not being generated and cannot be aborted",
        )

    orchestrator.abort()
    return AbortResponse(
        storyboard_id=str(job.id),
        status_url=_status_url(job.id),
    )


@router.delete("/storyboards/{storyboard_id}", status_code=204)
async def delete_storyboard(storyboard_id: uuid.UUID, store: CheckpointStore = Depends(get_store)):
    """Delete a stored storyboard."""
    if not await store.delete(storyboard_id):
        raise JobNotFoundError(f"Storyboard {storyboard_id} not found")


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "version": __version__,
    }
