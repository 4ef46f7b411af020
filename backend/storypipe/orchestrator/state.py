"""Resume decision logic for the storyboard orchestrator.

Inspects a loaded JobState on (re)start and decides whether any work is left.
The persisted clip count is the single source of truth for how much of the
plan is done, so the resume cursor is always len(clips).
"""

from enum import Enum

from storypipe.schemas.job import JobState


class ResumeDecision(str, Enum):
    """What a (re)started orchestrator should do with a loaded job."""

    NONE = "none"
    REPAIR_STATUS_ONLY = "repair_status_only"
    RESUME_GENERATION = "resume_generation"


def should_resume(job: JobState) -> ResumeDecision:
    """Decide how to continue a loaded job.

    Args:
        job: JobState as read from the checkpoint store.

    Returns:
        NONE if the job already reached a terminal state,
        REPAIR_STATUS_ONLY if all scenes are done but the in-progress flag is
        stale (or no scene total was ever recorded),
        RESUME_GENERATION otherwise.

    Examples:
        >>> should_resume(job_with(in_progress=False))
        <ResumeDecision.NONE: 'none'>
        >>> should_resume(job_with(in_progress=True, total=5, clips=5))
        <ResumeDecision.REPAIR_STATUS_ONLY: 'repair_status_only'>
        >>> should_resume(job_with(in_progress=True, total=5, clips=2))
        <ResumeDecision.RESUME_GENERATION: 'resume_generation'>
    """
    status = job.status
    if not status.in_progress:
        return ResumeDecision.NONE
    if status.total_scenes == 0 or len(job.clips) >= status.total_scenes:
        return ResumeDecision.REPAIR_STATUS_ONLY
    return ResumeDecision.RESUME_GENERATION


def resume_cursor(job: JobState) -> int:
    """Absolute index of the first scene a resumed run dispatches."""
    return len(job.clips)


def can_resume(job: JobState) -> bool:
    """Check if a job has anything left to do (generation or status repair)."""
    return should_resume(job) is not ResumeDecision.NONE
