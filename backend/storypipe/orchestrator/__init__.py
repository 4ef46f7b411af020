from storypipe.orchestrator.merger import CompletionEvent, ProgressEvent, StateMerger
from storypipe.orchestrator.pipeline import GenerationRequest, JobNotFoundError, Orchestrator
from storypipe.orchestrator.state import ResumeDecision, can_resume, resume_cursor, should_resume

__all__ = [
    "CompletionEvent",
    "GenerationRequest",
    "JobNotFoundError",
    "Orchestrator",
    "ProgressEvent",
    "ResumeDecision",
    "StateMerger",
    "can_resume",
    "resume_cursor",
    "should_resume",
]
