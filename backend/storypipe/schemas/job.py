"""Pydantic models for a storyboard job and its checkpointed state.

A JobState is the full snapshot written to the checkpoint store after every
committed scene. The ScenePlan it carries is the recipe a resume replays
against, so a resumed run never has to call the decomposition service again.
"""

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current time used for every job timestamp."""
    return datetime.now(timezone.utc)


class SceneDescription(BaseModel):
    """One unit of requested generation work."""

    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    prompt: str
    target_duration_seconds: float = 5.0
    description: Optional[str] = None


class ScenePlan(BaseModel):
    """Immutable ordered list of scenes, fixed at job creation."""

    model_config = ConfigDict(frozen=True)

    scenes: tuple[SceneDescription, ...] = ()

    def __len__(self) -> int:
        return len(self.scenes)

    def remaining(self, cursor: int) -> tuple[SceneDescription, ...]:
        """Scenes from the absolute index `cursor` to the end."""
        return self.scenes[cursor:]


class Message(BaseModel):
    """A single dialogue turn recorded against a clip."""

    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class Clip(BaseModel):
    """Durable result of one successfully generated scene.

    `order` is the absolute scene index assigned at dispatch time; it is the
    only reliable sequencing key since concurrent completions arrive in any order.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str
    content: str
    duration_seconds: float
    order: int = Field(ge=0)
    prompt: str
    dialogue_history: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)
    external_content_id: Optional[str] = None
    provider: str


class GenerationStatus(BaseModel):
    """Progress of a job.

    completed_scenes is only ever set from the committed clip count.
    """

    in_progress: bool = True
    started_at: datetime = Field(default_factory=utcnow)
    total_scenes: int = Field(default=0, ge=0)
    completed_scenes: int = Field(default=0, ge=0)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None


class JobState(BaseModel):
    """The storyboard under construction.

    plan is Optional because checkpoints written before plans were stored
    have none; resuming such a job cannot generate missing scenes.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4)
    name: str
    description: str = ""
    prompt: str = ""
    clips: list[Clip] = Field(default_factory=list)
    plan: Optional[ScenePlan] = None
    provider: str
    status: GenerationStatus = Field(default_factory=GenerationStatus)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def clip_orders(self) -> list[int]:
        return [clip.order for clip in self.clips]
