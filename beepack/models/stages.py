"""Pipeline state models: deterministic stage transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from beepack.models.artifacts import Platform


class PipelineState(str, Enum):
    """Strict state model for one build pipeline run."""

    IDLE = "idle"
    COMPILING = "compiling"
    PACKAGING = "packaging"
    DISTRIBUTING = "distributing"
    SYNTHESIZING = "synthesizing"
    DONE = "done"
    FAILED = "failed"


# Valid state transitions, enforced by StageMachine.
# Terminal states (DONE, FAILED) have no outgoing transitions.
VALID_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.COMPILING, PipelineState.FAILED},
    PipelineState.COMPILING: {PipelineState.PACKAGING, PipelineState.FAILED},
    PipelineState.PACKAGING: {
        PipelineState.DISTRIBUTING,
        PipelineState.DONE,
        PipelineState.FAILED,
    },
    PipelineState.DISTRIBUTING: {PipelineState.SYNTHESIZING, PipelineState.FAILED},
    PipelineState.SYNTHESIZING: {PipelineState.DONE, PipelineState.FAILED},
    PipelineState.DONE: set(),  # terminal
    PipelineState.FAILED: set(),  # terminal
}


class StageTransition(BaseModel):
    """Records a single state transition for the run's audit trail."""

    model_config = ConfigDict(frozen=True)

    from_state: PipelineState
    to_state: PipelineState
    timestamp_utc: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    failed_stage: PipelineState | None = None  # populated when entering FAILED
    error: str | None = None


class BuildResult(BaseModel):
    """What a successful pipeline run produced."""

    model_config = ConfigDict(frozen=True)

    source_path: Path
    output_path: Path
    reference: str
    manifest_digest: str
    program_size: int
    platform: Platform | None = None
    image_tag: str | None = None
    transitions: list[StageTransition] = []
