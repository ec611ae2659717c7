"""
Result models returned by the orchestrator and the HTTP layer.

Pydantic models so the same objects serialize straight into API
responses and into the persistence payload handed to the host.
"""

from typing import Optional

from pydantic import BaseModel, Field


# ============================================================================
# Per-rep quality
# ============================================================================

class RepScore(BaseModel):
    """Quality scores (0-100) for one counted repetition."""
    rep_number: int = Field(description="1-indexed rep number within the set")
    hull_score: Optional[float] = Field(
        default=None, description="Upper-body hull containment; None if the exercise has no hull envelope"
    )
    dynamic_angle_scores: dict[str, float] = Field(
        default_factory=dict, description="'<joint>_<side>_<phase>' -> score"
    )
    static_angle_scores: dict[str, float] = Field(
        default_factory=dict, description="'<joint>_<side>' -> score"
    )
    wrist_distance_score: Optional[float] = None

    @property
    def overall(self) -> float:
        """Mean over every score present for this rep."""
        values = list(self.dynamic_angle_scores.values()) + list(self.static_angle_scores.values())
        values += [v for v in (self.hull_score, self.wrist_distance_score) if v is not None]
        return sum(values) / len(values) if values else 0.0


# ============================================================================
# Per-frame result
# ============================================================================

class FrameScores(BaseModel):
    deviation_mae: float = 0.0
    rep_quality: Optional[RepScore] = None


class FrameDebug(BaseModel):
    angles: dict[str, float] = Field(default_factory=dict)
    scores: FrameScores = Field(default_factory=FrameScores)
    envelope: dict[str, float] = Field(default_factory=dict)


class ProcessResult(BaseModel):
    """Merged output of one ``RehabCore.process`` call."""
    status: str = Field(description="Activity label: Standing, Sitting or Fall Detected")
    confidence: float = Field(ge=0.0, le=1.0)
    exercise: Optional[str] = Field(default=None, description="Canonical exercise key")
    reps: int = 0
    feedback: str = ""
    debug: FrameDebug = Field(default_factory=FrameDebug)


# ============================================================================
# Set summary (persistence handoff)
# ============================================================================

class SetSnapshot(BaseModel):
    exercise: Optional[str] = None
    reps: int = 0
    feedback: str = ""
    mae: float = Field(default=0.0, description="Mean per-frame deviation MAE since the last reset")
    rep_scores: list[RepScore] = Field(default_factory=list)
