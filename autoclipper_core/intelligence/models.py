from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

ContentType = Literal["general", "podcast", "interview", "tutorial", "vlog"]
ScorePolicy = Literal["threshold", "tiered"]


class CamelModel(BaseModel):
    """Accepts and emits camelCase keys, matching the panel's JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ClipSegment(CamelModel):
    """One playback-ordered sub-range of source media inside a clip."""

    start_time: float = Field(..., description="Start time in seconds")
    end_time: float = Field(..., description="End time in seconds")
    text: str = Field(default="")
    order: int = Field(default=0, description="Playback position within the clip")


class ViralClip(CamelModel):
    """A selected clip with high viral potential."""

    start_time: float = Field(..., description="Start time in seconds (earliest segment start)")
    end_time: float = Field(..., description="End time in seconds (latest segment end)")
    text: str = Field(default="")
    viral_score: float = Field(..., ge=0, le=100, description="Score from 0-100")
    factors: Dict[str, float] = Field(default_factory=dict, description="Rubric factor sub-scores, 0-100 each")
    segments: List[ClipSegment] = Field(default_factory=list)
    is_reordered: bool = Field(default=False, description="Playback order differs from chronological order")
    suggested_title: str = Field(default="Untitled Clip")
    hashtags: List[str] = Field(default_factory=list)
    reasoning: str = Field(default="")
    hook_suggestion: Optional[str] = Field(default=None)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


class AnalyzeOptions(CamelModel):
    """Caller-supplied analysis options. Missing values fall back to the rubric defaults."""

    min_clip_duration: Optional[float] = Field(default=None, gt=0)
    max_clip_duration: Optional[float] = Field(default=None, gt=0)
    target_count: Optional[int] = Field(default=None, ge=1)
    min_viral_score: Optional[float] = Field(default=None, ge=0, le=100)
    content_type: ContentType = Field(default="general")
    score_policy: Optional[ScorePolicy] = Field(default=None)

    @model_validator(mode="after")
    def _check_duration_window(self) -> "AnalyzeOptions":
        if (
            self.min_clip_duration is not None
            and self.max_clip_duration is not None
            and self.min_clip_duration > self.max_clip_duration
        ):
            raise ValueError("minClipDuration must not exceed maxClipDuration")
        return self


class ClipPolicy(BaseModel):
    """Fully resolved options driving prompting, validation and output selection."""

    rubric: str
    min_clip_duration: float
    max_clip_duration: float
    content_type: ContentType = "general"
    score_policy: ScorePolicy = "threshold"
    min_viral_score: Optional[float] = None
    target_count: Optional[int] = None
    high_score_threshold: float = 70
    max_additional_clips: int = 5
