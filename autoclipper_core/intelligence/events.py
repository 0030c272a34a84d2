from typing import List, Literal, Optional, Union

from pydantic import Field

from autoclipper_core.errors import ErrorKind
from autoclipper_core.intelligence.models import CamelModel, ViralClip


class ProgressEvent(CamelModel):
    type: Literal["progress"] = "progress"
    progress: float = Field(..., ge=0, le=100)
    message: str
    moments_found: int = 0
    tokens_received: Optional[int] = None
    tokens_per_second: Optional[float] = None


class ClipFoundEvent(CamelModel):
    type: Literal["clip"] = "clip"
    clip: ViralClip
    moments_found: int


class CompleteEvent(CamelModel):
    type: Literal["complete"] = "complete"
    clips: List[ViralClip]
    processing_time: float = Field(..., description="Seconds spent on the analysis")
    model: str


class ErrorEvent(CamelModel):
    type: Literal["error"] = "error"
    kind: ErrorKind
    error: str
    detail: Optional[str] = None
    raw_output: Optional[str] = None


class CancelledEvent(CamelModel):
    type: Literal["cancelled"] = "cancelled"
    message: str = "Analysis cancelled"


AnalysisEvent = Union[ProgressEvent, ClipFoundEvent, CompleteEvent, ErrorEvent, CancelledEvent]
FinalEvent = Union[CompleteEvent, ErrorEvent, CancelledEvent]


class AnalysisResult(CamelModel):
    """Outcome of a whole analysis, built from its final event."""

    status: Literal["complete", "error", "cancelled"]
    operation_id: str
    clips: List[ViralClip] = Field(default_factory=list)
    processing_time: float = 0.0
    model: Optional[str] = None
    error: Optional[ErrorEvent] = None

    @property
    def ok(self) -> bool:
        return self.status == "complete"
