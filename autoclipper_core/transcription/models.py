from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TranscriptSegment(BaseModel):
    """One timestamped line of source transcript, as supplied by the editing panel."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default="")
    start: float = Field(..., description="Start time in seconds")
    end: float = Field(..., description="End time in seconds")
    text: str
    speaker: Optional[str] = Field(default=None)


class TranscriptChunk(BaseModel):
    """A slice of the formatted transcript sent to the model in one call."""

    text: str
    start_offset: float = Field(default=0.0, description="First second covered by this chunk")
    end_offset: float = Field(default=0.0, description="Last second covered by this chunk")
