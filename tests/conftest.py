import json
from typing import Callable, Iterator, List, Optional, Union

import pytest

from autoclipper_core.backends.base import BackendHealth, BaseBackend
from autoclipper_core.config_manager import ConfigManager
from autoclipper_core.transcription.models import TranscriptSegment

Reply = Union[str, Exception]


class FakeBackend(BaseBackend):
    """Replays scripted replies; an Exception entry is raised instead of returned."""

    name = "fake"

    def __init__(self, replies: List[Reply], on_call: Optional[Callable[[int], None]] = None):
        super().__init__("fake-model")
        self.replies = list(replies)
        self.prompts: List[str] = []
        self.on_call = on_call

    def _next(self, user_prompt: str) -> str:
        self.prompts.append(user_prompt)
        if self.on_call is not None:
            self.on_call(len(self.prompts))
        reply = self.replies.pop(0) if self.replies else "[]"
        if isinstance(reply, Exception):
            raise reply
        return reply

    def complete(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        return self._next(user_prompt)

    def stream(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> Iterator[str]:
        reply = self._next(user_prompt)
        for i in range(0, len(reply), 4):
            yield reply[i:i + 4]

    def health_check(self) -> BackendHealth:
        return BackendHealth(connected=True, model=self.model, message="ok")


def clip_json(start: float, end: float, score: float, **extra) -> dict:
    clip = {"startTime": start, "endTime": end, "viralScore": score, "text": "...", "suggestedTitle": "Clip"}
    clip.update(extra)
    return clip


def reply_with(*clips: dict) -> str:
    return json.dumps(list(clips))


@pytest.fixture
def config_manager():
    return ConfigManager.from_defaults(
        {
            "llm": {"provider": "ollama", "max_retries": 0, "retry_backoff_seconds": 0},
            "analysis": {"analysis_timeout_seconds": None},
        }
    )


@pytest.fixture
def short_segments():
    return [
        TranscriptSegment(id="1", start=0.0, end=12.0, text="So here is the thing nobody tells you."),
        TranscriptSegment(id="2", start=12.0, end=26.0, text="I lost everything in one week."),
        TranscriptSegment(id="3", start=26.0, end=40.0, text="And that was the best thing that happened to me."),
    ]


def make_long_segments(count: int = 120, step: float = 10.0) -> List[TranscriptSegment]:
    return [
        TranscriptSegment(id=str(i), start=i * step, end=(i + 1) * step, text=f"Sentence number {i} " + "x" * 60)
        for i in range(count)
    ]
