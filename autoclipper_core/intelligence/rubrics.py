from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from autoclipper_core.errors import ConfigurationError
from autoclipper_core.intelligence.models import AnalyzeOptions, ClipPolicy, ScorePolicy


class RubricFactor(BaseModel):
    name: str
    description: str
    weight: Optional[int] = Field(default=None, description="Percentage weight, when the rubric defines one")


class Rubric(BaseModel):
    """A named scoring rubric plus the clip policy it ships with."""

    name: str
    role: str
    goal: str
    factors: List[RubricFactor]
    min_clip_duration: float = 15
    max_clip_duration: float = 90
    score_policy: ScorePolicy = "threshold"
    min_viral_score: Optional[float] = 50
    target_count: Optional[int] = 10
    high_score_threshold: float = 70
    max_additional_clips: int = 5

    @property
    def factor_names(self) -> List[str]:
        return [f.name for f in self.factors]

    def resolve_options(self, options: Optional[AnalyzeOptions] = None) -> ClipPolicy:
        opts = options or AnalyzeOptions()
        policy = opts.score_policy or self.score_policy

        min_score = opts.min_viral_score
        if min_score is None and policy == "threshold":
            min_score = self.min_viral_score

        target = opts.target_count
        if target is None and policy == "threshold":
            target = self.target_count

        return ClipPolicy(
            rubric=self.name,
            min_clip_duration=opts.min_clip_duration or self.min_clip_duration,
            max_clip_duration=opts.max_clip_duration or self.max_clip_duration,
            content_type=opts.content_type,
            score_policy=policy,
            min_viral_score=min_score,
            target_count=target,
            high_score_threshold=self.high_score_threshold,
            max_additional_clips=self.max_additional_clips,
        )


VIRAL_RUBRIC = Rubric(
    name="viral",
    role="an expert content strategist and viral video analyst",
    goal=(
        "identify moments with high viral potential for short-form content "
        "(TikTok, Instagram Reels, YouTube Shorts)"
    ),
    factors=[
        RubricFactor(name="hook", description="Strong opening that stops the scroll in the first 3 seconds"),
        RubricFactor(name="emotion", description="Emotional triggers: surprise, joy, anger, fear, curiosity"),
        RubricFactor(name="controversy", description="Polarizing statements that drive comments"),
        RubricFactor(name="insight", description="Unique information or an 'aha moment' worth sharing"),
        RubricFactor(name="storytelling", description="A complete micro-story with setup, conflict and resolution"),
        RubricFactor(name="cliffhanger", description="Creates curiosity that keeps viewers to the end"),
        RubricFactor(name="humor", description="Entertainment value"),
    ],
    min_clip_duration=15,
    max_clip_duration=90,
    score_policy="threshold",
    min_viral_score=50,
    target_count=10,
)

MENTORSHIP_RUBRIC = Rubric(
    name="mentorship",
    role="an editor who cuts mentorship and coaching conversations into short-form lessons",
    goal="find self-contained moments where real, applicable advice is given",
    factors=[
        RubricFactor(name="insight", weight=25, description="Non-obvious lesson or perspective"),
        RubricFactor(name="raw", weight=20, description="Honest, unpolished, personal delivery"),
        RubricFactor(name="actionable", weight=20, description="The viewer can apply it today"),
        RubricFactor(name="hook", weight=15, description="The first line earns the next ten seconds"),
        RubricFactor(name="relatable", weight=10, description="A struggle the audience recognizes"),
        RubricFactor(name="standalone", weight=10, description="Makes sense without the rest of the conversation"),
    ],
    min_clip_duration=30,
    max_clip_duration=90,
    score_policy="tiered",
    min_viral_score=None,
    target_count=None,
    high_score_threshold=70,
    max_additional_clips=5,
)

RUBRICS: Dict[str, Rubric] = {r.name: r for r in (VIRAL_RUBRIC, MENTORSHIP_RUBRIC)}


def get_rubric(name: str) -> Rubric:
    try:
        return RUBRICS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown rubric '{name}'. Available: {', '.join(RUBRICS)}") from None
