import json
from typing import Optional

from autoclipper_core.intelligence.models import ClipPolicy
from autoclipper_core.intelligence.rubrics import Rubric

SYSTEM_PROMPT_TEMPLATE = """
You are {role}. Your task is to analyze video transcripts and {goal}.

### Scoring Criteria (each 0-100)
{factor_lines}

### Constraints
1.  **Duration:** Every clip MUST be between **{min_duration} seconds** and **{max_duration} seconds** long.
2.  **Completeness:** The clip must have a clear beginning and end. Do not cut off sentences.
3.  **Standalone:** The clip must make sense without the rest of the video.
4.  **Timestamps:** Use the [M:SS] timestamps of the transcript, converted to seconds.

### Output
You MUST respond with a valid JSON array only. No prose, no markdown, no explanations outside the JSON.
""".strip()

USER_PROMPT_TEMPLATE = """
Analyze this transcript and find the moments that best fit the scoring criteria.

TRANSCRIPT:
{transcript}

REQUIREMENTS:
- {selection_line}
- Every clip MUST be between {min_duration} and {max_duration} seconds long (endTime - startTime)
- Each clip must make sense as standalone content
- Prioritize by score, not chronological order
- Content type: {content_type}. {content_guidance}

Respond with a JSON array of clips. Each clip must have:
- startTime: number (seconds from transcript timestamps)
- endTime: number (seconds)
- text: string (the actual transcript text for this clip)
- viralScore: number (0-100)
- factors: object with scores for: {factor_names} (each 0-100)
- suggestedTitle: string (catchy title for the clip)
- hashtags: array of 3-5 relevant hashtags
- reasoning: string (brief explanation of the score)
- hookSuggestion: string (optional, a stronger opening line or caption hook)
- segments: optional array of {{startTime, endTime, text, order}} when the clip stitches
  together several non-contiguous moments; "order" is the playback position starting at 0

Example response format:
{example}

Return ONLY the JSON array, no other text.
""".strip()

CONTENT_TYPE_GUIDANCE = {
    "general": "Look for natural clip boundaries such as topic changes, pauses and emphasis.",
    "podcast": "Favor complete exchanges between hosts and guests; avoid clips that start mid-answer.",
    "interview": "Favor a question followed by its full answer, or a single revealing answer.",
    "tutorial": "Favor a single tip or step that is fully explained, with its result.",
    "vlog": "Favor reactions, reveals and moments of personal storytelling.",
}


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _example_clip(rubric: Rubric, policy: Optional[ClipPolicy] = None) -> str:
    start = 45.0
    duration = policy.min_clip_duration if policy else rubric.min_clip_duration
    example = {
        "startTime": start,
        "endTime": start + max(duration, 30),
        "text": "And that's when I realized everything I believed was wrong...",
        "viralScore": 92,
        "factors": {name: 80 for name in rubric.factor_names},
        "suggestedTitle": "The moment that changed everything",
        "hashtags": ["#mindblown", "#storytime", "#realization"],
        "reasoning": "Strong emotional revelation with a clear setup and payoff.",
    }
    return json.dumps([example], indent=2)


def _factor_lines(rubric: Rubric) -> str:
    lines = []
    for factor in rubric.factors:
        name = factor.name if factor.weight is None else f"{factor.name} ({factor.weight}%)"
        lines.append(f"-   **{name}:** {factor.description}")
    return "\n".join(lines)


def build_system_prompt(
    rubric: Rubric,
    min_duration: Optional[float] = None,
    max_duration: Optional[float] = None,
) -> str:
    """
    Renders the fixed system prompt for a rubric.

    The duration window is stated here and again in the user prompt; models
    drift on numeric constraints that appear only once.
    """
    return SYSTEM_PROMPT_TEMPLATE.format(
        role=rubric.role,
        goal=rubric.goal,
        factor_lines=_factor_lines(rubric),
        min_duration=_format_number(min_duration if min_duration is not None else rubric.min_clip_duration),
        max_duration=_format_number(max_duration if max_duration is not None else rubric.max_clip_duration),
    )


def _selection_line(policy: ClipPolicy, target_count: Optional[int]) -> str:
    if target_count is not None:
        line = f"Find {target_count} clips"
        if policy.min_viral_score is not None:
            line += f" with a viralScore of at least {_format_number(policy.min_viral_score)}"
        return line
    if policy.min_viral_score is not None:
        return f"Find every clip with a viralScore of at least {_format_number(policy.min_viral_score)}"
    return "Find every candidate clip and score each one honestly; low scores are acceptable, the editor decides"


def build_user_prompt(
    transcript_text: str,
    policy: ClipPolicy,
    rubric: Rubric,
    target_count: Optional[int] = None,
) -> str:
    """Renders the per-chunk user prompt. ``target_count`` overrides ``policy.target_count``."""
    count = target_count if target_count is not None else policy.target_count
    return USER_PROMPT_TEMPLATE.format(
        transcript=transcript_text,
        selection_line=_selection_line(policy, count),
        min_duration=_format_number(policy.min_clip_duration),
        max_duration=_format_number(policy.max_clip_duration),
        content_type=policy.content_type,
        content_guidance=CONTENT_TYPE_GUIDANCE[policy.content_type],
        factor_names=", ".join(rubric.factor_names),
        example=_example_clip(rubric, policy),
    )
