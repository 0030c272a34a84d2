"""
Tolerant parsing of model output into ``ViralClip`` objects.

Models wrap the requested JSON array in reasoning blocks, markdown fences and
chatty prose, cut it off at the token limit, leave trailing commas in it and
return numbers as strings. ``ResponseParser.parse`` strips what it can, repairs
the array with ``json_repair``, validates every element through ``RawClip`` and
drops the elements that cannot be repaired. It never raises.
"""
import json
import math
import re
from typing import Any, Dict, List, Optional

import json_repair
from loguru import logger
from pydantic import BaseModel, ValidationError, field_validator

from autoclipper_core.intelligence.models import ClipSegment, ViralClip
from autoclipper_core.intelligence.rubrics import Rubric
from autoclipper_core.utils.timecode import parse_timestamp

# Closing delimiters of reasoning blocks emitted by thinking models
THINKING_CLOSERS = ("</think>", "</thinking>", "</reasoning>", "◁/think▷")
ARRAY_START_RE = re.compile(r"\[\s*\{")
UNTITLED = "Untitled Clip"

_decoder = json.JSONDecoder()


def _to_number(value: Any, allow_timecode: bool = False) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError("not a number")
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            raise ValueError("number out of range") from None
    elif isinstance(value, str):
        text = value.strip()
        try:
            number = float(text)
        except ValueError:
            parsed = parse_timestamp(text) if allow_timecode else None
            if parsed is None:
                raise ValueError(f"not a number: {value!r}") from None
            number = parsed
    else:
        raise ValueError(f"not a number: {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise ValueError("not a finite number")
    return number


def _clamp_score(value: float) -> float:
    return min(100.0, max(0.0, value))


class RawSegment(BaseModel):
    startTime: float
    endTime: float
    text: str = ""
    order: Optional[float] = None

    @field_validator("startTime", "endTime", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> float:
        return _to_number(value, allow_timecode=True)

    @field_validator("order", mode="before")
    @classmethod
    def _coerce_order(cls, value: Any) -> Optional[float]:
        try:
            return _to_number(value)
        except ValueError:
            return None

    @field_validator("text", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


class RawClip(BaseModel):
    """Schema for one element of the model's JSON array, with coercion rules."""

    startTime: float
    endTime: float
    viralScore: float
    text: str = ""
    factors: Dict[str, Any] = {}
    suggestedTitle: str = UNTITLED
    hashtags: List[str] = []
    reasoning: str = ""
    hookSuggestion: Optional[str] = None
    segments: List[Any] = []

    @field_validator("startTime", "endTime", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> float:
        return _to_number(value, allow_timecode=True)

    @field_validator("viralScore", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> float:
        return _to_number(value)

    @field_validator("text", "reasoning", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("suggestedTitle", mode="before")
    @classmethod
    def _coerce_title(cls, value: Any) -> str:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return UNTITLED

    @field_validator("hookSuggestion", mode="before")
    @classmethod
    def _coerce_hook(cls, value: Any) -> Optional[str]:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @field_validator("hashtags", mode="before")
    @classmethod
    def _coerce_hashtags(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(tag) for tag in value if isinstance(tag, (str, int, float)) and str(tag).strip()]

    @field_validator("factors", mode="before")
    @classmethod
    def _coerce_factors(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("segments", mode="before")
    @classmethod
    def _coerce_segments(cls, value: Any) -> List[Any]:
        return value if isinstance(value, list) else []


def strip_reasoning(text: str) -> str:
    """Drops everything up to and including the last reasoning-block closer."""
    cut = -1
    for closer in THINKING_CLOSERS:
        index = text.rfind(closer)
        if index != -1:
            cut = max(cut, index + len(closer))
    return text[cut:] if cut != -1 else text


def _array_starts(text: str) -> List[int]:
    # An array of objects wins over a bracketed "[1:05]" in the prose around it
    starts = []
    match = ARRAY_START_RE.search(text)
    if match:
        starts.append(match.start())
    first = text.find("[")
    if first != -1 and first not in starts:
        starts.append(first)
    return starts


def _repair_spans(text: str, start: int) -> List[str]:
    end = text.rfind("]")
    spans = [text[start:end + 1]] if end > start else []
    # Output cut off at the token limit has no closing bracket at all
    spans.append(text[start:])
    return spans


def extract_json_array(text: str) -> Optional[List[Any]]:
    """
    Returns the decoded JSON array found in ``text``, or None.

    Each candidate start is first decoded strictly, which ignores any prose
    after the array. Failing that, the span is handed to ``json_repair``,
    which closes truncated output and drops trailing commas.
    """
    starts = _array_starts(text)

    for start in starts:
        try:
            parsed, _ = _decoder.raw_decode(text, start)
        except (ValueError, RecursionError):
            continue
        if isinstance(parsed, list):
            return parsed

    for start in starts:
        for span in _repair_spans(text, start):
            try:
                repaired = json_repair.loads(span)
            except Exception as e:
                logger.debug(f"JSON repair failed at offset {start}: {e}")
                continue
            if isinstance(repaired, list):
                return repaired
    return None


class ResponseParser:
    def __init__(self, rubric: Rubric):
        self.rubric = rubric

    def parse(self, raw_text: str, time_offset: float = 0.0) -> List[ViralClip]:
        """Parses model output into clips, shifting every time by ``time_offset``."""
        if not raw_text or not raw_text.strip():
            logger.warning("Empty model response, no clips to parse.")
            return []

        body = strip_reasoning(raw_text)
        parsed = extract_json_array(body)
        if parsed is None:
            logger.warning(f"No JSON array found in model response. Preview: {raw_text[:200]!r}")
            return []

        clips = []
        for index, item in enumerate(parsed):
            if not isinstance(item, dict):
                logger.debug(f"Skipping non-object clip entry #{index}")
                continue
            try:
                raw = RawClip.model_validate(item)
                clips.append(self._build_clip(raw, time_offset))
            except ValidationError as e:
                logger.debug(f"Skipping clip entry #{index}: {e.error_count()} invalid field(s)")
            except Exception as e:
                logger.warning(f"Skipping clip entry #{index}: {type(e).__name__}: {e}")

        logger.debug(f"Parsed {len(clips)} clip(s) from {len(parsed)} entries.")
        return clips

    def _normalize_factors(self, factors: Dict[str, Any]) -> Dict[str, float]:
        normalized = {}
        for name in self.rubric.factor_names:
            try:
                normalized[name] = _clamp_score(_to_number(factors.get(name)))
            except ValueError:
                normalized[name] = 0.0
        return normalized

    def _normalize_segments(self, raw: RawClip, time_offset: float) -> List[ClipSegment]:
        indexed = []
        for position, item in enumerate(raw.segments):
            if not isinstance(item, dict):
                continue
            try:
                seg = RawSegment.model_validate(item)
            except (ValidationError, ValueError):
                continue
            indexed.append((seg.order if seg.order is not None else float(position), position, seg))

        if not indexed:
            return [
                ClipSegment(
                    start_time=raw.startTime + time_offset,
                    end_time=raw.endTime + time_offset,
                    text=raw.text,
                    order=0,
                )
            ]

        # Stable on the model's position, then renumbered so orders are unique
        indexed.sort(key=lambda entry: (entry[0], entry[1]))
        return [
            ClipSegment(
                start_time=seg.startTime + time_offset,
                end_time=seg.endTime + time_offset,
                text=seg.text,
                order=order,
            )
            for order, (_, _, seg) in enumerate(indexed)
        ]

    def _build_clip(self, raw: RawClip, time_offset: float) -> ViralClip:
        segments = self._normalize_segments(raw, time_offset)
        is_reordered = len(segments) > 1 and any(
            later.start_time < earlier.start_time for earlier, later in zip(segments, segments[1:])
        )

        start_time = min(s.start_time for s in segments)
        end_time = max(s.end_time for s in segments)
        text = raw.text or " ".join(s.text for s in segments if s.text)

        return ViralClip(
            start_time=start_time,
            end_time=end_time,
            text=text,
            viral_score=_clamp_score(raw.viralScore),
            factors=self._normalize_factors(raw.factors),
            segments=segments,
            is_reordered=is_reordered,
            suggested_title=raw.suggestedTitle,
            hashtags=raw.hashtags,
            reasoning=raw.reasoning,
            hook_suggestion=raw.hookSuggestion,
        )
