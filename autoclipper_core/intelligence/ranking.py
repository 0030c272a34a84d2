"""
Validation, ranking and overlap resolution of candidate clips.

``dedupe`` is greedy: clips are taken in descending score order and kept
unless one of their segments intersects a segment already kept. It favors
high-score clips but does not maximize total score or clip count.
``dedupe_optimal`` solves weighted interval scheduling exactly over clip spans
and can be selected with ``overlap_strategy="optimal"``.
"""
import bisect
from typing import List, Literal

from autoclipper_core.intelligence.models import ClipPolicy, ClipSegment, ViralClip

OverlapStrategy = Literal["greedy", "optimal"]


def has_valid_bounds(clip: ViralClip, policy: ClipPolicy) -> bool:
    duration = clip.end_time - clip.start_time
    return (
        clip.start_time >= 0
        and clip.end_time > clip.start_time
        and duration >= policy.min_clip_duration
        and duration <= policy.max_clip_duration
    )


def meets_score_threshold(clip: ViralClip, policy: ClipPolicy) -> bool:
    if policy.min_viral_score is None:
        return True
    return clip.viral_score >= policy.min_viral_score


def is_valid(clip: ViralClip, policy: ClipPolicy) -> bool:
    """Duration window is inclusive on both ends; the score floor applies only when configured."""
    return has_valid_bounds(clip, policy) and meets_score_threshold(clip, policy)


def rank(clips: List[ViralClip]) -> List[ViralClip]:
    """Descending by score; ties keep their input order."""
    return sorted(clips, key=lambda clip: -clip.viral_score)


def _intersects(a: ClipSegment, b: ClipSegment) -> bool:
    return a.start_time < b.end_time and a.end_time > b.start_time


def clips_overlap(a: ViralClip, b: ViralClip) -> bool:
    return any(_intersects(sa, sb) for sa in a.segments for sb in b.segments)


def dedupe(ranked_clips: List[ViralClip]) -> List[ViralClip]:
    accepted: List[ViralClip] = []
    for clip in ranked_clips:
        if not any(clips_overlap(clip, kept) for kept in accepted):
            accepted.append(clip)
    return accepted


def dedupe_optimal(clips: List[ViralClip]) -> List[ViralClip]:
    """
    Maximum total score subset of clips whose [start, end] spans are pairwise
    disjoint, in O(n log n). Spans are used instead of segments, so a stitched
    clip blocks the gaps between its segments as well.
    """
    if not clips:
        return []

    positions = {id(clip): index for index, clip in enumerate(clips)}
    by_end = sorted(clips, key=lambda clip: (clip.end_time, positions[id(clip)]))
    ends = [clip.end_time for clip in by_end]

    # best[j] = best total score using the first j clips of by_end
    best = [0.0] * (len(by_end) + 1)
    previous = [0] * len(by_end)
    for j, clip in enumerate(by_end):
        previous[j] = bisect.bisect_right(ends, clip.start_time, 0, j)
        best[j + 1] = max(best[j], best[previous[j]] + clip.viral_score)

    chosen = []
    j = len(by_end)
    while j > 0:
        clip = by_end[j - 1]
        if best[previous[j - 1]] + clip.viral_score > best[j - 1]:
            chosen.append(clip)
            j = previous[j - 1]
        else:
            j -= 1

    return sorted(chosen, key=lambda clip: (-clip.viral_score, positions[id(clip)]))


def apply_output_policy(ranked_clips: List[ViralClip], policy: ClipPolicy) -> List[ViralClip]:
    """Truncates to ``target_count`` or, for the tiered policy, keeps every high-tier clip plus a capped remainder."""
    if policy.score_policy == "tiered":
        high = [c for c in ranked_clips if c.viral_score >= policy.high_score_threshold]
        rest = [c for c in ranked_clips if c.viral_score < policy.high_score_threshold]
        selected = rank(high + rest[: policy.max_additional_clips])
    else:
        selected = list(ranked_clips)

    if policy.target_count is not None:
        selected = selected[: policy.target_count]
    return selected


def select_clips(
    clips: List[ViralClip],
    policy: ClipPolicy,
    overlap_strategy: OverlapStrategy = "greedy",
) -> List[ViralClip]:
    """Filter, rank, resolve overlaps and apply the output policy."""
    ranked = rank([clip for clip in clips if is_valid(clip, policy)])
    if overlap_strategy == "optimal":
        deduped = dedupe_optimal(ranked)
    else:
        deduped = dedupe(ranked)
    return apply_output_policy(deduped, policy)
