import json

import pytest
from conftest import clip_json, reply_with

from autoclipper_core.intelligence.parser import ResponseParser, extract_json_array, strip_reasoning
from autoclipper_core.intelligence.rubrics import MENTORSHIP_RUBRIC, VIRAL_RUBRIC


@pytest.fixture
def parser():
    return ResponseParser(VIRAL_RUBRIC)


def test_garbage_returns_empty(parser):
    assert parser.parse("garbage") == []
    assert parser.parse("") == []
    assert parser.parse("[not json at all]") == []
    assert parser.parse('{"startTime": 1}') == []


def test_thinking_block_is_discarded(parser):
    raw = "<think>Maybe [0:05] to [0:35]? Let me think...</think>" + reply_with(clip_json(5, 35, 92))
    clips = parser.parse(raw)
    assert len(clips) == 1
    assert clips[0].start_time == 5
    assert clips[0].end_time == 35


def test_markdown_fences_and_prose_are_tolerated(parser):
    raw = "Sure! Here are the clips:\n```json\n" + reply_with(clip_json(10, 40, 80)) + "\n```\nHope this helps."
    clips = parser.parse(raw)
    assert [c.viral_score for c in clips] == [80]


def test_bracketed_prose_before_array_falls_back_to_object_array(parser):
    raw = "The best part starts at [1:05].\n" + reply_with(clip_json(65, 95, 70))
    clips = parser.parse(raw)
    assert len(clips) == 1
    assert clips[0].start_time == 65


def test_numeric_strings_are_coerced(parser):
    raw = '[{"startTime":"10","endTime":"20","viralScore":"80","text":"hi"}]'
    clips = parser.parse(raw)
    assert len(clips) == 1
    assert clips[0].start_time == 10.0
    assert clips[0].end_time == 20.0
    assert clips[0].viral_score == 80.0


def test_timecode_strings_are_accepted_for_times(parser):
    clips = parser.parse(reply_with(clip_json("1:00", "1:45", 75)))
    assert (clips[0].start_time, clips[0].end_time) == (60, 105)


def test_non_numeric_entries_are_dropped(parser):
    raw = reply_with(
        clip_json("soon", 20, 80),
        clip_json(10, None, 80),
        clip_json(10, 20, "high"),
        clip_json(10, 20, True),
        clip_json(30, 60, 55),
    )
    clips = parser.parse(raw)
    assert len(clips) == 1
    assert clips[0].start_time == 30


@pytest.mark.parametrize("raw_score,stored", [(150, 100), (-5, 0), (42.5, 42.5)])
def test_score_is_clamped(parser, raw_score, stored):
    clips = parser.parse(reply_with(clip_json(0, 20, raw_score)))
    assert clips[0].viral_score == stored


def test_time_offset_is_added(parser):
    clips = parser.parse(reply_with(clip_json(5, 35, 90)), time_offset=600)
    assert (clips[0].start_time, clips[0].end_time) == (605, 635)
    assert (clips[0].segments[0].start_time, clips[0].segments[0].end_time) == (605, 635)


def test_defaults_for_missing_fields(parser):
    clips = parser.parse('[{"startTime": 1, "endTime": 30, "viralScore": 60}]')
    clip = clips[0]
    assert clip.suggested_title == "Untitled Clip"
    assert clip.hashtags == []
    assert clip.reasoning == ""
    assert clip.hook_suggestion is None
    assert clip.factors == {name: 0.0 for name in VIRAL_RUBRIC.factor_names}


def test_factors_follow_the_rubric():
    parser = ResponseParser(MENTORSHIP_RUBRIC)
    factors = {"insight": "90", "raw": 70, "actionable": 130, "humor": 99}
    clips = parser.parse(reply_with(clip_json(0, 40, 88, factors=factors)))
    assert clips[0].factors == {
        "insight": 90.0,
        "raw": 70.0,
        "actionable": 100.0,
        "hook": 0.0,
        "relatable": 0.0,
        "standalone": 0.0,
    }


def test_missing_segments_synthesize_one(parser):
    clips = parser.parse(reply_with(clip_json(5, 35, 90, text="whole thing")))
    segments = clips[0].segments
    assert len(segments) == 1
    assert (segments[0].start_time, segments[0].end_time, segments[0].order) == (5, 35, 0)
    assert segments[0].text == "whole thing"
    assert clips[0].is_reordered is False


def test_segments_sorted_by_order_and_reordering_flagged(parser):
    segments = [
        {"startTime": 100, "endTime": 110, "text": "payoff", "order": 1},
        {"startTime": 200, "endTime": 215, "text": "hook", "order": 0},
    ]
    clips = parser.parse(reply_with(clip_json(0, 0, 85, segments=segments)))
    clip = clips[0]
    assert [s.text for s in clip.segments] == ["hook", "payoff"]
    assert [s.order for s in clip.segments] == [0, 1]
    assert clip.is_reordered is True
    assert clip.start_time == 100
    assert clip.end_time == 215


def test_chronological_segments_are_not_reordered(parser):
    segments = [
        {"startTime": 10, "endTime": 20, "order": 0},
        {"startTime": 50, "endTime": 60, "order": 1},
    ]
    clip = parser.parse(reply_with(clip_json(10, 60, 85, segments=segments)))[0]
    assert clip.is_reordered is False


def test_strip_reasoning_variants():
    assert strip_reasoning("<thinking>x</thinking>[1]") == "[1]"
    assert strip_reasoning("no reasoning here") == "no reasoning here"


def test_extract_json_array():
    assert extract_json_array("x [1, 2] y") == [1, 2]
    assert extract_json_array('{"a": 1}') is None
    assert extract_json_array("]") is None


def test_parse_does_not_raise_on_odd_shapes(parser):
    raw = json.dumps([1, "two", None, clip_json(0, 20, 50, hashtags="#nope", factors=[1, 2])])
    clips = parser.parse(raw)
    assert len(clips) == 1
    assert clips[0].hashtags == []


def test_huge_integer_time_skips_only_that_clip(parser):
    raw = '[{"startTime": 1' + "0" * 400 + ', "endTime": 20, "viralScore": 50}, ' + json.dumps(clip_json(30, 60, 70)) + "]"
    clips = parser.parse(raw)
    assert [c.start_time for c in clips] == [30]


def test_huge_factor_value_is_zeroed(parser):
    raw = reply_with(clip_json(0, 30, 80, factors={"hook": 10 ** 400, "humor": 55}))
    clips = parser.parse(raw)
    assert clips[0].factors["hook"] == 0.0
    assert clips[0].factors["humor"] == 55.0


def test_overlong_digit_string_does_not_raise(parser):
    raw = '[{"startTime": ' + "1" * 5000 + ', "endTime": 20, "viralScore": 50}]'
    assert isinstance(parser.parse(raw), list)


def test_unexpected_errors_skip_the_element(parser, mocker):
    original = parser._build_clip
    calls = []

    def flaky(raw, offset):
        calls.append(raw.startTime)
        if len(calls) == 1:
            raise RecursionError("deeply nested")
        return original(raw, offset)

    mocker.patch.object(parser, "_build_clip", side_effect=flaky)
    clips = parser.parse(reply_with(clip_json(0, 20, 50), clip_json(30, 60, 70)))
    assert [c.start_time for c in clips] == [30]


def test_trailing_comma_is_repaired(parser):
    clips = parser.parse('[{"startTime":10,"endTime":40,"viralScore":80},]')
    assert [(c.start_time, c.end_time) for c in clips] == [(10, 40)]


def test_truncated_output_keeps_complete_clips(parser):
    raw = reply_with(clip_json(10, 40, 80), clip_json(100, 130, 70))[:-30]
    clips = parser.parse(raw)
    assert clips
    assert (clips[0].start_time, clips[0].end_time, clips[0].viral_score) == (10, 40, 80)


def test_trailing_prose_with_brackets(parser):
    raw = reply_with(clip_json(10, 40, 80)) + "\nSee timestamps [0:10] and [0:40]."
    clips = parser.parse(raw)
    assert [(c.start_time, c.end_time) for c in clips] == [(10, 40)]


def test_extract_json_array_repairs_and_rejects():
    assert extract_json_array('[{"a": 1},]') == [{"a": 1}]
    assert extract_json_array('[{"a": 1}, {"b": 2') == [{"a": 1}, {"b": 2}]
    assert extract_json_array("no array here") is None
