import itertools

from conftest import FakeBackend, clip_json, make_long_segments, reply_with

from autoclipper_core.config_manager import ConfigManager
from autoclipper_core.errors import BackendUnavailableError, ConfigurationError, EmptyResponseError, ErrorKind
from autoclipper_core.intelligence.curator import ContentCurator
from autoclipper_core.intelligence.events import (
    CancelledEvent,
    ClipFoundEvent,
    CompleteEvent,
    ErrorEvent,
    ProgressEvent,
)
from autoclipper_core.intelligence.models import AnalyzeOptions
from autoclipper_core.intelligence.operation import AnalysisOperation
from autoclipper_core.transcription.models import TranscriptSegment

OPTIONS = AnalyzeOptions(min_clip_duration=15, max_clip_duration=90)


def chunked_config(**analysis):
    settings = {"max_chunk_chars": 2000, "overlap_seconds": 30, "analysis_timeout_seconds": None}
    settings.update(analysis)
    return ConfigManager.from_defaults(
        {"llm": {"provider": "ollama", "max_retries": 0, "retry_backoff_seconds": 0}, "analysis": settings}
    )


def test_format_transcript(config_manager):
    curator = ContentCurator(config_manager, backend=FakeBackend([]))
    formatted = curator._format_transcript(
        [
            TranscriptSegment(start=5.0, end=10.0, text="This is a test.", speaker="SPEAKER_00"),
            TranscriptSegment(start=0.0, end=5.0, text="Hello world."),
        ]
    )
    assert formatted == "[0:00] Hello world.\n[0:05] SPEAKER_00: This is a test."


def test_end_to_end_single_clip(config_manager, short_segments):
    backend = FakeBackend([reply_with(clip_json(5, 35, 92))])
    result = ContentCurator(config_manager, backend=backend).analyze(short_segments, OPTIONS)

    assert result.status == "complete"
    assert len(result.clips) == 1
    assert (result.clips[0].start_time, result.clips[0].end_time) == (5, 35)
    assert result.model == "fake-model"
    assert "[0:12] I lost everything in one week." in backend.prompts[0]


def test_events_end_with_complete_and_progress_is_monotonic(config_manager, short_segments):
    backend = FakeBackend([reply_with(clip_json(5, 35, 92), clip_json(0, 3, 99))])
    events = list(ContentCurator(config_manager, backend=backend).analyze_events(short_segments, OPTIONS))

    assert isinstance(events[-1], CompleteEvent)
    progress = [e.progress for e in events if isinstance(e, ProgressEvent)]
    assert progress == sorted(progress)
    assert progress[-1] == 100
    assert any(e.message == "Ranking and filtering clips..." for e in events if isinstance(e, ProgressEvent))
    found = [e for e in events if isinstance(e, ClipFoundEvent)]
    assert [e.clip.start_time for e in found] == [5]


def test_multi_chunk_aggregates_and_dedupes():
    segments = make_long_segments()
    replies = [reply_with(clip_json(100, 130, 80)), reply_with(clip_json(110, 140, 90))]
    backend = FakeBackend(replies)
    result = ContentCurator(chunked_config(), backend=backend).analyze(segments, OPTIONS)

    assert len(backend.prompts) > 2
    assert result.status == "complete"
    assert [(c.start_time, c.viral_score) for c in result.clips] == [(110, 90)]


def test_per_chunk_target_is_split_across_chunks():
    backend = FakeBackend([])
    ContentCurator(chunked_config(), backend=backend).analyze(make_long_segments(), OPTIONS)
    chunks = len(backend.prompts)
    expected = -(-10 // chunks) + 2
    assert f"Find {expected} clips" in backend.prompts[0]


def test_relative_time_reference_shifts_clips_back():
    segments = make_long_segments()
    backend = FakeBackend([reply_with(clip_json(0, 20, 10)), reply_with(clip_json(0, 20, 80))])
    result = ContentCurator(chunked_config(time_reference="relative"), backend=backend).analyze(segments, OPTIONS)

    assert "[0:00]" in backend.prompts[1]
    clip = result.clips[0]
    assert clip.viral_score == 80
    assert clip.start_time > 0


def test_failed_chunk_is_skipped():
    segments = make_long_segments()
    backend = FakeBackend([BackendUnavailableError("boom"), reply_with(clip_json(400, 430, 75))])
    result = ContentCurator(chunked_config(), backend=backend).analyze(segments, OPTIONS)

    assert result.status == "complete"
    assert [c.start_time for c in result.clips] == [400]


def test_all_chunks_failing_reports_backend_error(config_manager, short_segments):
    backend = FakeBackend([BackendUnavailableError("connection refused")])
    result = ContentCurator(config_manager, backend=backend).analyze(short_segments, OPTIONS)

    assert result.status == "error"
    assert result.error.kind == ErrorKind.BACKEND_UNAVAILABLE
    assert result.error.detail == "connection refused"


def test_empty_response_is_reported(config_manager, short_segments):
    backend = FakeBackend([EmptyResponseError()])
    result = ContentCurator(config_manager, backend=backend).analyze(short_segments, OPTIONS)
    assert result.error.kind == ErrorKind.EMPTY_RESPONSE


def test_configuration_error_is_fatal():
    segments = make_long_segments()
    backend = FakeBackend([ConfigurationError("bad key"), reply_with(clip_json(400, 430, 75))])
    result = ContentCurator(chunked_config(), backend=backend).analyze(segments, OPTIONS)

    assert result.error.kind == ErrorKind.CONFIGURATION
    assert len(backend.prompts) == 1


def test_missing_credentials_surface_as_configuration_error(short_segments):
    config = ConfigManager.from_defaults({"llm": {"provider": "openrouter", "openrouter_api_key": None}})
    result = ContentCurator(config).analyze(short_segments, OPTIONS)
    assert result.status == "error"
    assert result.error.kind == ErrorKind.CONFIGURATION


def test_no_clips_found_carries_raw_output(config_manager, short_segments):
    raw = reply_with(clip_json(5, 8, 90))
    result = ContentCurator(config_manager, backend=FakeBackend([raw])).analyze(short_segments, OPTIONS)

    assert result.status == "error"
    assert result.error.kind == ErrorKind.NO_CLIPS_FOUND
    assert result.error.raw_output == raw


def test_unparseable_output_is_no_clips_found(config_manager, short_segments):
    result = ContentCurator(config_manager, backend=FakeBackend(["I cannot help with that."])).analyze(
        short_segments, OPTIONS
    )
    assert result.error.kind == ErrorKind.NO_CLIPS_FOUND
    assert result.error.raw_output == "I cannot help with that."


def test_cancel_after_first_chunk_stops_requests():
    segments = make_long_segments()
    operation = AnalysisOperation()

    def cancel_on_first(call_number):
        if call_number == 1:
            operation.cancel()

    backend = FakeBackend([reply_with(clip_json(100, 130, 80))] * 5, on_call=cancel_on_first)
    events = list(ContentCurator(chunked_config(), backend=backend).analyze_events(segments, OPTIONS, operation))

    assert len(backend.prompts) == 1
    assert isinstance(events[-1], CancelledEvent)
    assert not any(isinstance(e, CompleteEvent) for e in events)


def test_cancel_before_final_result(config_manager, short_segments):
    operation = AnalysisOperation()
    backend = FakeBackend([reply_with(clip_json(5, 35, 92))], on_call=lambda n: operation.cancel())
    result = ContentCurator(config_manager, backend=backend).analyze(short_segments, OPTIONS, operation)
    assert result.status == "cancelled"
    assert result.clips == []


def test_overall_timeout(mocker, short_segments):
    config = chunked_config(analysis_timeout_seconds=5)
    fake_time = mocker.patch("autoclipper_core.intelligence.curator.time")
    fake_time.monotonic.side_effect = itertools.chain([0.0], itertools.repeat(10.0))
    result = ContentCurator(config, backend=FakeBackend([])).analyze(short_segments, OPTIONS)
    assert result.error.kind == ErrorKind.TIMEOUT


def test_streaming_reports_token_progress(short_segments):
    config = ConfigManager.from_defaults(
        {
            "llm": {"provider": "ollama", "stream": True, "max_retries": 0, "max_tokens": 1000},
            "analysis": {"analysis_timeout_seconds": None},
        }
    )
    reply = reply_with(clip_json(5, 35, 92, reasoning="r" * 400))
    events = list(ContentCurator(config, backend=FakeBackend([reply])).analyze_events(short_segments, OPTIONS))

    token_events = [e for e in events if isinstance(e, ProgressEvent) and e.tokens_received]
    assert token_events
    assert token_events[0].tokens_received == 25
    assert isinstance(events[-1], CompleteEvent)
    assert events[-1].clips[0].start_time == 5


def test_mentorship_rubric_shows_all_tiers(short_segments):
    config = ConfigManager.from_defaults(
        {"llm": {"max_retries": 0}, "analysis": {"rubric": "mentorship", "analysis_timeout_seconds": None}}
    )
    backend = FakeBackend([reply_with(clip_json(0, 30, 12, factors={"raw": 40}))])
    result = ContentCurator(config, backend=backend).analyze(short_segments)

    assert result.status == "complete"
    assert result.clips[0].viral_score == 12
    assert set(result.clips[0].factors) == {"insight", "raw", "actionable", "hook", "relatable", "standalone"}


def test_error_event_uses_user_facing_message(config_manager, short_segments):
    events = list(
        ContentCurator(config_manager, backend=FakeBackend([BackendUnavailableError("x")])).analyze_events(
            short_segments, OPTIONS
        )
    )
    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].error.startswith("Could not reach the AI backend")


def test_empty_transcript(config_manager):
    result = ContentCurator(config_manager, backend=FakeBackend([])).analyze([], OPTIONS)
    assert result.error.kind == ErrorKind.NO_CLIPS_FOUND


def final_events(events):
    return [e for e in events if isinstance(e, (CompleteEvent, ErrorEvent, CancelledEvent))]


def test_huge_factor_still_completes(config_manager, short_segments):
    reply = reply_with(clip_json(5, 35, 92, factors={"hook": 10 ** 400}))
    events = list(ContentCurator(config_manager, backend=FakeBackend([reply])).analyze_events(short_segments, OPTIONS))

    assert len(final_events(events)) == 1
    assert isinstance(events[-1], CompleteEvent)
    assert events[-1].clips[0].factors["hook"] == 0.0


def test_parser_crash_becomes_no_clips_found(mocker, config_manager, short_segments):
    mocker.patch(
        "autoclipper_core.intelligence.curator.ResponseParser.parse",
        side_effect=OverflowError("int too large to convert to float"),
    )
    backend = FakeBackend([reply_with(clip_json(5, 35, 92))])
    events = list(ContentCurator(config_manager, backend=backend).analyze_events(short_segments, OPTIONS))

    assert len(final_events(events)) == 1
    assert isinstance(events[-1], ErrorEvent)
    assert events[-1].kind == ErrorKind.NO_CLIPS_FOUND


def test_undecodable_output_emits_one_final_event(config_manager, short_segments):
    raw = '[{"startTime": ' + "9" * 5000 + ', "endTime": ]]]'
    events = list(ContentCurator(config_manager, backend=FakeBackend([raw])).analyze_events(short_segments, OPTIONS))
    assert len(final_events(events)) == 1
    assert events[-1] is final_events(events)[0]


def test_no_parseable_clips_detail(config_manager, short_segments):
    result = ContentCurator(config_manager, backend=FakeBackend(["Nothing stood out."])).analyze(
        short_segments, OPTIONS
    )
    assert result.error.detail == "The model returned no parseable clips."


def test_rejected_clips_detail_names_the_window(config_manager, short_segments):
    result = ContentCurator(config_manager, backend=FakeBackend([reply_with(clip_json(5, 8, 90))])).analyze(
        short_segments, OPTIONS
    )
    assert result.error.detail.startswith("1 candidate clip(s) returned, none passed the 15-90s duration window")
