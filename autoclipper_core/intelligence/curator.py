import math
import time
from typing import Callable, Generator, Iterator, List, Optional, Sequence

from loguru import logger

from autoclipper_core.backends.base import BaseBackend
from autoclipper_core.backends.factory import create_backend
from autoclipper_core.config_manager import ConfigManager
from autoclipper_core.errors import (
    AnalysisCancelled,
    AnalysisTimeoutError,
    AutoClipperError,
    BackendUnavailableError,
    EmptyResponseError,
    NoClipsFoundError,
)
from autoclipper_core.intelligence.client import ModelClient
from autoclipper_core.intelligence.events import (
    AnalysisEvent,
    AnalysisResult,
    CancelledEvent,
    ClipFoundEvent,
    CompleteEvent,
    ErrorEvent,
    ProgressEvent,
)
from autoclipper_core.intelligence.models import AnalyzeOptions, ClipPolicy, ViralClip
from autoclipper_core.intelligence.operation import AnalysisOperation
from autoclipper_core.intelligence.parser import ResponseParser
from autoclipper_core.intelligence.prompts import build_system_prompt, build_user_prompt
from autoclipper_core.intelligence.ranking import is_valid, select_clips
from autoclipper_core.intelligence.rubrics import get_rubric
from autoclipper_core.transcription.chunker import (
    chunk_transcript,
    estimate_tokens,
    format_transcript,
    rebase_chunk_text,
)
from autoclipper_core.transcription.models import TranscriptChunk, TranscriptSegment

# Chunk calls occupy 0-90%, ranking and filtering the rest
CHUNK_PROGRESS_SHARE = 90.0
RANKING_PROGRESS = 95.0
TOKEN_PROGRESS_INTERVAL = 25


class ProgressTracker:
    """Keeps reported progress monotonically non-decreasing."""

    def __init__(self) -> None:
        self.last = 0.0

    def event(self, progress: float, message: str, moments_found: int, **extra) -> ProgressEvent:
        self.last = max(self.last, min(100.0, progress))
        return ProgressEvent(progress=round(self.last, 1), message=message, moments_found=moments_found, **extra)


class ContentCurator:
    def __init__(
        self,
        config_manager: ConfigManager,
        backend: Optional[BaseBackend] = None,
        client: Optional[ModelClient] = None,
    ):
        self.llm_cfg = config_manager.llm
        self.cfg = config_manager.analysis
        self._backend = backend
        self._client = client

    def _get_client(self) -> ModelClient:
        """Builds the model client on first use so configuration errors surface as analysis errors."""
        if self._client is None:
            backend = self._backend or create_backend(self.llm_cfg)
            self._client = ModelClient.from_config(self.llm_cfg, backend)
        return self._client

    @property
    def model_name(self) -> Optional[str]:
        if self._client is not None:
            return self._client.model
        if self._backend is not None:
            return self._backend.model
        return self.llm_cfg.model_name

    def _format_transcript(self, segments: Sequence[TranscriptSegment]) -> str:
        return format_transcript(segments)

    def _chunk_prompt_text(self, chunk: TranscriptChunk):
        """Returns the text to send and the offset that maps model times back to the source."""
        if self.cfg.time_reference == "relative":
            return rebase_chunk_text(chunk.text, chunk.start_offset), chunk.start_offset
        return chunk.text, 0.0

    def _check_timeout(self, started: float) -> None:
        limit = self.cfg.analysis_timeout_seconds
        if limit and time.monotonic() - started > limit:
            raise AnalysisTimeoutError(f"Analysis exceeded {limit:.0f}s")

    def _parse_chunk(
        self, parser: ResponseParser, response: str, offset: float, index: int, total: int
    ) -> List[ViralClip]:
        try:
            return parser.parse(response, offset)
        except Exception as e:
            logger.error(
                f"Could not parse model output for chunk {index + 1}/{total} ({type(e).__name__}: {e}). "
                f"Preview: {response[:200]!r}"
            )
            return []

    def _no_clips_detail(self, candidates: int, policy: ClipPolicy) -> str:
        if candidates == 0:
            return "The model returned no parseable clips."
        detail = (
            f"{candidates} candidate clip(s) returned, none passed the "
            f"{policy.min_clip_duration:g}-{policy.max_clip_duration:g}s duration window"
        )
        if policy.min_viral_score is not None:
            detail += f" and minimum score {policy.min_viral_score:g}"
        return detail

    def _stream_chunk(
        self,
        client: ModelClient,
        system_prompt: str,
        user_prompt: str,
        operation: AnalysisOperation,
        tracker: ProgressTracker,
        label: str,
        base_progress: float,
        span: float,
        moments_found: int,
    ) -> Generator[ProgressEvent, None, str]:
        parts: List[str] = []
        started = time.monotonic()
        reported = 0
        for token in client.chat_stream(system_prompt, user_prompt, operation):
            parts.append(token)
            received = len(parts)
            if received - reported >= TOKEN_PROGRESS_INTERVAL:
                reported = received
                elapsed = time.monotonic() - started
                fraction = min(received / max(self.llm_cfg.max_tokens, 1), 0.95)
                yield tracker.event(
                    base_progress + span * fraction,
                    f"{label} ({received} tokens)",
                    moments_found,
                    tokens_received=received,
                    tokens_per_second=round(received / elapsed, 1) if elapsed > 0 else None,
                )
        return "".join(parts)

    def analyze_events(
        self,
        segments: Sequence[TranscriptSegment],
        options: Optional[AnalyzeOptions] = None,
        operation: Optional[AnalysisOperation] = None,
    ) -> Iterator[AnalysisEvent]:
        """
        Runs the analysis and yields progress, clip, and exactly one final event
        (complete, error or cancelled).

        Chunks are processed sequentially. A chunk whose model call fails is
        logged and skipped; the batch only fails when no chunk produced a
        usable clip.
        """
        operation = operation or AnalysisOperation()
        started = time.monotonic()
        tracker = ProgressTracker()

        try:
            rubric = get_rubric(self.cfg.rubric)
            policy: ClipPolicy = rubric.resolve_options(options)
            client = self._get_client()

            logger.info(
                f"Starting transcript analysis (operation={operation.id}, segments={len(segments)}, "
                f"rubric={rubric.name}, model={client.model})"
            )

            full_text = self._format_transcript(segments)
            logger.info(f"Transcript length: {len(full_text)} chars (~{estimate_tokens(full_text)} tokens)")

            chunks = chunk_transcript(full_text, self.cfg.max_chunk_chars, self.cfg.overlap_seconds)
            if not chunks:
                raise NoClipsFoundError("The transcript is empty.")
            logger.info(f"Transcript chunked into {len(chunks)} section(s)")

            system_prompt = build_system_prompt(rubric, policy.min_clip_duration, policy.max_clip_duration)
            parser = ResponseParser(rubric)
            per_chunk_target = None
            if policy.target_count is not None:
                # Ask for a few extra per chunk, filtering drops some
                per_chunk_target = math.ceil(policy.target_count / len(chunks)) + 2

            candidates: List[ViralClip] = []
            raw_outputs: List[str] = []
            moments_found = 0
            succeeded = 0
            last_error: Optional[AutoClipperError] = None
            span = CHUNK_PROGRESS_SHARE / len(chunks)

            for i, chunk in enumerate(chunks):
                operation.raise_if_cancelled()
                self._check_timeout(started)

                label = f"Analyzing section {i + 1}/{len(chunks)}..."
                yield tracker.event(i * span, label, moments_found)
                logger.info(f"Processing chunk {i + 1}/{len(chunks)} ({len(chunk.text)} chars)")

                prompt_text, offset = self._chunk_prompt_text(chunk)
                user_prompt = build_user_prompt(prompt_text, policy, rubric, target_count=per_chunk_target)

                try:
                    if self.llm_cfg.stream:
                        response = yield from self._stream_chunk(
                            client, system_prompt, user_prompt, operation, tracker, label, i * span, span, moments_found
                        )
                    else:
                        response = client.chat(system_prompt, user_prompt, operation)
                except (BackendUnavailableError, EmptyResponseError) as e:
                    logger.error(f"Failed to analyze chunk {i + 1}/{len(chunks)} ({len(chunk.text)} chars): {e}")
                    last_error = e
                    continue

                succeeded += 1
                raw_outputs.append(response)
                clips = self._parse_chunk(parser, response, offset, i, len(chunks))

                for clip in clips:
                    candidates.append(clip)
                    if is_valid(clip, policy):
                        moments_found += 1
                        if self.cfg.clip_events:
                            yield ClipFoundEvent(clip=clip, moments_found=moments_found)

                logger.info(
                    f"Chunk {i + 1}/{len(chunks)} processed: {len(clips)} clip(s), {len(candidates)} total"
                )
                yield tracker.event((i + 1) * span, label, moments_found)

            operation.raise_if_cancelled()
            yield tracker.event(RANKING_PROGRESS, "Ranking and filtering clips...", moments_found)

            final_clips = select_clips(candidates, policy, self.cfg.overlap_strategy)
            logger.info(
                f"Analysis complete: {len(candidates)} found, {moments_found} valid, {len(final_clips)} final"
            )

            if not final_clips:
                if succeeded == 0 and last_error is not None:
                    raise last_error
                raise NoClipsFoundError(
                    self._no_clips_detail(len(candidates), policy),
                    raw_output="\n\n".join(raw_outputs) or None,
                )

            operation.raise_if_cancelled()
            yield tracker.event(100.0, "Analysis complete", len(final_clips))
            yield CompleteEvent(
                clips=final_clips,
                processing_time=round(time.monotonic() - started, 3),
                model=client.model,
            )

        except AnalysisCancelled:
            logger.info(f"Analysis {operation.id} cancelled")
            yield CancelledEvent()
        except AutoClipperError as e:
            logger.error(f"Analysis {operation.id} failed ({e.kind.value}): {e.detail}")
            yield ErrorEvent(kind=e.kind, error=e.user_message, detail=e.detail, raw_output=e.raw_output)

    def analyze(
        self,
        segments: Sequence[TranscriptSegment],
        options: Optional[AnalyzeOptions] = None,
        operation: Optional[AnalysisOperation] = None,
        on_event: Optional[Callable[[AnalysisEvent], None]] = None,
    ) -> AnalysisResult:
        """Blocking variant of ``analyze_events`` that returns the final outcome."""
        operation = operation or AnalysisOperation()
        for event in self.analyze_events(segments, options, operation):
            if on_event is not None and not isinstance(event, (CompleteEvent, ErrorEvent, CancelledEvent)):
                on_event(event)
            if isinstance(event, CompleteEvent):
                return AnalysisResult(
                    status="complete",
                    operation_id=operation.id,
                    clips=event.clips,
                    processing_time=event.processing_time,
                    model=event.model,
                )
            if isinstance(event, ErrorEvent):
                return AnalysisResult(status="error", operation_id=operation.id, model=self.model_name, error=event)
            if isinstance(event, CancelledEvent):
                return AnalysisResult(status="cancelled", operation_id=operation.id, model=self.model_name)
        raise RuntimeError("Analysis ended without a final event")
