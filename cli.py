import argparse
import json
import os
import signal
import sys
from pathlib import Path
from typing import Any, List

from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError

from autoclipper_core.backends.factory import create_backend
from autoclipper_core.config_manager import ConfigManager
from autoclipper_core.errors import ConfigurationError
from autoclipper_core.intelligence.curator import ContentCurator
from autoclipper_core.intelligence.events import AnalysisEvent, ClipFoundEvent, ProgressEvent
from autoclipper_core.intelligence.models import AnalyzeOptions
from autoclipper_core.intelligence.operation import AnalysisOperation
from autoclipper_core.transcription.models import TranscriptSegment
from autoclipper_core.utils.logger import setup_logger
from autoclipper_core.utils.timecode import format_timestamp


def load_segments(path: str) -> List[TranscriptSegment]:
    """Reads segments from a JSON file: a list, or an object with a "segments" list."""
    with open(path, "r", encoding="utf-8") as f:
        data: Any = json.load(f)
    if isinstance(data, dict):
        data = data.get("segments", [])
    return [TranscriptSegment.model_validate(item) for item in data]


def load_config(config_path: str) -> ConfigManager:
    if Path(config_path).exists():
        return ConfigManager(config_path)
    return ConfigManager.from_defaults()


def _print_event(event: AnalysisEvent) -> None:
    if isinstance(event, ProgressEvent):
        logger.info(f"[{event.progress:5.1f}%] {event.message} ({event.moments_found} moments)")
    elif isinstance(event, ClipFoundEvent):
        clip = event.clip
        logger.info(
            f"Found: {format_timestamp(clip.start_time)}-{format_timestamp(clip.end_time)} "
            f"score={clip.viral_score:g} {clip.suggested_title}"
        )


def run_analyze(args: argparse.Namespace, config: ConfigManager) -> int:
    if args.rubric:
        config.analysis.rubric = args.rubric
    if args.stream:
        config.llm.stream = True

    try:
        options = AnalyzeOptions(
            min_clip_duration=args.min_duration,
            max_clip_duration=args.max_duration,
            target_count=args.target_count,
            min_viral_score=args.min_score,
            content_type=args.content_type,
        )
    except ValidationError as e:
        print(f"Invalid options: {e.errors()[0]['msg']}")
        return 2
    segments = load_segments(args.segments)
    operation = AnalysisOperation()

    def _cancel(signum, frame):
        print("\nCancelling after the current section...")
        operation.cancel()

    signal.signal(signal.SIGINT, _cancel)

    curator = ContentCurator(config)
    result = curator.analyze(segments, options, operation, on_event=_print_event)

    if result.status == "cancelled":
        print("Analysis cancelled.")
        return 130
    if result.status == "error":
        print(f"Error: {result.error.error}")
        if result.error.detail:
            print(f"Detail: {result.error.detail}")
        if result.error.raw_output and args.verbose:
            print("--- Raw model output ---")
            print(result.error.raw_output)
        return 1

    payload = result.model_dump(by_alias=True, mode="json", exclude={"error"})
    if args.output:
        Path(args.output).write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.success(f"{len(result.clips)} clip(s) written to {args.output}")
    else:
        print(json.dumps(payload, indent=2))
    return 0


def run_health(config: ConfigManager) -> int:
    try:
        backend = create_backend(config.llm)
    except ConfigurationError as e:
        print(f"Not configured: {e.detail}")
        return 1
    health = backend.health_check()
    print(f"{config.llm.provider}: {health.message}")
    return 0 if health.connected and health.model else 1


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="AutoClipper CLI")
    parser.add_argument("--config", default="config/settings.yaml", help="Path to settings.yaml")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze_parser = subparsers.add_parser("analyze", help="Find viral clips in a transcript")
    analyze_parser.add_argument("segments", help="JSON file with transcript segments")
    analyze_parser.add_argument("--rubric", choices=["viral", "mentorship"], help="Scoring rubric")
    analyze_parser.add_argument("--min-duration", type=float, help="Minimum clip duration in seconds")
    analyze_parser.add_argument("--max-duration", type=float, help="Maximum clip duration in seconds")
    analyze_parser.add_argument("--target-count", type=int, help="Maximum number of clips to return")
    analyze_parser.add_argument("--min-score", type=float, help="Minimum viral score")
    analyze_parser.add_argument(
        "--content-type",
        choices=["general", "podcast", "interview", "tutorial", "vlog"],
        default="general",
    )
    analyze_parser.add_argument("--stream", action="store_true", help="Stream tokens from the model")
    analyze_parser.add_argument("--output", help="Write clips JSON to this file")
    analyze_parser.add_argument("--verbose", action="store_true", help="Print raw model output on failure")

    subparsers.add_parser("health", help="Check the configured model backend")
    subparsers.add_parser("serve", help="Run the HTTP server")

    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except Exception as e:
        print(f"Config Error: {e}")
        sys.exit(1)

    setup_logger(log_dir=config.paths.log_dir, cfg=config.logging)

    if args.command == "analyze":
        sys.exit(run_analyze(args, config))
    elif args.command == "health":
        sys.exit(run_health(config))
    elif args.command == "serve":
        import uvicorn

        os.environ.setdefault("AUTOCLIPPER_CONFIG", args.config)
        uvicorn.run("backend.server:app", host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    main()
