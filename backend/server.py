import os
from typing import Iterator, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger
from pydantic import Field

from autoclipper_core.backends.factory import create_backend
from autoclipper_core.config_manager import ConfigManager
from autoclipper_core.errors import ConfigurationError, ErrorKind
from autoclipper_core.intelligence.curator import ContentCurator
from autoclipper_core.intelligence.events import AnalysisEvent, CancelledEvent, CompleteEvent, ErrorEvent
from autoclipper_core.intelligence.models import AnalyzeOptions, CamelModel, ViralClip
from autoclipper_core.intelligence.operation import OperationRegistry
from autoclipper_core.transcription.models import TranscriptSegment
from autoclipper_core.utils.logger import intercept_std_logging, setup_logger

# Load env vars
load_dotenv()

intercept_std_logging()

CONFIG_PATH_ENV = "AUTOCLIPPER_CONFIG"
SECRET_FIELDS = {"openrouter_api_key", "openai_api_key", "anthropic_api_key"}

# HTTP status per error kind; 499 is used for client-cancelled analyses
ERROR_STATUS = {
    ErrorKind.CONFIGURATION: 503,
    ErrorKind.BACKEND_UNAVAILABLE: 502,
    ErrorKind.EMPTY_RESPONSE: 502,
    ErrorKind.NO_CLIPS_FOUND: 422,
    ErrorKind.TIMEOUT: 504,
}
CANCELLED_STATUS = 499
FINAL_EVENTS = (CompleteEvent, ErrorEvent, CancelledEvent)

app = FastAPI(title="AutoClipper Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

registry = OperationRegistry()


# --- Data Models ---
class AnalyzeRequest(CamelModel):
    segments: List[TranscriptSegment] = Field(default_factory=list)
    options: AnalyzeOptions = Field(default_factory=AnalyzeOptions)


class AnalyzeResponse(CamelModel):
    clips: List[ViralClip]
    processing_time: float
    model: Optional[str] = None
    operation_id: str


class CancelRequest(CamelModel):
    operation_id: Optional[str] = None


# --- Dependencies ---
def get_config_manager() -> ConfigManager:
    config_path = os.getenv(CONFIG_PATH_ENV, "config/settings.yaml")
    try:
        return ConfigManager(config_path)
    except FileNotFoundError:
        logger.warning(f"No configuration at {config_path}, using defaults.")
        return ConfigManager.from_defaults()


def get_curator(config_manager: ConfigManager = Depends(get_config_manager)) -> ContentCurator:
    return ContentCurator(config_manager)


def _sse(event: AnalysisEvent) -> str:
    return f"data: {event.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


# --- Routes ---
@app.get("/health")
def health_check(config_manager: ConfigManager = Depends(get_config_manager)):
    try:
        backend = create_backend(config_manager.llm)
    except ConfigurationError as e:
        return {"status": "error", "message": e.detail, "backendConnected": False}

    health = backend.health_check()
    return {
        "status": "ok" if health.connected else "error",
        "message": health.message or "AutoClipper server running",
        "backendConnected": health.connected,
        "provider": config_manager.llm.provider,
        "model": health.model,
    }


@app.post("/api/analyze")
def analyze(body: AnalyzeRequest, request: Request, curator: ContentCurator = Depends(get_curator)):
    if not body.segments:
        raise HTTPException(status_code=400, detail="Invalid request: segments array is required")

    wants_stream = "text/event-stream" in request.headers.get("accept", "")
    operation = registry.start()
    logger.info(
        f"Analysis request received (operation={operation.id}, segments={len(body.segments)}, streaming={wants_stream})"
    )

    if wants_stream:

        def event_stream() -> Iterator[str]:
            finished = False
            try:
                for event in curator.analyze_events(body.segments, body.options, operation):
                    finished = isinstance(event, FINAL_EVENTS)
                    yield _sse(event)
            finally:
                # Client disconnects close this generator before the final event
                if not finished:
                    operation.cancel()
                registry.finish(operation)

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Operation-Id": operation.id},
        )

    try:
        result = curator.analyze(body.segments, body.options, operation)
    finally:
        registry.finish(operation)

    headers = {"X-Operation-Id": operation.id}
    if result.status == "cancelled":
        return JSONResponse(
            status_code=CANCELLED_STATUS,
            content={"error": "Analysis cancelled", "operationId": operation.id},
            headers=headers,
        )
    if result.status == "error":
        error = result.error
        return JSONResponse(
            status_code=ERROR_STATUS[error.kind],
            content=error.model_dump(by_alias=True, mode="json", exclude={"type"}),
            headers=headers,
        )

    response = AnalyzeResponse(
        clips=result.clips,
        processing_time=result.processing_time,
        model=result.model,
        operation_id=operation.id,
    )
    return JSONResponse(content=response.model_dump(by_alias=True, mode="json"), headers=headers)


@app.post("/api/analyze/cancel")
def cancel_analysis(body: Optional[CancelRequest] = None):
    operation_id = body.operation_id if body else None
    cancelled = registry.cancel(operation_id)
    if not cancelled:
        return {"cancelled": False, "message": "No analysis in progress"}
    logger.info(f"Analysis cancelled by user: {', '.join(cancelled)}")
    return {"cancelled": True, "operationIds": cancelled}


@app.get("/settings")
def get_settings(config_manager: ConfigManager = Depends(get_config_manager)):
    return config_manager.config.model_dump(exclude={"llm": SECRET_FIELDS})


if __name__ == "__main__":
    import uvicorn

    cm = get_config_manager()
    setup_logger(log_dir=cm.paths.log_dir, cfg=cm.logging)
    uvicorn.run(app, host=cm.server.host, port=cm.server.port)
