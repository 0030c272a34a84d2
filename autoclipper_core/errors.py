from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    BACKEND_UNAVAILABLE = "backend_unavailable"
    EMPTY_RESPONSE = "empty_response"
    NO_CLIPS_FOUND = "no_clips_found"
    TIMEOUT = "timeout"


USER_MESSAGES = {
    ErrorKind.CONFIGURATION: "The AI backend is not configured. Check the provider settings and API key.",
    ErrorKind.BACKEND_UNAVAILABLE: "Could not reach the AI backend. Make sure it is running and reachable.",
    ErrorKind.EMPTY_RESPONSE: "The AI backend answered but returned no usable content.",
    ErrorKind.NO_CLIPS_FOUND: "No clips matched the current duration and score settings.",
    ErrorKind.TIMEOUT: "The analysis took too long and was stopped.",
}


class AutoClipperError(Exception):
    """Base class for errors surfaced to callers."""

    kind: ErrorKind = ErrorKind.BACKEND_UNAVAILABLE

    def __init__(self, detail: str = "", raw_output: Optional[str] = None):
        super().__init__(detail or USER_MESSAGES[self.kind])
        self.detail = detail or USER_MESSAGES[self.kind]
        self.raw_output = raw_output

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]


class ConfigurationError(AutoClipperError, ValueError):
    """Missing credential, unknown provider or rejected authentication. Never retried."""

    kind = ErrorKind.CONFIGURATION


class BackendUnavailableError(AutoClipperError):
    """Connection refused, timeout or non-2xx status from the model backend."""

    kind = ErrorKind.BACKEND_UNAVAILABLE


class EmptyResponseError(AutoClipperError):
    """The backend answered successfully but without any text."""

    kind = ErrorKind.EMPTY_RESPONSE


class NoClipsFoundError(AutoClipperError):
    kind = ErrorKind.NO_CLIPS_FOUND


class AnalysisTimeoutError(AutoClipperError):
    kind = ErrorKind.TIMEOUT


class AnalysisCancelled(Exception):
    """Raised internally when an operation handle has been cancelled."""
