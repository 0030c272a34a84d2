import time
from typing import Callable, Iterator, Optional

from loguru import logger

from autoclipper_core.backends.base import BaseBackend
from autoclipper_core.config_manager import LLMConfig
from autoclipper_core.errors import AnalysisCancelled, BackendUnavailableError, EmptyResponseError
from autoclipper_core.intelligence.operation import AnalysisOperation

RETRYABLE = (BackendUnavailableError, EmptyResponseError)


class ModelClient:
    """
    Retry and cancellation wrapper around a backend.

    ConfigurationError passes straight through. BackendUnavailableError and
    EmptyResponseError are retried ``max_retries`` times with exponential
    backoff, then re-raised.
    """

    def __init__(
        self,
        backend: BaseBackend,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        max_retries: int = 1,
        retry_backoff_seconds: float = 2.0,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.backend = backend
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_retries = max(0, max_retries)
        self.retry_backoff_seconds = retry_backoff_seconds
        self._sleep = sleep or time.sleep

    @classmethod
    def from_config(cls, cfg: LLMConfig, backend: BaseBackend) -> "ModelClient":
        return cls(
            backend,
            temperature=cfg.temperature,
            max_tokens=cfg.max_tokens,
            max_retries=cfg.max_retries,
            retry_backoff_seconds=cfg.retry_backoff_seconds,
        )

    @property
    def model(self) -> str:
        return self.backend.model

    def _check(self, operation: Optional[AnalysisOperation]) -> None:
        if operation is not None:
            operation.raise_if_cancelled()

    def _backoff(self, attempt: int, error: Exception, operation: Optional[AnalysisOperation]) -> None:
        delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
        logger.warning(f"Model call failed ({error}); retry {attempt}/{self.max_retries} in {delay:.1f}s")
        if operation is not None:
            if operation.wait(delay):
                raise AnalysisCancelled(operation.id)
        elif delay > 0:
            self._sleep(delay)

    def chat(self, system_prompt: str, user_prompt: str, operation: Optional[AnalysisOperation] = None) -> str:
        attempt = 0
        while True:
            self._check(operation)
            try:
                return self.backend.complete(system_prompt, user_prompt, self.temperature, self.max_tokens)
            except RETRYABLE as e:
                if attempt >= self.max_retries:
                    raise
                attempt += 1
                self._backoff(attempt, e, operation)

    def chat_stream(
        self,
        system_prompt: str,
        user_prompt: str,
        operation: Optional[AnalysisOperation] = None,
    ) -> Iterator[str]:
        """
        Yields response tokens. A failed attempt is retried only if it failed
        before the first token; cancellation closes the underlying stream.
        """
        attempt = 0
        while True:
            self._check(operation)
            received = False
            stream = self.backend.stream(system_prompt, user_prompt, self.temperature, self.max_tokens)
            try:
                for token in stream:
                    self._check(operation)
                    received = True
                    yield token
                if not received:
                    raise EmptyResponseError(f"{self.backend.name} stream ended without content")
                return
            except RETRYABLE as e:
                if received or attempt >= self.max_retries:
                    raise
                attempt += 1
                self._backoff(attempt, e, operation)
            finally:
                close = getattr(stream, "close", None)
                if close is not None:
                    close()
