import time
from typing import Iterator

from anthropic import (
    Anthropic,
    AnthropicError,
    APIConnectionError,
    APIStatusError,
    AuthenticationError,
    PermissionDeniedError,
)
from loguru import logger

from autoclipper_core.backends.base import BackendHealth, BaseBackend
from autoclipper_core.errors import BackendUnavailableError, ConfigurationError, EmptyResponseError


class AnthropicBackend(BaseBackend):
    name = "anthropic"

    def __init__(self, model: str, api_key: str, timeout: float = 120.0):
        super().__init__(model)
        self.client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)

    def _translate(self, error: Exception) -> Exception:
        if isinstance(error, (AuthenticationError, PermissionDeniedError)):
            return ConfigurationError(f"Anthropic rejected the credentials: {error}")
        if isinstance(error, APIStatusError):
            return BackendUnavailableError(f"Anthropic returned HTTP {error.status_code}: {error.message}")
        if isinstance(error, APIConnectionError):
            return BackendUnavailableError(f"Anthropic connection failed: {error}")
        return BackendUnavailableError(f"Anthropic error: {error}")

    def complete(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        logger.info(f"Sending chat request to Anthropic (model={self.model}, prompt={len(user_prompt)} chars)")
        started = time.monotonic()
        try:
            message = self.client.messages.create(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except AnthropicError as e:
            raise self._translate(e) from e

        usage = message.usage
        logger.info(
            f"Anthropic response received (model={self.model}, duration={time.monotonic() - started:.1f}s, "
            f"tokens={usage.input_tokens + usage.output_tokens})"
        )
        text = "".join(block.text for block in message.content if block.type == "text")
        if not text.strip():
            raise EmptyResponseError("Anthropic returned no text content")
        return text

    def stream(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> Iterator[str]:
        logger.info(f"Starting streaming chat with Anthropic (model={self.model})")
        try:
            with self.client.messages.stream(
                model=self.model,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            ) as stream:
                for text in stream.text_stream:
                    if text:
                        yield text
        except AnthropicError as e:
            raise self._translate(e) from e

    def health_check(self) -> BackendHealth:
        try:
            names = [m.id for m in self.client.models.list()]
        except AnthropicError as e:
            error = self._translate(e)
            logger.error(f"Anthropic health check failed: {error}")
            return BackendHealth(connected=False, message=str(error))

        if self.model not in names:
            return BackendHealth(connected=True, message=f"Model {self.model} not listed by Anthropic")
        return BackendHealth(connected=True, model=self.model, message=f"Connected to {self.model}")
