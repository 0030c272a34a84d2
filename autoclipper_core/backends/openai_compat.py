import time
from typing import Any, Dict, Iterator, List, Optional

from loguru import logger
from openai import (
    APIConnectionError,
    APIStatusError,
    AuthenticationError,
    OpenAI,
    OpenAIError,
    PermissionDeniedError,
)

from autoclipper_core.backends.base import BackendHealth, BaseBackend
from autoclipper_core.errors import BackendUnavailableError, ConfigurationError, EmptyResponseError

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
OPENROUTER_HEADERS = {
    "HTTP-Referer": "https://github.com/gartzzz/autoclipper",
    "X-Title": "AutoClipper",
}


def _messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


class OpenAICompatibleBackend(BaseBackend):
    """Any server speaking the OpenAI chat-completions protocol."""

    name = "openai"

    def __init__(
        self,
        model: str,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: float = 120.0,
        default_headers: Optional[Dict[str, str]] = None,
        extra_body: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(model)
        self.extra_body = extra_body or None
        # Retries are owned by ModelClient
        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            default_headers=default_headers,
        )

    def _translate(self, error: Exception) -> Exception:
        if isinstance(error, (AuthenticationError, PermissionDeniedError)):
            return ConfigurationError(f"{self.name} rejected the credentials: {error}")
        if isinstance(error, APIStatusError):
            return BackendUnavailableError(f"{self.name} returned HTTP {error.status_code}: {error.message}")
        if isinstance(error, APIConnectionError):
            return BackendUnavailableError(f"{self.name} connection failed: {error}")
        return BackendUnavailableError(f"{self.name} error: {error}")

    def _log_usage(self, response: Any, started: float) -> None:
        usage = getattr(response, "usage", None)
        logger.info(
            f"{self.name} response received (model={self.model}, "
            f"duration={time.monotonic() - started:.1f}s, "
            f"tokens={getattr(usage, 'total_tokens', None)})"
        )

    def complete(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        logger.info(f"Sending chat request to {self.name} (model={self.model}, prompt={len(user_prompt)} chars)")
        started = time.monotonic()
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=_messages(system_prompt, user_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                extra_body=self.extra_body,
            )
        except OpenAIError as e:
            raise self._translate(e) from e

        self._log_usage(response, started)
        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise EmptyResponseError(f"{self.name} returned no content")
        return content

    def stream(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> Iterator[str]:
        logger.info(f"Starting streaming chat with {self.name} (model={self.model})")
        try:
            stream = self.client.chat.completions.create(
                model=self.model,
                messages=_messages(system_prompt, user_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
                extra_body=self.extra_body,
                stream=True,
            )
        except OpenAIError as e:
            raise self._translate(e) from e

        try:
            for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except OpenAIError as e:
            raise self._translate(e) from e
        finally:
            stream.close()

    def _available_models(self) -> List[str]:
        return [m.id for m in self.client.models.list()]

    def _has_model(self, names: List[str]) -> bool:
        return self.model in names

    def health_check(self) -> BackendHealth:
        try:
            names = self._available_models()
        except OpenAIError as e:
            error = self._translate(e)
            logger.error(f"{self.name} health check failed: {error}")
            return BackendHealth(connected=False, message=str(error))

        if not self._has_model(names):
            return BackendHealth(
                connected=True,
                message=f"Model {self.model} not found. Available: {', '.join(names[:20])}",
            )
        return BackendHealth(connected=True, model=self.model, message=f"Connected to {self.model}")


class OllamaBackend(OpenAICompatibleBackend):
    """Local Ollama server through its OpenAI-compatible /v1 endpoint."""

    name = "ollama"

    def __init__(self, model: str, host: str, timeout: float = 120.0, keep_alive: Optional[str] = None):
        extra_body = {"keep_alive": keep_alive} if keep_alive else None
        super().__init__(
            model=model,
            api_key="ollama",
            base_url=f"{host.rstrip('/')}/v1",
            timeout=timeout,
            extra_body=extra_body,
        )
        self.host = host

    def _translate(self, error: Exception) -> Exception:
        if isinstance(error, APIConnectionError):
            return BackendUnavailableError(f"Ollama is not reachable at {self.host}. Start it with: ollama serve")
        return super()._translate(error)

    def _has_model(self, names: List[str]) -> bool:
        family = self.model.split(":")[0]
        return any(name.startswith(family) for name in names)


class OpenRouterBackend(OpenAICompatibleBackend):
    name = "openrouter"

    def __init__(self, model: str, api_key: str, timeout: float = 120.0, base_url: Optional[str] = None):
        super().__init__(
            model=model,
            api_key=api_key,
            base_url=base_url or OPENROUTER_BASE_URL,
            timeout=timeout,
            default_headers=OPENROUTER_HEADERS,
        )
