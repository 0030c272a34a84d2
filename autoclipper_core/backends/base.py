from abc import ABC, abstractmethod
from typing import Iterator, Optional

from pydantic import BaseModel


class BackendHealth(BaseModel):
    connected: bool
    model: Optional[str] = None
    message: str = ""


class BaseBackend(ABC):
    """
    A chat-completion capability: send a system and user prompt, get text back.

    Implementations translate SDK failures into ``ConfigurationError``,
    ``BackendUnavailableError`` and ``EmptyResponseError``.
    """

    name: str = "backend"

    def __init__(self, model: str):
        self.model = model

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> str:
        """Returns the full response text."""
        pass

    @abstractmethod
    def stream(self, system_prompt: str, user_prompt: str, temperature: float, max_tokens: int) -> Iterator[str]:
        """Yields response text as it is generated. Closing the iterator aborts the request."""
        pass

    @abstractmethod
    def health_check(self) -> BackendHealth:
        pass
