from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None


class LLMError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMTimeoutError(LLMError):
    """The provider did not answer within the time allowed for the call."""


class LLMProvider(ABC):
    """Single-shot chat completion provider."""

    @abstractmethod
    def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.8,
        max_tokens: int = 200,
        timeout_seconds: Optional[float] = None,
    ) -> LLMResponse:
        pass
