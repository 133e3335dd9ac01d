"""
Answer generation contract.

This module defines the *interface only*. Request building (history,
page context, system prompt) happens in context.serialization.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class AnswerRequest:
    """Everything the answer backend needs for one turn."""
    query: str
    context: tuple[str, ...] = ()
    history: tuple[dict[str, str], ...] = field(default_factory=tuple)
    system_prompt: str | None = None


@dataclass(frozen=True)
class AnswerResult:
    """Answer text plus the backend's confidence in it (0..1)."""
    answer: str
    confidence: float


class AnswerService(ABC):
    """
    Abstract answer backend.

    Contract:
    - answer() returns an AnswerResult or raises AnswerServiceError
    - No retries; the session reports the failure to the user
    """

    @abstractmethod
    async def answer(self, request: AnswerRequest) -> AnswerResult:
        """Generate the answer for request.query."""
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
