"""
OpenAI chat-completions answer adapter.

Answers directly from a chat model instead of the dashboard endpoint.
The request is serialized with context.serialization.serialize_for_llm;
when the host supplies no system prompt the voice persona prompt is used.

Chat completions carry no confidence score, so every answer reports
DEFAULT_ANSWER_CONFIDENCE.
"""

from __future__ import annotations

import dataclasses

from openai import AsyncOpenAI, OpenAIError

from adapters.answer.base import AnswerRequest, AnswerResult, AnswerService
from adapters.answer.prompts import SYSTEM_PROMPT_V1
from context.serialization import serialize_for_llm
from errors import AnswerServiceError
from spec import ANSWER_FAILED_MESSAGE, DEFAULT_ANSWER_CONFIDENCE


class OpenAIAnswerService(AnswerService):
    """Non-streaming chat completion per turn."""

    def __init__(
        self,
        *,
        client: AsyncOpenAI,
        model: str,
        default_system_prompt: str = SYSTEM_PROMPT_V1,
    ) -> None:
        self._client = client
        self._model = model
        self._default_system_prompt = default_system_prompt

    async def answer(self, request: AnswerRequest) -> AnswerResult:
        if not request.system_prompt:
            request = dataclasses.replace(request, system_prompt=self._default_system_prompt)

        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=serialize_for_llm(request),  # type: ignore[arg-type]
            )
        except OpenAIError as e:
            raise AnswerServiceError(ANSWER_FAILED_MESSAGE) from e

        if not completion.choices:
            raise AnswerServiceError(ANSWER_FAILED_MESSAGE)

        content = completion.choices[0].message.content
        if not content:
            raise AnswerServiceError(ANSWER_FAILED_MESSAGE)

        return AnswerResult(answer=content, confidence=DEFAULT_ANSWER_CONFIDENCE)

    async def aclose(self) -> None:
        await self._client.close()
