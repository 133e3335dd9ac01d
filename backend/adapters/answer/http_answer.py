"""
Dashboard chat endpoint adapter.

POSTs the turn to the host application's /api/chat route and unwraps
its envelope:

    request:  {"query", "context", "history", "systemPrompt"?}
    response: {"success": true, "data": {"answer": "...", "confidence": 0.93}}
              {"success": false, "error": "..."}
"""

from __future__ import annotations

from typing import Any

import httpx

from adapters.answer.base import AnswerRequest, AnswerResult, AnswerService
from errors import AnswerServiceError
from spec import ANSWER_FAILED_MESSAGE, ANSWER_TIMEOUT_S, DEFAULT_ANSWER_CONFIDENCE


def build_payload(request: AnswerRequest) -> dict[str, Any]:
    """JSON body for /api/chat. systemPrompt is omitted when empty."""
    payload: dict[str, Any] = {
        "query": request.query,
        "context": list(request.context),
        "history": [dict(m) for m in request.history],
    }
    if request.system_prompt:
        payload["systemPrompt"] = request.system_prompt
    return payload


def parse_envelope(body: Any) -> AnswerResult:
    """Unwrap a /api/chat response body or raise AnswerServiceError."""
    if not isinstance(body, dict):
        raise AnswerServiceError(ANSWER_FAILED_MESSAGE)

    if not body.get("success"):
        raise AnswerServiceError(str(body.get("error") or "Chat failed"))

    data = body.get("data")
    answer = data.get("answer") if isinstance(data, dict) else None
    if not isinstance(answer, str):
        raise AnswerServiceError(ANSWER_FAILED_MESSAGE)

    confidence = data.get("confidence")
    if confidence is None:
        confidence = DEFAULT_ANSWER_CONFIDENCE

    try:
        return AnswerResult(answer=answer, confidence=float(confidence))
    except (TypeError, ValueError) as e:
        raise AnswerServiceError(ANSWER_FAILED_MESSAGE) from e


class HttpAnswerService(AnswerService):
    """Answer backend reached over HTTP."""

    def __init__(
        self,
        *,
        url: str,
        timeout_s: float = ANSWER_TIMEOUT_S,
        headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._headers = headers or {}
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def answer(self, request: AnswerRequest) -> AnswerResult:
        try:
            response = await self._client.post(
                self._url,
                json=build_payload(request),
                headers=self._headers,
            )
        except httpx.HTTPError as e:
            raise AnswerServiceError(ANSWER_FAILED_MESSAGE) from e

        if response.is_error:
            raise AnswerServiceError(ANSWER_FAILED_MESSAGE)

        try:
            body = response.json()
        except ValueError as e:
            raise AnswerServiceError(ANSWER_FAILED_MESSAGE) from e

        return parse_envelope(body)

    async def aclose(self) -> None:
        await self._client.aclose()
