"""
Inworld TTS adapter (primary synthesizer).

Request model:
- POST INWORLD_TTS_URL with `Authorization: Basic <api key>`
- Body: {"text", "voiceId", "modelId"}
- Response: {"audioContent": "<base64 audio>"}

Text longer than TTS_MAX_CHUNK_CHARS is split by chunk_text() and the
decoded audio of every chunk is concatenated in order.

Retries (per chunk):
- 429 / 5xx and transport errors: up to TTS_MAX_RETRIES with 0.5s, 1s,
  2s backoff
- Any other status: fail immediately
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import time

import httpx

from adapters.synthesis.base import ResponseContext, SpeechSynthesizer
from errors import SynthesisError
from observability.logger import log_event
from orchestrator.enums.service import Service
from orchestrator.enums.voice import Voice
from orchestrator.retry import (
    FailureType,
    classify_status,
    get_retry_delay_ms,
    next_attempt,
    reset_attempt,
    should_retry,
)
from orchestrator.speech_text import chunk_text
from spec import (
    HIGH_CONFIDENCE_THRESHOLD,
    INWORLD_DEFAULT_MODEL_ID,
    INWORLD_DEFAULT_VOICE_ID,
    INWORLD_TTS_URL,
    LOW_CONFIDENCE_THRESHOLD,
    TTS_MAX_CHUNK_CHARS,
)


MISSING_KEY_MESSAGE = "INWORLD_API_KEY not configured"

_REQUEST_TIMEOUT_S = 30.0
_ERROR_BODY_LIMIT = 200

# Inworld catalogue voices for the non-default selections
_VOICE_MAP: dict[Voice, str] = {
    Voice.LUKE: "Dennis",
    Voice.NOVA: "Olivia",
    Voice.ECHO: "Alex",
    Voice.SAGE: "Edward",
}


def _now_ms() -> int:
    return int(time.time() * 1000)


def emotion_tag(context: ResponseContext) -> str:
    """
    Inworld audio-markup tag for the response, or "" for none.

    First match wins: error, privilege filter, warning, greeting, then
    confidence (high -> confident, low -> thoughtful).
    """
    if context.is_error:
        return "[apologetic] "
    if context.is_privilege_filtered:
        return "[serious] "
    if context.has_warning:
        return "[concerned] "
    if context.is_greeting:
        return "[warm] "
    if context.confidence >= HIGH_CONFIDENCE_THRESHOLD:
        return "[confident] "
    if context.confidence < LOW_CONFIDENCE_THRESHOLD:
        return "[thoughtful] "
    return ""


class InworldSynthesizer(SpeechSynthesizer):
    """
    Inworld REST TTS.

    The httpx client is created lazily (or injected for tests) and
    reused across utterances until aclose().
    """

    def __init__(
        self,
        *,
        api_key: str,
        voice_id: str = INWORLD_DEFAULT_VOICE_ID,
        model_id: str = INWORLD_DEFAULT_MODEL_ID,
        url: str = INWORLD_TTS_URL,
        max_chunk_chars: int = TTS_MAX_CHUNK_CHARS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._voice_id = voice_id
        self._model_id = model_id
        self._url = url
        self._max_chunk_chars = max_chunk_chars
        self._client = client

    def prepare_text(self, text: str, context: ResponseContext) -> str:
        return f"{emotion_tag(context)}{text}"

    def resolve_voice(self, voice: Voice) -> str:
        return _VOICE_MAP.get(Voice(voice), self._voice_id)

    async def synthesize(self, text: str, voice: Voice) -> bytes:
        if not self._api_key:
            raise SynthesisError(MISSING_KEY_MESSAGE)

        voice_id = self.resolve_voice(voice)
        audio = bytearray()
        for chunk in chunk_text(text, self._max_chunk_chars):
            audio += await self._synthesize_chunk(chunk, voice_id)

        if not audio:
            raise SynthesisError("No audio content in Inworld response")
        return bytes(audio)

    async def aclose(self) -> None:
        client = self._client
        self._client = None
        if client is not None:
            await client.aclose()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=_REQUEST_TIMEOUT_S)
        return self._client

    async def _synthesize_chunk(self, text: str, voice_id: str) -> bytes:
        attempt = reset_attempt()

        while True:
            try:
                return await self._request(text, voice_id)
            except SynthesisError as e:
                failure = (
                    classify_status(e.status_code)
                    if e.status_code is not None
                    else FailureType.PERMANENT
                )
                error: Exception = e
            except (httpx.TimeoutException, httpx.TransportError) as e:
                failure = FailureType.TRANSIENT
                error = e

            if not should_retry(service=Service.SYNTHESIS, failure=failure, attempt=attempt):
                if isinstance(error, SynthesisError):
                    raise error
                raise SynthesisError(f"Inworld TTS request failed: {error!r}") from error

            delay_ms = get_retry_delay_ms(service=Service.SYNTHESIS, attempt=attempt)
            attempt = next_attempt(attempt)
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "inworld_tts_retry",
                "level": "WARNING",
                "attempt": attempt.attempt,
                "delay_ms": delay_ms,
                "error": str(error),
            })
            await asyncio.sleep(delay_ms / 1000)

    async def _request(self, text: str, voice_id: str) -> bytes:
        response = await self._http().post(
            self._url,
            headers={
                "Authorization": f"Basic {self._api_key}",
                "Content-Type": "application/json",
            },
            json={
                "text": text,
                "voiceId": voice_id,
                "modelId": self._model_id,
            },
        )

        if response.status_code >= 400:
            body = response.text[:_ERROR_BODY_LIMIT]
            raise SynthesisError(
                f"Inworld TTS failed ({response.status_code}): {body}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise SynthesisError("Invalid JSON in Inworld response") from e

        audio_content = payload.get("audioContent") if isinstance(payload, dict) else None

        if not audio_content:
            raise SynthesisError("No audio content in Inworld response")

        try:
            return base64.b64decode(audio_content, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SynthesisError("Inworld audio content is not valid base64") from e
