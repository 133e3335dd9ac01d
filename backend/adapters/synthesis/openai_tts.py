"""
OpenAI speech adapter (fallback synthesizer).

Used when the primary synthesizer fails for an utterance. Receives plain
sanitized text; there is no emotion markup on this path.
"""

from __future__ import annotations

from openai import AsyncOpenAI, OpenAIError

from adapters.synthesis.base import SpeechSynthesizer
from errors import SynthesisError
from orchestrator.enums.voice import Voice
from spec import (
    FALLBACK_TTS_DEFAULT_MODEL,
    FALLBACK_TTS_FORMAT,
    FALLBACK_TTS_SPEAKING_RATE,
)


class OpenAISpeechSynthesizer(SpeechSynthesizer):
    """OpenAI `audio.speech` TTS returning one encoded mp3 utterance."""

    _VOICE_MAP: dict[Voice, str] = {
        Voice.ARIA: "shimmer",
        Voice.LUKE: "onyx",
        Voice.NOVA: "nova",
        Voice.ECHO: "echo",
        Voice.SAGE: "sage",
    }

    def __init__(
        self,
        *,
        client: AsyncOpenAI,
        model: str = FALLBACK_TTS_DEFAULT_MODEL,
        speed: float = FALLBACK_TTS_SPEAKING_RATE,
    ) -> None:
        self._client = client
        self._model = model
        self._speed = speed

    async def synthesize(self, text: str, voice: Voice) -> bytes:
        try:
            response = await self._client.audio.speech.create(
                model=self._model,
                voice=self._VOICE_MAP[Voice(voice)],
                input=text,
                response_format=FALLBACK_TTS_FORMAT,
                speed=self._speed,
            )
            audio = response.content
        except OpenAIError as e:
            status = getattr(e, "status_code", None)
            raise SynthesisError(f"Fallback TTS failed: {e}", status_code=status) from e

        if not audio:
            raise SynthesisError("Fallback TTS returned no audio")
        return audio

    async def aclose(self) -> None:
        await self._client.close()
