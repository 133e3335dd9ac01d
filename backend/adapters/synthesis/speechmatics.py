"""
Speechmatics TTS adapter (alternative primary synthesizer).

Implements a non-streaming Text-to-Speech adapter using the Speechmatics
Async TTS API.

Role in the system:
- Receives one sanitized utterance.
- Requests RAW_PCM_16000 output and collects the whole response.
- Wraps the PCM16 samples in a WAV container so playback can decode it
  like any other provider's output.

Architectural constraints:
- No retries, timers or fallback logic live in this adapter.
- No state machine transitions or orchestration decisions.
"""
from __future__ import annotations

import io
import time

import numpy as np
import soundfile as sf  # pyright: ignore[reportMissingTypeStubs]
from speechmatics.tts import AsyncClient, OutputFormat, Voice as SpeechmaticsVoice # pyright: ignore[reportMissingTypeStubs] # pylint: disable=no-name-in-module, import-error

from adapters.synthesis.base import SpeechSynthesizer
from errors import SynthesisError
from observability.logger import log_event
from orchestrator.enums.voice import Voice
from spec import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ


# Read size for the provider response body
PROVIDER_CHUNK_SIZE = 4096


def pcm16_to_wav(pcm: bytes, sample_rate: int = AUDIO_SAMPLE_RATE_HZ) -> bytes:
    """Wrap little-endian PCM16 mono samples in a WAV container."""
    samples = np.frombuffer(pcm, dtype="<i2")
    buf = io.BytesIO()
    sf.write(buf, samples, sample_rate, subtype="PCM_16", format="WAV")
    return buf.getvalue()


class SpeechmaticsSynthesizer(SpeechSynthesizer):
    """
    Speechmatics batch TTS.

    A new AsyncClient is opened per utterance; the provider session is
    cheap and this keeps the adapter free of connection state.
    """

    _VOICE_MAP: dict[Voice, SpeechmaticsVoice] = {
        Voice.ARIA: SpeechmaticsVoice.SARAH,
        Voice.LUKE: SpeechmaticsVoice.THEO,
        Voice.NOVA: SpeechmaticsVoice.MEGAN,
        Voice.ECHO: SpeechmaticsVoice.THEO,
        Voice.SAGE: SpeechmaticsVoice.SARAH,
    }

    def __init__(self, *, api_key: str, session_id: str | None = None) -> None:
        self._api_key = api_key
        self._session_id = session_id

    async def synthesize(self, text: str, voice: Voice) -> bytes:
        t0 = time.monotonic_ns()
        try:
            pcm = await self._fetch_pcm(text, self._VOICE_MAP[Voice(voice)])
        except SynthesisError:
            raise
        except Exception as e:  # pylint: disable=broad-exception-caught
            raise SynthesisError(f"Speechmatics TTS failed: {e!r}") from e

        if not pcm:
            raise SynthesisError("Speechmatics TTS returned no audio")

        log_event({
            "ts_ms": int(time.time() * 1000),
            "event_type": "speechmatics_tts_complete",
            "level": "DEBUG",
            "session_id": self._session_id,
            "chars": len(text),
            "pcm_bytes": len(pcm),
            "synth_ns": time.monotonic_ns() - t0,
        })
        return pcm16_to_wav(pcm)

    async def _fetch_pcm(self, text: str, voice: SpeechmaticsVoice) -> bytes:
        pcm = bytearray()
        async with AsyncClient(api_key=self._api_key) as client:
            async with await client.generate(
                text=text,
                voice=voice,
                output_format=OutputFormat.RAW_PCM_16000,
            ) as response:
                async for chunk in response.content.iter_chunked(PROVIDER_CHUNK_SIZE):
                    pcm += chunk

        # PCM16 needs whole samples
        if len(pcm) % (2 * AUDIO_CHANNELS):
            del pcm[-1:]
        return bytes(pcm)
