"""
Local speaker playback through PortAudio (sounddevice).

Encoded audio (mp3 / wav) is decoded in full with soundfile, then fed to
an OutputStream from its callback. Completion is reported back on the
event loop thread through call_soon_threadsafe.

stop() bumps a generation counter so a finish notification from an
aborted stream is discarded.
"""

from __future__ import annotations

import asyncio
import io
import time
from typing import Any, Callable

import numpy as np
import sounddevice as sd
import soundfile as sf  # pyright: ignore[reportMissingTypeStubs]

from adapters.playback.base import AudioPlayback
from errors import PlaybackError
from observability.logger import log_event


def decode_audio(audio: bytes) -> tuple[np.ndarray, int]:
    """Decode an encoded utterance into float32 frames x channels."""
    if not audio:
        raise PlaybackError("No audio to play")
    try:
        data, sample_rate = sf.read(io.BytesIO(audio), dtype="float32", always_2d=True)
    except (sf.SoundFileError, RuntimeError, TypeError) as e:
        raise PlaybackError(f"Could not decode audio: {e}") from e
    if len(data) == 0:
        raise PlaybackError("Decoded audio is empty")
    return data, int(sample_rate)


class SoundDevicePlayback(AudioPlayback):
    """One utterance at a time on the default (or given) output device."""

    def __init__(self, *, device: int | str | None = None) -> None:
        self._device = device
        self._stream: sd.OutputStream | None = None
        self._generation = 0

    async def play(self, audio: bytes, on_complete: Callable[[], None]) -> None:
        self.stop()
        data, sample_rate = decode_audio(audio)

        loop = asyncio.get_running_loop()
        generation = self._generation
        cursor = 0

        def callback(outdata: np.ndarray, frames: int, time_info: Any, status: sd.CallbackFlags) -> None:  # pylint: disable=unused-argument
            nonlocal cursor
            chunk = data[cursor:cursor + frames]
            outdata[:len(chunk)] = chunk
            cursor += len(chunk)
            if len(chunk) < frames:
                outdata[len(chunk):] = 0
                raise sd.CallbackStop

        def finished() -> None:
            loop.call_soon_threadsafe(self._finish, generation, on_complete)

        try:
            stream = sd.OutputStream(
                device=self._device,
                samplerate=sample_rate,
                channels=data.shape[1],
                dtype="float32",
                callback=callback,
                finished_callback=finished,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise PlaybackError(f"Could not open speaker: {e}") from e

        self._stream = stream
        try:
            stream.start()
        except sd.PortAudioError as e:
            self.stop()
            raise PlaybackError(f"Could not start speaker: {e}") from e

    def stop(self) -> None:
        self._generation += 1
        stream = self._stream
        self._stream = None
        if stream is None:
            return

        try:
            stream.abort()
            stream.close()
        except sd.PortAudioError as e:
            log_event({
                "ts_ms": int(time.time() * 1000),
                "event_type": "playback_close_failed",
                "level": "WARNING",
                "error": str(e),
            })

    def _finish(self, generation: int, on_complete: Callable[[], None]) -> None:
        if generation != self._generation:
            return

        stream = self._stream
        self._stream = None
        if stream is not None:
            stream.close()
        on_complete()
