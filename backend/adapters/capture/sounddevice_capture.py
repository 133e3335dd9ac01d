"""
Local microphone capture through PortAudio (sounddevice).

Blocks of CAPTURE_BLOCK_SAMPLES int16 samples are copied out of the
audio thread and handed to on_chunk on the event loop thread.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

import numpy as np
import sounddevice as sd

from adapters.capture.base import AudioCapture, ChunkCallback, MicPermission
from errors import CaptureError
from observability.logger import log_event
from spec import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ, CAPTURE_BLOCK_SAMPLES


class SoundDeviceCapture(AudioCapture):
    """PCM16 mono @ 16kHz from the default (or given) input device."""

    def __init__(self, *, device: int | str | None = None) -> None:
        self._device = device
        self._stream: sd.InputStream | None = None
        self._overflows = 0

    async def request_permission(self) -> MicPermission:
        # PortAudio has no permission prompt; an unusable device is a refusal
        try:
            sd.check_input_settings(
                device=self._device,
                channels=AUDIO_CHANNELS,
                dtype="int16",
                samplerate=AUDIO_SAMPLE_RATE_HZ,
            )
        except (sd.PortAudioError, ValueError) as e:
            log_event({
                "ts_ms": int(time.time() * 1000),
                "event_type": "capture_permission_denied",
                "level": "WARNING",
                "device": self._device,
                "error": str(e),
            })
            return MicPermission.DENIED
        return MicPermission.GRANTED

    async def start(self, on_chunk: ChunkCallback) -> None:
        self.stop()
        loop = asyncio.get_running_loop()

        def callback(indata: np.ndarray, frames: int, time_info: Any, status: sd.CallbackFlags) -> None:  # pylint: disable=unused-argument
            if status.input_overflow:
                self._overflows += 1
            loop.call_soon_threadsafe(on_chunk, indata.copy().tobytes())

        try:
            stream = sd.InputStream(
                device=self._device,
                samplerate=AUDIO_SAMPLE_RATE_HZ,
                channels=AUDIO_CHANNELS,
                dtype="int16",
                blocksize=CAPTURE_BLOCK_SAMPLES,
                callback=callback,
            )
        except (sd.PortAudioError, ValueError) as e:
            raise CaptureError(f"Could not open microphone: {e}") from e

        # Owned from here on, so stop() releases it whatever happens next
        self._stream = stream
        try:
            stream.start()
        except sd.PortAudioError as e:
            self.stop()
            raise CaptureError(f"Could not start microphone: {e}") from e

    def stop(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return

        try:
            stream.stop()
            stream.close()
        except sd.PortAudioError as e:
            log_event({
                "ts_ms": int(time.time() * 1000),
                "event_type": "capture_close_failed",
                "level": "WARNING",
                "error": str(e),
            })

        if self._overflows:
            log_event({
                "ts_ms": int(time.time() * 1000),
                "event_type": "capture_overflows",
                "level": "WARNING",
                "count": self._overflows,
            })
            self._overflows = 0
