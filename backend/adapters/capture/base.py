"""
Audio capture contract.

The capture device produces PCM16 mono @ 16kHz blocks and hands each one
to a callback. It knows nothing about transcribers or sessions.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable


ChunkCallback = Callable[[bytes], None]


class MicPermission(str, Enum):
    """Outcome of a microphone permission request."""

    GRANTED = "granted"
    DENIED = "denied"
    PROMPT = "prompt"


class AudioCapture(ABC):
    """
    Abstract microphone.

    Contract:
    - request_permission() never acquires the device for streaming
    - start() raises CaptureError when the device cannot be opened
    - on_chunk is invoked on the event loop thread
    - stop() is idempotent and safe before start()
    """

    @abstractmethod
    async def request_permission(self) -> MicPermission:
        """Check (or ask for) access to the input device."""
        raise NotImplementedError

    @abstractmethod
    async def start(self, on_chunk: ChunkCallback) -> None:
        """Open the device and begin delivering PCM16 blocks."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Release the device."""
        raise NotImplementedError
