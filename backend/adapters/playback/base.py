"""
Audio playback contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable


class AudioPlayback(ABC):
    """
    Abstract speaker.

    Contract:
    - play() raises PlaybackError when the audio cannot be decoded or
      the device cannot be opened
    - on_complete fires exactly once when the audio ends naturally, on
      the event loop thread; it never fires after stop()
    - stop() cuts playback immediately and is idempotent
    - dispose() releases the device for good
    """

    @abstractmethod
    async def play(self, audio: bytes, on_complete: Callable[[], None]) -> None:
        """Start rendering an encoded utterance."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        """Stop rendering regardless of remaining audio."""
        raise NotImplementedError

    def dispose(self) -> None:
        """Release resources. Default: stop()."""
        self.stop()
