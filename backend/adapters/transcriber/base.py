"""
Streaming transcriber contract.

A transcriber instance lives for exactly one recording: it is created
with its callbacks, connected, fed audio and disconnected. Callbacks are
invoked on the event loop thread.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol


class ConnectionState(str, Enum):
    """Vendor socket lifecycle as seen by the transcriber."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass(frozen=True)
class TranscriberCallbacks:
    """Sinks for transcriber output."""

    on_interim: Callable[[str], None]
    on_final: Callable[[str], None]
    on_utterance_end: Callable[[], None]
    on_connection_change: Callable[[ConnectionState], None]
    on_error: Callable[[str], None]


class SpeechTranscriber(ABC):
    """
    Abstract streaming speech-to-text client.

    Contract:
    - connect() returns once the socket is open, or raises
      TranscriberConnectionError
    - send_audio() never blocks and drops audio while not connected
    - disconnect() is idempotent and aborts a pending connect()
    """

    def __init__(self, callbacks: TranscriberCallbacks) -> None:
        self.callbacks = callbacks

    @abstractmethod
    async def connect(self) -> None:
        """Open the vendor socket."""
        raise NotImplementedError

    @abstractmethod
    def send_audio(self, chunk: bytes) -> None:
        """Queue one PCM16 block for the vendor."""
        raise NotImplementedError

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the vendor socket."""
        raise NotImplementedError


class TranscriberFactory(Protocol):
    """Builds a fresh transcriber bound to the given callbacks."""

    def __call__(self, callbacks: TranscriberCallbacks) -> SpeechTranscriber: ...
