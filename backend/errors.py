"""
Exception taxonomy for voice session capabilities.

Adapters raise these; the runtime catches them at each suspension point
and turns them into failure events. None of them crosses the public
VoiceSessionManager API.
"""

from __future__ import annotations


class VoiceSessionError(Exception):
    """Base class for all voice capability failures."""


class PermissionDeniedError(VoiceSessionError):
    """Microphone permission was refused. Fatal to session start."""


class CaptureError(VoiceSessionError):
    """Audio capture device could not be opened or failed while open."""


class PlaybackError(VoiceSessionError):
    """Audio could not be decoded or rendered."""


class TranscriberConnectionError(VoiceSessionError):
    """Streaming transcriber could not connect or dropped for good."""


class AnswerServiceError(VoiceSessionError):
    """Answer generation failed (transport error or unsuccessful body)."""


class SynthesisError(VoiceSessionError):
    """
    Speech synthesis failed.

    status_code is set when the provider answered with an HTTP error.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
