"""
Speech synthesizer contract.

This module defines the *interface only*. Fallback policy and playback
live in the runtime.

Key invariants:
- synthesize() returns the complete encoded utterance or raises
  SynthesisError. It never returns partial audio.
- prepare_text() is a pure, provider-specific transform (tone/emotion
  hints). Synthesizers without such a feature return the text as-is.
- Fallback between synthesizers is decided by the reducer, not here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from orchestrator.enums.voice import Voice


@dataclass(frozen=True)
class ResponseContext:
    """
    Signals about the response being spoken.

    Built by the reducer from the answer confidence and the user's text.
    """
    confidence: float
    is_greeting: bool = False
    has_warning: bool = False
    is_error: bool = False
    is_privilege_filtered: bool = False


class SpeechSynthesizer(ABC):
    """
    Abstract interface for a text-to-speech provider.

    Implementations are responsible for:
    - Talking to one provider
    - Mapping provider-neutral Voice values onto the provider catalogue
    - Raising SynthesisError on any failure

    Non-responsibilities:
    - No retries across providers
    - No playback
    - No state machine logic
    """

    def prepare_text(self, text: str, context: ResponseContext) -> str:  # pylint: disable=unused-argument
        """Return text ready for synthesis. Default: unchanged."""
        return text

    @abstractmethod
    async def synthesize(self, text: str, voice: Voice) -> bytes:
        """
        Synthesize text into encoded audio bytes.

        Raises:
            SynthesisError on provider, transport or decoding failure.
        """
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
