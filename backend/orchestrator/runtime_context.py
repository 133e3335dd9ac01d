"""
Runtime execution context.

Gives Runtime access to the session-owned imperative resources it needs
for command execution: capabilities, conversation history and host
callbacks.

This module contains:
- Host callback signatures
- Zero orchestration logic
- Zero state mutation
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Mapping, Sequence

from adapters.answer.base import AnswerService
from adapters.capture.base import AudioCapture
from adapters.playback.base import AudioPlayback
from adapters.synthesis.base import SpeechSynthesizer
from adapters.transcriber.base import TranscriberFactory
from context.conversation import ConversationContext
from context.serialization import PageContext
from orchestrator.state_dataclass import SessionState


# ---------------------------------------------------------------------
# Host callbacks
# ---------------------------------------------------------------------

TranscriptCallback = Callable[[str, str], None]
StateCallback = Callable[[SessionState], None]


@dataclass(frozen=True)
class HostProviders:
    """
    Optional pull-style hooks into the host UI, read once per answer
    request.

    When get_chat_history is None the session's own ConversationContext
    supplies history.
    """

    get_context: Callable[[], Sequence[str]] | None = None
    get_chat_history: Callable[[], Sequence[Mapping[str, str]]] | None = None
    get_system_prompt: Callable[[], str | None] | None = None
    get_page_context: Callable[[], PageContext | None] | None = None


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

@dataclass
class RuntimeExecutionContext:
    """
    Imperative execution context for Runtime.

    Runtime is allowed to:
    - Call capabilities
    - Read host providers
    - Invoke host callbacks

    Runtime is NOT allowed to:
    - Mutate session state directly
    - Perform orchestration decisions
    """

    session_id: str
    capture: AudioCapture
    playback: AudioPlayback
    transcriber_factory: TranscriberFactory
    primary_synthesizer: SpeechSynthesizer
    answer_service: AnswerService
    fallback_synthesizer: SpeechSynthesizer | None = None
    conversation: ConversationContext = field(default_factory=ConversationContext)
    providers: HostProviders = field(default_factory=HostProviders)
    on_transcript: TranscriptCallback | None = None
    on_state_change: StateCallback | None = None
