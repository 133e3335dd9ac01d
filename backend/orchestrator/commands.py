"""
Side-effect command definitions for the voice session orchestrator.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from adapters.synthesis.base import ResponseContext
from orchestrator.enums.service import SynthesisProvider
from orchestrator.enums.voice import Voice
from orchestrator.events import EventType

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging, replay,
    and runtime dispatch.
    """

    # Session
    REQUEST_PERMISSION = "REQUEST_PERMISSION"

    # Capture / transcriber
    CONNECT_TRANSCRIBER = "CONNECT_TRANSCRIBER"
    DISCONNECT_TRANSCRIBER = "DISCONNECT_TRANSCRIBER"
    START_CAPTURE = "START_CAPTURE"
    STOP_CAPTURE = "STOP_CAPTURE"

    # Answer
    REQUEST_ANSWER = "REQUEST_ANSWER"
    CANCEL_ANSWER = "CANCEL_ANSWER"

    # Synthesis / playback
    SYNTHESIZE = "SYNTHESIZE"
    CANCEL_SYNTHESIS = "CANCEL_SYNTHESIS"
    PLAY_AUDIO = "PLAY_AUDIO"
    STOP_PLAYBACK = "STOP_PLAYBACK"

    # Host
    NOTIFY_TRANSCRIPT = "NOTIFY_TRANSCRIPT"
    COMMIT_TURN = "COMMIT_TURN"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Session Commands
# =============================================================================

@dataclass(frozen=True)
class RequestPermission(Command):
    """Ask AudioCapture for microphone permission for this session run."""
    run_id: int
    command_type: CommandType = CommandType.REQUEST_PERMISSION


# =============================================================================
# Capture / Transcriber Commands
# =============================================================================

@dataclass(frozen=True)
class ConnectTranscriber(Command):
    """
    Create and connect a fresh transcriber for the recording run.

    The runtime must report TranscriberOpened or TranscriberFailed.
    """
    run_id: int
    command_type: CommandType = CommandType.CONNECT_TRANSCRIBER


@dataclass(frozen=True)
class DisconnectTranscriber(Command):
    """Close the transcriber (idempotent; also aborts a pending connect)."""
    run_id: int
    command_type: CommandType = CommandType.DISCONNECT_TRANSCRIBER


@dataclass(frozen=True)
class StartCapture(Command):
    """Start the microphone and pipe chunks into the run's transcriber."""
    run_id: int
    command_type: CommandType = CommandType.START_CAPTURE


@dataclass(frozen=True)
class StopCapture(Command):
    """Stop the microphone (idempotent)."""
    command_type: CommandType = CommandType.STOP_CAPTURE


# =============================================================================
# Answer Commands
# =============================================================================

@dataclass(frozen=True)
class RequestAnswer(Command):
    """
    Dispatch the finalized utterance to the answer service.

    Context, history and system prompt are gathered by the runtime from
    the host providers at execution time.
    """
    run_id: int
    query: str
    command_type: CommandType = CommandType.REQUEST_ANSWER


@dataclass(frozen=True)
class CancelAnswer(Command):
    """Request to cancel an in-flight answer request."""
    run_id: int
    command_type: CommandType = CommandType.CANCEL_ANSWER


# =============================================================================
# Synthesis / Playback Commands
# =============================================================================

@dataclass(frozen=True)
class Synthesize(Command):
    """
    Synthesize text with the given provider.

    response_context is applied through the primary synthesizer's
    prepare_text(); the fallback receives the plain text.
    """
    run_id: int
    text: str
    voice: Voice
    provider: SynthesisProvider
    response_context: ResponseContext | None = None
    command_type: CommandType = CommandType.SYNTHESIZE


@dataclass(frozen=True)
class CancelSynthesis(Command):
    """Request to cancel an in-flight synthesis call."""
    run_id: int
    command_type: CommandType = CommandType.CANCEL_SYNTHESIS


@dataclass(frozen=True)
class PlayAudio(Command):
    """Render synthesized audio; completion is reported as an event."""
    run_id: int
    audio: bytes
    command_type: CommandType = CommandType.PLAY_AUDIO


@dataclass(frozen=True)
class StopPlayback(Command):
    """Stop playback immediately regardless of remaining audio."""
    run_id: int
    command_type: CommandType = CommandType.STOP_PLAYBACK


# =============================================================================
# Host Commands
# =============================================================================

@dataclass(frozen=True)
class NotifyTranscript(Command):
    """Invoke the host on_transcript(user_text, answer_text) callback."""
    user_text: str
    answer_text: str
    command_type: CommandType = CommandType.NOTIFY_TRANSCRIPT


@dataclass(frozen=True)
class CommitTurn(Command):
    """Commit completed turn to the in-memory conversation context."""
    turn_id: int
    user_text: str
    assistant_text: str
    command_type: CommandType = CommandType.COMMIT_TURN


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to start (or replace) a named timer.

    On expiration, the runtime must inject the specified timeout event
    carrying run_id.
    """
    timer_id: str
    duration_ms: int
    timeout_event_type: EventType
    run_id: int
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Request to cancel a previously scheduled timer."""
    timer_id: str
    command_type: CommandType = CommandType.CANCEL_TIMER


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT
