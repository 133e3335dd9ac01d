"""
Unified event definitions for the voice session reducer.

Rules:
- Events describe facts that have occurred (or host intents).
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Every asynchronous result is a ServiceEvent carrying the run_id it was
started for; the reducer drops it when that run is no longer active.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from orchestrator.enums.service import Service, SynthesisProvider
from orchestrator.enums.voice import Voice


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Host control
    # ------------------------------------------------------------------
    START = "START"
    STOP = "STOP"
    RECORD_START = "RECORD_START"
    RECORD_STOP = "RECORD_STOP"
    RECORD_TOGGLE = "RECORD_TOGGLE"
    INTERRUPT = "INTERRUPT"
    MUTE = "MUTE"
    UNMUTE = "UNMUTE"
    MUTE_TOGGLE = "MUTE_TOGGLE"
    SET_VOICE = "SET_VOICE"

    # ------------------------------------------------------------------
    # Session start
    # ------------------------------------------------------------------
    PERMISSION_RESOLVED = "PERMISSION_RESOLVED"
    PERMISSION_FAILED = "PERMISSION_FAILED"

    # ------------------------------------------------------------------
    # Capture / transcriber
    # ------------------------------------------------------------------
    TRANSCRIBER_OPENED = "TRANSCRIBER_OPENED"
    TRANSCRIBER_FAILED = "TRANSCRIBER_FAILED"
    TRANSCRIBER_CONNECTION_CHANGED = "TRANSCRIBER_CONNECTION_CHANGED"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    TRANSCRIPT_INTERIM = "TRANSCRIPT_INTERIM"
    TRANSCRIPT_FINAL = "TRANSCRIPT_FINAL"
    UTTERANCE_END = "UTTERANCE_END"
    SILENCE_TIMEOUT = "SILENCE_TIMEOUT"

    # ------------------------------------------------------------------
    # Answer service
    # ------------------------------------------------------------------
    ANSWER_READY = "ANSWER_READY"
    ANSWER_FAILED = "ANSWER_FAILED"

    # ------------------------------------------------------------------
    # Synthesis / playback
    # ------------------------------------------------------------------
    SYNTHESIS_READY = "SYNTHESIS_READY"
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"
    PLAYBACK_COMPLETE = "PLAYBACK_COMPLETE"
    PLAYBACK_FAILED = "PLAYBACK_FAILED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Service-Scoped Events
# =============================================================================

@dataclass(frozen=True)
class ServiceEvent(Event):
    """
    Base class for events scoped to a versioned asynchronous service.

    The reducer MUST ignore events whose run_id does not match the
    currently active run for that service.
    """

    service: Service
    run_id: int


# =============================================================================
# Host Control Events
# =============================================================================

@dataclass(frozen=True)
class StartRequested(Event):
    """Host asked to enter voice mode."""


@dataclass(frozen=True)
class StopRequested(Event):
    """Host asked to end voice mode (also used on teardown)."""
    reason: str | None = None


@dataclass(frozen=True)
class RecordStart(Event):
    """Host asked to start capturing an utterance."""


@dataclass(frozen=True)
class RecordStop(Event):
    """Host asked to end the current utterance."""


@dataclass(frozen=True)
class RecordToggle(Event):
    """Single-button record control."""


@dataclass(frozen=True)
class Interrupt(Event):
    """Barge-in: cut the spoken response short."""


@dataclass(frozen=True)
class Mute(Event):
    """Pause user-initiated recording without tearing anything down."""


@dataclass(frozen=True)
class Unmute(Event):
    """Lift a previous Mute."""


@dataclass(frozen=True)
class MuteToggle(Event):
    """Flip the mute flag."""


@dataclass(frozen=True)
class SetVoice(Event):
    """Select the synthesis voice for subsequent utterances."""
    voice: Voice


# =============================================================================
# Session Start Events
# =============================================================================

@dataclass(frozen=True)
class PermissionResolved(ServiceEvent):
    """Microphone permission request completed."""
    granted: bool


@dataclass(frozen=True)
class PermissionFailed(ServiceEvent):
    """Microphone permission request raised."""
    reason: str


# =============================================================================
# Capture / Transcriber Events
# =============================================================================

@dataclass(frozen=True)
class TranscriberOpened(ServiceEvent):
    """Transcriber connection confirmed open."""


@dataclass(frozen=True)
class TranscriberFailed(ServiceEvent):
    """Transcriber failed to connect, or failed after connecting."""
    reason: str


@dataclass(frozen=True)
class TranscriberConnectionChanged(ServiceEvent):
    """Vendor connection state changed (connecting, reconnecting, ...)."""
    connection_state: str


@dataclass(frozen=True)
class CaptureFailed(ServiceEvent):
    """Audio capture could not be started for the recording run."""
    reason: str


@dataclass(frozen=True)
class TranscriptInterim(ServiceEvent):
    """Provisional transcript text; replaces any previous interim."""
    text: str


@dataclass(frozen=True)
class TranscriptFinal(ServiceEvent):
    """Finalized transcript segment."""
    text: str


@dataclass(frozen=True)
class UtteranceEnd(ServiceEvent):
    """Vendor VAD detected the end of an utterance."""


@dataclass(frozen=True)
class SilenceTimeout(ServiceEvent):
    """Client silence timer expired for the recording run."""


# =============================================================================
# Answer Events
# =============================================================================

@dataclass(frozen=True)
class AnswerReady(ServiceEvent):
    """Answer service resolved successfully."""
    answer: str
    confidence: float


@dataclass(frozen=True)
class AnswerFailed(ServiceEvent):
    """Answer service failed (network or application level)."""
    reason: str


# =============================================================================
# Synthesis / Playback Events
# =============================================================================

@dataclass(frozen=True)
class SynthesisReady(ServiceEvent):
    """Synthesizer produced audio for the speaking run."""
    provider: SynthesisProvider
    audio: bytes


@dataclass(frozen=True)
class SynthesisFailed(ServiceEvent):
    """Synthesizer raised for the speaking run."""
    provider: SynthesisProvider
    reason: str


@dataclass(frozen=True)
class PlaybackComplete(ServiceEvent):
    """Playback reached the end of the audio (not cancellation)."""


@dataclass(frozen=True)
class PlaybackFailed(ServiceEvent):
    """Playback could not render the audio."""
    reason: str
