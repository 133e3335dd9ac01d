"""
Authoritative voice session state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
- Only the reducer produces new instances; everything else reads.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from orchestrator.enums.service import SynthesisProvider
from orchestrator.enums.silence_policy import SilencePolicy
from orchestrator.enums.state import State
from orchestrator.enums.voice import Voice
from orchestrator.run_ids import RunIds

from spec import SILENCE_TIMEOUT_MS


# =============================================================================
# Session State
# =============================================================================

@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of all orchestrator-owned session state."""

    # ------------------------------------------------------------------
    # Control phase
    # ------------------------------------------------------------------
    state: State = State.OFF

    # ------------------------------------------------------------------
    # Host-visible flags (kept consistent with `state` by the reducer)
    # ------------------------------------------------------------------
    connected: bool = False

    # Transcriber confirmed open for the current recording run
    listening: bool = False

    # Capturing and streaming audio (implies connected and listening)
    recording: bool = False

    speaking: bool = False

    # Answer request outstanding ("thinking")
    processing: bool = False

    # Sub-state of IDLE; gates user-initiated recording only
    muted: bool = False

    # ------------------------------------------------------------------
    # Utterance
    # ------------------------------------------------------------------

    # Display text: accumulated finals + latest interim
    transcript: str = ""

    # Accumulated finalized text; the only text sent for answering
    utterance: str = ""

    # ------------------------------------------------------------------
    # Turn bookkeeping
    # ------------------------------------------------------------------
    turn_id: int = 0
    pending_user_text: str = ""

    # Sanitized text of the in-flight speaking sub-cycle (for fallback)
    speech_text: str = ""
    synthesis_provider: SynthesisProvider | None = None

    # ------------------------------------------------------------------
    # Run/version tracking
    # ------------------------------------------------------------------
    active_runs: RunIds = field(default_factory=RunIds)

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    error: str | None = None

    # ------------------------------------------------------------------
    # Preferences / policy (survive stop())
    # ------------------------------------------------------------------
    selected_voice: Voice = Voice.ARIA
    silence_timeout_ms: int = SILENCE_TIMEOUT_MS
    silence_policy: SilencePolicy = SilencePolicy.BACKSTOP
    auto_listen: bool = False
    welcome_message: str | None = None
