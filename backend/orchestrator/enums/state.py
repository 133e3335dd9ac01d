"""
Authoritative session state enumeration.

Rules:
- This enum defines ONLY the control-plane phases.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class State(str, Enum):
    """
    High-level control phases for a single voice session.

    OFF:
        No resources acquired. Initial and terminal phase.

    CONNECTING:
        Waiting on microphone permission.

    IDLE:
        Connected; nothing captured, nothing playing. Muting is a flag
        on top of IDLE, not a phase of its own.

    RECORDING:
        Capturing audio for the current utterance.

    PROCESSING:
        Utterance dispatched; waiting on the answer service.

    SPEAKING:
        Synthesizing and/or playing a response.

    ERROR:
        Session could not start. Only start() leaves this phase.
    """

    OFF = "OFF"
    CONNECTING = "CONNECTING"
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    PROCESSING = "PROCESSING"
    SPEAKING = "SPEAKING"
    ERROR = "ERROR"
