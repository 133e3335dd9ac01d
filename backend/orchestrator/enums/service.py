"""
Service enumeration for run-id–versioned asynchronous work.

Rules:
- This enum identifies versioned external services only.
- It must NOT encode behavior or lifecycle rules.
- Reducer logic decides how services are started, canceled, and reset.
"""

from __future__ import annotations

from enum import Enum


class Service(str, Enum):
    """
    Versioned services managed by the orchestrator.

    Each service:
    - Has at most one active run at a time
    - Is identified by a monotonically increasing run_id

    SESSION is the liveness token of the whole voice session; it is
    bumped on start() and stop() so continuations from a previous
    session are discarded.
    """

    SESSION = "SESSION"
    TRANSCRIBER = "TRANSCRIBER"
    ANSWER = "ANSWER"
    SYNTHESIS = "SYNTHESIS"


class SynthesisProvider(str, Enum):
    """Which synthesizer the current speaking sub-cycle is using."""

    PRIMARY = "PRIMARY"
    FALLBACK = "FALLBACK"
