"""
Run ID container for versioned asynchronous work.

Rules:
- Run IDs are monotonic integers.
- They are owned and incremented ONLY by the orchestrator reducer.
- This module defines structure, not behavior.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RunIds:
    """
    Immutable container for active run IDs per service.

    Semantics:
    - A value of 0 means "no run has been started yet".
    - Once a run ID is incremented, it is never reused.
    - An asynchronous result is admitted only while the run it was
      started for is still the active one.
    """

    session: int = 0
    transcriber: int = 0
    answer: int = 0
    synthesis: int = 0
