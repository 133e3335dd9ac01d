"""
End-of-turn detection policy.

Two signals can end a user turn: the client-side silence timer (armed on
every finalized segment) and the vendor's utterance-end event (VAD). The
policy decides how the vendor signal interacts with the timer.
"""

from __future__ import annotations

from enum import Enum


class SilencePolicy(str, Enum):
    """
    BACKSTOP:
        Utterance end (re)starts the silence timer when there is
        finalized text. Both signals funnel into one timer, so the turn
        ends exactly once.

    IMMEDIATE:
        Utterance end stops recording at once when there is finalized
        text. The client timer still covers vendors that never send it.

    IGNORE:
        Utterance end is logged only; the client timer alone ends turns.
    """

    BACKSTOP = "backstop"
    IMMEDIATE = "immediate"
    IGNORE = "ignore"
