"""
In-memory conversation history for one voice session.

Responsibilities:
- Store ordered user/assistant turns
- Enforce truncation rules:
  - Max 8 turns OR max 6,000 characters (whichever is hit first)
  - Drop oldest turns until constraints are satisfied
  - Allow a single oversized turn (with warning)
- Provide a role/content representation for the answer request

Non-responsibilities:
- No persistence (history dies with the process)
- No reducer logic
- No prompt formatting
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from observability.logger import log_event
from spec import MAX_CONTEXT_CHARS, MAX_CONTEXT_TURNS


Role = Literal["user", "assistant"]


@dataclass(frozen=True)
class Turn:
    """Single conversation turn."""
    role: Role
    text: str
    turn_id: int


class ConversationContext:
    """
    Mutable conversation history owned by the runtime.

    This object is intentionally imperative:
    - Reducer decides *when* a turn is committed
    - This class decides *what to keep*

    Invariants:
    - Turns are stored in chronological order
    - A turn_id is committed at most once
    """

    def __init__(self, session_id: str | None = None) -> None:
        self._session_id = session_id
        self._turns: list[Turn] = []
        self._last_committed_turn_id = -1

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def commit_turn(self, turn_id: int, user_text: str, assistant_text: str) -> bool:
        """
        Append a completed user/assistant exchange.

        Returns False (and stores nothing) for a stale or duplicate turn_id.
        """
        if turn_id <= self._last_committed_turn_id:
            log_event({
                "event_type": "context_commit_skipped",
                "session_id": self._session_id,
                "turn_id": turn_id,
                "last_committed_turn_id": self._last_committed_turn_id,
            })
            return False

        self._turns.append(Turn(role="user", text=user_text, turn_id=turn_id))
        self._turns.append(Turn(role="assistant", text=assistant_text, turn_id=turn_id))
        self._last_committed_turn_id = turn_id
        self._truncate()
        return True

    def clear(self) -> None:
        """Forget every turn (new conversation)."""
        self._turns.clear()

    def __len__(self) -> int:
        return len(self._turns)

    def serialize(self) -> list[dict[str, str]]:
        """
        Serialize turns into a role/content structure.

        Output format:
        [
          {"role": "user", "content": "..."},
          {"role": "assistant", "content": "..."},
        ]
        """
        return [
            {"role": t.role, "content": t.text}
            for t in self._turns
        ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _truncate(self) -> None:
        """
        Enforce context size limits.

        Rules:
        - Max 8 turns OR max 6,000 characters
        - Drop oldest turns until valid
        - Allow a single oversized turn (log warning)
        """
        while self._violates_limits():
            if len(self._turns) == 1:
                log_event({
                    "event_type": "context_single_turn_oversized",
                    "level": "WARNING",
                    "session_id": self._session_id,
                    "turn_id": self._turns[0].turn_id,
                    "char_count": len(self._turns[0].text),
                })
                break

            dropped = self._turns.pop(0)
            log_event({
                "event_type": "context_turn_dropped",
                "session_id": self._session_id,
                "turn_id": dropped.turn_id,
                "role": dropped.role,
                "char_count": len(dropped.text),
            })

    def _violates_limits(self) -> bool:
        """Return True if turn or character limits are exceeded."""
        if len(self._turns) > MAX_CONTEXT_TURNS:
            return True

        total_chars = sum(len(t.text) for t in self._turns)
        return total_chars > MAX_CONTEXT_CHARS
