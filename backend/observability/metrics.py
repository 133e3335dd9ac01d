"""
Latency metrics for the voice session.

Responsibilities:
- Measure durations with monotonic time (immune to clock changes)
- Emit each measurement as one METRIC_TIMER event via observability.logger
- Never aggregate: one metric = one log event

Metrics emitted by the runtime:
- transcriber_connect_latency: ConnectTranscriber -> socket open
- answer_latency: answer request round trip
- synthesis_latency: one synthesize() call (per provider)
- turn_latency: utterance dispatched -> first audio handed to playback
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Iterator

from observability.logger import log_event


METRIC_EVENT_TYPE = "METRIC_TIMER"

TRANSCRIBER_CONNECT_LATENCY = "transcriber_connect_latency"
ANSWER_LATENCY = "answer_latency"
SYNTHESIS_LATENCY = "synthesis_latency"
TURN_LATENCY = "turn_latency"


def _elapsed_ms(start_ns: int) -> int:
    return (time.monotonic_ns() - start_ns) // 1_000_000


def emit_metric(
    name: str,
    value_ms: int,
    *,
    session_id: str | None = None,
    state: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Write one latency measurement."""
    log_event({
        "ts_ms": int(time.time() * 1000),
        "event_type": METRIC_EVENT_TYPE,
        "metric": name,
        "value_ms": value_ms,
        "session_id": session_id,
        "state": state,
        "details": details or {},
    })


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    state: str | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[None]:
    """
    Measure the wrapped block.

    The metric is emitted exactly once, also when the block raises;
    exceptions are not suppressed.

    Usage:
        with timed(ANSWER_LATENCY, session_id=ctx.session_id):
            result = await answer_service.answer(request)
    """
    start_ns = time.monotonic_ns()
    try:
        yield
    finally:
        emit_metric(
            name,
            _elapsed_ms(start_ns),
            session_id=session_id,
            state=state,
            details=details,
        )


class Stopwatch:
    """
    Spans that start and end in different places (e.g. two commands).

    start() overwrites an open span of the same key; stop() on a key
    that was never started (or already stopped) emits nothing.
    """

    def __init__(self, *, session_id: str | None = None) -> None:
        self._session_id = session_id
        self._open: dict[str, int] = {}

    def start(self, key: str) -> None:
        self._open[key] = time.monotonic_ns()

    def stop(self, key: str, *, details: dict[str, Any] | None = None) -> int | None:
        start_ns = self._open.pop(key, None)
        if start_ns is None:
            return None

        value_ms = _elapsed_ms(start_ns)
        emit_metric(key, value_ms, session_id=self._session_id, details=details)
        return value_ms

    def discard(self, key: str) -> None:
        self._open.pop(key, None)
