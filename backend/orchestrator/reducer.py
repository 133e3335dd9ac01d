# pylint: disable=too-many-lines,too-many-return-statements,too-many-branches
"""
Pure voice session reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

# Reducer owns timer semantics; runtime must not cancel timers implicitly.

from __future__ import annotations

from dataclasses import replace
from typing import Any

from adapters.synthesis.base import ResponseContext
from orchestrator.commands import (
    CancelAnswer,
    CancelSynthesis,
    CancelTimer,
    Command,
    CommitTurn,
    ConnectTranscriber,
    DisconnectTranscriber,
    LogEvent,
    NotifyTranscript,
    PlayAudio,
    RequestAnswer,
    RequestPermission,
    StartCapture,
    StartTimer,
    StopCapture,
    StopPlayback,
    Synthesize,
)
from orchestrator.enums.service import Service, SynthesisProvider
from orchestrator.enums.silence_policy import SilencePolicy
from orchestrator.enums.state import State
from orchestrator.events import (
    AnswerFailed,
    AnswerReady,
    CaptureFailed,
    Event,
    EventType,
    Interrupt,
    Mute,
    MuteToggle,
    PermissionFailed,
    PermissionResolved,
    PlaybackComplete,
    PlaybackFailed,
    RecordStart,
    RecordStop,
    RecordToggle,
    ServiceEvent,
    SetVoice,
    SilenceTimeout,
    StartRequested,
    StopRequested,
    SynthesisFailed,
    SynthesisReady,
    TranscriberConnectionChanged,
    TranscriberFailed,
    TranscriberOpened,
    TranscriptFinal,
    TranscriptInterim,
    Unmute,
    UtteranceEnd,
)
from orchestrator.run_ids import RunIds
from orchestrator.speech_text import build_response_context, sanitize_for_speech
from orchestrator.state_dataclass import SessionState
from spec import PERMISSION_DENIED_MESSAGE, TRANSCRIBER_ERROR_MESSAGE


# =============================================================================
# Run ID invariants
# =============================================================================
# - Run IDs are bumped ONLY when new work starts, and on session stop
# - Interrupt (cancellation) never bumps run IDs
# - Every ServiceEvent whose run_id is not the active one is ignored

# =============================================================================
# Timer IDs
# =============================================================================

TIMER_SILENCE = "silence_timeout"


_CONNECTED_STATES = frozenset({
    State.IDLE,
    State.RECORDING,
    State.PROCESSING,
    State.SPEAKING,
})

# Connection states reported by the transcriber that end a recording
_TRANSCRIBER_FATAL_STATES = frozenset({"error"})


# =============================================================================
# Small helpers
# =============================================================================

def _bump_run_id(active_runs: RunIds, service: Service) -> RunIds:
    if service is Service.SESSION:
        return replace(active_runs, session=active_runs.session + 1)
    if service is Service.TRANSCRIBER:
        return replace(active_runs, transcriber=active_runs.transcriber + 1)
    if service is Service.ANSWER:
        return replace(active_runs, answer=active_runs.answer + 1)
    if service is Service.SYNTHESIS:
        return replace(active_runs, synthesis=active_runs.synthesis + 1)
    raise ValueError(service)


def _bump_all(active_runs: RunIds) -> RunIds:
    runs = active_runs
    for service in Service:
        runs = _bump_run_id(runs, service)
    return runs


def _active_run_for(active_runs: RunIds, service: Service) -> int:
    if service is Service.SESSION:
        return active_runs.session
    if service is Service.TRANSCRIBER:
        return active_runs.transcriber
    if service is Service.ANSWER:
        return active_runs.answer
    if service is Service.SYNTHESIS:
        return active_runs.synthesis
    raise ValueError(service)


def _join(*parts: str) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())


def _log(
    state: SessionState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "run_ids": {
                "session": state.active_runs.session,
                "transcriber": state.active_runs.transcriber,
                "answer": state.active_runs.answer,
                "synthesis": state.active_runs.synthesis,
            },
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: SessionState, event: Event, reason: str
) -> tuple[SessionState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _state_changed(
    prev: SessionState, new_state: SessionState, event: Event, source: str
) -> LogEvent:
    return _log(
        new_state,
        event,
        "state_changed",
        {
            "from_state": prev.state.value,
            "to_state": new_state.state.value,
            "source": source,
        },
    )


def _settle(state: SessionState) -> SessionState:
    """
    Derive host-visible flags from the control phase.

    Runs once on every reducer exit, so no handler can leave a flag
    inconsistent with `state`.
    """
    phase = state.state
    listening = state.listening and phase is State.RECORDING
    connected = phase in _CONNECTED_STATES
    return replace(
        state,
        connected=connected,
        listening=listening,
        recording=phase is State.RECORDING and listening,
        speaking=phase is State.SPEAKING,
        processing=phase is State.PROCESSING,
        muted=state.muted and connected,
    )


# =============================================================================
# Sub-flows
# =============================================================================

def _begin_recording(
    state: SessionState, event: Event, source: str
) -> tuple[SessionState, tuple[Command, ...]]:
    """Open a fresh transcriber run; capture starts once it is confirmed open."""
    new_runs = _bump_run_id(state.active_runs, Service.TRANSCRIBER)
    new_state = replace(
        state,
        state=State.RECORDING,
        listening=False,
        utterance="",
        transcript="",
        error=None,
        active_runs=new_runs,
    )
    return new_state, (
        CancelTimer(timer_id=TIMER_SILENCE),
        _log(
            new_state,
            event,
            "connect_transcriber",
            {"transcriber_run_id": new_runs.transcriber, "source": source},
        ),
        ConnectTranscriber(run_id=new_runs.transcriber),
        _state_changed(state, new_state, event, source),
    )


def _release_recording(state: SessionState) -> tuple[Command, ...]:
    return (
        CancelTimer(timer_id=TIMER_SILENCE),
        StopCapture(),
        DisconnectTranscriber(run_id=state.active_runs.transcriber),
    )


def _rollback_recording(
    state: SessionState, event: Event, reason: str
) -> tuple[SessionState, tuple[Command, ...]]:
    """Recording could not start or broke: release everything, back to IDLE."""
    new_state = replace(
        state,
        state=State.IDLE,
        listening=False,
        utterance="",
        transcript="",
        error=reason,
    )
    return new_state, _release_recording(state) + (
        _log(new_state, event, "recording_failed", {"reason": reason}),
        _state_changed(state, new_state, event, "recording_failed"),
    )


def _finish_recording(
    state: SessionState, event: Event, source: str
) -> tuple[SessionState, tuple[Command, ...]]:
    """End the utterance and dispatch it, or drop it when empty."""
    cmds = _release_recording(state)
    text = state.utterance.strip()

    if not text:
        new_state = replace(
            state,
            state=State.IDLE,
            listening=False,
            utterance="",
            transcript="",
        )
        return new_state, cmds + (
            _log(new_state, event, "empty_utterance", {"source": source}),
            _state_changed(state, new_state, event, source),
        )

    new_runs = _bump_run_id(state.active_runs, Service.ANSWER)
    new_state = replace(
        state,
        state=State.PROCESSING,
        listening=False,
        utterance="",
        transcript="",
        pending_user_text=text,
        active_runs=new_runs,
    )
    return new_state, cmds + (
        _log(
            new_state,
            event,
            "request_answer",
            {
                "answer_run_id": new_runs.answer,
                "query_len": len(text),
                "turn_id": state.turn_id,
                "source": source,
            },
        ),
        RequestAnswer(run_id=new_runs.answer, query=text),
        _state_changed(state, new_state, event, source),
    )


def _begin_speaking(
    state: SessionState,
    event: Event,
    *,
    text: str,
    context: ResponseContext,
    source: str,
) -> tuple[SessionState, tuple[Command, ...]]:
    """Start the speaking sub-cycle with the primary synthesizer."""
    speech_text = sanitize_for_speech(text)
    if not speech_text:
        new_state = replace(state, state=State.IDLE)
        return new_state, (
            _log(new_state, event, "nothing_to_speak", {"source": source}),
            _state_changed(state, new_state, event, source),
        )

    new_runs = _bump_run_id(state.active_runs, Service.SYNTHESIS)
    new_state = replace(
        state,
        state=State.SPEAKING,
        speech_text=speech_text,
        synthesis_provider=SynthesisProvider.PRIMARY,
        active_runs=new_runs,
    )
    return new_state, (
        _log(
            new_state,
            event,
            "synthesize",
            {
                "synthesis_run_id": new_runs.synthesis,
                "provider": SynthesisProvider.PRIMARY.value,
                "text_len": len(speech_text),
                "voice": state.selected_voice.value,
                "source": source,
            },
        ),
        Synthesize(
            run_id=new_runs.synthesis,
            text=speech_text,
            voice=state.selected_voice,
            provider=SynthesisProvider.PRIMARY,
            response_context=context,
        ),
        _state_changed(state, new_state, event, source),
    )


def _finish_speaking(
    state: SessionState, event: Event, source: str, details: dict[str, Any] | None = None
) -> tuple[SessionState, tuple[Command, ...]]:
    """Speaking ended without interruption; hands-free sessions listen again."""
    new_state = replace(
        state,
        state=State.IDLE,
        speech_text="",
        synthesis_provider=None,
    )
    cmds: tuple[Command, ...] = (
        _log(new_state, event, source, details),
        _state_changed(state, new_state, event, source),
    )

    if new_state.auto_listen and not new_state.muted:
        rec_state, rec_cmds = _begin_recording(new_state, event, "auto_listen")
        return rec_state, cmds + rec_cmds

    return new_state, cmds


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(
    state: SessionState, event: Event
) -> tuple[SessionState, tuple[Command, ...]]:
    """
    Pure reducer for the voice session state machine.

    Given the current session state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Version-safe: ignores events with stale run IDs
    """
    new_state, commands = _reduce(state, event)
    return _settle(new_state), _logs_last(commands)


def _reduce(
    state: SessionState, event: Event
) -> tuple[SessionState, tuple[Command, ...]]:
    # ------------------------------------------------------------------
    # Valid in any state
    # ------------------------------------------------------------------
    if isinstance(event, SetVoice):
        new_state = replace(state, selected_voice=event.voice)
        return new_state, (
            _log(
                new_state,
                event,
                "set_voice",
                {"from_voice": state.selected_voice.value, "to_voice": event.voice.value},
            ),
        )

    if isinstance(event, StopRequested):
        if state.state is State.OFF:
            return state, (_log(state, event, "stop_noop_when_off"),)

        new_state = SessionState(
            state=State.OFF,
            turn_id=state.turn_id,
            active_runs=_bump_all(state.active_runs),
            selected_voice=state.selected_voice,
            silence_timeout_ms=state.silence_timeout_ms,
            silence_policy=state.silence_policy,
            auto_listen=state.auto_listen,
            welcome_message=state.welcome_message,
        )
        return new_state, _release_recording(state) + (
            CancelAnswer(run_id=state.active_runs.answer),
            CancelSynthesis(run_id=state.active_runs.synthesis),
            StopPlayback(run_id=state.active_runs.synthesis),
            _log(new_state, event, "session_stopped", {"reason": event.reason}),
            _state_changed(state, new_state, event, "stop"),
        )

    if isinstance(event, StartRequested):
        if state.state not in (State.OFF, State.ERROR):
            return _ignore(state, event, "already_started")

        new_runs = _bump_run_id(state.active_runs, Service.SESSION)
        new_state = replace(state, state=State.CONNECTING, error=None, active_runs=new_runs)
        return new_state, (
            _log(new_state, event, "request_permission", {"session_run_id": new_runs.session}),
            RequestPermission(run_id=new_runs.session),
            _state_changed(state, new_state, event, "start"),
        )

    # ------------------------------------------------------------------
    # Stale-callback guard
    # ------------------------------------------------------------------
    if isinstance(event, ServiceEvent):
        if event.run_id != _active_run_for(state.active_runs, event.service):
            return _ignore(state, event, f"{event.event_type.value.lower()}_stale")

    # ============================
    # OFF / ERROR
    # ============================
    if state.state is State.OFF:
        return _ignore(state, event, "session_off")

    if state.state is State.ERROR:
        return _ignore(state, event, "in_error_state")

    # ============================
    # CONNECTING
    # ============================
    if state.state is State.CONNECTING:
        if isinstance(event, PermissionResolved):
            if not event.granted:
                new_state = replace(state, state=State.ERROR, error=PERMISSION_DENIED_MESSAGE)
                return new_state, (
                    _log(new_state, event, "permission_denied"),
                    _state_changed(state, new_state, event, "permission_denied"),
                )

            new_state = replace(state, state=State.IDLE, error=None)
            cmds: tuple[Command, ...] = (
                _log(new_state, event, "permission_granted"),
                _state_changed(state, new_state, event, "permission_granted"),
            )
            if new_state.welcome_message:
                speak_state, speak_cmds = _begin_speaking(
                    new_state,
                    event,
                    text=new_state.welcome_message,
                    context=ResponseContext(confidence=1.0, is_greeting=True),
                    source="welcome",
                )
                return speak_state, cmds + speak_cmds
            return new_state, cmds

        if isinstance(event, PermissionFailed):
            new_state = replace(state, state=State.ERROR, error=event.reason)
            return new_state, (
                _log(new_state, event, "permission_failed", {"reason": event.reason}),
                _state_changed(state, new_state, event, "permission_failed"),
            )

        return _ignore(state, event, "connecting_unhandled")

    # ============================
    # IDLE
    # ============================
    if state.state is State.IDLE:
        if isinstance(event, (RecordStart, RecordToggle)):
            if state.muted:
                return _ignore(state, event, "muted")
            return _begin_recording(state, event, "record_start")

        if isinstance(event, (Mute, Unmute, MuteToggle)):
            if isinstance(event, Mute):
                muted = True
            elif isinstance(event, Unmute):
                muted = False
            else:
                muted = not state.muted

            if muted == state.muted:
                return state, (_log(state, event, "mute_noop", {"muted": muted}),)
            new_state = replace(state, muted=muted)
            return new_state, (_log(new_state, event, "mute_changed", {"muted": muted}),)

        if isinstance(event, RecordStop):
            return state, (_log(state, event, "record_stop_noop_in_idle"),)

        if isinstance(event, Interrupt):
            return _ignore(state, event, "not_speaking")

        return _ignore(state, event, "idle_unhandled")

    # ============================
    # RECORDING
    # ============================
    if state.state is State.RECORDING:
        if isinstance(event, TranscriberOpened):
            new_state = replace(state, listening=True)
            return new_state, (
                _log(
                    new_state,
                    event,
                    "start_capture",
                    {"transcriber_run_id": event.run_id},
                ),
                StartCapture(run_id=event.run_id),
            )

        if isinstance(event, TranscriberFailed):
            return _rollback_recording(state, event, event.reason)

        if isinstance(event, CaptureFailed):
            return _rollback_recording(state, event, event.reason)

        if isinstance(event, TranscriberConnectionChanged):
            if event.connection_state in _TRANSCRIBER_FATAL_STATES:
                return _rollback_recording(state, event, TRANSCRIBER_ERROR_MESSAGE)
            return state, (
                _log(
                    state,
                    event,
                    "transcriber_connection_changed",
                    {"connection_state": event.connection_state},
                ),
            )

        if isinstance(event, TranscriptInterim):
            if not event.text.strip():
                return state, (_log(state, event, "transcript_interim_empty"),)
            new_state = replace(state, transcript=_join(state.utterance, event.text))
            return new_state, (
                CancelTimer(timer_id=TIMER_SILENCE),
                _log(new_state, event, "transcript_interim", {"len": len(event.text)}),
            )

        if isinstance(event, TranscriptFinal):
            if not event.text.strip():
                return state, (_log(state, event, "transcript_final_empty"),)
            utterance = _join(state.utterance, event.text)
            new_state = replace(state, utterance=utterance, transcript=utterance)
            return new_state, (
                StartTimer(
                    timer_id=TIMER_SILENCE,
                    duration_ms=state.silence_timeout_ms,
                    timeout_event_type=EventType.SILENCE_TIMEOUT,
                    run_id=event.run_id,
                ),
                _log(
                    new_state,
                    event,
                    "transcript_final",
                    {"len": len(event.text), "utterance_len": len(utterance)},
                ),
            )

        if isinstance(event, UtteranceEnd):
            policy = state.silence_policy
            if policy is SilencePolicy.IGNORE or not state.utterance.strip():
                return state, (
                    _log(state, event, "utterance_end_logged", {"policy": policy.value}),
                )
            if policy is SilencePolicy.IMMEDIATE:
                return _finish_recording(state, event, "utterance_end")
            return state, (
                StartTimer(
                    timer_id=TIMER_SILENCE,
                    duration_ms=state.silence_timeout_ms,
                    timeout_event_type=EventType.SILENCE_TIMEOUT,
                    run_id=event.run_id,
                ),
                _log(state, event, "utterance_end_restart_timer", {"policy": policy.value}),
            )

        if isinstance(event, SilenceTimeout):
            return _finish_recording(state, event, "silence_timeout")

        if isinstance(event, (RecordStop, RecordToggle)):
            return _finish_recording(state, event, "record_stop")

        if isinstance(event, RecordStart):
            return state, (_log(state, event, "record_start_noop_already_recording"),)

        return _ignore(state, event, "recording_unhandled")

    # ============================
    # PROCESSING
    # ============================
    if state.state is State.PROCESSING:
        if isinstance(event, AnswerReady):
            user_text = state.pending_user_text
            turn_id = state.turn_id
            new_state = replace(
                state,
                turn_id=turn_id + 1,
                pending_user_text="",
            )
            cmds = (
                NotifyTranscript(user_text=user_text, answer_text=event.answer),
                CommitTurn(
                    turn_id=turn_id,
                    user_text=user_text,
                    assistant_text=event.answer,
                ),
                _log(
                    new_state,
                    event,
                    "answer_ready",
                    {
                        "turn_id": turn_id,
                        "answer_len": len(event.answer),
                        "confidence": event.confidence,
                    },
                ),
            )
            speak_state, speak_cmds = _begin_speaking(
                new_state,
                event,
                text=event.answer,
                context=build_response_context(
                    user_text=user_text,
                    confidence=event.confidence,
                ),
                source="answer_ready",
            )
            return speak_state, cmds + speak_cmds

        if isinstance(event, AnswerFailed):
            new_state = replace(
                state,
                state=State.IDLE,
                pending_user_text="",
                error=event.reason,
            )
            return new_state, (
                _log(new_state, event, "answer_failed", {"reason": event.reason}),
                _state_changed(state, new_state, event, "answer_failed"),
            )

        if isinstance(event, (RecordStart, RecordToggle)):
            return _ignore(state, event, "answer_pending")

        if isinstance(event, Interrupt):
            return _ignore(state, event, "not_speaking")

        return _ignore(state, event, "processing_unhandled")

    # ============================
    # SPEAKING
    # ============================
    if state.state is State.SPEAKING:
        if isinstance(event, SynthesisReady):
            if event.provider is not state.synthesis_provider:
                return _ignore(state, event, "synthesis_provider_stale")
            return state, (
                _log(
                    state,
                    event,
                    "play_audio",
                    {"provider": event.provider.value, "audio_bytes": len(event.audio)},
                ),
                PlayAudio(run_id=event.run_id, audio=event.audio),
            )

        if isinstance(event, SynthesisFailed):
            if event.provider is not state.synthesis_provider:
                return _ignore(state, event, "synthesis_provider_stale")

            if event.provider is SynthesisProvider.PRIMARY:
                new_state = replace(state, synthesis_provider=SynthesisProvider.FALLBACK)
                return new_state, (
                    _log(
                        new_state,
                        event,
                        "synthesis_fallback",
                        {"reason": event.reason, "synthesis_run_id": event.run_id},
                    ),
                    Synthesize(
                        run_id=event.run_id,
                        text=state.speech_text,
                        voice=state.selected_voice,
                        provider=SynthesisProvider.FALLBACK,
                    ),
                )

            return _finish_speaking(
                state, event, "synthesis_failed", {"reason": event.reason}
            )

        if isinstance(event, PlaybackComplete):
            return _finish_speaking(state, event, "playback_complete")

        if isinstance(event, PlaybackFailed):
            return _finish_speaking(
                state, event, "playback_failed", {"reason": event.reason}
            )

        if isinstance(event, (Interrupt, RecordToggle)):
            new_state = replace(
                state,
                state=State.IDLE,
                speech_text="",
                synthesis_provider=None,
            )
            return new_state, (
                CancelSynthesis(run_id=state.active_runs.synthesis),
                StopPlayback(run_id=state.active_runs.synthesis),
                _log(
                    new_state,
                    event,
                    "interrupt",
                    {"synthesis_run_id": state.active_runs.synthesis},
                ),
                _state_changed(state, new_state, event, "interrupt"),
            )

        if isinstance(event, RecordStart):
            return _ignore(state, event, "speaking")

        return _ignore(state, event, "speaking_unhandled")

    return _ignore(state, event, "unknown_state")
