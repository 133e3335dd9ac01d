# pylint: disable=missing-module-docstring,missing-function-docstring
from dataclasses import replace

from orchestrator.reducer import reduce, TIMER_SILENCE
from orchestrator.state_dataclass import SessionState
from orchestrator.run_ids import RunIds
from orchestrator.enums.state import State
from orchestrator.enums.service import Service
from orchestrator.enums.voice import Voice
from orchestrator.enums.silence_policy import SilencePolicy

from orchestrator.events import (
    EventType,
    StartRequested,
    StopRequested,
    SetVoice,
    PermissionResolved,
    PermissionFailed,
    Mute,
    Unmute,
    MuteToggle,
    RecordStart,
)

from orchestrator.commands import (
    CancelAnswer,
    CancelSynthesis,
    CancelTimer,
    DisconnectTranscriber,
    LogEvent,
    RequestPermission,
    StopCapture,
    StopPlayback,
    Synthesize,
)
from spec import PERMISSION_DENIED_MESSAGE


# ---------------------------------------------------------------------
# Event helpers (mirror runtime construction)
# ---------------------------------------------------------------------

def start(ts_ms: int = 0) -> StartRequested:
    return StartRequested(ts_ms=ts_ms, event_type=EventType.START)


def stop(ts_ms: int = 0) -> StopRequested:
    return StopRequested(ts_ms=ts_ms, event_type=EventType.STOP)


def permission(run_id: int, granted: bool = True) -> PermissionResolved:
    return PermissionResolved(
        ts_ms=0,
        event_type=EventType.PERMISSION_RESOLVED,
        service=Service.SESSION,
        run_id=run_id,
        granted=granted,
    )


def permission_failed(run_id: int, reason: str = "no device") -> PermissionFailed:
    return PermissionFailed(
        ts_ms=0,
        event_type=EventType.PERMISSION_FAILED,
        service=Service.SESSION,
        run_id=run_id,
        reason=reason,
    )


def non_log(commands):
    return [c for c in commands if not isinstance(c, LogEvent)]


def decisions(commands):
    return [c.event["decision"] for c in commands if isinstance(c, LogEvent)]


def idle(**kwargs) -> SessionState:
    base = SessionState(
        state=State.IDLE,
        connected=True,
        active_runs=RunIds(session=1),
    )
    return replace(base, **kwargs)


# ---------------------------------------------------------------------
# start()
# ---------------------------------------------------------------------

def test_start_from_off_requests_permission_with_new_session_run():
    new_state, commands = reduce(SessionState(), start())

    assert new_state.state is State.CONNECTING
    assert new_state.connected is False
    assert new_state.active_runs.session == 1
    assert non_log(commands) == [RequestPermission(run_id=1)]


def test_start_while_connected_is_ignored():
    state = idle()
    new_state, commands = reduce(state, start())

    assert new_state == state
    assert decisions(commands) == ["ignore"]
    assert commands[0].event["details"]["reason"] == "already_started"


def test_start_from_error_clears_error():
    state = SessionState(state=State.ERROR, error="boom", active_runs=RunIds(session=1))
    new_state, commands = reduce(state, start())

    assert new_state.state is State.CONNECTING
    assert new_state.error is None
    assert non_log(commands) == [RequestPermission(run_id=2)]


def test_permission_granted_without_welcome_enters_idle():
    state, _ = reduce(SessionState(), start())
    new_state, commands = reduce(state, permission(run_id=1))

    assert new_state.state is State.IDLE
    assert new_state.connected is True
    assert new_state.error is None
    assert non_log(commands) == []


def test_permission_granted_with_welcome_speaks_greeting():
    state, _ = reduce(SessionState(welcome_message="Hi! I'm **Mercury**."), start())
    new_state, commands = reduce(state, permission(run_id=1))

    assert new_state.state is State.SPEAKING
    assert new_state.speaking is True
    assert new_state.connected is True

    synth = [c for c in commands if isinstance(c, Synthesize)]
    assert len(synth) == 1
    assert synth[0].text == "Hi! I'm Mercury."
    assert synth[0].response_context is not None
    assert synth[0].response_context.is_greeting is True
    assert synth[0].response_context.confidence == 1.0


def test_permission_denied_enters_error_never_connected():
    state, _ = reduce(SessionState(), start())
    new_state, _ = reduce(state, permission(run_id=1, granted=False))

    assert new_state.state is State.ERROR
    assert new_state.error == PERMISSION_DENIED_MESSAGE
    assert new_state.connected is False


def test_permission_failure_carries_reason():
    state, _ = reduce(SessionState(), start())
    new_state, _ = reduce(state, permission_failed(run_id=1, reason="device busy"))

    assert new_state.state is State.ERROR
    assert new_state.error == "device busy"


def test_stale_permission_after_stop_keeps_off():
    state, _ = reduce(SessionState(), start())
    state, _ = reduce(state, stop())
    assert state.state is State.OFF

    new_state, commands = reduce(state, permission(run_id=1))

    assert new_state.state is State.OFF
    assert new_state.connected is False
    assert commands[0].event["details"]["reason"] == "permission_resolved_stale"


# ---------------------------------------------------------------------
# stop()
# ---------------------------------------------------------------------

def test_stop_releases_everything_and_bumps_all_runs():
    state = SessionState(
        state=State.RECORDING,
        listening=True,
        utterance="hello",
        transcript="hello wor",
        active_runs=RunIds(session=1, transcriber=2, answer=3, synthesis=4),
        selected_voice=Voice.NOVA,
        silence_policy=SilencePolicy.IMMEDIATE,
        turn_id=5,
    )
    new_state, commands = reduce(state, stop())

    assert new_state.state is State.OFF
    assert new_state.connected is False
    assert new_state.recording is False
    assert new_state.speaking is False
    assert new_state.utterance == ""
    assert new_state.transcript == ""
    assert new_state.active_runs == RunIds(session=2, transcriber=3, answer=4, synthesis=5)

    # Preferences survive
    assert new_state.selected_voice is Voice.NOVA
    assert new_state.silence_policy is SilencePolicy.IMMEDIATE
    assert new_state.turn_id == 5

    assert non_log(commands) == [
        CancelTimer(timer_id=TIMER_SILENCE),
        StopCapture(),
        DisconnectTranscriber(run_id=2),
        CancelAnswer(run_id=3),
        CancelSynthesis(run_id=4),
        StopPlayback(run_id=4),
    ]


def test_stop_is_idempotent():
    state, _ = reduce(idle(), stop())
    again, commands = reduce(state, stop())

    assert again == state
    assert non_log(commands) == []
    assert decisions(commands) == ["stop_noop_when_off"]


# ---------------------------------------------------------------------
# mute / voice
# ---------------------------------------------------------------------

def test_mute_blocks_recording_until_unmuted():
    state, _ = reduce(idle(), Mute(ts_ms=0, event_type=EventType.MUTE))
    assert state.muted is True

    blocked, commands = reduce(state, RecordStart(ts_ms=0, event_type=EventType.RECORD_START))
    assert blocked.state is State.IDLE
    assert commands[0].event["details"]["reason"] == "muted"

    state, _ = reduce(state, Unmute(ts_ms=0, event_type=EventType.UNMUTE))
    assert state.muted is False

    recording, _ = reduce(state, RecordStart(ts_ms=0, event_type=EventType.RECORD_START))
    assert recording.state is State.RECORDING


def test_mute_toggle_flips_flag():
    state, _ = reduce(idle(), MuteToggle(ts_ms=0, event_type=EventType.MUTE_TOGGLE))
    assert state.muted is True
    state, _ = reduce(state, MuteToggle(ts_ms=0, event_type=EventType.MUTE_TOGGLE))
    assert state.muted is False


def test_mute_outside_idle_is_ignored():
    state = SessionState(state=State.RECORDING, listening=True, active_runs=RunIds(1, 1, 0, 0))
    new_state, _ = reduce(state, Mute(ts_ms=0, event_type=EventType.MUTE))
    assert new_state.muted is False


def test_set_voice_applies_in_any_state():
    for phase in (State.OFF, State.IDLE, State.SPEAKING, State.ERROR):
        state = SessionState(state=phase)
        new_state, commands = reduce(
            state,
            SetVoice(ts_ms=0, event_type=EventType.SET_VOICE, voice=Voice.SAGE),
        )
        assert new_state.selected_voice is Voice.SAGE
        assert new_state.state is phase
        assert non_log(commands) == []
