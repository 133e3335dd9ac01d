"""
Voice session manager (host-facing facade).

Owns one Runtime and exposes the voice-mode controls a dashboard needs.
Every public method turns into exactly one host event for the reducer;
the manager itself makes no orchestration decisions.

Awaiting a control method waits for the side effects it started that
the caller can observe (permission, transcriber connect, capture start,
transcriber disconnect). Answers, synthesis and playback continue in the
background and surface through state and on_transcript.

Nothing raises across this API: capability failures end up in `error`.
"""

from __future__ import annotations

import time
import uuid

from adapters.answer.base import AnswerService
from adapters.capture.base import AudioCapture
from adapters.playback.base import AudioPlayback
from adapters.synthesis.base import SpeechSynthesizer
from adapters.transcriber.base import TranscriberFactory
from context.conversation import ConversationContext
from orchestrator.enums.silence_policy import SilencePolicy
from orchestrator.enums.state import State
from orchestrator.enums.voice import Voice
from orchestrator.events import (
    Event,
    EventType,
    Interrupt,
    Mute,
    MuteToggle,
    RecordStart,
    RecordStop,
    RecordToggle,
    SetVoice,
    StartRequested,
    StopRequested,
    Unmute,
)
from orchestrator.runtime import (
    TASK_CAPTURE_START,
    TASK_PERMISSION,
    TASK_TRANSCRIBER_CONNECT,
    TASK_TRANSCRIBER_DISCONNECT,
    Runtime,
)
from orchestrator.runtime_context import (
    HostProviders,
    RuntimeExecutionContext,
    StateCallback,
    TranscriptCallback,
)
from orchestrator.state_dataclass import SessionState
from spec import SILENCE_TIMEOUT_MS, WELCOME_MESSAGE


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class VoiceSessionManager:
    """
    One voice conversation: mic -> transcript -> answer -> speech.

    Typical host usage:

        manager = VoiceSessionManager(capture=..., playback=..., ...)
        await manager.start()
        await manager.toggle_recording()   # user talks, silence ends the turn
        ...
        await manager.close()
    """

    def __init__(
        self,
        *,
        capture: AudioCapture,
        playback: AudioPlayback,
        transcriber_factory: TranscriberFactory,
        primary_synthesizer: SpeechSynthesizer,
        answer_service: AnswerService,
        fallback_synthesizer: SpeechSynthesizer | None = None,
        on_transcript: TranscriptCallback | None = None,
        on_state_change: StateCallback | None = None,
        providers: HostProviders | None = None,
        session_id: str | None = None,
        voice: Voice = Voice.ARIA,
        silence_timeout_ms: int = SILENCE_TIMEOUT_MS,
        silence_policy: SilencePolicy = SilencePolicy.BACKSTOP,
        auto_listen: bool = False,
        welcome_message: str | None = WELCOME_MESSAGE,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.conversation = ConversationContext(session_id=self.session_id)

        context = RuntimeExecutionContext(
            session_id=self.session_id,
            capture=capture,
            playback=playback,
            transcriber_factory=transcriber_factory,
            primary_synthesizer=primary_synthesizer,
            answer_service=answer_service,
            fallback_synthesizer=fallback_synthesizer,
            conversation=self.conversation,
            providers=providers or HostProviders(),
            on_transcript=on_transcript,
            on_state_change=on_state_change,
        )
        self._runtime = Runtime(
            initial_state=SessionState(
                selected_voice=voice,
                silence_timeout_ms=silence_timeout_ms,
                silence_policy=silence_policy,
                auto_listen=auto_listen,
                welcome_message=welcome_message,
            ),
            context=context,
        )
        self._closed = False

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._runtime.state

    @property
    def runtime(self) -> Runtime:
        return self._runtime

    @property
    def is_connected(self) -> bool:
        return self.state.connected

    @property
    def is_recording(self) -> bool:
        return self.state.recording

    @property
    def is_speaking(self) -> bool:
        return self.state.speaking

    @property
    def is_processing(self) -> bool:
        return self.state.processing

    @property
    def is_muted(self) -> bool:
        return self.state.muted

    @property
    def transcript(self) -> str:
        return self.state.transcript

    @property
    def error(self) -> str | None:
        return self.state.error

    @property
    def selected_voice(self) -> Voice:
        return self.state.selected_voice

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Enter voice mode: ask for the microphone, then greet."""
        if self._send(StartRequested, EventType.START):
            await self._runtime.wait_for(TASK_PERMISSION)

    async def stop(self) -> None:
        """Leave voice mode. Safe to call in any state, any number of times."""
        if self._send(StopRequested, EventType.STOP):
            await self._runtime.wait_for(TASK_TRANSCRIBER_DISCONNECT)

    async def close(self) -> None:
        """stop() plus release of every device, client and task."""
        if self._closed:
            return
        await self.stop()
        self._closed = True
        await self._runtime.shutdown()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def start_recording(self) -> None:
        if self._send(RecordStart, EventType.RECORD_START):
            await self._await_recording_transition()

    async def stop_recording(self) -> None:
        if self._send(RecordStop, EventType.RECORD_STOP):
            await self._await_recording_transition()

    async def toggle_recording(self) -> None:
        """Record, stop recording or barge in, depending on the phase."""
        if self._send(RecordToggle, EventType.RECORD_TOGGLE):
            await self._await_recording_transition()

    async def interrupt(self) -> None:
        """Cut the spoken response short. Never starts a recording."""
        self._send(Interrupt, EventType.INTERRUPT)

    # ------------------------------------------------------------------
    # Mute / voice
    # ------------------------------------------------------------------

    async def toggle_mute(self) -> None:
        self._send(MuteToggle, EventType.MUTE_TOGGLE)

    async def mute(self) -> None:
        self._send(Mute, EventType.MUTE)

    async def unmute(self) -> None:
        self._send(Unmute, EventType.UNMUTE)

    def set_voice(self, voice: Voice | str) -> None:
        if self._closed:
            return
        self._runtime.dispatch(SetVoice(
            event_type=EventType.SET_VOICE,
            ts_ms=_now_ms(),
            voice=Voice(voice),
        ))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _send(self, event_cls: type[Event], event_type: EventType) -> bool:
        """Dispatch a field-less host event. False once the manager is closed."""
        if self._closed:
            return False
        self._runtime.dispatch(event_cls(event_type=event_type, ts_ms=_now_ms()))
        return True

    async def _await_recording_transition(self) -> None:
        if self.state.state is State.RECORDING:
            await self._runtime.wait_for(TASK_TRANSCRIBER_CONNECT)
            await self._runtime.wait_for(TASK_CAPTURE_START)
        else:
            await self._runtime.wait_for(TASK_TRANSCRIBER_DISCONNECT)
