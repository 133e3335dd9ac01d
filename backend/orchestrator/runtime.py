"""
Runtime execution shell for a single voice session.

Responsibilities:
- Own session state
- Call pure reducer
- Execute commands with side effects (capture, transcriber, answer,
  synthesis, playback, host callbacks)
- Schedule and cancel timers
- Convert adapter results and timer expiry into events

Every suspension point runs in a runtime-owned task. Its outcome comes
back as a ServiceEvent carrying the run_id it was started for; the
reducer decides whether that run is still the active one.
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Coroutine

from adapters.capture.base import MicPermission
from adapters.synthesis.base import SpeechSynthesizer
from adapters.transcriber.base import ConnectionState, SpeechTranscriber, TranscriberCallbacks
from context.serialization import build_answer_request
from observability.logger import log_event
from observability.metrics import (
    ANSWER_LATENCY,
    SYNTHESIS_LATENCY,
    TRANSCRIBER_CONNECT_LATENCY,
    TURN_LATENCY,
    Stopwatch,
    timed,
)
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
from orchestrator.events import (
    AnswerFailed,
    AnswerReady,
    CaptureFailed,
    Event,
    EventType,
    PermissionFailed,
    PermissionResolved,
    PlaybackComplete,
    PlaybackFailed,
    SilenceTimeout,
    SynthesisFailed,
    SynthesisReady,
    TranscriberConnectionChanged,
    TranscriberFailed,
    TranscriberOpened,
    TranscriptFinal,
    TranscriptInterim,
    UtteranceEnd,
)
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import SessionState
from spec import ANSWER_FAILED_MESSAGE, START_FAILED_MESSAGE, TRANSCRIBER_ERROR_MESSAGE


if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


# Task names awaited by the session manager
TASK_PERMISSION = "permission"
TASK_TRANSCRIBER_CONNECT = "transcriber_connect"
TASK_TRANSCRIBER_DISCONNECT = "transcriber_disconnect"
TASK_CAPTURE_START = "capture_start"
TASK_ANSWER = "answer"
TASK_SYNTHESIS = "synthesis"
TASK_PLAYBACK = "playback"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _reason(exc: BaseException, default: str) -> str:
    return str(exc) or default


class Runtime:
    """
    Runtime execution boundary for a single voice session.

    Responsibilities:
    - Own the authoritative session state
    - Act as the universal event sink for the session
      (host intents, adapter results, timer events)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects
    - Schedule and cancel timers

    Guarantees:
    - Reducer is always called exactly once per incoming event
    - State is updated before any side effects execute
    - Commands execute synchronously in reducer order; anything that
      awaits runs in a task, so event handling never interleaves
    - Adapter callbacks are re-posted through the loop, never
      dispatched re-entrantly
    - Runtime never performs orchestration logic itself
    """

    def __init__(
        self,
        *,
        initial_state: SessionState,
        context: RuntimeExecutionContext,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._named: dict[str, asyncio.Task[Any]] = {}

        # Live transcriber and the recording run it belongs to
        self._transcriber: SpeechTranscriber | None = None
        self._transcriber_run = 0

        # Run whose capture/playback is logically active (None = stopped)
        self._capture_run: int | None = None
        self._playback_run: int | None = None

        # Utterance dispatched -> first audio played
        self._stopwatch = Stopwatch(session_id=context.session_id)

        self._closed = False

    @property
    def state(self) -> SessionState:
        """
        Return the current immutable session state.

        The returned object must be treated as read-only; it is only
        replaced internally by Runtime via the reducer.
        """
        return self._state

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the orchestration pipeline.

        Processing steps:
        1. Pass the current state and event to the pure reducer
        2. Swap in the new session state
        3. Execute all emitted commands sequentially
        4. Notify the host if the state changed

        This method is the *only* entry point for events affecting
        session state.
        """
        self._dispatch(event)

    def dispatch(self, event: Event) -> None:
        """Synchronous handle_event() for callers outside a coroutine."""
        self._dispatch(event)

    def _dispatch(self, event: Event) -> None:
        if self._closed:
            return

        prev_state = self._state
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            self._execute_command(cmd)

        if new_state != prev_state and self._ctx.on_state_change is not None:
            try:
                self._ctx.on_state_change(new_state)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log_failure("host_state_callback_failed", exc)

    def _post(self, event: Event) -> None:
        """Queue an event from an adapter callback onto the loop."""
        if self._closed:
            return
        asyncio.get_running_loop().call_soon(self._dispatch, event)

    # ------------------------------------------------------------------
    # Task bookkeeping
    # ------------------------------------------------------------------

    def _spawn(self, name: str, coro: Coroutine[Any, Any, None]) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=f"{self._ctx.session_id}:{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._named[name] = task
        return task

    def _cancel_named(self, name: str) -> bool:
        """Cancel the latest task with this name unless it is finished or is the caller."""
        task = self._named.get(name)
        if task is None or task.done() or task is asyncio.current_task():
            return False
        task.cancel()
        return True

    def has_task(self, name: str) -> bool:
        """True while the latest task with this name is running."""
        task = self._named.get(name)
        return task is not None and not task.done()

    async def wait_for(self, name: str) -> None:
        """
        Wait until the most recent task with this name has finished.

        Returns immediately when no such task exists. Never raises.
        """
        task = self._named.get(name)
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def settle(self) -> None:
        """
        Wait until no runtime task or queued callback is outstanding.

        Timers are not waited for.
        """
        while True:
            await asyncio.sleep(0)
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                await asyncio.sleep(0)
                if not any(not t.done() for t in self._tasks):
                    return
                continue
            await asyncio.wait(pending)

    async def shutdown(self) -> None:
        """
        Clean shutdown of runtime.

        Cancels all timers and in-flight tasks, waits for them, releases
        the transcriber and disposes playback. Further events are
        ignored.
        """
        self._closed = True

        for timer_id in list(self._timers.keys()):
            self._cancel_timer(timer_id)

        transcriber = self._transcriber
        self._transcriber = None

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if transcriber is not None:
            try:
                await transcriber.disconnect()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log_failure("transcriber_disconnect_failed", exc)

        for release in (self._ctx.capture.stop, self._ctx.playback.dispose):
            try:
                release()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log_failure("device_release_failed", exc)

        for client in (
            self._ctx.answer_service,
            self._ctx.primary_synthesizer,
            self._ctx.fallback_synthesizer,
        ):
            if client is None:
                continue
            try:
                await client.aclose()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log_failure("client_close_failed", exc)

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "runtime_shutdown",
            "session_id": self._ctx.session_id,
        })

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
            })

        elif isinstance(cmd, RequestPermission):
            self._spawn(TASK_PERMISSION, self._request_permission(cmd.run_id))

        elif isinstance(cmd, ConnectTranscriber):
            self._connect_transcriber(cmd.run_id)

        elif isinstance(cmd, DisconnectTranscriber):
            self._disconnect_transcriber(cmd.run_id)

        elif isinstance(cmd, StartCapture):
            self._capture_run = cmd.run_id
            self._spawn(TASK_CAPTURE_START, self._start_capture(cmd.run_id))

        elif isinstance(cmd, StopCapture):
            self._capture_run = None
            try:
                self._ctx.capture.stop()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log_failure("capture_stop_failed", exc)

        elif isinstance(cmd, RequestAnswer):
            self._stopwatch.start(TURN_LATENCY)
            self._spawn(TASK_ANSWER, self._request_answer(cmd.run_id, cmd.query))

        elif isinstance(cmd, CancelAnswer):
            if self._cancel_named(TASK_ANSWER):
                self._stopwatch.discard(TURN_LATENCY)
                self._log_cancelled("answer_cancelled", cmd.run_id)

        elif isinstance(cmd, Synthesize):
            self._spawn(TASK_SYNTHESIS, self._synthesize(cmd))

        elif isinstance(cmd, CancelSynthesis):
            if self._cancel_named(TASK_SYNTHESIS):
                self._log_cancelled("synthesis_cancelled", cmd.run_id)

        elif isinstance(cmd, PlayAudio):
            self._playback_run = cmd.run_id
            self._stopwatch.stop(TURN_LATENCY, details={"synthesis_run_id": cmd.run_id})
            self._spawn(TASK_PLAYBACK, self._play(cmd.run_id, cmd.audio))

        elif isinstance(cmd, StopPlayback):
            self._playback_run = None
            try:
                self._ctx.playback.stop()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                self._log_failure("playback_stop_failed", exc)

        elif isinstance(cmd, NotifyTranscript):
            if self._ctx.on_transcript is not None:
                try:
                    self._ctx.on_transcript(cmd.user_text, cmd.answer_text)
                except Exception as exc:  # pylint: disable=broad-exception-caught
                    self._log_failure("host_transcript_callback_failed", exc)

        elif isinstance(cmd, CommitTurn):
            if self._ctx.conversation.commit_turn(
                cmd.turn_id, cmd.user_text, cmd.assistant_text
            ):
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "turn_committed",
                    "session_id": self._ctx.session_id,
                    "turn_id": cmd.turn_id,
                })

        elif isinstance(cmd, StartTimer):
            self._start_timer(
                timer_id=cmd.timer_id,
                duration_ms=cmd.duration_ms,
                timeout_event_type=cmd.timeout_event_type,
                run_id=cmd.run_id,
            )

        elif isinstance(cmd, CancelTimer):
            self._cancel_timer(cmd.timer_id)

        else:
            raise TypeError(f"Unhandled command: {type(cmd).__name__}")

    # ------------------------------------------------------------------
    # Session start
    # ------------------------------------------------------------------

    async def _request_permission(self, run_id: int) -> None:
        try:
            permission = await self._ctx.capture.request_permission()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._dispatch(PermissionFailed(
                event_type=EventType.PERMISSION_FAILED,
                ts_ms=_now_ms(),
                service=Service.SESSION,
                run_id=run_id,
                reason=_reason(exc, START_FAILED_MESSAGE),
            ))
            return

        self._dispatch(PermissionResolved(
            event_type=EventType.PERMISSION_RESOLVED,
            ts_ms=_now_ms(),
            service=Service.SESSION,
            run_id=run_id,
            granted=permission is MicPermission.GRANTED,
        ))

    # ------------------------------------------------------------------
    # Transcriber / capture
    # ------------------------------------------------------------------

    def _transcriber_callbacks(self, run_id: int) -> TranscriberCallbacks:
        def event_base(event_type: EventType) -> dict[str, Any]:
            return {
                "event_type": event_type,
                "ts_ms": _now_ms(),
                "service": Service.TRANSCRIBER,
                "run_id": run_id,
            }

        def on_interim(text: str) -> None:
            self._post(TranscriptInterim(**event_base(EventType.TRANSCRIPT_INTERIM), text=text))

        def on_final(text: str) -> None:
            self._post(TranscriptFinal(**event_base(EventType.TRANSCRIPT_FINAL), text=text))

        def on_utterance_end() -> None:
            self._post(UtteranceEnd(**event_base(EventType.UTTERANCE_END)))

        def on_connection_change(connection_state: ConnectionState) -> None:
            self._post(TranscriberConnectionChanged(
                **event_base(EventType.TRANSCRIBER_CONNECTION_CHANGED),
                connection_state=ConnectionState(connection_state).value,
            ))

        def on_error(message: str) -> None:
            self._post(TranscriberFailed(
                **event_base(EventType.TRANSCRIBER_FAILED),
                reason=message or TRANSCRIBER_ERROR_MESSAGE,
            ))

        return TranscriberCallbacks(
            on_interim=on_interim,
            on_final=on_final,
            on_utterance_end=on_utterance_end,
            on_connection_change=on_connection_change,
            on_error=on_error,
        )

    def _connect_transcriber(self, run_id: int) -> None:
        previous = self._transcriber
        if previous is not None:
            self._spawn(TASK_TRANSCRIBER_DISCONNECT, self._close_transcriber(previous))

        try:
            transcriber = self._ctx.transcriber_factory(self._transcriber_callbacks(run_id))
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._transcriber = None
            self._post(TranscriberFailed(
                event_type=EventType.TRANSCRIBER_FAILED,
                ts_ms=_now_ms(),
                service=Service.TRANSCRIBER,
                run_id=run_id,
                reason=_reason(exc, TRANSCRIBER_ERROR_MESSAGE),
            ))
            return

        self._transcriber = transcriber
        self._transcriber_run = run_id
        self._spawn(TASK_TRANSCRIBER_CONNECT, self._open_transcriber(transcriber, run_id))

    async def _open_transcriber(self, transcriber: SpeechTranscriber, run_id: int) -> None:
        try:
            with timed(
                TRANSCRIBER_CONNECT_LATENCY,
                session_id=self._ctx.session_id,
                details={"transcriber_run_id": run_id},
            ):
                await transcriber.connect()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._dispatch(TranscriberFailed(
                event_type=EventType.TRANSCRIBER_FAILED,
                ts_ms=_now_ms(),
                service=Service.TRANSCRIBER,
                run_id=run_id,
                reason=_reason(exc, TRANSCRIBER_ERROR_MESSAGE),
            ))
            return

        self._dispatch(TranscriberOpened(
            event_type=EventType.TRANSCRIBER_OPENED,
            ts_ms=_now_ms(),
            service=Service.TRANSCRIBER,
            run_id=run_id,
        ))

    def _disconnect_transcriber(self, run_id: int) -> None:
        transcriber = self._transcriber
        if transcriber is None or self._transcriber_run != run_id:
            return

        self._transcriber = None
        self._cancel_named(TASK_TRANSCRIBER_CONNECT)
        self._spawn(TASK_TRANSCRIBER_DISCONNECT, self._close_transcriber(transcriber))

    async def _close_transcriber(self, transcriber: SpeechTranscriber) -> None:
        try:
            await transcriber.disconnect()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._log_failure("transcriber_disconnect_failed", exc)

    def _forward_audio(self, run_id: int, chunk: bytes) -> None:
        transcriber = self._transcriber
        if transcriber is None or self._transcriber_run != run_id:
            return
        transcriber.send_audio(chunk)

    async def _start_capture(self, run_id: int) -> None:
        def on_chunk(chunk: bytes) -> None:
            self._forward_audio(run_id, chunk)

        try:
            await self._ctx.capture.start(on_chunk)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._dispatch(CaptureFailed(
                event_type=EventType.CAPTURE_FAILED,
                ts_ms=_now_ms(),
                service=Service.TRANSCRIBER,
                run_id=run_id,
                reason=_reason(exc, START_FAILED_MESSAGE),
            ))
            return

        # Recording ended while the device was opening
        if self._capture_run != run_id:
            self._ctx.capture.stop()

    # ------------------------------------------------------------------
    # Answer
    # ------------------------------------------------------------------

    async def _request_answer(self, run_id: int, query: str) -> None:
        providers = self._ctx.providers
        try:
            request = build_answer_request(
                query=query,
                context=providers.get_context() if providers.get_context else (),
                history=(
                    providers.get_chat_history()
                    if providers.get_chat_history
                    else self._ctx.conversation.serialize()
                ),
                system_prompt=(
                    providers.get_system_prompt() if providers.get_system_prompt else None
                ),
                page=providers.get_page_context() if providers.get_page_context else None,
            )
            with timed(
                ANSWER_LATENCY,
                session_id=self._ctx.session_id,
                details={"answer_run_id": run_id},
            ):
                result = await self._ctx.answer_service.answer(request)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._stopwatch.discard(TURN_LATENCY)
            self._dispatch(AnswerFailed(
                event_type=EventType.ANSWER_FAILED,
                ts_ms=_now_ms(),
                service=Service.ANSWER,
                run_id=run_id,
                reason=_reason(exc, ANSWER_FAILED_MESSAGE),
            ))
            return

        self._dispatch(AnswerReady(
            event_type=EventType.ANSWER_READY,
            ts_ms=_now_ms(),
            service=Service.ANSWER,
            run_id=run_id,
            answer=result.answer,
            confidence=result.confidence,
        ))

    # ------------------------------------------------------------------
    # Synthesis / playback
    # ------------------------------------------------------------------

    def _synthesizer_for(self, provider: SynthesisProvider) -> SpeechSynthesizer | None:
        if provider is SynthesisProvider.PRIMARY:
            return self._ctx.primary_synthesizer
        return self._ctx.fallback_synthesizer

    async def _synthesize(self, cmd: Synthesize) -> None:
        synthesizer = self._synthesizer_for(cmd.provider)
        try:
            if synthesizer is None:
                raise LookupError(f"no {cmd.provider.value.lower()} synthesizer configured")

            text = cmd.text
            if cmd.response_context is not None:
                text = synthesizer.prepare_text(text, cmd.response_context)

            with timed(
                SYNTHESIS_LATENCY,
                session_id=self._ctx.session_id,
                details={
                    "synthesis_run_id": cmd.run_id,
                    "provider": cmd.provider.value,
                    "text_len": len(text),
                },
            ):
                audio = await synthesizer.synthesize(text, cmd.voice)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._dispatch(SynthesisFailed(
                event_type=EventType.SYNTHESIS_FAILED,
                ts_ms=_now_ms(),
                service=Service.SYNTHESIS,
                run_id=cmd.run_id,
                provider=cmd.provider,
                reason=_reason(exc, type(exc).__name__),
            ))
            return

        self._dispatch(SynthesisReady(
            event_type=EventType.SYNTHESIS_READY,
            ts_ms=_now_ms(),
            service=Service.SYNTHESIS,
            run_id=cmd.run_id,
            provider=cmd.provider,
            audio=audio,
        ))

    async def _play(self, run_id: int, audio: bytes) -> None:
        def on_complete() -> None:
            if self._playback_run != run_id:
                return
            self._post(PlaybackComplete(
                event_type=EventType.PLAYBACK_COMPLETE,
                ts_ms=_now_ms(),
                service=Service.SYNTHESIS,
                run_id=run_id,
            ))

        try:
            await self._ctx.playback.play(audio, on_complete)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self._dispatch(PlaybackFailed(
                event_type=EventType.PLAYBACK_FAILED,
                ts_ms=_now_ms(),
                service=Service.SYNTHESIS,
                run_id=run_id,
                reason=_reason(exc, type(exc).__name__),
            ))

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _start_timer(
        self,
        *,
        timer_id: str,
        duration_ms: int,
        timeout_event_type: EventType,
        run_id: int,
    ) -> None:
        """
        Start or replace a timer that emits a timeout event.

        Timer tasks re-enter the reducer when they expire, maintaining
        the single event entry point invariant. The event carries the
        run_id captured when the timer was started.
        """
        self._cancel_timer(timer_id)

        async def _timer_task() -> None:
            try:
                await asyncio.sleep(duration_ms / 1000.0)
            except asyncio.CancelledError:
                return

            # Expired timers are no longer cancellable
            if self._timers.get(timer_id) is asyncio.current_task():
                del self._timers[timer_id]

            self._dispatch(self._construct_timeout_event(
                timer_id=timer_id,
                timeout_event_type=timeout_event_type,
                run_id=run_id,
            ))

        self._timers[timer_id] = asyncio.create_task(_timer_task())

    def _cancel_timer(self, timer_id: str) -> None:
        """
        Cancel an in-flight timer if it exists.

        Idempotent: safe to call even if timer doesn't exist.
        """
        task = self._timers.pop(timer_id, None)
        if task is not None and not task.done():
            task.cancel()

    def has_timer(self, timer_id: str) -> bool:
        """True while the named timer is pending."""
        task = self._timers.get(timer_id)
        return task is not None and not task.done()

    def _construct_timeout_event(
        self,
        *,
        timer_id: str,
        timeout_event_type: EventType,
        run_id: int,
    ) -> Event:
        if timeout_event_type is EventType.SILENCE_TIMEOUT:
            return SilenceTimeout(
                event_type=EventType.SILENCE_TIMEOUT,
                ts_ms=_now_ms(),
                service=Service.TRANSCRIBER,
                run_id=run_id,
            )

        raise ValueError(
            f"Unknown timeout event type: {timeout_event_type} "
            f"for timer_id: {timer_id}"
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _log_failure(self, event_type: str, exc: BaseException) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": event_type,
            "level": "WARNING",
            "session_id": self._ctx.session_id,
            "state": self._state.state.value,
            "error": str(exc),
            "error_type": type(exc).__name__,
        })

    def _log_cancelled(self, event_type: str, run_id: int) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": event_type,
            "session_id": self._ctx.session_id,
            "state": self._state.state.value,
            "run_id": run_id,
        })
