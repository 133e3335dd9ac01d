# pylint: disable=missing-module-docstring,missing-function-docstring
import asyncio

from adapters.capture.base import MicPermission
from context.serialization import PageContext
from errors import AnswerServiceError, CaptureError, SynthesisError, TranscriberConnectionError
from orchestrator.enums.state import State
from orchestrator.enums.voice import Voice
from orchestrator.reducer import TIMER_SILENCE
from orchestrator.runtime import TASK_ANSWER, TASK_SYNTHESIS
from orchestrator.runtime_context import HostProviders
from spec import PERMISSION_DENIED_MESSAGE, WELCOME_MESSAGE


async def drain(manager, seconds: float = 0.0) -> None:
    """Let queued callbacks, timers (up to `seconds`) and tasks finish."""
    await asyncio.sleep(seconds)
    await manager.runtime.settle()


async def ask(manager, harness, *finals: str) -> None:
    """Record one utterance and let the silence timer end it."""
    await manager.start_recording()
    for text in finals:
        harness.transcribers.last.callbacks.on_final(text)
    await drain(manager, 0.1)


# ---------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------

async def test_start_connects_after_permission(harness):
    manager = harness.build()

    await manager.start()

    assert manager.state.state is State.IDLE
    assert manager.is_connected is True
    assert manager.error is None
    assert harness.states[0].state is State.CONNECTING


async def test_start_with_denied_permission_enters_error(harness):
    harness.capture.permission = MicPermission.DENIED
    manager = harness.build()

    await manager.start()

    assert manager.state.state is State.ERROR
    assert manager.is_connected is False
    assert manager.error == PERMISSION_DENIED_MESSAGE


async def test_start_with_failing_device_reports_reason(harness):
    harness.capture.permission_error = CaptureError("No input device")
    manager = harness.build()

    await manager.start()

    assert manager.state.state is State.ERROR
    assert manager.error == "No input device"


async def test_start_speaks_welcome_message(harness):
    manager = harness.build(welcome_message=WELCOME_MESSAGE)

    await manager.start()
    await drain(manager)

    assert manager.is_speaking is True
    text, voice = harness.primary.calls[0]
    assert text.startswith("[warm] Hi! I'm Mercury")
    assert voice is Voice.ARIA
    assert harness.playback.played == [b"primary-audio"]
    # The greeting is not a conversation turn
    assert not harness.transcripts
    assert len(manager.conversation) == 0


async def test_stop_is_idempotent_and_releases_devices(harness):
    manager = harness.build()
    await manager.start()
    await manager.start_recording()
    transcriber = harness.transcribers.last

    await manager.stop()
    await manager.stop()

    assert manager.state.state is State.OFF
    assert manager.is_connected is False
    assert manager.is_recording is False
    assert transcriber.disconnected is True
    assert harness.capture.stop_calls >= 1
    assert not manager.runtime.has_timer(TIMER_SILENCE)


async def test_close_releases_clients_and_ignores_later_calls(harness):
    manager = harness.build()
    await manager.start()

    await manager.close()
    await manager.start()
    await manager.close()

    assert manager.state.state is State.OFF
    assert harness.answers.closed is True
    assert harness.primary.closed is True
    assert harness.fallback.closed is True
    assert harness.playback.disposed is True


# ---------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------

async def test_start_recording_streams_audio_to_transcriber(harness):
    manager = harness.build()
    await manager.start()

    await manager.start_recording()
    harness.capture.on_chunk(b"\x01\x00")

    assert manager.is_recording is True
    assert harness.transcribers.last.audio == [b"\x01\x00"]


async def test_transcriber_connect_failure_returns_to_idle(harness):
    harness.transcribers.connect_error = TranscriberConnectionError("Voice connection error")
    manager = harness.build()
    await manager.start()

    await manager.start_recording()
    await drain(manager)

    assert manager.state.state is State.IDLE
    assert manager.is_recording is False
    assert manager.error == "Voice connection error"
    assert harness.capture.start_calls == 0


async def test_capture_failure_disconnects_transcriber(harness):
    harness.capture.start_error = CaptureError("Device busy")
    manager = harness.build()
    await manager.start()

    await manager.start_recording()
    await drain(manager)

    assert manager.state.state is State.IDLE
    assert manager.error == "Device busy"
    assert harness.transcribers.last.disconnected is True


async def test_interim_text_is_visible_but_never_sent(harness):
    manager = harness.build()
    await manager.start()
    await manager.start_recording()

    harness.transcribers.last.callbacks.on_interim("what is")
    await drain(manager)
    assert manager.transcript == "what is"

    await manager.stop_recording()
    await drain(manager)

    assert manager.state.state is State.IDLE
    assert not harness.answers.requests


async def test_interim_after_final_defers_the_silence_deadline(harness):
    manager = harness.build(silence_timeout_ms=100)
    await manager.start()
    await manager.start_recording()
    callbacks = harness.transcribers.last.callbacks

    callbacks.on_final("What is")
    await drain(manager, 0.05)
    callbacks.on_interim("the")
    # Past the deadline the first final armed
    await drain(manager, 0.1)

    assert manager.is_recording is True
    assert not harness.answers.requests

    callbacks.on_final("the rent?")
    await drain(manager, 0.2)

    assert [r.query for r in harness.answers.requests] == ["What is the rent?"]


async def test_muted_session_does_not_record(harness):
    manager = harness.build()
    await manager.start()

    await manager.toggle_mute()
    await manager.start_recording()

    assert manager.is_muted is True
    assert manager.state.state is State.IDLE
    assert not harness.transcribers.instances


# ---------------------------------------------------------------------
# Full turn
# ---------------------------------------------------------------------

async def test_full_turn_from_speech_to_playback(harness):
    manager = harness.build()
    await manager.start()

    await ask(manager, harness, "What is", "the rent?")

    assert manager.is_speaking is True
    assert harness.answers.requests[0].query == "What is the rent?"
    assert harness.transcripts == [("What is the rent?", "The rent is **$2,000**.")]
    assert harness.primary.calls == [("[warm] The rent is $2,000.", Voice.ARIA)]
    assert harness.playback.played == [b"primary-audio"]
    assert harness.transcribers.last.disconnected is True

    harness.playback.finish()
    await drain(manager)

    assert manager.state.state is State.IDLE
    assert manager.conversation.serialize() == [
        {"role": "user", "content": "What is the rent?"},
        {"role": "assistant", "content": "The rent is **$2,000**."},
    ]


async def test_second_turn_carries_history(harness):
    manager = harness.build()
    await manager.start()
    await ask(manager, harness, "What is the rent?")
    harness.playback.finish()
    await drain(manager)

    await ask(manager, harness, "And the deposit?")

    history = harness.answers.requests[1].history
    assert [m["role"] for m in history] == ["user", "assistant"]


async def test_host_providers_shape_the_request(harness):
    providers = HostProviders(
        get_context=lambda: ["Clause 4: rent is due monthly."],
        get_system_prompt=lambda: "Be brief.",
        get_page_context=lambda: PageContext(active_panel="vault", active_document="lease.pdf", document_count=1),
    )
    manager = harness.build(providers=providers)
    await manager.start()

    await ask(manager, harness, "When is rent due?")

    request = harness.answers.requests[0]
    assert request.context == ("Clause 4: rent is due monthly.",)
    assert request.system_prompt.startswith("Be brief.")
    assert 'Active document: "lease.pdf".' in request.system_prompt


async def test_answer_failure_surfaces_error_and_stays_quiet(harness):
    harness.answers.error = AnswerServiceError("Failed to get AI response")
    manager = harness.build()
    await manager.start()

    await ask(manager, harness, "Anything?")

    assert manager.state.state is State.IDLE
    assert manager.error == "Failed to get AI response"
    assert not harness.primary.calls
    assert not harness.transcripts


async def test_stop_while_answer_pending_stays_off_and_silent(harness):
    harness.answers.gate = asyncio.Event()
    manager = harness.build()
    await manager.start()
    await manager.start_recording()
    harness.transcribers.last.callbacks.on_final("What is the rent?")
    await asyncio.sleep(0.1)
    assert manager.is_processing is True

    await manager.stop()
    await drain(manager)
    assert manager.runtime.has_task(TASK_ANSWER) is False

    harness.answers.gate.set()
    await drain(manager)

    assert manager.state.state is State.OFF
    assert not harness.transcripts
    assert not harness.primary.calls
    assert len(manager.conversation) == 0


async def test_primary_failure_falls_back_without_tone_prefix(harness):
    harness.primary.error = SynthesisError("Inworld TTS failed (500): oops", status_code=500)
    manager = harness.build(voice=Voice.NOVA)
    await manager.start()

    await ask(manager, harness, "What is the rent?")

    assert harness.fallback.calls == [("The rent is $2,000.", Voice.NOVA)]
    assert harness.playback.played == [b"fallback-audio"]
    assert manager.error is None


async def test_both_synthesizers_failing_ends_turn_silently(harness):
    harness.primary.error = SynthesisError("down")
    harness.fallback.error = SynthesisError("also down")
    manager = harness.build()
    await manager.start()

    await ask(manager, harness, "What is the rent?")

    assert manager.state.state is State.IDLE
    assert manager.error is None
    assert not harness.playback.played
    # The answer was still delivered to the host
    assert len(harness.transcripts) == 1


# ---------------------------------------------------------------------
# Barge-in / hands-free
# ---------------------------------------------------------------------

async def test_interrupt_cuts_playback_and_ignores_late_completion(harness):
    manager = harness.build()
    await manager.start()
    await ask(manager, harness, "What is the rent?")

    await manager.interrupt()
    harness.playback.finish()
    await drain(manager)

    assert manager.state.state is State.IDLE
    assert manager.is_speaking is False
    assert harness.playback.stop_calls >= 1


async def test_interrupt_before_audio_cancels_pending_synthesis(harness):
    harness.primary.gate = asyncio.Event()
    manager = harness.build()
    await manager.start()
    await manager.start_recording()
    harness.transcribers.last.callbacks.on_final("What is the rent?")
    await asyncio.sleep(0.1)
    assert manager.is_speaking is True
    assert manager.runtime.has_task(TASK_SYNTHESIS) is True

    await manager.interrupt()
    await drain(manager)

    assert manager.runtime.has_task(TASK_SYNTHESIS) is False

    await manager.start_recording()
    harness.primary.gate.set()
    await drain(manager)

    assert manager.state.state is State.RECORDING
    assert not harness.playback.played


async def test_toggle_while_speaking_interrupts_without_recording(harness):
    manager = harness.build()
    await manager.start()
    await ask(manager, harness, "What is the rent?")
    transcribers_before = len(harness.transcribers.instances)

    await manager.toggle_recording()

    assert manager.state.state is State.IDLE
    assert len(harness.transcribers.instances) == transcribers_before


async def test_auto_listen_reopens_microphone_after_answer(harness):
    manager = harness.build(auto_listen=True)
    await manager.start()
    await ask(manager, harness, "What is the rent?")

    harness.playback.finish()
    await drain(manager)

    assert manager.is_recording is True
    assert len(harness.transcribers.instances) == 2


async def test_set_voice_applies_to_next_synthesis(harness):
    manager = harness.build()
    await manager.start()

    manager.set_voice("luke")
    await ask(manager, harness, "Hello there")

    assert manager.selected_voice is Voice.LUKE
    assert harness.primary.calls[0][1] is Voice.LUKE
