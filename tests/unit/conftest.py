# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring
from __future__ import annotations

import asyncio
from typing import Any, Callable

import pytest

from adapters.answer.base import AnswerRequest, AnswerResult, AnswerService
from adapters.capture.base import AudioCapture, ChunkCallback, MicPermission
from adapters.playback.base import AudioPlayback
from adapters.synthesis.base import ResponseContext, SpeechSynthesizer
from adapters.transcriber.base import SpeechTranscriber, TranscriberCallbacks
from orchestrator.enums.voice import Voice
from session.voice_session_manager import VoiceSessionManager


# ---------------------------------------------------------------------
# Capability fakes
# ---------------------------------------------------------------------

class FakeCapture(AudioCapture):
    def __init__(self) -> None:
        self.permission = MicPermission.GRANTED
        self.permission_error: Exception | None = None
        self.start_error: Exception | None = None
        self.on_chunk: ChunkCallback | None = None
        self.start_calls = 0
        self.stop_calls = 0

    async def request_permission(self) -> MicPermission:
        if self.permission_error is not None:
            raise self.permission_error
        return self.permission

    async def start(self, on_chunk: ChunkCallback) -> None:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        self.on_chunk = on_chunk

    def stop(self) -> None:
        self.stop_calls += 1
        self.on_chunk = None


class FakePlayback(AudioPlayback):
    def __init__(self) -> None:
        self.played: list[bytes] = []
        self.on_complete: Callable[[], None] | None = None
        self.stop_calls = 0
        self.disposed = False

    async def play(self, audio: bytes, on_complete: Callable[[], None]) -> None:
        self.played.append(audio)
        self.on_complete = on_complete

    def stop(self) -> None:
        self.stop_calls += 1

    def dispose(self) -> None:
        self.disposed = True

    def finish(self) -> None:
        """Simulate the audio reaching its natural end."""
        assert self.on_complete is not None
        self.on_complete()


class FakeTranscriber(SpeechTranscriber):
    def __init__(self, callbacks: TranscriberCallbacks, connect_error: Exception | None) -> None:
        super().__init__(callbacks)
        self.connect_error = connect_error
        self.connected = False
        self.disconnected = False
        self.audio: list[bytes] = []

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def send_audio(self, chunk: bytes) -> None:
        if self.connected:
            self.audio.append(chunk)

    async def disconnect(self) -> None:
        self.connected = False
        self.disconnected = True


class FakeTranscriberFactory:
    def __init__(self) -> None:
        self.instances: list[FakeTranscriber] = []
        self.connect_error: Exception | None = None

    def __call__(self, callbacks: TranscriberCallbacks) -> FakeTranscriber:
        transcriber = FakeTranscriber(callbacks, self.connect_error)
        self.instances.append(transcriber)
        return transcriber

    @property
    def last(self) -> FakeTranscriber:
        return self.instances[-1]


class FakeSynthesizer(SpeechSynthesizer):
    def __init__(self, audio: bytes, *, tag: str = "") -> None:
        self.audio = audio
        self.tag = tag
        self.error: Exception | None = None
        self.calls: list[tuple[str, Voice]] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    def prepare_text(self, text: str, context: ResponseContext) -> str:
        return f"{self.tag}{text}"

    async def synthesize(self, text: str, voice: Voice) -> bytes:
        self.calls.append((text, voice))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.audio

    async def aclose(self) -> None:
        self.closed = True


class FakeAnswerService(AnswerService):
    def __init__(self) -> None:
        self.result = AnswerResult(answer="The rent is **$2,000**.", confidence=0.95)
        self.error: Exception | None = None
        self.requests: list[AnswerRequest] = []
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def answer(self, request: AnswerRequest) -> AnswerResult:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result

    async def aclose(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

class Harness:
    """A manager wired to fakes, plus everything the host would observe."""

    def __init__(self) -> None:
        self.capture = FakeCapture()
        self.playback = FakePlayback()
        self.transcribers = FakeTranscriberFactory()
        self.primary = FakeSynthesizer(b"primary-audio", tag="[warm] ")
        self.fallback = FakeSynthesizer(b"fallback-audio")
        self.answers = FakeAnswerService()
        self.transcripts: list[tuple[str, str]] = []
        self.states: list[Any] = []

    def build(self, **kwargs: Any) -> VoiceSessionManager:
        options: dict[str, Any] = {
            "silence_timeout_ms": 20,
            "welcome_message": None,
            "session_id": "test-session",
        }
        options.update(kwargs)
        return VoiceSessionManager(
            capture=self.capture,
            playback=self.playback,
            transcriber_factory=self.transcribers,
            primary_synthesizer=self.primary,
            answer_service=self.answers,
            fallback_synthesizer=self.fallback,
            on_transcript=lambda user, answer: self.transcripts.append((user, answer)),
            on_state_change=self.states.append,
            **options,
        )


@pytest.fixture(name="harness")
def fixture_harness() -> Harness:
    return Harness()
