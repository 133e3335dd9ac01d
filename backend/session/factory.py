"""
Session bootstrap.

Wires concrete adapters from AppConfig into a VoiceSessionManager.
Hosts may inject their own capture/playback (e.g. a browser bridge) and
keep the provider adapters chosen here.
"""

from __future__ import annotations

from functools import partial

from openai import AsyncOpenAI

from adapters.answer.base import AnswerService
from adapters.answer.http_answer import HttpAnswerService
from adapters.answer.openai_answer import OpenAIAnswerService
from adapters.capture.base import AudioCapture
from adapters.playback.base import AudioPlayback
from adapters.synthesis.base import SpeechSynthesizer
from adapters.synthesis.inworld import InworldSynthesizer
from adapters.synthesis.openai_tts import OpenAISpeechSynthesizer
from adapters.synthesis.speechmatics import SpeechmaticsSynthesizer
from adapters.transcriber.deepgram import DeepgramTranscriber
from adapters.transcriber.base import TranscriberFactory
from config import AppConfig
from observability.logger import configure as configure_logging
from orchestrator.runtime_context import HostProviders, StateCallback, TranscriptCallback
from session.voice_session_manager import VoiceSessionManager
from spec import WELCOME_MESSAGE


def build_llm_client(config: AppConfig) -> AsyncOpenAI:
    """Build an LLM client with the provider selected by environment variables."""
    if config.llm_provider == "groq":
        return AsyncOpenAI(
            api_key=config.groq_api_key,
            base_url="https://api.groq.com/openai/v1",
        )

    return AsyncOpenAI(api_key=config.openai_api_key)


def build_transcriber_factory(config: AppConfig) -> TranscriberFactory:
    if not config.deepgram_api_key:
        raise RuntimeError("DEEPGRAM_API_KEY environment variable not set")

    return partial(
        DeepgramTranscriber,
        api_key=config.deepgram_api_key,
        model=config.deepgram_model,
    )


def build_answer_service(config: AppConfig) -> AnswerService:
    if config.answer_provider == "openai":
        return OpenAIAnswerService(
            client=build_llm_client(config),
            model=config.llm_model,
        )

    if config.answer_provider == "http":
        return HttpAnswerService(
            url=config.answer_service_url,
            timeout_s=config.answer_timeout_s,
        )

    raise ValueError(f"Unknown ANSWER_PROVIDER: {config.answer_provider}")


def build_primary_synthesizer(config: AppConfig, *, session_id: str | None = None) -> SpeechSynthesizer:
    if config.tts_provider == "inworld":
        # A missing key surfaces per utterance and falls back
        return InworldSynthesizer(
            api_key=config.inworld_api_key or "",
            voice_id=config.inworld_voice_id,
            model_id=config.inworld_model_id,
        )

    if config.tts_provider == "speechmatics":
        if not config.speechmatics_api_key:
            raise RuntimeError("SPEECHMATICS_API_KEY environment variable not set")
        return SpeechmaticsSynthesizer(
            api_key=config.speechmatics_api_key,
            session_id=session_id,
        )

    raise ValueError(f"Unknown TTS_PROVIDER: {config.tts_provider}")


def build_fallback_synthesizer(config: AppConfig) -> SpeechSynthesizer | None:
    if not config.openai_api_key:
        return None
    return OpenAISpeechSynthesizer(
        client=AsyncOpenAI(api_key=config.openai_api_key),
        model=config.fallback_tts_model,
    )


def build_voice_session_manager(
    config: AppConfig,
    *,
    capture: AudioCapture | None = None,
    playback: AudioPlayback | None = None,
    on_transcript: TranscriptCallback | None = None,
    on_state_change: StateCallback | None = None,
    providers: HostProviders | None = None,
    session_id: str | None = None,
) -> VoiceSessionManager:
    """
    Build a ready-to-start manager.

    capture/playback default to the local sounddevice devices.
    """
    configure_logging(log_level=config.log_level, json_logs=config.enable_json_logs)

    if capture is None or playback is None:
        # Imported lazily: PortAudio is only needed for local devices
        from adapters.capture.sounddevice_capture import SoundDeviceCapture  # pylint: disable=import-outside-toplevel
        from adapters.playback.sounddevice_playback import SoundDevicePlayback  # pylint: disable=import-outside-toplevel
        capture = capture or SoundDeviceCapture()
        playback = playback or SoundDevicePlayback()

    return VoiceSessionManager(
        capture=capture,
        playback=playback,
        transcriber_factory=build_transcriber_factory(config),
        primary_synthesizer=build_primary_synthesizer(config, session_id=session_id),
        answer_service=build_answer_service(config),
        fallback_synthesizer=build_fallback_synthesizer(config),
        on_transcript=on_transcript,
        on_state_change=on_state_change,
        providers=providers,
        session_id=session_id,
        silence_timeout_ms=config.silence_timeout_ms,
        silence_policy=config.silence_policy,
        auto_listen=config.auto_listen,
        welcome_message=WELCOME_MESSAGE if config.welcome_enabled else None,
    )
