"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No protocol constants (those live in spec.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from orchestrator.enums.silence_policy import SilencePolicy
from spec import (
    ANSWER_TIMEOUT_S,
    DEEPGRAM_DEFAULT_MODEL,
    FALLBACK_TTS_DEFAULT_MODEL,
    INWORLD_DEFAULT_MODEL_ID,
    INWORLD_DEFAULT_VOICE_ID,
    SILENCE_TIMEOUT_MS,
)


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed to
    session.factory.build_voice_session_manager().
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Transcriber
    # ------------------------------------------------------------------

    deepgram_api_key: str | None
    deepgram_model: str

    # ------------------------------------------------------------------
    # Answer service
    # ------------------------------------------------------------------

    answer_provider: str
    answer_service_url: str
    answer_timeout_s: float

    llm_provider: str
    llm_model: str
    openai_api_key: str | None
    groq_api_key: str | None

    # ------------------------------------------------------------------
    # TTS
    # ------------------------------------------------------------------

    tts_provider: str
    inworld_api_key: str | None
    inworld_voice_id: str
    inworld_model_id: str
    speechmatics_api_key: str | None
    fallback_tts_model: str

    # ------------------------------------------------------------------
    # Turn taking
    # ------------------------------------------------------------------

    silence_timeout_ms: int
    silence_policy: SilencePolicy
    auto_listen: bool
    welcome_enabled: bool

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if a numeric or enum variable is malformed.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            enable_json_logs=_flag("ENABLE_JSON_LOGS", "1"),

            deepgram_api_key=os.environ.get("DEEPGRAM_API_KEY"),
            deepgram_model=os.environ.get("DEEPGRAM_MODEL", DEEPGRAM_DEFAULT_MODEL),

            answer_provider=os.environ.get("ANSWER_PROVIDER", "http").lower(),
            answer_service_url=os.environ.get(
                "ANSWER_SERVICE_URL", "http://localhost:3000/api/chat"
            ),
            answer_timeout_s=float(os.environ.get("ANSWER_TIMEOUT_S", str(ANSWER_TIMEOUT_S))),

            llm_provider=os.environ.get("LLM_PROVIDER", "openai").lower(),
            llm_model=os.environ.get("LLM_MODEL", "gpt-4o-mini"),
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            groq_api_key=os.environ.get("GROQ_API_KEY"),

            tts_provider=os.environ.get("TTS_PROVIDER", "inworld").lower(),
            inworld_api_key=os.environ.get("INWORLD_API_KEY"),
            inworld_voice_id=os.environ.get("INWORLD_VOICE_ID", INWORLD_DEFAULT_VOICE_ID),
            inworld_model_id=os.environ.get("INWORLD_MODEL_ID", INWORLD_DEFAULT_MODEL_ID),
            speechmatics_api_key=os.environ.get("SPEECHMATICS_API_KEY"),
            fallback_tts_model=os.environ.get("FALLBACK_TTS_MODEL", FALLBACK_TTS_DEFAULT_MODEL),

            silence_timeout_ms=int(os.environ.get("SILENCE_TIMEOUT_MS", str(SILENCE_TIMEOUT_MS))),
            silence_policy=SilencePolicy(
                os.environ.get("SILENCE_POLICY", SilencePolicy.BACKSTOP.value).lower()
            ),
            auto_listen=_flag("AUTO_LISTEN", "0"),
            welcome_enabled=_flag("WELCOME_ENABLED", "1"),
        )
