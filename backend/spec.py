"""
SPEC-AS-CONSTANTS
-----------------
Single source of truth for all behavioral invariants of the voice session.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Audio Format (PCM16 mono @ 16kHz)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# Capture block size handed to the transcriber (~100ms)
CAPTURE_BLOCK_MS: Final[int] = 100
CAPTURE_BLOCK_SAMPLES: Final[int] = (AUDIO_SAMPLE_RATE_HZ * CAPTURE_BLOCK_MS) // 1000

# =============================================================================
# Turn taking / silence detection
# =============================================================================

# Client-side silence timer after the last finalized segment
SILENCE_TIMEOUT_MS: Final[int] = 2000

# Vendor-side utterance end (Deepgram utterance_end_ms)
UTTERANCE_END_MS: Final[int] = 1500

# =============================================================================
# Answer service
# =============================================================================

ANSWER_TIMEOUT_S: Final[float] = 60.0
DEFAULT_ANSWER_CONFIDENCE: Final[float] = 0.9
LOW_CONFIDENCE_THRESHOLD: Final[float] = 0.85
HIGH_CONFIDENCE_THRESHOLD: Final[float] = 0.9

ANSWER_FAILED_MESSAGE: Final[str] = "Failed to get AI response"

# =============================================================================
# Session start
# =============================================================================

PERMISSION_DENIED_MESSAGE: Final[str] = "Microphone access denied."
START_FAILED_MESSAGE: Final[str] = "Failed to start voice chat"
TRANSCRIBER_ERROR_MESSAGE: Final[str] = "Voice connection error"

WELCOME_MESSAGE: Final[str] = (
    "Hi! I'm Mercury, your document assistant. I can help you search your "
    "files, answer questions, or walk you through anything on screen. "
    "Just ask!"
)

GREETING_PREFIXES: Final[Tuple[str, ...]] = (
    "hi", "hello", "hey", "good morning", "good afternoon",
)

# =============================================================================
# Deepgram live transcription
# =============================================================================

DEEPGRAM_LISTEN_URL: Final[str] = "wss://api.deepgram.com/v1/listen"
DEEPGRAM_DEFAULT_MODEL: Final[str] = "nova-2"
DEEPGRAM_KEEPALIVE_INTERVAL_S: Final[float] = 20.0

# Reconnect backoff: 1s, 2s, 4s then give up
TRANSCRIBER_MAX_RECONNECTS: Final[int] = 3
TRANSCRIBER_RECONNECT_BASE_DELAY_MS: Final[int] = 1000

# =============================================================================
# Speech synthesis
# =============================================================================

INWORLD_TTS_URL: Final[str] = "https://api.inworld.ai/tts/v1/voice"
INWORLD_DEFAULT_VOICE_ID: Final[str] = "Ashley"
INWORLD_DEFAULT_MODEL_ID: Final[str] = "inworld-tts-1.5-max"

# Provider request limit per call
TTS_MAX_CHUNK_CHARS: Final[int] = 2000

# Retry on rate-limit / server errors only; 3 retries = 4 attempts
TTS_MAX_RETRIES: Final[int] = 3
TTS_RETRY_BASE_DELAY_MS: Final[int] = 500
TTS_RETRYABLE_STATUS: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

TTS_SENTENCE_BREAK_CHARS: Final[Tuple[str, ...]] = (".", "!", "?")

FALLBACK_TTS_DEFAULT_MODEL: Final[str] = "tts-1"
FALLBACK_TTS_SPEAKING_RATE: Final[float] = 1.1
FALLBACK_TTS_FORMAT: Final[str] = "mp3"

# =============================================================================
# Conversation Context
# =============================================================================

MAX_CONTEXT_TURNS: Final[int] = 8
MAX_CONTEXT_CHARS: Final[int] = 6_000

# Truncation rule:
# While (turn_count > MAX_CONTEXT_TURNS) OR (total_chars > MAX_CONTEXT_CHARS):
#     drop oldest turn
