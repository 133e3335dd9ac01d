"""
Pure text shaping for speech output.

This module contains NO side effects. It is a set of deterministic
functions over strings:
- sanitize_for_speech: strip markup a synthesizer would read aloud
- chunk_text: split text into provider-sized requests
- build_response_context: derive tone signals for prepare_text()

All orchestration (when to speak, fallback, playback) lives elsewhere.
"""

from __future__ import annotations

import re

from adapters.synthesis.base import ResponseContext
from spec import (
    GREETING_PREFIXES,
    LOW_CONFIDENCE_THRESHOLD,
    TTS_MAX_CHUNK_CHARS,
    TTS_SENTENCE_BREAK_CHARS,
)


_CODE_BLOCK_RE = re.compile(r"```.*?```", re.DOTALL)
_INLINE_CODE_RE = re.compile(r"`([^`]*)`")
_MD_LINK_RE = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_URL_RE = re.compile(r"https?://\S+")
_CITATION_RE = re.compile(r"\[\d+(?:,\s*\d+)*\]")
_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s*", re.MULTILINE)
_BULLET_RE = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+", re.MULTILINE)
_EMPHASIS_RE = re.compile(r"(\*\*|__|\*|_|~~)(?=\S)(.+?)(?<=\S)\1")
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"[a-z']+")


# =============================================================================
# Sanitization
# =============================================================================

def sanitize_for_speech(text: str) -> str:
    """
    Remove markdown and other visual-only markup from an answer.

    Links keep their label, bare URLs are dropped, code blocks are
    dropped, list markers and headings are removed and whitespace is
    collapsed to single spaces.
    """
    out = _CODE_BLOCK_RE.sub(" ", text)
    out = _INLINE_CODE_RE.sub(r"\1", out)
    out = _MD_LINK_RE.sub(r"\1", out)
    out = _URL_RE.sub("", out)
    out = _CITATION_RE.sub("", out)
    out = _HEADING_RE.sub("", out)
    out = _BULLET_RE.sub("", out)
    out = _EMPHASIS_RE.sub(r"\2", out)
    return _WHITESPACE_RE.sub(" ", out).strip()


# =============================================================================
# Chunking
# =============================================================================

def chunk_text(text: str, max_chars: int = TTS_MAX_CHUNK_CHARS) -> list[str]:
    """
    Split text into chunks of at most max_chars.

    Preference order for each split:
    1. After the last sentence terminator inside the window
    2. At the last whitespace inside the window
    3. Hard split at max_chars (no whitespace at all)
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")

    remaining = text.strip()
    chunks: list[str] = []

    while len(remaining) > max_chars:
        window = remaining[:max_chars]
        split_at = _last_sentence_break(window, remaining)

        if split_at is None:
            space = window.rfind(" ")
            split_at = space if space > 0 else max_chars

        head = remaining[:split_at].strip()
        if head:
            chunks.append(head)
        remaining = remaining[split_at:].strip()

    if remaining:
        chunks.append(remaining)

    return chunks


def _last_sentence_break(window: str, full: str) -> int | None:
    """
    Index just past the last terminator in window that ends a sentence
    (followed by whitespace or end of text), or None.
    """
    for i in range(len(window) - 1, 0, -1):
        if window[i] not in TTS_SENTENCE_BREAK_CHARS:
            continue
        nxt = i + 1
        if nxt >= len(full) or full[nxt].isspace():
            return nxt
    return None


# =============================================================================
# Tone signals
# =============================================================================

def is_greeting(user_text: str) -> bool:
    """True when the user's utterance opens with a greeting."""
    words = _WORD_RE.findall(user_text.lower())
    return any(
        words[: len(prefix.split())] == prefix.split() for prefix in GREETING_PREFIXES
    )


def build_response_context(*, user_text: str, confidence: float) -> ResponseContext:
    """Derive the ResponseContext handed to the primary synthesizer."""
    return ResponseContext(
        confidence=confidence,
        is_greeting=is_greeting(user_text),
        has_warning=confidence < LOW_CONFIDENCE_THRESHOLD,
    )
