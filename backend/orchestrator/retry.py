"""
Retry policy helpers.

Purpose:
- Centralize retry rules for provider-level failures
- Keep adapters free of ad-hoc backoff arithmetic
- Allow deterministic, testable retry decisions

Two services retry on their own:
- TRANSCRIBER: reconnect after an unexpected socket drop
- SYNTHESIS: re-issue an HTTP request that hit a rate limit or 5xx

ANSWER never retries; a failed answer surfaces as a session error.

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from orchestrator.enums.service import Service

from spec import (
    TRANSCRIBER_MAX_RECONNECTS,
    TRANSCRIBER_RECONNECT_BASE_DELAY_MS,
    TTS_MAX_RETRIES,
    TTS_RETRY_BASE_DELAY_MS,
    TTS_RETRYABLE_STATUS,
)


# =============================================================================
# Failure Types
# =============================================================================

class FailureType(str, Enum):
    """
    Failure classification used by retry policy.

    TRANSIENT:
        Rate limit, server error, timeout or dropped connection.
        Eligible for retry with exponential backoff.

    PERMANENT:
        Client error (bad request, auth) or anything the provider will
        answer the same way again. Never retried.

    Notes:
    - Cancellation is NOT a failure type and must never trigger retries.
    """

    TRANSIENT = "transient"
    PERMANENT = "permanent"


def classify_status(status_code: int) -> FailureType:
    """Classify an HTTP error status."""
    if status_code in TTS_RETRYABLE_STATUS:
        return FailureType.TRANSIENT
    return FailureType.PERMANENT


# =============================================================================
# Retry State
# =============================================================================

@dataclass(frozen=True)
class RetryAttempt:
    """
    Immutable retry attempt counter.

    Semantics:
    - attempt == 0 represents the initial attempt (no retry yet).
    - attempt >= 1 represents the Nth retry attempt.
    """
    attempt: int


def next_attempt(current: RetryAttempt) -> RetryAttempt:
    """Return a new RetryAttempt with attempt incremented by 1."""
    return RetryAttempt(attempt=current.attempt + 1)


def reset_attempt() -> RetryAttempt:
    """Returns a fresh retry attempt counter."""
    return RetryAttempt(attempt=0)


# =============================================================================
# Policy
# =============================================================================

def max_attempts(service: Service, failure: FailureType) -> int:
    """
    Maximum retry attempts (excluding the initial attempt).

    - TRANSCRIBER: 3 reconnects
    - SYNTHESIS: 3 retries (4 requests in total)
    - Everything else, and every PERMANENT failure: 0
    """
    if failure is FailureType.PERMANENT:
        return 0

    if service is Service.TRANSCRIBER:
        return TRANSCRIBER_MAX_RECONNECTS

    if service is Service.SYNTHESIS:
        return TTS_MAX_RETRIES

    return 0


def should_retry(
    *,
    service: Service,
    failure: FailureType,
    attempt: RetryAttempt,
) -> bool:
    """
    Returns True if a retry is allowed.

    attempt = number of retries already performed
    """
    return attempt.attempt < max_attempts(service, failure)


# =============================================================================
# Delay Calculation
# =============================================================================

def get_retry_delay_ms(
    *,
    service: Service,
    attempt: RetryAttempt,
) -> int:
    """
    Returns delay before retry attempt N (exponential backoff).

    TRANSCRIBER: 1s, 2s, 4s
    SYNTHESIS:   0.5s, 1s, 2s
    """
    if service is Service.TRANSCRIBER:
        return TRANSCRIBER_RECONNECT_BASE_DELAY_MS * (2 ** attempt.attempt)

    if service is Service.SYNTHESIS:
        return TTS_RETRY_BASE_DELAY_MS * (2 ** attempt.attempt)

    return 0
