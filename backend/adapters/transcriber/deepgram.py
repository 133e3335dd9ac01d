"""
Deepgram live transcription adapter (Nova, /v1/listen).

Connection model:
- One socket per recording. The runtime builds a fresh adapter for every
  ConnectTranscriber command and disconnects it on DisconnectTranscriber.
- Audio is queued by send_audio() (never blocks) and drained by a
  sender task while the socket is open. Audio sent while disconnected
  is dropped.
- A KeepAlive text frame is sent every DEEPGRAM_KEEPALIVE_INTERVAL_S.
- An unexpected close after a successful open triggers reconnects with
  1s / 2s / 4s backoff. When those are exhausted the adapter reports
  ERROR and on_error().

Message handling:
- Results with a non-empty transcript -> on_final (is_final) or on_interim
- UtteranceEnd -> on_utterance_end
- Everything else (Metadata, SpeechStarted) is ignored
"""

from __future__ import annotations

import asyncio
import json
import time
import urllib.parse
from typing import Any

from websockets.asyncio.client import ClientConnection, connect as ws_connect
from websockets.exceptions import ConnectionClosed

from adapters.transcriber.base import (
    ConnectionState,
    SpeechTranscriber,
    TranscriberCallbacks,
)
from errors import TranscriberConnectionError
from observability.logger import log_event
from orchestrator.enums.service import Service
from orchestrator.retry import (
    FailureType,
    RetryAttempt,
    get_retry_delay_ms,
    next_attempt,
    reset_attempt,
    should_retry,
)
from spec import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE_HZ,
    DEEPGRAM_DEFAULT_MODEL,
    DEEPGRAM_KEEPALIVE_INTERVAL_S,
    DEEPGRAM_LISTEN_URL,
    TRANSCRIBER_ERROR_MESSAGE,
    UTTERANCE_END_MS,
)


RECONNECT_EXHAUSTED_MESSAGE = "Voice connection failed after retries"

_KEEPALIVE_FRAME = json.dumps({"type": "KeepAlive"})
_CLOSE_STREAM_FRAME = json.dumps({"type": "CloseStream"})


def _now_ms() -> int:
    return int(time.time() * 1000)


def build_listen_url(
    *,
    model: str = DEEPGRAM_DEFAULT_MODEL,
    base_url: str = DEEPGRAM_LISTEN_URL,
) -> str:
    """Streaming endpoint with the fixed audio and turn-taking options."""
    params: dict[str, str] = {
        "model": model,
        "punctuate": "true",
        "interim_results": "true",
        "utterance_end_ms": str(UTTERANCE_END_MS),
        "vad_events": "true",
        "encoding": "linear16",
        "sample_rate": str(AUDIO_SAMPLE_RATE_HZ),
        "channels": str(AUDIO_CHANNELS),
    }
    return f"{base_url}?{urllib.parse.urlencode(params)}"


class DeepgramTranscriber(SpeechTranscriber):
    """
    Streaming speech-to-text over the Deepgram live WebSocket.

    Callbacks are invoked from tasks on the event loop that called
    connect().
    """

    def __init__(
        self,
        callbacks: TranscriberCallbacks,
        *,
        api_key: str,
        model: str = DEEPGRAM_DEFAULT_MODEL,
        base_url: str = DEEPGRAM_LISTEN_URL,
        keepalive_interval_s: float = DEEPGRAM_KEEPALIVE_INTERVAL_S,
    ) -> None:
        super().__init__(callbacks)
        self._api_key = api_key
        self._url = build_listen_url(model=model, base_url=base_url)
        self._keepalive_interval_s = keepalive_interval_s

        self._state = ConnectionState.DISCONNECTED
        self._ws: ClientConnection | None = None
        self._outbox: asyncio.Queue[bytes] = asyncio.Queue()

        self._recv_task: asyncio.Task[None] | None = None
        self._send_task: asyncio.Task[None] | None = None
        self._keepalive_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

        self._reconnects: RetryAttempt = reset_attempt()
        self._closing = False
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ConnectionState:
        return self._state

    # -------------------------------------------------------------------------
    # Public interface
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        if self._state in (ConnectionState.CONNECTED, ConnectionState.CONNECTING):
            return

        self._closing = False
        self._set_state(ConnectionState.CONNECTING)

        try:
            async with self._lock:
                await self._open_locked()
        except Exception as e:
            self._set_state(ConnectionState.ERROR)
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "deepgram_connect_failed",
                "level": "ERROR",
                "error": repr(e),
            })
            raise TranscriberConnectionError(TRANSCRIBER_ERROR_MESSAGE) from e

    def send_audio(self, chunk: bytes) -> None:
        if self._ws is None or self._state is not ConnectionState.CONNECTED:
            return
        self._outbox.put_nowait(chunk)

    async def disconnect(self) -> None:
        self._closing = True

        reconnect = self._reconnect_task
        self._reconnect_task = None
        if reconnect is not None and not reconnect.done():
            reconnect.cancel()

        async with self._lock:
            ws = self._ws
            if ws is not None:
                try:
                    await ws.send(_CLOSE_STREAM_FRAME)
                except Exception:  # pylint: disable=broad-exception-caught
                    pass
            await self._drop_connection_locked()

        self._reconnects = reset_attempt()
        if self._state is not ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        self._state = state
        self.callbacks.on_connection_change(state)

    async def _open_locked(self) -> None:
        headers = {"Authorization": f"Token {self._api_key}"}
        self._ws = await ws_connect(
            self._url,
            additional_headers=headers,
            max_size=2**22,
            ping_interval=None,
        )

        # Drop audio queued for a previous socket
        self._outbox = asyncio.Queue()
        self._reconnects = reset_attempt()
        self._set_state(ConnectionState.CONNECTED)

        ws = self._ws
        self._recv_task = asyncio.create_task(self._recv_loop(ws))
        self._send_task = asyncio.create_task(self._send_loop(ws))
        self._keepalive_task = asyncio.create_task(self._keepalive_loop(ws))

    async def _drop_connection_locked(self) -> None:
        ws = self._ws
        self._ws = None

        current = asyncio.current_task()
        for task in (self._recv_task, self._send_task, self._keepalive_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._recv_task = None
        self._send_task = None
        self._keepalive_task = None

        if ws is not None:
            try:
                await ws.close()
            except Exception:  # pylint: disable=broad-exception-caught
                pass

    async def _handle_close(self) -> None:
        """Socket closed underneath us: reconnect or give up."""
        async with self._lock:
            await self._drop_connection_locked()

        if self._closing:
            return

        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while not self._closing:
            if not should_retry(
                service=Service.TRANSCRIBER,
                failure=FailureType.TRANSIENT,
                attempt=self._reconnects,
            ):
                self._set_state(ConnectionState.ERROR)
                self.callbacks.on_error(RECONNECT_EXHAUSTED_MESSAGE)
                return

            delay_ms = get_retry_delay_ms(
                service=Service.TRANSCRIBER,
                attempt=self._reconnects,
            )
            self._reconnects = next_attempt(self._reconnects)
            self._set_state(ConnectionState.RECONNECTING)

            log_event({
                "ts_ms": _now_ms(),
                "event_type": "deepgram_reconnecting",
                "level": "WARNING",
                "attempt": self._reconnects.attempt,
                "delay_ms": delay_ms,
            })

            await asyncio.sleep(delay_ms / 1000)
            if self._closing:
                return

            try:
                async with self._lock:
                    await self._open_locked()
                return
            except Exception as e:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "deepgram_reconnect_failed",
                    "level": "WARNING",
                    "attempt": self._reconnects.attempt,
                    "error": repr(e),
                })

    # -------------------------------------------------------------------------
    # Background loops
    # -------------------------------------------------------------------------

    async def _recv_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                if isinstance(raw, bytes):
                    continue
                try:
                    data = json.loads(raw)
                except ValueError as e:
                    log_event({
                        "ts_ms": _now_ms(),
                        "event_type": "deepgram_message_parse_failed",
                        "level": "WARNING",
                        "error": repr(e),
                    })
                    continue
                if not isinstance(data, dict):
                    log_event({
                        "ts_ms": _now_ms(),
                        "event_type": "deepgram_message_unexpected_shape",
                        "level": "WARNING",
                        "payload_type": type(data).__name__,
                    })
                    continue
                self.handle_message(data)
        except asyncio.CancelledError:
            return
        except ConnectionClosed:
            pass

        await self._handle_close()

    async def _send_loop(self, ws: ClientConnection) -> None:
        try:
            while True:
                chunk = await self._outbox.get()
                await ws.send(chunk)
        except (asyncio.CancelledError, ConnectionClosed):
            return

    async def _keepalive_loop(self, ws: ClientConnection) -> None:
        try:
            while True:
                await asyncio.sleep(self._keepalive_interval_s)
                await ws.send(_KEEPALIVE_FRAME)
        except (asyncio.CancelledError, ConnectionClosed):
            return

    # -------------------------------------------------------------------------
    # Message mapping
    # -------------------------------------------------------------------------

    def handle_message(self, data: dict[str, Any]) -> None:
        """Map one decoded vendor message onto the callbacks."""
        msg_type = data.get("type")

        if msg_type == "Results":
            alternatives = (data.get("channel") or {}).get("alternatives") or []
            if not alternatives:
                return
            transcript = str(alternatives[0].get("transcript") or "")
            if not transcript:
                return
            if data.get("is_final"):
                self.callbacks.on_final(transcript)
            else:
                self.callbacks.on_interim(transcript)
            return

        if msg_type == "UtteranceEnd":
            self.callbacks.on_utterance_end()
