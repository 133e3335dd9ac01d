# pylint: disable=missing-module-docstring,missing-function-docstring
import base64
import json

import httpx
import pytest

from adapters.synthesis import inworld
from adapters.synthesis.base import ResponseContext
from adapters.synthesis.inworld import InworldSynthesizer, emotion_tag
from errors import SynthesisError
from orchestrator.enums.voice import Voice


def audio_response(audio: bytes) -> httpx.Response:
    return httpx.Response(200, json={"audioContent": base64.b64encode(audio).decode()})


def make_synth(handler, **kwargs) -> InworldSynthesizer:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    options = {"api_key": "secret", "voice_id": "Ashley", "model_id": "inworld-tts-1.5-max"}
    options.update(kwargs)
    return InworldSynthesizer(client=client, **options)


@pytest.fixture(name="no_backoff")
def fixture_no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(inworld, "get_retry_delay_ms", lambda **_: 0)


# ---------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------

async def test_request_carries_auth_voice_and_model():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return audio_response(b"wav-bytes")

    synth = make_synth(handler)

    audio = await synth.synthesize("[warm] Hello.", Voice.LUKE)

    assert audio == b"wav-bytes"
    assert seen[0].headers["Authorization"] == "Basic secret"
    assert json.loads(seen[0].content) == {
        "text": "[warm] Hello.",
        "voiceId": "Dennis",
        "modelId": "inworld-tts-1.5-max",
    }
    await synth.aclose()


async def test_default_voice_uses_configured_voice_id():
    bodies: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return audio_response(b"x")

    synth = make_synth(handler, voice_id="Julia")

    await synth.synthesize("Hi.", Voice.ARIA)

    assert bodies[0]["voiceId"] == "Julia"


async def test_long_text_is_chunked_and_audio_concatenated():
    texts: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        text = json.loads(request.content)["text"]
        texts.append(text)
        return audio_response(text[:1].encode())

    synth = make_synth(handler, max_chunk_chars=20)

    audio = await synth.synthesize("First sentence. Second one.", Voice.ARIA)

    assert texts == ["First sentence.", "Second one."]
    assert audio == b"FS"


# ---------------------------------------------------------------------
# Failures and retries
# ---------------------------------------------------------------------

async def test_missing_key_fails_without_request():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return audio_response(b"x")

    synth = make_synth(handler, api_key="")

    with pytest.raises(SynthesisError, match="INWORLD_API_KEY"):
        await synth.synthesize("Hello.", Voice.ARIA)
    assert not calls


@pytest.mark.usefixtures("no_backoff")
async def test_rate_limit_is_retried():
    responses = [httpx.Response(429, text="slow down"), audio_response(b"ok")]

    def handler(request: httpx.Request) -> httpx.Response:
        return responses.pop(0)

    synth = make_synth(handler)

    assert await synth.synthesize("Hello.", Voice.ARIA) == b"ok"
    assert not responses


@pytest.mark.usefixtures("no_backoff")
async def test_server_errors_give_up_after_three_retries():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, text="unavailable")

    synth = make_synth(handler)

    with pytest.raises(SynthesisError) as excinfo:
        await synth.synthesize("Hello.", Voice.ARIA)

    assert len(calls) == 4
    assert excinfo.value.status_code == 503
    assert "Inworld TTS failed (503): unavailable" in str(excinfo.value)


@pytest.mark.usefixtures("no_backoff")
async def test_client_error_is_not_retried():
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, text="bad voice")

    synth = make_synth(handler)

    with pytest.raises(SynthesisError) as excinfo:
        await synth.synthesize("Hello.", Voice.ARIA)

    assert len(calls) == 1
    assert excinfo.value.status_code == 400


@pytest.mark.usefixtures("no_backoff")
async def test_transport_errors_are_retried():
    attempts: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(1)
        if len(attempts) < 3:
            raise httpx.ConnectError("refused", request=request)
        return audio_response(b"ok")

    synth = make_synth(handler)

    assert await synth.synthesize("Hello.", Voice.ARIA) == b"ok"
    assert len(attempts) == 3


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={}),
        httpx.Response(200, json={"audioContent": "***"}),
        httpx.Response(200, text="not json"),
    ],
)
async def test_unusable_body_is_a_synthesis_error(response):
    synth = make_synth(lambda request: response)

    with pytest.raises(SynthesisError):
        await synth.synthesize("Hello.", Voice.ARIA)


# ---------------------------------------------------------------------
# Emotion markup
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    "context,tag",
    [
        (ResponseContext(confidence=0.95, is_error=True, has_warning=True), "[apologetic] "),
        (ResponseContext(confidence=0.95, is_privilege_filtered=True), "[serious] "),
        (ResponseContext(confidence=0.5, has_warning=True), "[concerned] "),
        (ResponseContext(confidence=0.95, is_greeting=True), "[warm] "),
        (ResponseContext(confidence=0.95), "[confident] "),
        (ResponseContext(confidence=0.8), "[thoughtful] "),
        (ResponseContext(confidence=0.87), ""),
    ],
)
def test_emotion_tag_priority(context, tag):
    assert emotion_tag(context) == tag


def test_prepare_text_prefixes_tag():
    synth = InworldSynthesizer(api_key="secret")

    assert synth.prepare_text("Hi!", ResponseContext(confidence=1.0, is_greeting=True)) == "[warm] Hi!"
