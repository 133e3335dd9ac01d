# pylint: disable=missing-module-docstring,missing-function-docstring
import io

import numpy as np
import soundfile as sf

from adapters.synthesis.speechmatics import pcm16_to_wav
from host.console import handle_command, parse_args
from orchestrator.enums.state import State
from orchestrator.enums.voice import Voice


# ---------------------------------------------------------------------
# WAV wrapping of provider PCM
# ---------------------------------------------------------------------

def test_pcm16_is_wrapped_in_wav():
    samples = np.array([0, 1000, -1000, 32767], dtype="<i2")

    wav = pcm16_to_wav(samples.tobytes(), sample_rate=16000)

    assert wav[:4] == b"RIFF"
    data, rate = sf.read(io.BytesIO(wav), dtype="int16")
    assert rate == 16000
    assert data.tolist() == samples.tolist()


# ---------------------------------------------------------------------
# Console commands
# ---------------------------------------------------------------------

def test_parse_args_defaults():
    args = parse_args([])

    assert args.voice == "aria"
    assert args.auto_listen is False
    assert args.no_welcome is False


async def test_enter_toggles_recording(harness):
    manager = harness.build()
    await manager.start()

    assert await handle_command(manager, "\n") is True
    assert manager.state.state is State.RECORDING

    assert await handle_command(manager, "") is True
    assert manager.state.state is State.IDLE


async def test_voice_and_mute_commands(harness, capsys):
    manager = harness.build()
    await manager.start()

    await handle_command(manager, "v nova")
    await handle_command(manager, "v robot")
    await handle_command(manager, "m")

    assert manager.selected_voice is Voice.NOVA
    assert manager.is_muted is True
    out = capsys.readouterr().out
    assert "unknown voice: robot" in out
    assert "muted" in out


async def test_quit_command(harness):
    manager = harness.build()

    assert await handle_command(manager, "q") is False
