"""
Terminal host for a voice session.

Runs one VoiceSessionManager against the local microphone and speaker
and maps single-line commands onto its controls:

    <Enter>      toggle recording (or barge in while speaking)
    i            interrupt playback
    m            toggle mute
    v <voice>    select voice (aria, luke, nova, echo, sage)
    q            end the session

Usage:
    python -m host.console [--no-welcome] [--auto-listen] [--voice nova]
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import sys

from dotenv import load_dotenv

from config import AppConfig
from orchestrator.enums.voice import Voice
from session.factory import build_voice_session_manager
from session.voice_session_manager import VoiceSessionManager


PROMPT = "[enter]=talk  i=interrupt  m=mute  v <voice>  q=quit"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Talk to the document assistant.")
    parser.add_argument(
        "--voice",
        choices=[v.value for v in Voice],
        default=Voice.ARIA.value,
    )
    parser.add_argument(
        "--auto-listen",
        action="store_true",
        help="start listening again after every spoken answer",
    )
    parser.add_argument(
        "--no-welcome",
        action="store_true",
        help="skip the spoken greeting on start",
    )
    return parser.parse_args(argv)


def _print_turn(user_text: str, answer_text: str) -> None:
    print(f"\nyou: {user_text}\nassistant: {answer_text}\n", flush=True)


async def handle_command(manager: VoiceSessionManager, line: str) -> bool:
    """Apply one console command. Returns False when the user quits."""
    command = line.strip()

    if command == "":
        await manager.toggle_recording()
    elif command == "i":
        await manager.interrupt()
    elif command == "m":
        await manager.toggle_mute()
        print("muted" if manager.is_muted else "unmuted", flush=True)
    elif command.startswith("v "):
        name = command[2:].strip().lower()
        try:
            manager.set_voice(Voice(name))
        except ValueError:
            print(f"unknown voice: {name}", flush=True)
    elif command == "q":
        return False
    else:
        print(PROMPT, flush=True)

    if manager.error:
        print(f"error: {manager.error}", flush=True)
    return True


async def run(args: argparse.Namespace) -> int:
    config = AppConfig.load_from_env()
    config = dataclasses.replace(
        config,
        auto_listen=config.auto_listen or args.auto_listen,
        welcome_enabled=config.welcome_enabled and not args.no_welcome,
    )

    manager = build_voice_session_manager(config, on_transcript=_print_turn)
    manager.set_voice(Voice(args.voice))

    await manager.start()
    if not manager.is_connected:
        print(f"could not start: {manager.error}", file=sys.stderr, flush=True)
        await manager.close()
        return 1

    print(PROMPT, flush=True)
    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            if not await handle_command(manager, line):
                break
    finally:
        await manager.close()
    return 0


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    sys.exit(asyncio.run(run(parse_args(argv))))


if __name__ == "__main__":
    main()
