"""
Synthesis voice identities exposed to the host.

Voices are provider-neutral; each synthesizer maps them onto its own
catalogue.
"""

from __future__ import annotations

from enum import Enum


class Voice(str, Enum):
    """Selectable synthesis voice."""

    ARIA = "aria"
    LUKE = "luke"
    NOVA = "nova"
    ECHO = "echo"
    SAGE = "sage"
