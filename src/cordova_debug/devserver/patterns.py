"""Text patterns scraped from Ionic dev server output.

All knowledge of the dev server's console format lives here so a new CLI
release only needs a new pattern set, not changes to the orchestration code.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True)
class OutputPatterns:
    """Pattern set recognized by OutputWatcher."""

    ready: re.Pattern[str]
    url: re.Pattern[str]
    ambiguous_address: re.Pattern[str]
    address_candidate: re.Pattern[str]


ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

_URL = re.compile(r"Running dev server:.*?(https?://\S+)")
_AMBIGUOUS = re.compile(r"Address Selection:")
_CANDIDATE = re.compile(r"^\s*(\d+\) .*?)\s*$", re.MULTILINE)

# Example output:
#
#   Running live reload server: http://localhost:35729
#   Watching: www/**/*, !www/lib/**/*
#   Running dev server:  http://localhost:8100
IONIC_PATTERNS = OutputPatterns(
    ready=re.compile(r"Running dev server:"),
    url=_URL,
    ambiguous_address=_AMBIGUOUS,
    address_candidate=_CANDIDATE,
)

# Ionic CLI 1.x prints an interactive command banner once the server is up,
# and again after a run/emulate build has been deployed.
IONIC_LEGACY_PATTERNS = OutputPatterns(
    ready=re.compile(r"Ionic server commands"),
    url=_URL,
    ambiguous_address=_AMBIGUOUS,
    address_candidate=_CANDIDATE,
)
