"""Composer buffer for typed and dictated input.

Speech transcripts delivered while a turn is in flight are held back and
only surfaced once the turn completes, so dictation never lands in the
middle of a reply being rendered.
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class InputBuffer:
    def __init__(self) -> None:
        self._text = ""
        self._held: list[str] = []
        self._holding = False

    @property
    def text(self) -> str:
        return self._text

    @property
    def held(self) -> int:
        return len(self._held)

    def _append(self, transcript: str) -> None:
        self._text = f"{self._text} {transcript}".strip() if self._text else transcript.strip()

    def deliver(self, transcript: str) -> None:
        """Accept a speech transcript, holding it while a turn is in flight."""
        if not transcript.strip():
            return
        if self._holding:
            self._held.append(transcript)
            logger.debug("Holding transcript until the current turn completes")
        else:
            self._append(transcript)

    def hold(self) -> None:
        self._holding = True

    def release(self) -> None:
        """Stop holding and surface everything that arrived meanwhile."""
        self._holding = False
        for transcript in self._held:
            self._append(transcript)
        self._held.clear()

    def take(self) -> str:
        """Return the composed text and clear it."""
        text, self._text = self._text, ""
        return text

    def clear(self) -> None:
        self._text = ""
        self._held.clear()
        self._holding = False
