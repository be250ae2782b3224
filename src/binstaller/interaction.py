"""The two things the installer needs from its host: consent and a message sink."""

from __future__ import annotations

import asyncio
import sys
from typing import Protocol, TextIO


class ConsentPrompt(Protocol):
    """Obtains an explicit yes/no decision before a download."""

    async def ask(self, message: str) -> bool:
        """Return True only if the user agreed."""


class Notifier(Protocol):
    """User-facing messages, separate from the diagnostic log."""

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class StaticConsent:
    """Answer every prompt the same way (``--yes`` / ``--no``)."""

    def __init__(self, answer: bool) -> None:
        self._answer = answer

    async def ask(self, message: str) -> bool:
        return self._answer


class ConsolePrompt:
    """Ask on the terminal; anything other than y/yes declines."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stdin

    async def ask(self, message: str) -> bool:
        if not self._stream.isatty():
            return False
        print(f"{message} [y/N]: ", end="", file=sys.stderr, flush=True)
        try:
            answer = await asyncio.to_thread(self._stream.readline)
        except (EOFError, OSError):
            return False
        return answer.strip().lower() in ("y", "yes")


class ConsoleNotifier:
    """Print user-facing messages to stderr."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr

    def info(self, message: str) -> None:
        print(message, file=self._stream)

    def warning(self, message: str) -> None:
        print(f"warning: {message}", file=self._stream)

    def error(self, message: str) -> None:
        print(f"error: {message}", file=self._stream)
