"""Ask an installed binary which version it is."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Protocol

from binstaller.constants import PROBE_TIMEOUT, VERSION_FLAG
from binstaller.errors import VersionParseError
from binstaller.logging import get_logger

log = get_logger("binstaller.probe")


class VersionProbe(Protocol):
    """Reports the version of an installed binary."""

    async def probe(self, path: str, binary_name: str) -> str:
        """Return the self-reported version or raise ``VersionParseError``."""


def parse_version_output(output: str, binary_name: str) -> str:
    """Extract ``<version>`` from ``"<binary_name> version <version>"``."""
    prefix = f"{binary_name} version "
    text = output.strip()
    if not text.startswith(prefix):
        raise VersionParseError(f"Unexpected version output: {text[:200]!r}")
    version = text[len(prefix) :].strip()
    if not version or len(version.split()) != 1:
        raise VersionParseError(f"Unexpected version output: {text[:200]!r}")
    return version


class LocalVersionProbe:
    """Run ``<path> --version`` with a deadline and parse the answer.

    A missing file, a permission error, a crash, a timeout and unexpected
    output are all reported the same way: the binary cannot be trusted.
    """

    def __init__(self, timeout: float = PROBE_TIMEOUT) -> None:
        self._timeout = timeout

    async def probe(self, path: str, binary_name: str) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                path,
                VERSION_FLAG,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise VersionParseError(f"Failed to run {path}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except TimeoutError as exc:
            await _terminate(proc)
            raise VersionParseError(
                f"{path} {VERSION_FLAG} did not finish within {self._timeout}s"
            ) from exc
        except asyncio.CancelledError:
            await _terminate(proc)
            raise

        if proc.returncode != 0:
            log.debug(
                "probe_nonzero_exit",
                path=path,
                returncode=proc.returncode,
                stderr=stderr.decode(errors="replace")[:500],
            )
            raise VersionParseError(f"{path} {VERSION_FLAG} exited with code {proc.returncode}")

        return parse_version_output(stdout.decode(errors="replace"), binary_name)


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await proc.wait()
