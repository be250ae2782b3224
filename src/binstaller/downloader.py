"""Streaming asset downloads with atomic replacement.

The body is written to a temporary file next to the destination, verified,
made executable and only then renamed over the destination. Any failure or
cancellation removes the temporary file, so the destination is either the
previous binary or the complete new one.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
import tempfile
from pathlib import Path
from typing import IO, Protocol

import httpx

from binstaller.constants import (
    DEFAULT_BINARY_MODE,
    DEFAULT_USER_AGENT,
    DOWNLOAD_CHUNK_SIZE,
    HTTP_TIMEOUT,
    MAX_REDIRECTS,
)
from binstaller.errors import DownloadError, NetworkError
from binstaller.logging import get_logger
from binstaller.release_client import next_hop

log = get_logger("binstaller.downloader")


class AssetDownloader(Protocol):
    """Fetches a URL into a destination path."""

    async def download(
        self, url: str, destination: str | Path, expected_sha256: str | None = None
    ) -> Path:
        """Download ``url`` to ``destination`` and return the final path."""


def parse_checksum_manifest(text: str) -> dict[str, str]:
    """Parse ``<sha256>  <file name>`` lines into ``{file name: digest}``."""
    digests: dict[str, str] = {}
    for line in text.splitlines():
        parts = line.split()
        if len(parts) != 2:
            continue
        digest, name = parts
        digests[name.lstrip("*")] = digest.lower()
    return digests


class Downloader:
    """Download release assets to disk."""

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = HTTP_TIMEOUT,
        max_redirects: int = MAX_REDIRECTS,
        mode: int = DEFAULT_BINARY_MODE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._user_agent = user_agent
        self._timeout = timeout
        self._max_redirects = max_redirects
        self._mode = mode
        self._transport = transport

    async def download(
        self, url: str, destination: str | Path, expected_sha256: str | None = None
    ) -> Path:
        """Stream ``url`` into ``destination``.

        Raises:
            DownloadError: On a non-2xx terminal response, a body that breaks
                off part way, a write failure or a checksum mismatch.
            NetworkError: If the request fails before a response or times out.
            TooManyRedirectsError: If the redirect chain is too long or loops.
        """
        dest = Path(destination)
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{dest.name}.", suffix=".part", dir=dest.parent
            )
        except OSError as exc:
            raise DownloadError(f"Cannot create a file next to {dest}: {exc}", url=url) from exc
        tmp_path = Path(tmp_name)
        committed = False
        try:
            with os.fdopen(fd, "wb") as handle:
                digest = await self._stream_to(url, handle)
                await asyncio.to_thread(handle.flush)
                await asyncio.to_thread(os.fsync, handle.fileno())

            if expected_sha256 is not None and digest != expected_sha256.lower():
                raise DownloadError(
                    f"Checksum mismatch for {url}: expected {expected_sha256}, got {digest}",
                    url=url,
                )

            await asyncio.to_thread(os.chmod, tmp_path, self._mode)
            await asyncio.to_thread(os.replace, tmp_path, dest)
            committed = True
        except OSError as exc:
            raise DownloadError(f"Failed to write {dest}: {exc}", url=url) from exc
        finally:
            if not committed:
                tmp_path.unlink(missing_ok=True)

        log.info("download_complete", url=url, path=str(dest), sha256=digest)
        return dest

    async def _stream_to(self, url: str, handle: IO[bytes]) -> str:
        """Write the body of ``url`` into ``handle`` and return its SHA-256.

        Failures before a response arrives and timeouts are ``NetworkError``;
        a body that breaks off part way is a ``DownloadError``.
        """
        headers = {"User-Agent": self._user_agent}
        hasher = hashlib.sha256()
        chain = [url]
        current = url

        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=False,
            transport=self._transport,
        ) as client:
            while True:
                try:
                    async with client.stream("GET", current, headers=headers) as response:
                        if response.is_success:
                            try:
                                async for chunk in response.aiter_bytes(DOWNLOAD_CHUNK_SIZE):
                                    hasher.update(chunk)
                                    await asyncio.to_thread(handle.write, chunk)
                            except httpx.TimeoutException:
                                raise
                            except httpx.HTTPError as exc:
                                raise DownloadError(
                                    f"Download of {current} aborted: {exc}", url=current
                                ) from exc
                            return hasher.hexdigest()

                        if response.has_redirect_location:
                            location = response.headers["location"]
                        else:
                            raise DownloadError(
                                f"GET {current} returned "
                                f"{response.status_code} {response.reason_phrase}",
                                status=response.status_code,
                                url=current,
                            )
                except httpx.TimeoutException as exc:
                    raise NetworkError(f"Download of {current} timed out", url=current) from exc
                except httpx.HTTPError as exc:
                    raise NetworkError(f"Request to {current} failed: {exc}", url=current) from exc

                current = next_hop(chain, location, self._max_redirects)
                log.debug("download_redirect", location=current)
