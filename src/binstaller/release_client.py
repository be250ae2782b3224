"""Release metadata lookups against the GitHub Releases API.

Redirects are followed by hand rather than by httpx so that the hop limit
and loop detection apply identically to metadata and asset requests.
"""

from __future__ import annotations

from typing import Any, Protocol

import httpx

from binstaller.constants import (
    API_REDIRECT_STATUSES,
    DEFAULT_USER_AGENT,
    HTTP_TIMEOUT,
    MAX_REDIRECTS,
)
from binstaller.errors import NetworkError, TooManyRedirectsError, VersionParseError
from binstaller.logging import get_logger
from binstaller.models import ReleaseInfo
from binstaller.versioning import normalize_version

log = get_logger("binstaller.release_client")


class ReleaseSource(Protocol):
    """Where the latest published version of a repository comes from."""

    async def latest_release(self, repository: str) -> ReleaseInfo:
        """Return the newest release or raise ``NetworkError``/``VersionParseError``."""

    async def fetch_text(self, url: str) -> str:
        """Return the body of a small text document (e.g. a checksum manifest)."""


def next_hop(chain: list[str], location: str, max_redirects: int) -> str:
    """Validate and record one redirect hop, returning the absolute target.

    Raises:
        TooManyRedirectsError: If ``location`` was already visited or the
            chain would exceed ``max_redirects`` hops.
    """
    target = str(httpx.URL(chain[-1]).join(location))
    if target in chain:
        raise TooManyRedirectsError(f"Redirect loop detected at {target}", [*chain, target])
    if len(chain) > max_redirects:
        raise TooManyRedirectsError(
            f"Exceeded {max_redirects} redirects starting from {chain[0]}", [*chain, target]
        )
    chain.append(target)
    return target


class RemoteReleaseClient:
    """Query ``https://api.<host>/repos/{repository}/releases/latest``."""

    def __init__(
        self,
        api_host: str = "api.github.com",
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = HTTP_TIMEOUT,
        max_redirects: int = MAX_REDIRECTS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_host = api_host
        self._user_agent = user_agent
        self._timeout = timeout
        self._max_redirects = max_redirects
        self._transport = transport

    def latest_release_url(self, repository: str) -> str:
        return f"https://{self._api_host}/repos/{repository}/releases/latest"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def latest_release(self, repository: str) -> ReleaseInfo:
        """Fetch and normalise the latest release of ``repository``.

        Raises:
            NetworkError: On transport failure or a non-200 terminal response.
            TooManyRedirectsError: If the redirect chain is too long or loops.
            VersionParseError: If the body carries no usable version.
        """
        url = self.latest_release_url(repository)
        resp = await self._get(url, accept="application/vnd.github+json")

        try:
            data: Any = resp.json()
        except ValueError as exc:
            raise VersionParseError(f"Release metadata from {url} is not valid JSON") from exc

        if not isinstance(data, dict):
            raise VersionParseError(f"Release metadata from {url} is not a JSON object")

        tag = data.get("name") or data.get("tag_name")
        if not isinstance(tag, str) or not normalize_version(tag):
            raise VersionParseError(f"Release metadata from {url} has no version name")

        release = ReleaseInfo(version_tag=tag.strip(), version=normalize_version(tag))
        log.debug("release_lookup_ok", repository=repository, version=release.version)
        return release

    async def fetch_text(self, url: str) -> str:
        resp = await self._get(url)
        return resp.text

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get(self, url: str, accept: str | None = None) -> httpx.Response:
        """GET ``url``, following 301/302 hops, and require a 200."""
        headers = {"User-Agent": self._user_agent}
        if accept:
            headers["Accept"] = accept

        chain = [url]
        current = url
        async with httpx.AsyncClient(
            timeout=self._timeout,
            follow_redirects=False,
            transport=self._transport,
        ) as client:
            while True:
                try:
                    resp = await client.get(current, headers=headers)
                except httpx.TimeoutException as exc:
                    raise NetworkError(f"Request to {current} timed out", url=current) from exc
                except httpx.RequestError as exc:
                    raise NetworkError(f"Request to {current} failed: {exc}", url=current) from exc

                location = resp.headers.get("location")
                if resp.status_code in API_REDIRECT_STATUSES and location:
                    current = next_hop(chain, location, self._max_redirects)
                    log.debug("release_redirect", status=resp.status_code, location=current)
                    continue

                if resp.status_code != 200:
                    log.warning("release_lookup_http_error", url=current, status=resp.status_code)
                    raise NetworkError(
                        f"GET {current} returned {resp.status_code} {resp.reason_phrase}",
                        status=resp.status_code,
                        url=current,
                    )
                return resp
