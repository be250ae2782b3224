"""Upgrade decision engine.

Decides, for one component, whether to keep the installed binary, ask the
user to install/upgrade it, or give up, and carries the decision out.

Flow (strictly in this order):
1. Resolve the binary path (custom path verbatim, else default + mkdir)
2. Auto-update off -> return the existing binary, or "no binary"
3. Auto-update on -> look up the latest release; on failure fall back to a
   custom path or fail
4. Missing binary -> ask before installing
5. Existing binary -> probe its version; unreadable or different -> ask
6. On consent -> resolve platform, download, atomically replace
"""

from __future__ import annotations

import asyncio
import os
import weakref
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from binstaller.constants import DEFAULT_RELEASE_HOST
from binstaller.downloader import AssetDownloader, parse_checksum_manifest
from binstaller.errors import (
    ConfigError,
    DownloadError,
    InstallerError,
    NetworkError,
    UnsupportedPlatformError,
    VersionParseError,
)
from binstaller.interaction import ConsentPrompt, Notifier
from binstaller.models import (
    ComponentConfig,
    ComponentSpec,
    DownloadTarget,
    InstallResult,
    InstallState,
    PlatformInfo,
    ReleaseInfo,
)
from binstaller.paths import PathResolver
from binstaller.platforms import current_platform
from binstaller.probe import VersionProbe
from binstaller.release_client import ReleaseSource
from binstaller.utils import timed_operation
from binstaller.versioning import VersionChange, classify_change


@dataclass(frozen=True)
class InstallContext:
    """Everything one install call needs, passed explicitly."""

    spec: ComponentSpec
    config: ComponentConfig
    log: structlog.stdlib.BoundLogger
    notifier: Notifier
    consent: ConsentPrompt


class UpgradeDecisionEngine:
    """Install or update one component at a time per resolved path.

    Safe outcomes (up to date, declined, auto-update off) are returned as an
    ``InstallResult``; ``result.path`` is ``None`` when no binary is usable.
    Hard failures are logged, reported through the notifier and raised.
    """

    def __init__(
        self,
        resolver: PathResolver,
        releases: ReleaseSource,
        probe: VersionProbe,
        downloader: AssetDownloader,
        release_host: str = DEFAULT_RELEASE_HOST,
        platform_resolver: Callable[[], PlatformInfo] = current_platform,
    ) -> None:
        self._resolver = resolver
        self._releases = releases
        self._probe = probe
        self._downloader = downloader
        self._release_host = release_host
        self._platform_resolver = platform_resolver
        # Entries disappear once no install holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def is_busy(self, path: str) -> bool:
        lock = self._locks.get(os.path.abspath(path))
        return lock is not None and lock.locked()

    def _lock_for(self, path: str) -> asyncio.Lock:
        key = os.path.abspath(path)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def install(self, ctx: InstallContext, force: bool = False) -> InstallResult:
        """Run the decision flow for ``ctx.spec``.

        ``force`` treats an existing, readable binary as stale so the user is
        offered a reinstall even when versions match.

        Raises:
            ConfigError: The target directory cannot be created.
            NetworkError: The release lookup failed and no custom path is set,
                or the asset request failed or timed out.
            UnsupportedPlatformError: No asset exists for this platform.
            DownloadError: The download or its verification failed.
        """
        result = InstallResult(component=ctx.spec.id)
        try:
            path = await asyncio.to_thread(self._resolver.resolve, ctx.spec, ctx.config)
        except ConfigError as exc:
            self._abort(ctx, result, str(exc), exc)
            raise
        result.advance(InstallState.PATH_RESOLVED)

        lock = self._lock_for(path)
        if lock.locked():
            ctx.log.info("installer_waiting_for_lock", path=path)
        async with lock:
            return await self._install_at(ctx, result, path, force)

    async def _install_at(
        self, ctx: InstallContext, result: InstallResult, path: str, force: bool
    ) -> InstallResult:
        spec, config = ctx.spec, ctx.config
        exists = await asyncio.to_thread(os.path.exists, path)
        ctx.log.info(
            "installer_path_resolved", path=path, exists=exists, custom=config.has_custom_path
        )

        # Without auto-update, the process ends here
        if not config.auto_update_enabled:
            result.advance(InstallState.AUTO_UPDATE_DISABLED)
            if not exists:
                msg = (
                    f"The {spec.display_name} binary does not exist, please set either "
                    f"'{spec.id}.pathToBinary' or '{spec.id}.enableAutoUpdate'"
                )
                ctx.log.error("installer_binary_missing", path=path)
                ctx.notifier.error(msg)
                result.error = msg
                return result.finish(InstallState.FAILED, None)
            return result.finish(InstallState.DONE, path)

        result.advance(InstallState.CHECKING_REMOTE)
        repository = config.release_repository
        try:
            release = await self._releases.latest_release(repository)
        except (NetworkError, VersionParseError) as exc:
            msg = f"Failed to fetch latest release of {repository}"
            if not config.has_custom_path:
                self._abort(ctx, result, msg, exc, repository=repository)
                raise
            warning = f"{msg}. Continuing with the current version."
            ctx.log.warning("installer_release_lookup_failed", repository=repository, error=str(exc))
            ctx.notifier.warning(warning)
            result.warnings.append(warning)
            return result.finish(InstallState.DONE, path)

        result.latest_version = release.version
        ctx.log.info("installer_latest_release", repository=repository, version=release.version)

        prompt = await self._consent_prompt(ctx, result, path, exists, release, force)
        if prompt is None:
            ctx.log.info("installer_up_to_date", version=release.version)
            result.advance(InstallState.NO_UPDATE_AVAILABLE)
            return result.finish(InstallState.DONE, path)

        result.advance(InstallState.AWAITING_CONSENT)
        if not await ctx.consent.ask(prompt):
            ctx.log.info("installer_consent_declined", path=path, exists=exists)
            if not exists:
                ctx.notifier.warning(
                    f"The {spec.display_name} is not installed; features that need it are disabled."
                )
                return result.finish(InstallState.SKIPPED, None)
            return result.finish(InstallState.SKIPPED, path)

        result.advance(InstallState.INSTALLING)
        await self._download(ctx, result, path, release)
        return result.finish(InstallState.DONE, path)

    # ------------------------------------------------------------------
    # Decision helpers
    # ------------------------------------------------------------------

    async def _consent_prompt(
        self,
        ctx: InstallContext,
        result: InstallResult,
        path: str,
        exists: bool,
        release: ReleaseInfo,
        force: bool,
    ) -> str | None:
        """Return the question to ask, or ``None`` when nothing needs doing."""
        name = ctx.spec.display_name
        latest = release.version
        if not exists:
            return (
                f"The {name} does not seem to be installed. "
                f"Do you wish to install the latest version ({latest})?"
            )

        try:
            current = await self._probe.probe(path, ctx.spec.binary_name)
        except VersionParseError as exc:
            ctx.log.warning("installer_probe_failed", path=path, error=str(exc))
            return (
                f"Failed to get current version from {path}. "
                f"Do you wish to install the latest version ({latest})?"
            )

        result.installed_version = current
        ctx.log.info("installer_current_version", version=current)
        if force:
            return f"Reinstall the {name} (installed {current}, latest {latest})?"
        change = classify_change(current, latest)
        if change is VersionChange.SAME:
            return None
        if change is VersionChange.UPGRADE:
            return f"A newer {name} is available ({current} -> {latest}). Do you wish to upgrade?"
        if change is VersionChange.DOWNGRADE:
            return (
                f"The installed {name} ({current}) is newer than the latest release "
                f"({latest}). Do you wish to install {latest}?"
            )
        return (
            f"Current {name} version ({current}) != latest ({latest}). "
            "Do you wish to install the latest version?"
        )

    async def _download(
        self, ctx: InstallContext, result: InstallResult, path: str, release: ReleaseInfo
    ) -> None:
        spec, config = ctx.spec, ctx.config
        try:
            platform_info = self._platform_resolver()
        except UnsupportedPlatformError as exc:
            self._abort(ctx, result, str(exc), exc)
            raise

        target = DownloadTarget(
            host=self._release_host,
            repository=config.release_repository,
            version=release.version,
            platform=platform_info,
            binary_name=spec.binary_name,
        )
        ctx.log.info("installer_downloading", url=target.url, path=path, version=release.version)

        try:
            expected = await self._expected_digest(target) if config.verify_checksum else None
            async with timed_operation("installer_download", log=ctx.log, url=target.url):
                await self._downloader.download(target.url, path, expected_sha256=expected)
        except (DownloadError, NetworkError) as exc:
            self._abort(
                ctx, result, f"Failed to download {target.url} to {path}", exc, url=target.url
            )
            raise

        result.downloaded = True
        result.installed_version = release.version
        ctx.log.info("installer_success", version=release.version, path=path)
        ctx.notifier.info(f"Successfully installed the {spec.display_name} version {release.version}")

    async def _expected_digest(self, target: DownloadTarget) -> str:
        try:
            manifest = await self._releases.fetch_text(target.checksums_url)
        except NetworkError as exc:
            raise DownloadError(
                f"Checksum manifest {target.checksums_url} unavailable: {exc}",
                status=exc.status,
                url=target.checksums_url,
            ) from exc

        digest = parse_checksum_manifest(manifest).get(target.asset_name)
        if digest is None:
            raise DownloadError(
                f"{target.checksums_url} has no checksum for {target.asset_name}",
                url=target.checksums_url,
            )
        return digest

    @staticmethod
    def _abort(
        ctx: InstallContext,
        result: InstallResult,
        message: str,
        exc: InstallerError,
        **context: Any,
    ) -> None:
        ctx.log.error("installer_failed", message=message, error=str(exc), **context)
        ctx.notifier.error(message)
        result.error = message
        result.error_type = type(exc).__name__
        result.finish(InstallState.FAILED, None)
