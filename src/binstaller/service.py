"""High-level entry point used by hosts and the CLI."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import httpx

from binstaller.components import ComponentRegistry, default_registry
from binstaller.config import Settings, get_settings
from binstaller.downloader import AssetDownloader, Downloader
from binstaller.engine import InstallContext, UpgradeDecisionEngine
from binstaller.errors import InstallerError, VersionParseError
from binstaller.interaction import ConsentPrompt, ConsoleNotifier, ConsolePrompt, Notifier
from binstaller.logging import get_logger
from binstaller.models import (
    ComponentConfig,
    InstalledBinary,
    InstallResult,
    InstallState,
    PlatformInfo,
)
from binstaller.paths import PathResolver
from binstaller.platforms import current_platform
from binstaller.probe import LocalVersionProbe, VersionProbe
from binstaller.release_client import ReleaseSource, RemoteReleaseClient

log = get_logger("binstaller.service")


class ComponentInstaller:
    """Ensure registered components are installed, one config snapshot at a time.

    Collaborators default to the real HTTP/subprocess implementations built
    from ``settings``; any of them can be replaced for testing.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        registry: ComponentRegistry | None = None,
        notifier: Notifier | None = None,
        consent: ConsentPrompt | None = None,
        releases: ReleaseSource | None = None,
        probe: VersionProbe | None = None,
        downloader: AssetDownloader | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        platform_resolver: Callable[[], PlatformInfo] = current_platform,
    ) -> None:
        self._settings = settings or get_settings()
        self._registry = registry or default_registry()
        self._notifier = notifier or ConsoleNotifier()
        self._consent = consent or ConsolePrompt()
        s = self._settings

        self._resolver = PathResolver(s.storage_dir)
        self._probe = probe or LocalVersionProbe(timeout=s.probe_timeout)
        self._engine = UpgradeDecisionEngine(
            resolver=self._resolver,
            releases=releases
            or RemoteReleaseClient(
                api_host=s.api_host,
                user_agent=s.user_agent,
                timeout=s.http_timeout,
                max_redirects=s.max_redirects,
                transport=transport,
            ),
            probe=self._probe,
            downloader=downloader
            or Downloader(
                user_agent=s.user_agent,
                timeout=s.http_timeout,
                max_redirects=s.max_redirects,
                mode=s.binary_mode,
                transport=transport,
            ),
            release_host=s.release_host,
            platform_resolver=platform_resolver,
        )

    @property
    def registry(self) -> ComponentRegistry:
        return self._registry

    @property
    def engine(self) -> UpgradeDecisionEngine:
        return self._engine

    def context_for(self, component_id: str, settings: Mapping[str, Any]) -> InstallContext:
        """Snapshot configuration for one call and bind a component logger."""
        spec = self._registry.get(component_id)
        return InstallContext(
            spec=spec,
            config=ComponentConfig.from_mapping(spec.id, settings),
            log=log.bind(component=spec.id),
            notifier=self._notifier,
            consent=self._consent,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def ensure(
        self, component_id: str, settings: Mapping[str, Any], force: bool = False
    ) -> InstallResult:
        """Install or update one component; hard failures raise."""
        ctx = self.context_for(component_id, settings)
        return await self._engine.install(ctx, force=force)

    async def reinstall(self, component_id: str, settings: Mapping[str, Any]) -> InstallResult:
        """Offer a fresh download even if the installed version is current."""
        return await self.ensure(component_id, settings, force=True)

    async def ensure_all(
        self, settings: Mapping[str, Any], component_ids: Iterable[str] | None = None
    ) -> dict[str, InstallResult]:
        """Install every requested component in order.

        A hard failure for one component becomes a FAILED result so that the
        remaining components are still processed.
        """
        results: dict[str, InstallResult] = {}
        for component_id in component_ids or self._registry.ids:
            try:
                results[component_id] = await self.ensure(component_id, settings)
            except InstallerError as exc:
                log.warning("installer_component_failed", component=component_id, error=str(exc))
                failed = InstallResult(
                    component=component_id, error=str(exc), error_type=type(exc).__name__
                )
                results[component_id] = failed.finish(InstallState.FAILED, None)
        return results

    async def status(self, component_id: str, settings: Mapping[str, Any]) -> InstalledBinary:
        """Describe what is installed, without network access or filesystem changes."""
        ctx = self.context_for(component_id, settings)
        path = self._resolver.locate(ctx.spec, ctx.config)
        if not await asyncio.to_thread(os.path.exists, path):
            return InstalledBinary(path=path, exists=False)
        try:
            version = await self._probe.probe(path, ctx.spec.binary_name)
        except VersionParseError as exc:
            ctx.log.debug("installer_status_probe_failed", path=path, error=str(exc))
            version = None
        return InstalledBinary(path=path, exists=True, reported_version=version)
