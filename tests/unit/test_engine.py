"""Tests for UpgradeDecisionEngine policy with mocked collaborators."""

from __future__ import annotations

import asyncio
import gc
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from binstaller.engine import InstallContext, UpgradeDecisionEngine
from binstaller.errors import (
    ConfigError,
    DownloadError,
    NetworkError,
    UnsupportedPlatformError,
    VersionParseError,
)
from binstaller.models import ComponentConfig, ComponentSpec, InstallState, ReleaseInfo
from binstaller.paths import PathResolver

SPEC = ComponentSpec(
    id="languageServer", binary_name="jsonnet-language-server", display_name="language server"
)
REPO = "grafana/jsonnet-language-server"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _release(version: str = "1.4.0") -> ReleaseInfo:
    return ReleaseInfo(version_tag=f"v{version}", version=version)


def _make_engine(
    tmp_path: Path,
    platform,
    *,
    latest: ReleaseInfo | Exception = _release(),
    installed: str | Exception = "1.4.0",
) -> tuple[UpgradeDecisionEngine, AsyncMock, AsyncMock, AsyncMock]:
    releases = AsyncMock()
    if isinstance(latest, Exception):
        releases.latest_release = AsyncMock(side_effect=latest)
    else:
        releases.latest_release = AsyncMock(return_value=latest)

    probe = AsyncMock()
    if isinstance(installed, Exception):
        probe.probe = AsyncMock(side_effect=installed)
    else:
        probe.probe = AsyncMock(return_value=installed)

    async def _fake_download(url, destination, expected_sha256=None):
        Path(destination).write_bytes(b"new binary")
        return Path(destination)

    downloader = AsyncMock()
    downloader.download = AsyncMock(side_effect=_fake_download)

    engine = UpgradeDecisionEngine(
        resolver=PathResolver(tmp_path / "storage", os_name="linux"),
        releases=releases,
        probe=probe,
        downloader=downloader,
        platform_resolver=MagicMock(return_value=platform),
    )
    return engine, releases, probe, downloader


def _ctx(notifier, consent, test_log, **config) -> InstallContext:
    return InstallContext(
        spec=SPEC,
        config=ComponentConfig(**config),
        log=test_log,
        notifier=notifier,
        consent=consent,
    )


def _default_path(tmp_path: Path) -> Path:
    return tmp_path / "storage" / "bin" / "jsonnet-language-server"


def _install_existing(tmp_path: Path, content: bytes = b"old binary") -> Path:
    path = _default_path(tmp_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


# ---------------------------------------------------------------------------
# Auto-update disabled
# ---------------------------------------------------------------------------


class TestAutoUpdateDisabled:
    """Tests for the no-network branch."""

    @pytest.mark.asyncio
    async def test_missing_binary_is_unavailable(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, releases, _, downloader = _make_engine(tmp_path, linux_amd64)
        consent = make_consent(True)

        result = await engine.install(_ctx(notifier, consent, test_log))

        assert result.state is InstallState.FAILED
        assert result.path is None
        assert len(notifier.errors) == 1
        assert "languageServer.enableAutoUpdate" in notifier.errors[0]
        releases.latest_release.assert_not_awaited()
        downloader.download.assert_not_awaited()
        assert consent.questions == []

    @pytest.mark.asyncio
    async def test_existing_binary_returned_unchanged(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        existing = _install_existing(tmp_path)
        engine, releases, probe, _ = _make_engine(tmp_path, linux_amd64)

        result = await engine.install(_ctx(notifier, make_consent(True), test_log))

        assert result.state is InstallState.DONE
        assert result.path == str(existing)
        assert result.steps_completed == ["path_resolved", "auto_update_disabled", "done"]
        releases.latest_release.assert_not_awaited()
        probe.probe.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_custom_path_used_verbatim(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        custom = tmp_path / "mine" / "ls"
        custom.parent.mkdir()
        custom.write_bytes(b"custom")
        engine, *_ = _make_engine(tmp_path, linux_amd64)

        result = await engine.install(
            _ctx(notifier, make_consent(True), test_log, custom_binary_path=str(custom))
        )

        assert result.path == str(custom)
        assert not (tmp_path / "storage").exists()


# ---------------------------------------------------------------------------
# Path resolution failure
# ---------------------------------------------------------------------------


class TestPathFailure:
    @pytest.mark.asyncio
    async def test_config_error_raised_and_reported(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, releases, *_ = _make_engine(tmp_path, linux_amd64)
        engine._resolver = MagicMock()
        engine._resolver.resolve.side_effect = ConfigError("Failed to create directory /x")

        with pytest.raises(ConfigError):
            await engine.install(_ctx(notifier, make_consent(True), test_log))

        assert notifier.errors == ["Failed to create directory /x"]
        releases.latest_release.assert_not_awaited()


# ---------------------------------------------------------------------------
# Remote lookup
# ---------------------------------------------------------------------------


class TestRemoteLookupFailure:
    @pytest.mark.asyncio
    async def test_default_path_fails_hard(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, *_ = _make_engine(tmp_path, linux_amd64, latest=NetworkError("boom", status=503))

        with pytest.raises(NetworkError):
            await engine.install(
                _ctx(
                    notifier,
                    make_consent(True),
                    test_log,
                    auto_update_enabled=True,
                    release_repository=REPO,
                )
            )

        assert notifier.errors == [f"Failed to fetch latest release of {REPO}"]

    @pytest.mark.asyncio
    async def test_custom_path_falls_back_with_warning(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, _, probe, downloader = _make_engine(
            tmp_path, linux_amd64, latest=VersionParseError("no name")
        )

        result = await engine.install(
            _ctx(
                notifier,
                make_consent(True),
                test_log,
                auto_update_enabled=True,
                release_repository=REPO,
                custom_binary_path="/opt/ls",
            )
        )

        assert result.state is InstallState.DONE
        assert result.path == "/opt/ls"
        assert len(notifier.warnings) == 1
        assert result.warnings == notifier.warnings
        probe.probe.assert_not_awaited()
        downloader.download.assert_not_awaited()


# ---------------------------------------------------------------------------
# Decision + consent
# ---------------------------------------------------------------------------


def _enabled(notifier, consent, test_log, **extra) -> InstallContext:
    return _ctx(
        notifier, consent, test_log, auto_update_enabled=True, release_repository=REPO, **extra
    )


class TestUpgradeDecision:
    @pytest.mark.asyncio
    async def test_up_to_date_skips_download(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        existing = _install_existing(tmp_path)
        engine, _, _, downloader = _make_engine(tmp_path, linux_amd64, installed="1.4.0")
        consent = make_consent(True)

        result = await engine.install(_enabled(notifier, consent, test_log))

        assert result.state is InstallState.DONE
        assert InstallState.NO_UPDATE_AVAILABLE.value in result.steps_completed
        assert result.path == str(existing)
        assert consent.questions == []
        downloader.download.assert_not_awaited()
        assert existing.read_bytes() == b"old binary"

    @pytest.mark.asyncio
    async def test_outdated_and_declined_keeps_stale_path(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        existing = _install_existing(tmp_path)
        engine, _, _, downloader = _make_engine(tmp_path, linux_amd64, installed="1.3.0")
        consent = make_consent(False)

        result = await engine.install(_enabled(notifier, consent, test_log))

        assert result.state is InstallState.SKIPPED
        assert result.path == str(existing)
        assert result.installed_version == "1.3.0"
        assert "1.3.0 -> 1.4.0" in consent.questions[0]
        downloader.download.assert_not_awaited()
        assert notifier.errors == []

    @pytest.mark.asyncio
    async def test_downgrade_offer_wording(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        _install_existing(tmp_path)
        engine, *_ = _make_engine(tmp_path, linux_amd64, installed="2.0.0")
        consent = make_consent(False)

        await engine.install(_enabled(notifier, consent, test_log))

        assert "(2.0.0) is newer than the latest release (1.4.0)" in consent.questions[0]

    @pytest.mark.asyncio
    async def test_unordered_version_offer_wording(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        _install_existing(tmp_path)
        engine, *_ = _make_engine(tmp_path, linux_amd64, installed="nightly")
        consent = make_consent(False)

        await engine.install(_enabled(notifier, consent, test_log))

        assert "(nightly) != latest (1.4.0)" in consent.questions[0]

    @pytest.mark.asyncio
    async def test_broken_binary_routes_to_consent(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        existing = _install_existing(tmp_path)
        engine, _, _, downloader = _make_engine(
            tmp_path, linux_amd64, installed=VersionParseError("garbage")
        )
        consent = make_consent(True)

        result = await engine.install(_enabled(notifier, consent, test_log))

        assert "Failed to get current version" in consent.questions[0]
        assert result.state is InstallState.DONE
        assert result.downloaded is True
        assert existing.read_bytes() == b"new binary"
        downloader.download.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_binary_declined_is_unavailable(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, _, probe, downloader = _make_engine(tmp_path, linux_amd64)
        consent = make_consent(False)

        result = await engine.install(_enabled(notifier, consent, test_log))

        assert result.state is InstallState.SKIPPED
        assert result.path is None
        assert "does not seem to be installed" in consent.questions[0]
        assert len(notifier.warnings) == 1
        probe.probe.assert_not_awaited()
        downloader.download.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_binary_installed_on_consent(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, _, _, downloader = _make_engine(tmp_path, linux_amd64)

        result = await engine.install(_enabled(notifier, make_consent(True), test_log))

        path = _default_path(tmp_path)
        assert result.path == str(path)
        assert result.installed_version == "1.4.0"
        downloader.download.assert_awaited_once_with(
            f"https://github.com/{REPO}/releases/download/v1.4.0/"
            "jsonnet-language-server_1.4.0_linux_amd64",
            str(path),
            expected_sha256=None,
        )
        assert notifier.infos == ["Successfully installed the language server version 1.4.0"]

    @pytest.mark.asyncio
    async def test_force_offers_reinstall_when_current(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        _install_existing(tmp_path)
        engine, _, _, downloader = _make_engine(tmp_path, linux_amd64, installed="1.4.0")
        consent = make_consent(True)

        result = await engine.install(_enabled(notifier, consent, test_log), force=True)

        assert consent.questions[0].startswith("Reinstall the language server")
        assert result.downloaded is True
        downloader.download.assert_awaited_once()


# ---------------------------------------------------------------------------
# Download failures
# ---------------------------------------------------------------------------


class TestDownloadFailures:
    @pytest.mark.asyncio
    async def test_download_error_leaves_previous_binary(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        existing = _install_existing(tmp_path)
        engine, _, _, downloader = _make_engine(tmp_path, linux_amd64, installed="1.3.0")
        downloader.download.side_effect = DownloadError("404 Not Found", status=404)

        with pytest.raises(DownloadError):
            await engine.install(_enabled(notifier, make_consent(True), test_log))

        assert existing.read_bytes() == b"old binary"
        assert len(notifier.errors) == 1
        assert notifier.errors[0].startswith("Failed to download https://github.com/")

    @pytest.mark.asyncio
    async def test_unsupported_platform_fails_before_download(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, _, _, downloader = _make_engine(tmp_path, linux_amd64)
        engine._platform_resolver = MagicMock(
            side_effect=UnsupportedPlatformError("No release assets for 'riscv64'")
        )

        with pytest.raises(UnsupportedPlatformError):
            await engine.install(_enabled(notifier, make_consent(True), test_log))

        downloader.download.assert_not_awaited()
        assert "riscv64" in notifier.errors[0]


# ---------------------------------------------------------------------------
# Checksums
# ---------------------------------------------------------------------------


class TestChecksumVerification:
    @pytest.mark.asyncio
    async def test_expected_digest_passed_to_downloader(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, releases, _, downloader = _make_engine(tmp_path, linux_amd64)
        releases.fetch_text = AsyncMock(
            return_value="ABCDEF  jsonnet-language-server_1.4.0_linux_amd64\n"
        )

        await engine.install(_enabled(notifier, make_consent(True), test_log, verify_checksum=True))

        releases.fetch_text.assert_awaited_once_with(
            f"https://github.com/{REPO}/releases/download/v1.4.0/"
            "jsonnet-language-server_1.4.0_checksums.txt"
        )
        assert downloader.download.await_args.kwargs["expected_sha256"] == "abcdef"

    @pytest.mark.asyncio
    async def test_manifest_without_asset_is_download_error(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, releases, _, downloader = _make_engine(tmp_path, linux_amd64)
        releases.fetch_text = AsyncMock(return_value="abc  other_asset\n")

        with pytest.raises(DownloadError, match="has no checksum"):
            await engine.install(
                _enabled(notifier, make_consent(True), test_log, verify_checksum=True)
            )
        downloader.download.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_manifest_unavailable_is_download_error(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, releases, *_ = _make_engine(tmp_path, linux_amd64)
        releases.fetch_text = AsyncMock(side_effect=NetworkError("404", status=404))

        with pytest.raises(DownloadError, match="unavailable"):
            await engine.install(
                _enabled(notifier, make_consent(True), test_log, verify_checksum=True)
            )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


class TestConcurrentInstalls:
    @pytest.mark.asyncio
    async def test_same_path_installs_do_not_overlap(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, _, _, downloader = _make_engine(tmp_path, linux_amd64)
        active = 0
        peak = 0

        async def slow_download(url, destination, expected_sha256=None):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.05)
            Path(destination).write_bytes(b"new binary")
            active -= 1
            return Path(destination)

        downloader.download.side_effect = slow_download
        ctx = _enabled(notifier, make_consent(True), test_log)

        first, second = await asyncio.gather(
            engine.install(ctx), engine.install(ctx, force=True)
        )

        assert peak == 1
        assert first.downloaded is True
        # The second call sees the freshly installed binary and is offered a reinstall
        assert second.downloaded is True
        assert downloader.download.await_count == 2
        assert engine.is_busy(str(_default_path(tmp_path))) is False

    @pytest.mark.asyncio
    async def test_lock_released_after_install(
        self, tmp_path, linux_amd64, notifier, make_consent, test_log
    ):
        engine, *_ = _make_engine(tmp_path, linux_amd64)

        await engine.install(_enabled(notifier, make_consent(True), test_log))
        gc.collect()

        assert len(engine._locks) == 0
