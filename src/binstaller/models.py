"""Data models for component installs.

All models are plain dataclasses; the results carry ``to_dict`` for
serialisation (CLI ``--json`` output and structured log context).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from binstaller.errors import ConfigError

# ------------------------------------------------------------------
# Component description and configuration
# ------------------------------------------------------------------


@dataclass(frozen=True)
class ComponentSpec:
    """Immutable descriptor of one manageable binary."""

    id: str
    binary_name: str
    display_name: str
    launch_args: tuple[str, ...] = ()


_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "false", "no", "off", ""})


def _as_bool(key: str, value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS:
        return True
    if isinstance(value, str) and value.strip().lower() in _FALSE_STRINGS:
        return False
    raise ConfigError(f"Setting '{key}' must be a boolean, got {value!r}")


@dataclass(frozen=True)
class ComponentConfig:
    """Per-invocation settings snapshot for one component."""

    release_repository: str = ""
    custom_binary_path: str | None = None
    auto_update_enabled: bool = False
    verify_checksum: bool = False
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def has_custom_path(self) -> bool:
        return bool(self.custom_binary_path and self.custom_binary_path.strip())

    @classmethod
    def from_mapping(cls, component_id: str, settings: Mapping[str, Any]) -> ComponentConfig:
        """Build a snapshot from a flat ``{"<component>.<key>": value}`` map."""
        prefix = f"{component_id}."
        scoped = {k[len(prefix) :]: v for k, v in settings.items() if k.startswith(prefix)}

        raw_path = scoped.pop("pathToBinary", None)
        if raw_path is not None and not isinstance(raw_path, str):
            raise ConfigError(f"Setting '{prefix}pathToBinary' must be a string")
        custom_path = raw_path if raw_path and raw_path.strip() else None

        repository = scoped.pop("releaseRepository", None) or ""
        if not isinstance(repository, str):
            raise ConfigError(f"Setting '{prefix}releaseRepository' must be a string")

        auto_update = _as_bool(
            f"{prefix}enableAutoUpdate", scoped.pop("enableAutoUpdate", None), False
        )
        verify = _as_bool(f"{prefix}verifyChecksum", scoped.pop("verifyChecksum", None), False)

        if auto_update and not repository.strip():
            raise ConfigError(
                f"Setting '{prefix}releaseRepository' is required when "
                f"'{prefix}enableAutoUpdate' is on"
            )

        return cls(
            release_repository=repository.strip(),
            custom_binary_path=custom_path,
            auto_update_enabled=auto_update,
            verify_checksum=verify,
            extra=dict(scoped),
        )


# ------------------------------------------------------------------
# Resolved local / remote state
# ------------------------------------------------------------------


@dataclass(frozen=True)
class InstalledBinary:
    """What is on disk at the resolved path right now."""

    path: str
    exists: bool
    reported_version: str | None = None


@dataclass(frozen=True)
class ReleaseInfo:
    """Latest published release of a repository."""

    version_tag: str
    version: str  # normalised, no 'v' prefix


@dataclass(frozen=True)
class PlatformInfo:
    """Release-asset naming for one OS/architecture pair."""

    os_name: str
    arch_name: str
    file_suffix: str = ""


@dataclass(frozen=True)
class DownloadTarget:
    """Everything needed to build a release asset URL."""

    host: str
    repository: str
    version: str
    platform: PlatformInfo
    binary_name: str

    @property
    def asset_name(self) -> str:
        p = self.platform
        return f"{self.binary_name}_{self.version}_{p.os_name}_{p.arch_name}{p.file_suffix}"

    @property
    def release_url(self) -> str:
        return f"https://{self.host}/{self.repository}/releases/download/v{self.version}"

    @property
    def url(self) -> str:
        return f"{self.release_url}/{self.asset_name}"

    @property
    def checksums_url(self) -> str:
        return f"{self.release_url}/{self.binary_name}_{self.version}_checksums.txt"


# ------------------------------------------------------------------
# Install outcome
# ------------------------------------------------------------------


class InstallState(Enum):
    """States of one install attempt."""

    START = "start"
    PATH_RESOLVED = "path_resolved"
    AUTO_UPDATE_DISABLED = "auto_update_disabled"
    CHECKING_REMOTE = "checking_remote"
    NO_UPDATE_AVAILABLE = "no_update_available"
    AWAITING_CONSENT = "awaiting_consent"
    INSTALLING = "installing"
    SKIPPED = "skipped"
    DONE = "done"
    FAILED = "failed"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class InstallResult:
    """Result of an install attempt.

    ``path`` is ``None`` when no usable binary is available; callers should
    then skip whatever depends on the component.
    """

    component: str
    state: InstallState = InstallState.START
    path: str | None = None
    installed_version: str | None = None
    latest_version: str | None = None
    downloaded: bool = False
    error: str | None = None
    error_type: str | None = None
    warnings: list[str] = field(default_factory=list)
    steps_completed: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=_now_iso)
    completed_at: str | None = None

    @property
    def available(self) -> bool:
        return self.path is not None

    def advance(self, state: InstallState) -> None:
        self.state = state
        self.steps_completed.append(state.value)

    def finish(self, state: InstallState, path: str | None) -> InstallResult:
        self.advance(state)
        self.path = path
        self.completed_at = _now_iso()
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component,
            "state": self.state.value,
            "path": self.path,
            "available": self.available,
            "installed_version": self.installed_version,
            "latest_version": self.latest_version,
            "downloaded": self.downloaded,
            "error": self.error,
            "error_type": self.error_type,
            "warnings": list(self.warnings),
            "steps_completed": list(self.steps_completed),
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }
