"""Exception hierarchy for the installer.

``InstallerError`` is the common base so callers can catch every installer
failure in one place. A declined consent prompt is not an error: it is
reported as :attr:`binstaller.models.InstallState.SKIPPED`.
"""

from __future__ import annotations


class InstallerError(Exception):
    """Base class for all installer failures."""


class ConfigError(InstallerError):
    """The component configuration is unusable or the target directory cannot be created."""


class NetworkError(InstallerError):
    """A release-source request failed or returned a non-success status."""

    def __init__(self, message: str, status: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class TooManyRedirectsError(NetworkError):
    """A redirect chain was longer than allowed or looped back on itself."""

    def __init__(self, message: str, chain: list[str]) -> None:
        super().__init__(message, url=chain[-1] if chain else None)
        self.chain = chain


class VersionParseError(InstallerError):
    """A version could not be determined, locally or from release metadata."""


class DownloadError(InstallerError):
    """An asset transfer failed; no partial file is left behind."""

    def __init__(self, message: str, status: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class UnsupportedPlatformError(InstallerError):
    """The running OS/architecture has no published release asset."""
