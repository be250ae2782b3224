"""Where a component's binary lives on disk."""

from __future__ import annotations

import sys
from pathlib import Path

from binstaller.errors import ConfigError
from binstaller.logging import get_logger
from binstaller.models import ComponentConfig, ComponentSpec

log = get_logger("binstaller.paths")


def executable_suffix(os_name: str | None = None) -> str:
    """Return ``.exe`` on the Windows family, an empty string elsewhere."""
    return ".exe" if (os_name or sys.platform) == "win32" else ""


class PathResolver:
    """Compute the binary path for a component.

    A user-supplied path is trusted verbatim and never touched. Otherwise
    the binary goes to ``<storage_dir>/bin/<binary_name><suffix>`` and the
    directory is created on demand.
    """

    def __init__(self, storage_dir: str | Path, os_name: str | None = None) -> None:
        self._storage_dir = Path(storage_dir)
        self._os_name = os_name

    def default_path(self, spec: ComponentSpec) -> Path:
        return self._storage_dir / "bin" / f"{spec.binary_name}{executable_suffix(self._os_name)}"

    def locate(self, spec: ComponentSpec, config: ComponentConfig) -> str:
        """Return the binary path without touching the filesystem."""
        if config.has_custom_path:
            return config.custom_binary_path
        return str(self.default_path(spec))

    def resolve(self, spec: ComponentSpec, config: ComponentConfig) -> str:
        """Return the binary path, creating its directory for default installs.

        Raises:
            ConfigError: If the default directory cannot be created.
        """
        path = self.locate(spec, config)
        if config.has_custom_path:
            return path

        directory = Path(path).parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            log.error("installer_mkdir_failed", directory=str(directory), error=str(exc))
            raise ConfigError(f"Failed to create directory {directory}: {exc}") from exc
        return path
