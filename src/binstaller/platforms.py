"""Map the running OS/CPU onto release asset naming."""

from __future__ import annotations

import platform
import sys

from binstaller.errors import UnsupportedPlatformError
from binstaller.models import PlatformInfo

# Architecture id -> release asset arch
RELEASE_ARCHES: dict[str, str] = {
    "arm": "armv7",
    "arm64": "arm64",
    "x64": "amd64",
}

WINDOWS_OS = "win32"

# platform.machine() spellings -> architecture id
_MACHINE_ALIASES: dict[str, str] = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "armv6l": "arm",
    "arm": "arm",
}


def resolve_platform(os_name: str, arch: str) -> PlatformInfo:
    """Return release naming for ``(os_name, arch)``.

    ``os_name`` uses ``sys.platform`` spelling; ``arch`` is one of the
    architecture ids in :data:`RELEASE_ARCHES`.

    Raises:
        UnsupportedPlatformError: If no release asset exists for ``arch``.
    """
    arch_name = RELEASE_ARCHES.get(arch)
    if arch_name is None:
        raise UnsupportedPlatformError(
            f"No release assets are published for architecture '{arch}' on '{os_name}'"
        )
    if os_name == WINDOWS_OS:
        return PlatformInfo(os_name="windows", arch_name=arch_name, file_suffix=".exe")
    return PlatformInfo(os_name=os_name, arch_name=arch_name)


def machine_arch(machine: str | None = None) -> str:
    """Normalise ``platform.machine()`` to an architecture id.

    Unknown machines are returned lower-cased so the error names them.
    """
    raw = (machine if machine is not None else platform.machine()).strip().lower()
    return _MACHINE_ALIASES.get(raw, raw)


def current_platform() -> PlatformInfo:
    """Release naming for the running interpreter's platform."""
    return resolve_platform(sys.platform, machine_arch())
