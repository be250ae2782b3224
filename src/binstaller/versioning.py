"""Version tag helpers.

Release tags (minus a leading ``v``) and ``--version`` output are compared as
plain strings; ordering is only used to phrase the consent prompt
(upgrade vs. switch to a different version).
"""

from __future__ import annotations

import re
from enum import Enum

# 1.4, 1.4.0, 1.4.0-rc.1, 1.4.0+build.7
_VERSION_RE = re.compile(r"^(?P<release>\d+(?:\.\d+)*)(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+\S+)?$")


class VersionChange(Enum):
    """How the latest release relates to the installed version."""

    SAME = "same"
    UPGRADE = "upgrade"
    DOWNGRADE = "downgrade"
    DIFFERENT = "different"


def normalize_version(tag: str) -> str:
    """Strip surrounding whitespace and a single leading ``v``.

    ``normalize_version("v1.2.3") == normalize_version("1.2.3")``.
    """
    tag = tag.strip()
    return tag[1:] if tag.startswith("v") else tag


def version_key(version: str) -> tuple[tuple[int, ...], tuple[int | str, ...]] | None:
    """Sort key for a dotted-numeric version, or ``None`` if it has another shape.

    Trailing zero components are ignored (``1.4 == 1.4.0``). A pre-release
    sorts before its release; build metadata is ignored.
    """
    match = _VERSION_RE.match(normalize_version(version))
    if match is None:
        return None

    release = [int(part) for part in match.group("release").split(".")]
    while len(release) > 1 and release[-1] == 0:
        release.pop()

    pre = match.group("pre")
    if pre is None:
        # Sorts after any pre-release tuple
        return tuple(release), (1,)
    identifiers = tuple(int(p) if p.isdigit() else p for p in pre.split("."))
    return tuple(release), (0, *identifiers)


def classify_change(current: str, latest: str) -> VersionChange:
    """Compare the installed version with the latest release.

    Only identical strings are ``SAME``; ``1.4`` and ``1.4.0`` are ``DIFFERENT``.
    """
    if current == latest:
        return VersionChange.SAME
    current_key, latest_key = version_key(current), version_key(latest)
    if current_key is None or latest_key is None:
        return VersionChange.DIFFERENT
    try:
        if latest_key > current_key:
            return VersionChange.UPGRADE
        if latest_key < current_key:
            return VersionChange.DOWNGRADE
    except TypeError:
        # Numeric and alphanumeric pre-release identifiers at the same position
        return VersionChange.DIFFERENT
    return VersionChange.DIFFERENT
