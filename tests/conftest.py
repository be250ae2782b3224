"""Shared fixtures for binstaller tests."""

from __future__ import annotations

import stat
from collections.abc import Callable
from pathlib import Path

import pytest
import structlog

from binstaller.config import Settings
from binstaller.models import PlatformInfo


class RecordingNotifier:
    """Collects user-facing messages by level."""

    def __init__(self) -> None:
        self.infos: list[str] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def info(self, message: str) -> None:
        self.infos.append(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


class ScriptedConsent:
    """Answers prompts with a fixed value and remembers the questions."""

    def __init__(self, answer: bool) -> None:
        self.answer = answer
        self.questions: list[str] = []

    async def ask(self, message: str) -> bool:
        self.questions.append(message)
        return self.answer


@pytest.fixture()
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture()
def make_consent() -> Callable[[bool], ScriptedConsent]:
    return ScriptedConsent


@pytest.fixture()
def test_log() -> structlog.stdlib.BoundLogger:
    return structlog.get_logger("binstaller.tests")


@pytest.fixture()
def linux_amd64() -> PlatformInfo:
    return PlatformInfo(os_name="linux", arch_name="amd64")


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and the real home directory."""
    return Settings(_env_file=None, storage_dir=tmp_path / "storage")


@pytest.fixture()
def make_version_script(tmp_path: Path) -> Callable[..., Path]:
    """Write an executable shell script that prints a version line."""

    def _make(
        output: str,
        name: str = "jsonnet-language-server",
        directory: Path | None = None,
        exit_code: int = 0,
    ) -> Path:
        target_dir = directory or tmp_path / "scripts"
        target_dir.mkdir(parents=True, exist_ok=True)
        path = target_dir / name
        path.write_text(f"#!/bin/sh\necho '{output}'\nexit {exit_code}\n", encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
        return path

    return _make
