"""Tests for timed_operation."""

from unittest.mock import MagicMock

import pytest

from binstaller.utils import timed_operation


class TestTimedOperation:
    @pytest.mark.asyncio
    async def test_logs_success(self):
        log = MagicMock()

        async with timed_operation("installer_download", log=log, url="https://x") as timing:
            timing["bytes"] = 10

        assert timing["elapsed_ms"] >= 0
        log.debug.assert_called_once()
        args, kwargs = log.debug.call_args
        assert args == ("installer_download",)
        assert kwargs["outcome"] == "ok"
        assert kwargs["url"] == "https://x"
        assert kwargs["bytes"] == 10

    @pytest.mark.asyncio
    async def test_logs_failure_and_reraises(self):
        log = MagicMock()

        with pytest.raises(RuntimeError):
            async with timed_operation("installer_download", log=log):
                raise RuntimeError("boom")

        assert log.debug.call_args.kwargs["outcome"] == "error"
