"""Tests for logging setup."""

import logging

import pytest

from collectives_sync.utils.logging import log_async_execution_time, mask_secrets, setup_logging


class TestLogging:

    def test_secrets_are_masked(self):
        event = mask_secrets(None, "info", {"event": "login", "password": "pw", "username": "alice", "token": ""})

        assert event == {"event": "login", "password": "***", "username": "alice", "token": ""}

    def test_setup_is_idempotent(self, tmp_path):
        root = logging.getLogger()
        before = len(root.handlers)
        log_file = tmp_path / "logs" / "sync.log"

        setup_logging(log_level="INFO", log_file=str(log_file))
        after_first = len(root.handlers)
        setup_logging(log_level="INFO", log_file=str(log_file))

        assert len(root.handlers) == after_first == before + 2
        assert log_file.parent.is_dir()
        assert logging.getLogger("apscheduler").level == logging.WARNING

    @pytest.mark.asyncio
    async def test_timing_decorator_preserves_result_and_errors(self):
        @log_async_execution_time
        async def works():
            return 42

        @log_async_execution_time
        async def fails():
            raise RuntimeError("boom")

        assert await works() == 42
        with pytest.raises(RuntimeError):
            await fails()
