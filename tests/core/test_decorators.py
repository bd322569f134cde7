"""Tests for the timing and call logging decorators."""

import logging

import pytest

from confluency.core.decorators import log_execution, measure_execution_time


class TestMeasureExecutionTime:
    """Test execution time logging."""

    @staticmethod
    def test_sync_function_is_timed(caplog: pytest.LogCaptureFixture) -> None:
        @measure_execution_time()
        def add(a: int, b: int) -> int:
            return a + b

        with caplog.at_level(logging.INFO, logger="confluency.core.decorators"):
            assert add(2, 3) == 5

        assert "executed in" in caplog.text

    @pytest.mark.asyncio
    async def test_async_function_is_timed(self, caplog: pytest.LogCaptureFixture) -> None:
        @measure_execution_time(log_level=logging.DEBUG)
        async def fetch() -> str:
            return "data"

        with caplog.at_level(logging.DEBUG, logger="confluency.core.decorators"):
            assert await fetch() == "data"

        assert "fetch executed in" in caplog.text

    @staticmethod
    def test_threshold_suppresses_fast_calls(caplog: pytest.LogCaptureFixture) -> None:
        @measure_execution_time(threshold_ms=10_000)
        def fast() -> None:
            return None

        with caplog.at_level(logging.INFO, logger="confluency.core.decorators"):
            fast()

        assert "executed in" not in caplog.text

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_reraised(self, caplog: pytest.LogCaptureFixture) -> None:
        @measure_execution_time()
        async def broken() -> None:
            raise RuntimeError("boom")

        with caplog.at_level(logging.INFO, logger="confluency.core.decorators"):
            with pytest.raises(RuntimeError, match="boom"):
                await broken()

        assert "failed after" in caplog.text

    @staticmethod
    def test_preserves_metadata() -> None:
        @measure_execution_time()
        def documented() -> None:
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."


class TestLogExecution:
    """Test entry and completion logging."""

    @pytest.mark.asyncio
    async def test_logs_entry_and_completion(self, caplog: pytest.LogCaptureFixture) -> None:
        @log_execution(level=logging.INFO, include_args=True)
        async def greet(name: str) -> str:
            return f"hi {name}"

        with caplog.at_level(logging.INFO, logger="confluency.core.decorators"):
            assert await greet(name="ana") == "hi ana"

        assert "Executing" in caplog.text
        assert "'name': 'ana'" in caplog.text
        assert "Completed" in caplog.text

    @staticmethod
    def test_rejects_sync_functions() -> None:
        with pytest.raises(TypeError):

            @log_execution()
            def plain() -> None:
                return None
