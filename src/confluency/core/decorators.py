"""Cross-cutting decorators for collaborator calls.

Timing and call logging for the async boundaries where the core waits on the
backend, so slow verification or initialization shows up in the logs.
"""

import functools
import inspect
import logging
import time
from typing import Any, Callable, TypeVar, cast

F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)


def log_execution(
    level: int = logging.DEBUG,
    include_args: bool = False,
) -> Callable[[F], F]:
    """Decorator to log entry and completion of a coroutine function.

    Args:
        level: Logging level (default: DEBUG)
        include_args: Whether to log function arguments

    Returns:
        Decorated function with logging capabilities
    """

    def decorator(func: F) -> F:
        if not inspect.iscoroutinefunction(func):
            msg = f"log_execution only supports coroutine functions: {func!r}"
            raise TypeError(msg)

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            func_name = func.__qualname__
            if include_args:
                logger.log(level, "Executing %s with args=%s kwargs=%s", func_name, args[1:], kwargs)
            else:
                logger.log(level, "Executing %s", func_name)

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.log(level, "%s raised %s: %s", func_name, type(e).__name__, e)
                raise

            logger.log(level, "Completed %s", func_name)
            return result

        return cast(F, wrapper)

    return decorator


def measure_execution_time(
    log_level: int = logging.INFO,
    threshold_ms: float | None = None,
) -> Callable[[F], F]:
    """Decorator to measure and log execution time.

    Args:
        log_level: Logging level for timing information
        threshold_ms: Only log if execution time exceeds threshold (milliseconds)

    Returns:
        Decorated function with timing capabilities
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            func_name = func.__qualname__
            start_time = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception:
                execution_time_ms = (time.perf_counter() - start_time) * 1000
                logger.log(log_level, "%s failed after %.2fms", func_name, execution_time_ms)
                raise

            execution_time_ms = (time.perf_counter() - start_time) * 1000
            if threshold_ms is None or execution_time_ms > threshold_ms:
                logger.log(log_level, "%s executed in %.2fms", func_name, execution_time_ms)
            return result

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            func_name = func.__qualname__
            start_time = time.perf_counter()

            try:
                result = await func(*args, **kwargs)
            except Exception:
                execution_time_ms = (time.perf_counter() - start_time) * 1000
                logger.log(log_level, "%s failed after %.2fms", func_name, execution_time_ms)
                raise

            execution_time_ms = (time.perf_counter() - start_time) * 1000
            if threshold_ms is None or execution_time_ms > threshold_ms:
                logger.log(log_level, "%s executed in %.2fms", func_name, execution_time_ms)
            return result

        if inspect.iscoroutinefunction(func):
            return cast(F, async_wrapper)
        return cast(F, sync_wrapper)

    return decorator
