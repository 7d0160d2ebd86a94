import time
import functools
import asyncio
from .logger import logger


def _elapsed_ms(start):
    return round((time.perf_counter() - start) * 1000, 2)


def _log_failure(name, start, exc):
    context = {"duration_ms": _elapsed_ms(start), "error": str(exc)}
    # Ledger errors say whether a transaction reached the node
    submitted = getattr(exc, "submitted", None)
    if submitted is not None:
        context["submitted"] = submitted
    logger.error(f"{name} failed", **context)


def log_timing(func):
    """Decorator to log execution time of engine operations, sync or async"""
    name = func.__qualname__

    if asyncio.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _log_failure(name, start, e)
                raise
            logger.debug(f"{name} completed", duration_ms=_elapsed_ms(start))
            return result

        return async_wrapper

    @functools.wraps(func)
    def sync_wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _log_failure(name, start, e)
            raise
        logger.debug(f"{name} completed", duration_ms=_elapsed_ms(start))
        return result

    return sync_wrapper
