import asyncio
import functools
import logging
import time

logger = logging.getLogger("perf")


def _report(stage_name: str, started: float, failed: bool) -> None:
    elapsed_ms = (time.perf_counter() - started) * 1000
    if failed:
        logger.warning(f"[PERF] {stage_name}: failed after {elapsed_ms:.1f} ms")
    else:
        logger.info(f"[PERF] {stage_name}: {elapsed_ms:.1f} ms")


def profile_stage(stage_name: str):
    """Decorator logging how long a pipeline stage or external call takes (async or sync)."""
    def decorator(func):
        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                started = time.perf_counter()
                failed = True
                try:
                    result = await func(*args, **kwargs)
                    failed = False
                    return result
                finally:
                    _report(stage_name, started, failed)
            return async_wrapper

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs):
            started = time.perf_counter()
            failed = True
            try:
                result = func(*args, **kwargs)
                failed = False
                return result
            finally:
                _report(stage_name, started, failed)
        return sync_wrapper
    return decorator
