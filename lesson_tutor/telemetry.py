import functools
import time

from loguru import logger


def log_tool(tool_fn):
    """Log latency and outcome of an async tool handler."""
    @functools.wraps(tool_fn)
    async def wrapper(*a, **kw):
        start = time.perf_counter()
        try:
            res = await tool_fn(*a, **kw)
        except Exception as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.warning(f"[tool] {tool_fn.__name__} raised after {elapsed}ms: {e}")
            raise
        elapsed = int((time.perf_counter() - start) * 1000)
        ok = not (isinstance(res, dict) and "error" in res)
        logger.info(f"[tool] {tool_fn.__name__} {'ok' if ok else 'error'} in {elapsed}ms")
        return res
    return wrapper
