# polling.py
import asyncio
import inspect
import logging
from typing import Any, Callable

from playwright.async_api import Error as PlaywrightError

from .models import RetryPolicy

logger = logging.getLogger(__name__)


async def poll_until(check: Callable[[], Any], policy: RetryPolicy, description: str = "condition") -> bool:
    """Call ``check`` up to ``policy.max_attempts`` times, sleeping ``interval_ms`` in between.

    ``check`` may be a plain function or a coroutine function. A driver error raised
    by the check counts as a miss for that attempt. Never sleeps after the last attempt,
    so the wall-clock bound is ``max_attempts * interval_ms``.
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = check()
            if inspect.isawaitable(result):
                result = await result
        except PlaywrightError as e:
            logger.debug(f"{description}: attempt {attempt} raised {e}")
            result = False
        if result:
            logger.debug(f"{description}: satisfied on attempt {attempt}/{policy.max_attempts}")
            return True
        if attempt < policy.max_attempts and policy.interval_ms:
            await asyncio.sleep(policy.interval_ms / 1000)
    logger.debug(f"{description}: not satisfied after {policy.max_attempts} attempts")
    return False
