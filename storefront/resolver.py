# resolver.py
import logging
from typing import Any, List, Optional

from playwright.async_api import Error as PlaywrightError

from .constants import DEFAULT_TIMEOUT_MS, RESOLVER_POLL_MS
from .models import FailureKind, InteractionResult, Locator, ResolvedElement, RetryPolicy
from .polling import poll_until

logger = logging.getLogger(__name__)


class LocatorResolver:
    """Turns a named Locator into a live element handle.

    Strategies are evaluated in definition order inside the given scope; the first one
    producing a visible (and, if asked, enabled) element wins and the rest are skipped.
    The whole chain is retried until the timeout runs out.
    """

    def __init__(self, page, default_timeout_ms: int = DEFAULT_TIMEOUT_MS, poll_interval_ms: int = RESOLVER_POLL_MS):
        self.page = page
        self.default_timeout_ms = default_timeout_ms
        self.poll_interval_ms = poll_interval_ms

    async def resolve(self, locator: Locator, scope: Any = None, timeout_ms: Optional[int] = None,
                      require_enabled: bool = False) -> InteractionResult:
        if locator is None:
            raise ValueError("resolve() called without a locator")
        timeout = self.default_timeout_ms if timeout_ms is None else timeout_ms
        policy = RetryPolicy.within(timeout, self.poll_interval_ms)
        found: List[Any] = []

        async def attempt() -> bool:
            handle = await self._first_usable(locator, scope, require_enabled)
            if handle is not None:
                found.append(handle)
                return True
            return False

        if await poll_until(attempt, policy, f"resolve {locator.name}"):
            return InteractionResult.ok(f"resolved {locator.name}", ResolvedElement(found[-1], locator, scope))
        return InteractionResult.fail(
            FailureKind.NOT_FOUND,
            f"{locator.name}: no usable match for {len(locator.strategies)} strategies within {timeout}ms",
        )

    async def _first_usable(self, locator: Locator, scope: Any, require_enabled: bool):
        root = scope if scope is not None else self.page
        for strategy in locator.strategies:
            try:
                elements = await root.query_selector_all(strategy.selector())
            except PlaywrightError as e:
                logger.debug(f"{locator.name}: strategy {strategy.selector()} failed: {e}")
                continue
            for element in elements:
                if not await self._usable(element, require_enabled):
                    continue
                logger.debug(f"{locator.name}: matched {strategy.selector()}")
                return element
        return None

    @staticmethod
    async def _usable(element, require_enabled: bool) -> bool:
        try:
            if not await element.is_visible():
                return False
            if require_enabled and not await element.is_enabled():
                return False
        except PlaywrightError:
            # detached between query and check
            return False
        return True

    async def find_all(self, locator: Locator, scope: Any = None) -> List[Any]:
        """All matches of the first strategy that matches anything, visible or not."""
        root = scope if scope is not None else self.page
        for strategy in locator.strategies:
            try:
                elements = await root.query_selector_all(strategy.selector())
            except PlaywrightError as e:
                logger.debug(f"{locator.name}: strategy {strategy.selector()} failed: {e}")
                continue
            if elements:
                return list(elements)
        return []

    async def is_present(self, locator: Locator, scope: Any = None) -> bool:
        return await self._first_usable(locator, scope, False) is not None
