# actions.py
import logging
from typing import Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError

from .constants import CLICK_TIMEOUT_MS, SHORT_TIMEOUT_MS, STALE_RETRIES
from .models import FailureKind, InteractionResult, ResolvedElement
from .resolver import LocatorResolver

logger = logging.getLogger(__name__)

STALE_MARKERS = ("not attached to the dom", "element is detached", "has been detached", "execution context was destroyed")
OBSTRUCTED_MARKERS = ("intercepts pointer events", "other element would receive the click")

FORCE_CLICK_JS = "el => el.click()"


def is_stale(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in STALE_MARKERS)


def is_obstructed(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in OBSTRUCTED_MARKERS)


class ActionExecutor:
    """Click/type/clear on resolved elements, healing stale handles by re-resolving."""

    def __init__(self, resolver: LocatorResolver, click_timeout_ms: int = CLICK_TIMEOUT_MS,
                 stale_retries: int = STALE_RETRIES):
        self.resolver = resolver
        self.click_timeout_ms = click_timeout_ms
        self.stale_retries = stale_retries

    async def click(self, element: ResolvedElement) -> InteractionResult:
        return await self._with_stale_retry(element, "click", self._click_once)

    async def force_click(self, element: ResolvedElement) -> InteractionResult:
        async def script_click(el: ResolvedElement) -> InteractionResult:
            await el.handle.evaluate(FORCE_CLICK_JS)
            return InteractionResult.ok(f"script-clicked {el.locator.name}")
        return await self._with_stale_retry(element, "force_click", script_click)

    async def type(self, element: ResolvedElement, text: str) -> InteractionResult:
        async def fill_and_verify(el: ResolvedElement) -> InteractionResult:
            await el.handle.fill(text)
            actual = await el.handle.input_value()
            if actual != text:
                return InteractionResult.fail(
                    FailureKind.VERIFICATION_MISMATCH,
                    f"{el.locator.name}: expected '{text}', field holds '{actual}'",
                    actual,
                )
            return InteractionResult.ok(f"typed into {el.locator.name}")
        return await self._with_stale_retry(element, "type", fill_and_verify)

    async def clear(self, element: ResolvedElement) -> InteractionResult:
        async def clear_once(el: ResolvedElement) -> InteractionResult:
            await el.handle.fill("")
            return InteractionResult.ok(f"cleared {el.locator.name}")
        return await self._with_stale_retry(element, "clear", clear_once)

    async def select_option(self, element: ResolvedElement, value: str) -> InteractionResult:
        async def select_once(el: ResolvedElement) -> InteractionResult:
            selected = await el.handle.select_option(value=value)
            if value not in (selected or []):
                return InteractionResult.fail(
                    FailureKind.VERIFICATION_MISMATCH, f"{el.locator.name}: option '{value}' not selected", selected)
            return InteractionResult.ok(f"selected '{value}' in {el.locator.name}")
        return await self._with_stale_retry(element, "select", select_once)

    async def _click_once(self, element: ResolvedElement) -> InteractionResult:
        try:
            await element.handle.click(timeout=self.click_timeout_ms)
            return InteractionResult.ok(f"clicked {element.locator.name}")
        except PlaywrightError as e:
            if is_stale(e) or not is_obstructed(e):
                raise
            logger.info(f"Click on {element.locator.name} obstructed, falling back to script click")
        try:
            await element.handle.evaluate(FORCE_CLICK_JS)
        except PlaywrightError as e:
            if is_stale(e):
                raise
            return InteractionResult.fail(
                FailureKind.OBSTRUCTED_CLICK, f"{element.locator.name}: obstructed and script click failed: {e}")
        return InteractionResult.ok(f"clicked {element.locator.name} via script")

    async def _with_stale_retry(self, element: Optional[ResolvedElement], action: str,
                                operation: Callable[[ResolvedElement], Awaitable[InteractionResult]]) -> InteractionResult:
        if element is None or getattr(element, "handle", None) is None:
            raise ValueError(f"{action}() called on an unresolved element")

        current = element
        for retry in range(self.stale_retries + 1):
            try:
                return await operation(current)
            except PlaywrightError as e:
                if not is_stale(e):
                    kind = FailureKind.TIMEOUT if "timeout" in str(e).lower() else FailureKind.NOT_FOUND
                    return InteractionResult.fail(kind, f"{action} on {current.locator.name} failed: {e}")
                if retry == self.stale_retries:
                    break
                logger.info(f"Stale handle for {current.locator.name}, re-resolving ({retry + 1}/{self.stale_retries})")
                refreshed = await self.resolver.resolve(current.locator, current.scope, timeout_ms=SHORT_TIMEOUT_MS)
                if not refreshed.succeeded:
                    return InteractionResult.fail(
                        FailureKind.STALE_HANDLE, f"{current.locator.name} went stale and could not be re-resolved")
                current = refreshed.value
        return InteractionResult.fail(
            FailureKind.STALE_HANDLE, f"{action} on {current.locator.name} still stale after {self.stale_retries} retries")
