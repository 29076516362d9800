# cart.py
import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError

from .constants import CART_COUNT_POLICY, CART_UPDATE_POLICY, NAVIGATION_POLICY, SHORT_TIMEOUT_MS
from .models import FailureKind, InteractionResult, Locator, Strategy, StrategyKind
from .polling import poll_until
from .prices import extract_price
from .state import is_sign_in_url

logger = logging.getLogger(__name__)


class CartOperations:
    """Product page, cart and checkout operations."""

    def __init__(self, session):
        self.session = session

    @property
    def _locators(self):
        return self.session.locators

    async def cart_count(self) -> int:
        elements = await self.session.resolver.find_all(self._locators["cart_count"])
        if not elements:
            return 0
        try:
            text = (await elements[0].inner_text()).strip()
        except PlaywrightError:
            return 0
        return int(text) if text.isdigit() else 0

    async def wait_for_count_change(self, initial: int, increase: bool = True, policy=CART_COUNT_POLICY) -> InteractionResult:
        async def changed() -> bool:
            count = await self.cart_count()
            return count > initial if increase else count < initial

        if await poll_until(changed, policy, "cart count changed"):
            count = await self.cart_count()
            logger.info(f"Cart count {initial} -> {count}")
            return InteractionResult.ok(f"cart count {initial} -> {count}", count)
        return InteractionResult.fail(
            FailureKind.TIMEOUT, f"Cart count stayed at {initial} after {policy.max_attempts} checks", initial)

    async def add_to_cart(self) -> InteractionResult:
        session = self.session
        initial = await self.cart_count()
        button = await session.resolver.resolve(self._locators["add_to_cart_button"], require_enabled=True)
        if not button.succeeded:
            return button
        result = await session.executor.click(button.value)
        if not result.succeeded:
            return result
        logger.info("Clicked 'Add to Cart'")

        await self.decline_protection_plan()

        async def added() -> bool:
            if await self.cart_count() > initial:
                return True
            return await session.resolver.is_present(self._locators["added_to_cart_confirmation"])

        if not await poll_until(added, CART_COUNT_POLICY, "item added to cart"):
            return InteractionResult.fail(FailureKind.TIMEOUT, f"No cart confirmation and count still {initial}", initial)
        return InteractionResult.ok("added to cart", await self.cart_count())

    async def decline_protection_plan(self) -> bool:
        """Dismiss the protection-plan upsell if it shows up; absence is not an error."""
        found = await self.session.resolver.resolve(self._locators["protection_plan_decline"], timeout_ms=SHORT_TIMEOUT_MS)
        if not found.succeeded:
            logger.info("No protection plan modal detected")
            return False
        result = await self.session.executor.click(found.value)
        if result.succeeded:
            logger.info("Dismissed protection plan modal")
        return result.succeeded

    async def open_cart(self) -> InteractionResult:
        session = self.session
        link = await session.resolver.resolve(self._locators["cart_link"])
        if not link.succeeded:
            return link
        result = await session.executor.click(link.value)
        if not result.succeeded:
            return result
        if not await poll_until(lambda: "/cart" in session.page.url, NAVIGATION_POLICY, "cart page"):
            return InteractionResult.fail(FailureKind.TIMEOUT, f"Still on {session.page.url} after opening cart")
        logger.info("Navigated to shopping cart")
        return InteractionResult.ok("cart opened", session.page.url)

    async def update_quantity(self, quantity: str) -> InteractionResult:
        session = self.session
        before = await self.subtotal()
        select = await session.resolver.resolve(self._locators["quantity_select"], timeout_ms=SHORT_TIMEOUT_MS)
        if select.succeeded:
            result = await session.executor.select_option(select.value, quantity)
        else:
            result = await self._pick_from_dropdown(quantity)
        if not result.succeeded:
            return result
        logger.info(f"Updated quantity to {quantity}")

        async def subtotal_changed() -> bool:
            return await self.subtotal() != before

        if not await poll_until(subtotal_changed, CART_UPDATE_POLICY, "cart subtotal updated"):
            return InteractionResult.fail(FailureKind.TIMEOUT, f"Subtotal stayed at {before} after setting quantity {quantity}", before)
        return result

    async def _pick_from_dropdown(self, quantity: str) -> InteractionResult:
        session = self.session
        dropdown = await session.resolver.resolve(self._locators["quantity_dropdown"], timeout_ms=SHORT_TIMEOUT_MS)
        if not dropdown.succeeded:
            return dropdown
        result = await session.executor.click(dropdown.value)
        if not result.succeeded:
            return result
        option = Locator(f"quantity_option_{quantity}", (
            Strategy(StrategyKind.CSS, f"li[aria-labelledby*='quantity_{quantity}']"),
            Strategy(StrategyKind.ID, f"quantity_{quantity}"),
        ))
        found = await session.resolver.resolve(option)
        if not found.succeeded:
            return found
        return await session.executor.click(found.value)

    async def subtotal(self) -> Optional[float]:
        elements = await self.session.resolver.find_all(self._locators["cart_subtotal"])
        if not elements:
            return None
        try:
            return extract_price(await elements[0].inner_text())
        except PlaywrightError:
            return None

    async def delete_first_item(self) -> InteractionResult:
        initial = await self.cart_count()
        button = await self.session.resolver.resolve(self._locators["cart_delete"])
        if not button.succeeded:
            return button
        result = await self.session.executor.click(button.value)
        if not result.succeeded:
            return result
        logger.info("Clicked 'Delete' on first item")
        return await self.wait_for_count_change(initial, increase=False, policy=CART_UPDATE_POLICY)

    async def proceed_to_checkout(self) -> InteractionResult:
        button = await self.session.resolver.resolve(self._locators["proceed_to_checkout"], require_enabled=True)
        if not button.succeeded:
            return button
        result = await self.session.executor.click(button.value)
        if result.succeeded:
            logger.info("Clicked 'Proceed to checkout'")
        return result

    async def verify_sign_in_page(self) -> InteractionResult:
        page = self.session.page
        if not await poll_until(lambda: is_sign_in_url(page.url) or "/signin" in page.url, NAVIGATION_POLICY, "sign-in page"):
            return InteractionResult.fail(FailureKind.TIMEOUT, f"Not redirected to sign-in: {page.url}")
        field = await self.session.resolver.resolve(self._locators["sign_in_identifier"])
        if not field.succeeded:
            return InteractionResult.fail(FailureKind.NOT_FOUND, "Sign-in page loaded without an email field")
        logger.info("Sign-in page validated")
        return InteractionResult.ok("sign-in page", page.url)

    async def verify_product_details(self, expected_title: str = "") -> InteractionResult:
        resolver = self.session.resolver
        title = await resolver.resolve(self._locators["product_page_title"])
        if not title.succeeded:
            return title
        try:
            actual = (await title.value.handle.inner_text()).strip()
        except PlaywrightError as e:
            return InteractionResult.fail(FailureKind.STALE_HANDLE, f"Product title unreadable: {e}")
        logger.info(f"Product page title: {actual}")
        if expected_title and expected_title not in actual and actual not in expected_title:
            logger.warning("Title on product page differs from the search result")

        checks = {
            "image": await resolver.is_present(self._locators["product_page_image"]),
            "price": bool(await resolver.find_all(self._locators["product_page_price"])),
            "add_to_cart": await resolver.is_present(self._locators["add_to_cart_button"]),
        }
        logger.info(f"Details check: {checks}")
        if checks["image"] and checks["add_to_cart"]:
            return InteractionResult.ok("product details present", checks)
        return InteractionResult.fail(FailureKind.NOT_FOUND, f"Product page incomplete: {checks}", checks)
