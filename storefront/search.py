# search.py
import logging
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError

from .constants import NAVIGATION_POLICY, NO_RESULTS_PHRASES, SHORT_TIMEOUT_MS, SUGGESTION_PHRASES
from .locators import xpath_locator
from .models import FailureKind, InteractionResult, ResolvedElement
from .polling import poll_until
from .prices import is_results_url

logger = logging.getLogger(__name__)


class SearchOperations:
    """Search box, result list and result card checks."""

    def __init__(self, session):
        self.session = session

    @property
    def _locators(self):
        return self.session.locators

    async def locate_search_box(self) -> InteractionResult:
        return await self.session.resolver.resolve(self._locators["search_box"], require_enabled=True)

    async def search(self, keyword: str) -> InteractionResult:
        resolver, executor = self.session.resolver, self.session.executor
        box = await self.locate_search_box()
        if not box.succeeded:
            return box
        result = await executor.clear(box.value)
        if result.succeeded:
            result = await executor.type(box.value, keyword)
        if not result.succeeded:
            return result
        logger.info(f"Entered keyword: '{keyword}'")

        button = await resolver.resolve(self._locators["search_button"])
        if not button.succeeded:
            return button
        result = await executor.click(button.value)
        if result.succeeded:
            logger.info("Search submitted")
        return result

    async def wait_for_results(self) -> InteractionResult:
        result = await self.session.resolver.resolve(self._locators["result_card"])
        if result.succeeded:
            logger.info("Search results loaded")
        return result

    async def verify_results_text(self, keyword: str) -> InteractionResult:
        for element in await self.session.resolver.find_all(self._locators["results_count_text"]):
            try:
                text = await element.inner_text()
            except PlaywrightError:
                continue
            if "results for" in text and keyword in text:
                logger.info(f"Results text verified: {text}")
                return InteractionResult.ok(text, text)
        return InteractionResult.fail(FailureKind.NOT_FOUND, f"No results text mentioning '{keyword}'")

    async def count_cards(self) -> int:
        count = len(await self.session.resolver.find_all(self._locators["result_card"]))
        logger.info(f"Found {count} product cards")
        return count

    @staticmethod
    def verify_minimum_count(actual: int, minimum: int) -> InteractionResult:
        if actual >= minimum:
            return InteractionResult.ok(f"{actual} cards (minimum {minimum})", actual)
        return InteractionResult.fail(FailureKind.NOT_FOUND, f"{actual} cards, fewer than {minimum}", actual)

    async def _card_elements(self, card) -> dict:
        resolver = self.session.resolver
        image = await resolver.resolve(self._locators["product_image"], scope=card, timeout_ms=0)
        title = ""
        titles = await resolver.find_all(self._locators["product_title"], scope=card)
        if titles:
            title = await _text(titles[0])
        price = await self.session.prices.card_price(card)
        return {"image": image.succeeded, "title": title, "price": price}

    async def verify_first_product(self) -> InteractionResult:
        cards = await self.session.resolver.find_all(self._locators["result_card"])
        if not cards:
            return InteractionResult.fail(FailureKind.NOT_FOUND, "No result cards")
        details = await self._card_elements(cards[0])
        missing = [name for name in ("image", "title") if not details[name]]
        if details["price"] is None:
            missing.append("price")
        if missing:
            return InteractionResult.fail(FailureKind.NOT_FOUND, f"First product missing: {', '.join(missing)}", details)
        logger.info(f"First product: {details['title']} ({details['price']})")
        return InteractionResult.ok("first product has image, title and price", details)

    async def verify_products_have_required_elements(self, limit: int) -> InteractionResult:
        cards = (await self.session.resolver.find_all(self._locators["result_card"]))[:limit]
        valid = 0
        for index, card in enumerate(cards, 1):
            details = await self._card_elements(card)
            complete = details["image"] and bool(details["title"]) and details["price"] is not None
            valid += complete
            logger.info(f"Product {index}: Image={details['image']}, Title={bool(details['title'])}, Price={details['price'] is not None}")
        logger.info(f"Valid products: {valid}/{len(cards)}")
        if cards and valid == len(cards):
            return InteractionResult.ok(f"{valid}/{len(cards)} products complete", valid)
        return InteractionResult.fail(FailureKind.NOT_FOUND, f"{valid}/{len(cards)} products complete", valid)

    async def verify_no_results_message(self) -> InteractionResult:
        for element in await self.session.resolver.find_all(self._locators["no_results_message"]):
            try:
                text = (await element.inner_text()).lower()
            except PlaywrightError:
                continue
            if any(phrase in text for phrase in ("no results", "0 results", "did not match")):
                logger.info(f"Found no-results message: {text}")
                return InteractionResult.ok(text, text)
        content = (await self.session.page.content()).lower()
        if any(phrase in content for phrase in NO_RESULTS_PHRASES):
            return InteractionResult.ok("no-results indicator in page source")
        return InteractionResult.fail(FailureKind.NOT_FOUND, "No 'no results' message")

    async def verify_empty_search_stayed_on_page(self) -> InteractionResult:
        """An empty search must neither leave the storefront nor open a results page."""
        url = self.session.current_url
        if urlparse(url).netloc != urlparse(self.session.target.base_url).netloc:
            return InteractionResult.fail(FailureKind.VERIFICATION_MISMATCH, f"Empty search left the storefront: {url}", url)
        if is_results_url(url):
            return InteractionResult.fail(FailureKind.VERIFICATION_MISMATCH, f"Empty search opened results: {url}", url)
        logger.info(f"Empty search stayed on {url}")
        return InteractionResult.ok("empty search stayed on page", url)

    async def verify_suggestions_displayed(self) -> InteractionResult:
        if await self.session.resolver.find_all(self._locators["suggestions"]):
            return InteractionResult.ok("suggestions displayed")
        content = (await self.session.page.content()).lower()
        if any(phrase in content for phrase in SUGGESTION_PHRASES):
            return InteractionResult.ok("suggestions in page source")
        return InteractionResult.fail(FailureKind.NOT_FOUND, "No suggestions or related results")

    async def first_product_title(self) -> str:
        cards = await self.session.resolver.find_all(self._locators["result_card"])
        if not cards:
            return ""
        titles = await self.session.resolver.find_all(self._locators["product_title"], scope=cards[0])
        return await _text(titles[0]) if titles else ""

    async def click_first_product(self) -> InteractionResult:
        session = self.session
        cards = await session.resolver.find_all(self._locators["result_card"])
        if not cards:
            return InteractionResult.fail(FailureKind.NOT_FOUND, "No result cards")
        link = await session.resolver.resolve(self._locators["product_link"], scope=cards[0], timeout_ms=SHORT_TIMEOUT_MS)
        if not link.succeeded:
            return link
        before_url, before_tabs = session.current_url, len(session.context.pages) if session.context else 1
        result = await session.executor.click(link.value)
        if not result.succeeded:
            return result

        def navigated() -> bool:
            opened = session.context is not None and len(session.context.pages) > before_tabs
            return opened or session.page.url != before_url

        if not await poll_until(navigated, NAVIGATION_POLICY, "product page opened"):
            return InteractionResult.fail(FailureKind.TIMEOUT, f"Still on {before_url} after clicking the first product")
        await session.switch_to_latest_tab()
        logger.info("Clicked first product")
        return InteractionResult.ok("opened first product", session.current_url)

    async def click_product_by_title(self, partial: str) -> InteractionResult:
        session = self.session
        locator = xpath_locator("product_by_title", (f"//*[contains(text(), {_xpath_literal(partial)})]",))
        found = await session.resolver.resolve(locator)
        if not found.succeeded:
            return found
        result = await session.executor.click(found.value)
        if not result.succeeded:
            # text node inside the link, try its parent
            try:
                parent = await found.value.handle.query_selector("xpath=..")
            except PlaywrightError:
                parent = None
            if parent is None:
                return result
            result = await session.executor.click(ResolvedElement(parent, found.value.locator))
            if not result.succeeded:
                return result
        logger.info(f"Clicked product with title: {partial}")
        return InteractionResult.ok(f"clicked '{partial}'")


async def _text(element) -> str:
    try:
        return (await element.inner_text()).strip()
    except PlaywrightError:
        return ""


def _xpath_literal(text: str) -> str:
    if "'" not in text:
        return f"'{text}'"
    if '"' not in text:
        return f'"{text}"'
    parts = text.split("'")
    return "concat(" + ", \"'\", ".join(f"'{p}'" for p in parts) + ")"

