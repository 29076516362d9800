# session.py
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from playwright.async_api import Browser, BrowserContext, Error as PlaywrightError, Page, async_playwright

from .actions import ActionExecutor
from .cart import CartOperations
from .config import target_config
from .constants import BASE_URL, DEFAULT_TIMEOUT_MS, NAVIGATION_TIMEOUT_MS, POSTAL_CODE
from .interstitials import InterstitialResolver
from .locators import catalog
from .models import Credentials, FailureKind, InteractionResult, Locator, TargetConfig
from .observer import FailureObserver, NullObserver
from .prices import PriceEngine
from .resolver import LocatorResolver
from .search import SearchOperations
from .state import SessionStateDetector

logger = logging.getLogger(__name__)


class StorefrontSession:
    """One browser, one page, one sequential chain of operations.

    Sessions share nothing; parallel runs each open their own.
    """

    def __init__(self, config: Dict[str, Any], credentials: Credentials,
                 observer_factory: Callable[[Page], FailureObserver] = lambda page: NullObserver(),
                 locators: Optional[Mapping[str, Locator]] = None):
        self.config = config
        self.credentials = credentials
        self.target: TargetConfig = target_config(
            config.get('base_url', BASE_URL), config.get('postal_code', POSTAL_CODE))
        self.observer_factory = observer_factory
        self.locators = locators if locators is not None else catalog()
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.observer: FailureObserver = NullObserver()

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()

    async def initialize(self):
        self.playwright = await async_playwright().start()
        self.browser = await self.playwright.chromium.launch(
            headless=not self.config.get('headful', False),
            args=["--disable-notifications", "--disable-popup-blocking"],
        )
        self.context = await self.browser.new_context(viewport={"width": 1920, "height": 1080}, locale="en-US")
        self.attach(await self.context.new_page())

    async def cleanup(self):
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()

    def attach(self, page: Page):
        """Wire every component to ``page``. Called again when the session switches tabs."""
        self.page = page
        timeout = self.config.get('timeout_ms', DEFAULT_TIMEOUT_MS)
        self.resolver = LocatorResolver(page, default_timeout_ms=timeout)
        self.executor = ActionExecutor(self.resolver)
        self.detector = SessionStateDetector(page, self.target, self.locators["location_slot"])
        self.interstitials = InterstitialResolver(
            self.resolver, self.executor, self.detector, self.locators, self.target, self.credentials)
        self.prices = PriceEngine(
            page, self.resolver, self.executor, self.locators, self.interstitials,
            extra_bucket_labels=self.config.get('bucket_labels', ()),
        )
        self.search = SearchOperations(self)
        self.cart = CartOperations(self)
        self.observer = self.observer_factory(page)

    async def navigate(self, url: str) -> InteractionResult:
        """Load ``url`` and drain interstitials before handing control back."""
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
        except PlaywrightError as e:
            logger.error(f"Unable to navigate to {url}: {e}")
            return InteractionResult.fail(FailureKind.TIMEOUT, f"Navigation to {url} failed: {e}")
        logger.info(f"Navigated to {url}")
        return await self.interstitials.resolve()

    async def navigate_home(self) -> InteractionResult:
        return await self.navigate(self.target.base_url)

    async def refresh(self) -> InteractionResult:
        try:
            await self.page.reload(wait_until="load", timeout=NAVIGATION_TIMEOUT_MS)
        except PlaywrightError as e:
            return InteractionResult.fail(FailureKind.TIMEOUT, f"Reload failed: {e}")
        logger.info("Page refreshed")
        return await self.interstitials.resolve()

    async def switch_to_latest_tab(self) -> bool:
        pages = self.context.pages if self.context else []
        if not pages or pages[-1] is self.page:
            return False
        latest = pages[-1]
        await latest.wait_for_load_state("domcontentloaded")
        self.attach(latest)
        logger.info("Switched to new tab")
        return True

    async def capture_context(self, label: str) -> Optional[str]:
        return await self.observer.capture_context(label)

    @property
    def current_url(self) -> str:
        return self.page.url if self.page else ""

    async def title(self) -> str:
        return await self.page.title()
