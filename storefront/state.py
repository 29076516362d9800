# state.py
import logging
from typing import Optional

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from .constants import OTP_INPUT_SELECTORS, OTP_PHRASES, SIGN_IN_PHRASES, SIGN_IN_URL_PATTERNS
from .locators import catalog
from .models import Locator, SessionState, TargetConfig

logger = logging.getLogger(__name__)

BLANK_URLS = ("", "about:blank")


def is_sign_in_url(url: str) -> bool:
    return any(pattern in (url or "") for pattern in SIGN_IN_URL_PATTERNS)


def _page_text(soup: BeautifulSoup) -> str:
    return soup.get_text(" ", strip=True).lower()


def has_otp_signal(soup: BeautifulSoup) -> bool:
    text = _page_text(soup)
    if any(phrase in text for phrase in OTP_PHRASES):
        return True
    return any(soup.select_one(selector) is not None for selector in OTP_INPUT_SELECTORS)


def has_sign_in_signal(url: str, soup: BeautifulSoup) -> bool:
    if is_sign_in_url(url):
        return True
    text = _page_text(soup)
    return any(phrase in text for phrase in SIGN_IN_PHRASES)


def classify(url: str, content: str, location_text: Optional[str], target: TargetConfig) -> SessionState:
    """Classify a page from its URL, HTML and location indicator text.

    OTP is checked before sign-in (the challenge page lives under the sign-in path),
    and both before the address prompt, since a redirect to sign-in supersedes it.
    ``location_text`` is None when the page has no location indicator.
    """
    if (url or "") in BLANK_URLS and not (content or "").strip():
        return SessionState.ANONYMOUS

    soup = BeautifulSoup(content or "", "html.parser")
    if has_otp_signal(soup):
        return SessionState.OTP_REQUIRED
    if has_sign_in_signal(url, soup):
        return SessionState.LOGIN_REQUIRED
    if location_text is not None and not target.reflected_by(location_text):
        return SessionState.ADDRESS_PROMPT_PENDING
    return SessionState.READY


class SessionStateDetector:
    def __init__(self, page, target: TargetConfig, location: Optional[Locator] = None):
        self.page = page
        self.target = target
        self.location = location or catalog()["location_slot"]

    async def location_text(self) -> Optional[str]:
        """Text of the first location indicator strategy that matches, None when none does."""
        for strategy in self.location.strategies:
            try:
                slot = await self.page.query_selector(strategy.selector())
                if slot is not None:
                    return await slot.inner_text()
            except PlaywrightError as e:
                logger.debug(f"Location indicator {strategy.selector()} unreadable: {e}")
        return None

    async def observe(self) -> SessionState:
        """Read live signals and classify; the result is never cached."""
        url = self.page.url
        try:
            content = await self.page.content()
        except PlaywrightError as e:
            # page mid-navigation
            logger.debug(f"Page content unavailable: {e}")
            content = ""
        state = classify(url, content, await self.location_text(), self.target)
        logger.debug(f"Session state at {url}: {state.value}")
        return state
