# prices.py
import logging
import re
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from playwright.async_api import Error as PlaywrightError

from .actions import ActionExecutor
from .constants import (
    CURRENCY_SYMBOLS, LOCALE_BUCKET_LABELS, NAVIGATION_TIMEOUT_MS, PRICE_CURRENCY, PRICE_LANGUAGE, PRICE_PARAMS,
    RESULTS_CHANGE_POLICY, RESULTS_PATH, RESULTS_QUERY_PARAM, SHORT_TIMEOUT_MS,
)
from .locators import text_locator
from .models import FailureKind, InteractionResult, Locator, PriceRecord
from .polling import poll_until
from .resolver import LocatorResolver

logger = logging.getLogger(__name__)

NON_PRICE_CHARS = re.compile(r"[^0-9.]")


def extract_price(text: Optional[str]) -> Optional[float]:
    """Parse a price out of display text, e.g. ``"$1,234.56"`` -> 1234.56.

    Everything but digits and the decimal point is stripped first, so the result
    is never negative. Returns None when nothing numeric is left.
    """
    cleaned = NON_PRICE_CHARS.sub("", text or "")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def is_results_url(url: str) -> bool:
    parsed = urlparse(url or "")
    if parsed.path.rstrip("/") != RESULTS_PATH:
        return False
    return any(key == RESULTS_QUERY_PARAM and value for key, value in parse_qsl(parsed.query))


def build_filtered_url(url: str, low: float, high: float, currency: str = PRICE_CURRENCY,
                       language: str = PRICE_LANGUAGE) -> Optional[str]:
    """Results URL with the price bounds set, or None if ``url`` is not a results page.

    Existing price/currency/language parameters are replaced, never repeated, so
    applying the same filter twice yields the same URL.
    """
    if not is_results_url(url):
        return None
    parsed = urlparse(url)
    params = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k not in PRICE_PARAMS]
    params += [
        ("low-price", str(int(low))),
        ("high-price", str(int(high))),
        ("currency", currency),
        ("language", language),
    ]
    return urlunparse(parsed._replace(query=urlencode(params)))


def bucket_labels(low: float, high: float, extra: Iterable[str] = ()) -> Tuple[str, ...]:
    """Bucket link texts to try for a range, most specific first."""
    lo, hi = int(low), int(high)
    return (
        *(f"{symbol}{lo:,} to {symbol}{hi:,}" for symbol in CURRENCY_SYMBOLS),
        f"{lo:,} to {hi:,}",
        *extra,
        *LOCALE_BUCKET_LABELS.get((lo, hi), ()),
        f"Start at ${lo:,}",
        f"Up to ${hi:,}",
    )


def validate_range(records: Sequence[PriceRecord], low: float, high: float) -> InteractionResult:
    """Every record must lie within [low, high]; all offenders are reported, not just the first."""
    if not records:
        return InteractionResult.fail(FailureKind.UNPARSABLE_PRICE, "No prices found to verify", [])
    out_of_range = [r.value for r in records if r.value < low or r.value > high]
    for value in out_of_range:
        logger.error(f"Price {value} is outside {low}-{high}")
    if out_of_range:
        return InteractionResult.fail(
            FailureKind.PRICE_OUT_OF_RANGE,
            f"{len(out_of_range)} of {len(records)} prices outside {low}-{high}: {out_of_range}",
            out_of_range,
        )
    logger.info(f"All {len(records)} prices are between {low} and {high}")
    return InteractionResult.ok(f"{len(records)} prices within {low}-{high}", [])


class PriceEngine:
    def __init__(self, page, resolver: LocatorResolver, executor: ActionExecutor, locators: Mapping[str, Locator],
                 interstitials=None, extra_bucket_labels: Iterable[str] = ()):
        self.page = page
        self.resolver = resolver
        self.executor = executor
        self.locators = locators
        self.interstitials = interstitials
        self.extra_bucket_labels = tuple(extra_bucket_labels)

    async def apply_filter(self, low: float, high: float) -> InteractionResult:
        logger.info(f"Applying price filter {low}-{high}")
        url = build_filtered_url(self.page.url, low, high)
        if url is not None:
            return await self._filter_by_url(url)

        logger.info("Not a results URL, trying the price form")
        signature = await self.results_signature()
        result = await self._filter_by_form(low, high)
        if not result.succeeded:
            logger.info(f"Price form unavailable ({result.diagnostic}), trying bucket links")
            result = await self._filter_by_bucket(low, high)
        if not result.succeeded:
            return result
        if not await poll_until(lambda: self._results_changed(signature), RESULTS_CHANGE_POLICY, "results reloaded"):
            return InteractionResult.fail(FailureKind.TIMEOUT, "Result list did not change after applying the filter")
        return result

    async def _filter_by_url(self, url: str) -> InteractionResult:
        logger.info(f"Navigating to filtered URL: {url}")
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=NAVIGATION_TIMEOUT_MS)
        except PlaywrightError as e:
            return InteractionResult.fail(FailureKind.TIMEOUT, f"Filtered URL did not load: {e}")
        if self.interstitials is not None:
            settled = await self.interstitials.resolve()
            if not settled.succeeded:
                return settled
        cards = await self.resolver.resolve(self.locators["result_card"])
        if not cards.succeeded:
            return cards
        return InteractionResult.ok("price filter applied via URL", url)

    async def _filter_by_form(self, low: float, high: float) -> InteractionResult:
        fields = []
        for name in ("low_price_input", "high_price_input"):
            resolved = await self.resolver.resolve(self.locators[name], timeout_ms=SHORT_TIMEOUT_MS, require_enabled=True)
            if not resolved.succeeded:
                return resolved
            fields.append(resolved.value)
        button = await self.resolver.resolve(self.locators["price_go_button"], timeout_ms=SHORT_TIMEOUT_MS)
        if not button.succeeded:
            return button

        for field, bound in zip(fields, (low, high)):
            result = await self.executor.clear(field)
            if result.succeeded:
                result = await self.executor.type(field, str(int(bound)))
            if not result.succeeded:
                return result
        result = await self.executor.click(button.value)
        if result.succeeded:
            logger.info("Applied price range via inputs")
        return result

    async def _filter_by_bucket(self, low: float, high: float) -> InteractionResult:
        labels = bucket_labels(low, high, self.extra_bucket_labels)
        link = await self.resolver.resolve(text_locator("price_bucket", labels), timeout_ms=SHORT_TIMEOUT_MS)
        if not link.succeeded:
            return InteractionResult.fail(FailureKind.NOT_FOUND, f"No price filter form or bucket link among {list(labels)}")
        result = await self.executor.click(link.value)
        if result.succeeded:
            logger.info("Clicked price bucket link")
        return result

    async def results_signature(self) -> Tuple[int, str]:
        cards = await self.resolver.find_all(self.locators["result_card"])
        first = ""
        if cards:
            try:
                first = await cards[0].get_attribute("data-asin") or await cards[0].inner_text()
            except PlaywrightError:
                first = ""
        return len(cards), first

    async def _results_changed(self, before: Tuple[int, str]) -> bool:
        after = await self.results_signature()
        return after[0] > 0 and after != before

    async def extract_records(self, include_sponsored: bool = False) -> List[PriceRecord]:
        cards = await self.resolver.find_all(self.locators["result_card"])
        logger.info(f"Found {len(cards)} result cards")
        records = []
        for card in cards:
            sponsored = bool(await self.resolver.find_all(self.locators["sponsored_label"], scope=card))
            if sponsored and not include_sponsored:
                continue
            value = await self.card_price(card)
            if value is None:
                logger.debug("Card without a parsable price skipped")
                continue
            records.append(PriceRecord(value, sponsored))
        logger.info(f"Extracted {len(records)} {'' if include_sponsored else 'organic '}prices")
        return records

    async def card_price(self, card) -> Optional[float]:
        """First price selector in the card that yields a parsable number."""
        for strategy in self.locators["card_price"].strategies:
            try:
                element = await card.query_selector(strategy.selector())
                if element is None:
                    continue
                raw = await element.inner_text()
                if not raw or not raw.strip():
                    # offscreen prices have no rendered text
                    raw = await element.text_content()
            except PlaywrightError as e:
                logger.debug(f"Price selector {strategy.selector()} failed: {e}")
                continue
            value = extract_price(raw)
            if value is not None:
                return value
        return None

    async def verify_prices_in_range(self, low: float, high: float) -> InteractionResult:
        return validate_range(await self.extract_records(), low, high)
