# main.py
import argparse
import asyncio
import logging
import sys

from .config import load_credentials
from .constants import BASE_URL, POSTAL_CODE
from .models import InteractionResult
from .observer import ScreenshotObserver
from .session import StorefrontSession

logger = logging.getLogger(__name__)

SCENARIOS = ("search", "empty-search", "price-filter", "cart", "checkout")


async def run_scenario(session: StorefrontSession, args) -> bool:
    steps = [
        ("navigate home", session.navigate_home),
        ("search", lambda: session.search.search(args.keyword)),
        ("wait for results", session.search.wait_for_results),
    ]
    if args.scenario == "empty-search":
        steps = [
            ("navigate home", session.navigate_home),
            ("empty search", lambda: session.search.search("")),
            ("stayed on page", session.search.verify_empty_search_stayed_on_page),
        ]
    elif args.scenario == "search":
        steps += [
            ("results text", lambda: session.search.verify_results_text(args.keyword)),
            ("first product", session.search.verify_first_product),
        ]
    elif args.scenario == "price-filter":
        steps += [
            ("apply price filter", lambda: session.prices.apply_filter(args.min, args.max)),
            ("prices in range", lambda: session.prices.verify_prices_in_range(args.min, args.max)),
        ]
    elif args.scenario in ("cart", "checkout"):
        steps += [
            ("open first product", session.search.click_first_product),
            ("add to cart", session.cart.add_to_cart),
            ("open cart", session.cart.open_cart),
        ]
        if args.scenario == "checkout":
            steps += [
                ("proceed to checkout", session.cart.proceed_to_checkout),
                ("sign-in page", session.cart.verify_sign_in_page),
            ]

    for index, (name, step) in enumerate(steps, 1):
        logger.info(f">>> Step {index}: {name}")
        result: InteractionResult = await step()
        if not result.succeeded:
            logger.error(f"Step {index} ({name}) failed [{result.failure.value}]: {result.diagnostic}")
            await session.capture_context(f"{args.scenario}_{name}")
            return False
        logger.info(f"Step {index} ({name}) passed: {result.diagnostic}")
    return True


async def main():
    parser = argparse.ArgumentParser(description='Storefront interaction scenarios')
    parser.add_argument('--url', default=BASE_URL, help='Storefront base URL')
    parser.add_argument('--zip', default=POSTAL_CODE, help='Target postal code')
    parser.add_argument('--credentials', default=None, help='YAML file with identifier/secret')
    parser.add_argument('--scenario', choices=SCENARIOS, default='search', help='Scenario to run')
    parser.add_argument('--keyword', default='laptop', help='Search keyword')
    parser.add_argument('--min', type=float, default=500, help='Lower price bound')
    parser.add_argument('--max', type=float, default=1000, help='Upper price bound')
    parser.add_argument('--bucket-label', action='append', default=[], help='Extra price bucket link text')
    parser.add_argument('--headful', action='store_true', help='Show browser')

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.headful else logging.INFO, format='%(asctime)s %(levelname)-5s %(message)s', datefmt='%Y-%m-%d %H:%M:%S')

    config = {
        'base_url': args.url,
        'postal_code': args.zip,
        'headful': args.headful,
        'bucket_labels': tuple(args.bucket_label),
    }

    async with StorefrontSession(config, load_credentials(args.credentials), observer_factory=ScreenshotObserver) as session:
        passed = await run_scenario(session, args)

    logger.info(f"Scenario {args.scenario}: {'PASSED' if passed else 'FAILED'}")
    return 0 if passed else 1


def run():
    sys.exit(asyncio.run(main()))


if __name__ == '__main__':
    run()
