# locators.py
import logging
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Tuple

import yaml

from .models import Locator, Strategy, StrategyKind

logger = logging.getLogger(__name__)

LOCATOR_FILE = Path(__file__).with_name("locators.yaml")

_catalog: Optional[Mapping[str, Locator]] = None


def parse_locators(raw: dict) -> Mapping[str, Locator]:
    locators = {}
    for name, entries in (raw or {}).items():
        strategies = []
        for entry in entries or []:
            if not isinstance(entry, dict) or len(entry) != 1:
                raise ValueError(f"Locator '{name}': each strategy must be a single 'kind: expression' pair")
            kind, expression = next(iter(entry.items()))
            strategies.append(Strategy(StrategyKind(kind), str(expression)))
        locators[name] = Locator(name, tuple(strategies))
    return MappingProxyType(locators)


def load_locators(path: Path = LOCATOR_FILE) -> Mapping[str, Locator]:
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)
    locators = parse_locators(raw)
    logger.debug(f"Loaded {len(locators)} locators from {path}")
    return locators


def catalog() -> Mapping[str, Locator]:
    """Process-wide locator catalog, read from disk on first use."""
    global _catalog
    if _catalog is None:
        _catalog = load_locators()
    return _catalog


def text_locator(name: str, texts: Iterable[str]) -> Locator:
    return Locator(name, tuple(Strategy(StrategyKind.TEXT, t) for t in texts))


def xpath_locator(name: str, expressions: Tuple[str, ...]) -> Locator:
    return Locator(name, tuple(Strategy(StrategyKind.XPATH, e) for e in expressions))
