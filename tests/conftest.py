"""
Shared fakes for page and element handles
"""
import pytest
from unittest.mock import AsyncMock, Mock, patch
import sys
import os

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from storefront.locators import catalog
from storefront.models import Credentials, TargetConfig
from storefront.session import StorefrontSession


def _selector_map(mapping, single=False):
    def lookup(selector):
        found = mapping.get(selector, [])
        if single:
            return found[0] if found else None
        return list(found)
    return lookup


def build_element(visible=True, enabled=True, text="", value="", children=None):
    """Element handle double; ``children`` maps Playwright selectors to lists of elements."""
    element = AsyncMock()
    element.is_visible.return_value = visible
    element.is_enabled.return_value = enabled
    element.inner_text.return_value = text
    element.text_content.return_value = text
    element.input_value.return_value = value
    element.get_attribute.return_value = None
    children = children or {}
    element.query_selector_all.side_effect = _selector_map(children)
    element.query_selector.side_effect = _selector_map(children, single=True)
    return element


def build_page(url="https://www.amazon.com/", content="<html><body></body></html>", elements=None):
    page = Mock()
    page.url = url
    elements = elements or {}
    page.content = AsyncMock(return_value=content)
    page.query_selector_all = AsyncMock(side_effect=_selector_map(elements))
    page.query_selector = AsyncMock(side_effect=_selector_map(elements, single=True))
    page.goto = AsyncMock()
    return page


@pytest.fixture
def make_element():
    return build_element


@pytest.fixture
def make_page():
    return build_page


@pytest.fixture
def locators():
    return catalog()


@pytest.fixture
def selector(locators):
    """Playwright selector of the n-th strategy of a named locator."""
    def _selector(name, index=0):
        return locators[name].strategies[index].selector()
    return _selector


@pytest.fixture
def target():
    return TargetConfig(base_url="https://www.amazon.com", postal_code="90210", region_markers=("United States",))


@pytest.fixture
def no_sleep():
    """Polling without real waiting; yields the patched sleep for call counting."""
    with patch('storefront.polling.asyncio.sleep', new_callable=AsyncMock) as sleep:
        yield sleep


@pytest.fixture
def session_on():
    """Session wired to a fake page without launching a browser."""
    def _session(page, observer_factory=None, **config):
        config.setdefault('postal_code', '90210')
        kwargs = {'observer_factory': observer_factory} if observer_factory else {}
        session = StorefrontSession(config, Credentials(), **kwargs)
        session.attach(page)
        return session
    return _session
