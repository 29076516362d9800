# observer.py
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from playwright.async_api import Error as PlaywrightError

from .constants import SCREENSHOT_DIR

logger = logging.getLogger(__name__)


class FailureObserver(Protocol):
    """Injected at session creation; called by the orchestrator after a failed result."""

    async def capture_context(self, label: str) -> Optional[str]:
        ...


class NullObserver:
    async def capture_context(self, label: str) -> Optional[str]:
        return None


class ScreenshotObserver:
    def __init__(self, page, directory: str = SCREENSHOT_DIR):
        self.page = page
        self.directory = Path(directory)

    async def capture_context(self, label: str) -> Optional[str]:
        safe_label = re.sub(r"[^A-Za-z0-9_.-]+", "_", label) or "failure"
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        path = self.directory / f"{safe_label}_{timestamp}.png"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            await self.page.screenshot(path=str(path), full_page=True)
        except (PlaywrightError, OSError) as e:
            logger.error(f"Screenshot for {label} failed: {e}")
            return None
        logger.info(f"Screenshot saved: {path.resolve()}")
        return str(path)
