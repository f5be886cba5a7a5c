"""
Browser Capability Interface

The snapshot builder and the actuator never talk to Playwright directly.
They go through ``BrowserBackend``, a small capability interface over one
live page: read state, resolve selectors, read content and dispatch input.
``PlaywrightBackend`` is the implementation used in production; tests plug
in fakes.

Every backend reports protocol faults as ``ActionError``:
- TIMEOUT when a bounded browser wait expires
- BROWSER for anything else the protocol rejects (detached page, bad selector)
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout

from ..errors import ActionError, ActionErrorKind

logger = logging.getLogger(__name__)


class BrowserBackend(ABC):
    """Capability interface over one live browser page."""

    @abstractmethod
    async def url(self) -> str:
        """Current page URL."""

    @abstractmethod
    async def title(self) -> str:
        """Current document title."""

    @abstractmethod
    async def is_ready(self) -> bool:
        """True when the page is attached and the DOM is parsed."""

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> None:
        """Load ``url`` and return once DOM content is loaded."""

    @abstractmethod
    async def wait_for_load(self, state: str, timeout_ms: int) -> None:
        """Wait for a load state (``domcontentloaded``, ``load``, ``networkidle``)."""

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a read-mostly script in the page and return its JSON result."""

    @abstractmethod
    async def resolve(self, selector: str) -> bool:
        """True when ``selector`` matches at least one visible element."""

    @abstractmethod
    async def read(self, selector: str, attribute: Optional[str] = None) -> list[str]:
        """Inner text (or ``attribute``) of every element matching ``selector``."""

    @abstractmethod
    async def click(self, selector: str) -> None:
        """Click the first element matching ``selector``."""

    @abstractmethod
    async def type(self, selector: str, text: str) -> None:
        """Clear the first element matching ``selector`` and type ``text``."""

    @abstractmethod
    async def press(self, key: str, selector: Optional[str] = None) -> None:
        """Press ``key`` on ``selector``, or on the focused element when None."""


@contextmanager
def protocol_errors(target: Optional[str] = None) -> Iterator[None]:
    """Translate Playwright exceptions into ActionError."""
    try:
        yield
    except PlaywrightTimeout as e:
        raise ActionError(ActionErrorKind.TIMEOUT, _first_line(e), target=target) from e
    except PlaywrightError as e:
        raise ActionError(ActionErrorKind.BROWSER, _first_line(e), target=target) from e


def _first_line(error: Exception) -> str:
    # Playwright messages carry a multi-line call log
    text = str(error).strip()
    return text.splitlines()[0] if text else type(error).__name__


class PlaywrightBackend(BrowserBackend):
    """
    BrowserBackend over a Playwright ``Page``.

    Individual operations use ``action_timeout_ms`` as their own protocol
    timeout; the actuator's smart-wait polling sits on top of that.
    """

    def __init__(self, page: Page, action_timeout_ms: int = 5000):
        self.page = page
        self.action_timeout_ms = action_timeout_ms

    async def url(self) -> str:
        return self.page.url

    async def title(self) -> str:
        with protocol_errors():
            return await self.page.title()

    async def is_ready(self) -> bool:
        if self.page.is_closed():
            return False
        try:
            state = await self.page.evaluate("() => document.readyState")
        except PlaywrightError as e:
            # Execution context destroyed while a navigation is in flight
            logger.debug("Ready check failed: %s", _first_line(e))
            return False
        return state in ("interactive", "complete")

    async def navigate(self, url: str, timeout_ms: int) -> None:
        with protocol_errors(url):
            await self.page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)

    async def wait_for_load(self, state: str, timeout_ms: int) -> None:
        with protocol_errors():
            await self.page.wait_for_load_state(state, timeout=timeout_ms)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        with protocol_errors():
            return await self.page.evaluate(script, arg)

    async def resolve(self, selector: str) -> bool:
        with protocol_errors(selector):
            return await self.page.locator(selector).first.is_visible()

    async def read(self, selector: str, attribute: Optional[str] = None) -> list[str]:
        locator = self.page.locator(selector)
        with protocol_errors(selector):
            if attribute is None:
                return await locator.all_inner_texts()
            values = await locator.evaluate_all(
                "(els, name) => els.map(el => el.getAttribute(name))",
                attribute,
            )
        return [value for value in values if value is not None]

    async def click(self, selector: str) -> None:
        with protocol_errors(selector):
            await self.page.locator(selector).first.click(timeout=self.action_timeout_ms)

    async def type(self, selector: str, text: str) -> None:
        locator = self.page.locator(selector).first
        with protocol_errors(selector):
            await locator.click(timeout=self.action_timeout_ms)
            await locator.fill("", timeout=self.action_timeout_ms)
            await locator.press_sequentially(text, timeout=self.action_timeout_ms)

    async def press(self, key: str, selector: Optional[str] = None) -> None:
        with protocol_errors(selector):
            if selector is None:
                await self.page.keyboard.press(key)
            else:
                await self.page.locator(selector).first.press(
                    key, timeout=self.action_timeout_ms
                )
