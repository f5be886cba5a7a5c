"""
Browser Controller

Launches the Playwright browser that agent sessions drive. By default the
browser runs in a persistent, isolated profile directory so logins survive
between runs without touching the user's real browser profile.

The loop itself never sees this class: each session is handed a
``BrowserBackend`` wrapping one page (see ``open_backend``).
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from ..config import env_bool, env_int
from .backend import PlaywrightBackend

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

BrowserType = Literal["chromium", "firefox", "webkit"]

# Flags that keep an isolated profile quiet on first launch
CHROMIUM_ARGS = (
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-infobars",
)


@dataclass
class BrowserConfig:
    """
    Configuration for the browser process.

    Reads from environment variables with sensible defaults.
    """

    browser_type: BrowserType = "chromium"

    # Visible by default so the user can watch the agent
    headless: bool = False

    viewport_width: int = 1280
    viewport_height: int = 720

    # Slow motion delay in ms (useful for debugging)
    slow_mo: int = 0

    # Isolated profile directory; None launches a throwaway context
    profile_dir: Optional[Path] = field(default_factory=lambda: Path(".agent-profile"))

    # Protocol timeouts in ms
    action_timeout: int = 5000
    navigation_timeout: int = 30000

    @classmethod
    def from_env(cls) -> "BrowserConfig":
        """
        Create BrowserConfig from environment variables.

        Environment variables:
            BROWSER_TYPE: chrome/chromium, firefox, webkit/safari (default: chromium)
            BROWSER_HEADLESS: true/false (default: false)
            BROWSER_VIEWPORT_WIDTH / BROWSER_VIEWPORT_HEIGHT: int
            BROWSER_SLOW_MO: int in ms (default: 0)
            PROFILE_DIR: isolated profile path, "none" to disable (default: .agent-profile)
            ACTION_TIMEOUT_MS / NAVIGATION_TIMEOUT_MS: int in ms
        """
        browser_type_map = {
            "chrome": "chromium",
            "chromium": "chromium",
            "firefox": "firefox",
            "webkit": "webkit",
            "safari": "webkit",
        }
        env_type = os.getenv("BROWSER_TYPE", "chromium").lower()

        profile = os.getenv("PROFILE_DIR", ".agent-profile")
        profile_dir = None if profile.lower() in ("", "none") else Path(profile)

        return cls(
            browser_type=browser_type_map.get(env_type, "chromium"),
            headless=env_bool("BROWSER_HEADLESS", False),
            viewport_width=env_int("BROWSER_VIEWPORT_WIDTH", 1280),
            viewport_height=env_int("BROWSER_VIEWPORT_HEIGHT", 720),
            slow_mo=env_int("BROWSER_SLOW_MO", 0),
            profile_dir=profile_dir,
            action_timeout=env_int("ACTION_TIMEOUT_MS", 5000),
            navigation_timeout=env_int("NAVIGATION_TIMEOUT_MS", 30000),
        )


class BrowserController:
    """
    Owns the Playwright process, browser and context.

    Usage:
        >>> async with BrowserController(config) as browser:
        ...     backend = await browser.open_backend()
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        self.config = config or BrowserConfig.from_env()

        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    @property
    def is_initialized(self) -> bool:
        return self._context is not None

    async def initialize(self) -> None:
        """Start Playwright and open the (persistent or throwaway) context."""
        if self._playwright is not None:
            return

        self._playwright = await async_playwright().start()
        launcher = getattr(self._playwright, self.config.browser_type)

        launch_options = {
            "headless": self.config.headless,
            "slow_mo": self.config.slow_mo,
        }
        if self.config.browser_type == "chromium":
            launch_options["args"] = list(CHROMIUM_ARGS)
        viewport = {
            "width": self.config.viewport_width,
            "height": self.config.viewport_height,
        }

        if self.config.profile_dir is not None:
            user_data_dir = self.config.profile_dir / self.config.browser_type
            if not user_data_dir.exists():
                logger.info("Creating isolated profile at %s", user_data_dir)
            user_data_dir.mkdir(parents=True, exist_ok=True)
            self._context = await launcher.launch_persistent_context(
                str(user_data_dir),
                **launch_options,
                viewport=viewport,
            )
        else:
            self._browser = await launcher.launch(**launch_options)
            self._context = await self._browser.new_context(viewport=viewport)

        self._context.set_default_timeout(self.config.action_timeout)
        self._context.set_default_navigation_timeout(self.config.navigation_timeout)
        logger.info(
            "Browser ready (%s, headless=%s)",
            self.config.browser_type,
            self.config.headless,
        )

    async def new_page(self) -> Page:
        if self._context is None:
            await self.initialize()
        return await self._context.new_page()

    async def open_backend(self) -> PlaywrightBackend:
        """Open a fresh page and wrap it for one agent session."""
        page = await self.new_page()
        return PlaywrightBackend(page, action_timeout_ms=self.config.action_timeout)

    async def close_backend(self, backend: PlaywrightBackend) -> None:
        """Close the page behind a finished session's backend."""
        if not backend.page.is_closed():
            await backend.page.close()

    async def close(self) -> None:
        """Close the context, browser and Playwright, ignoring teardown errors."""
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as e:
                logger.debug("Context close failed: %s", e)
            self._context = None

        if self._browser is not None:
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug("Browser close failed: %s", e)
            self._browser = None

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug("Playwright stop failed: %s", e)
            self._playwright = None

    async def __aenter__(self) -> "BrowserController":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_browser(config: Optional[BrowserConfig] = None) -> BrowserController:
    """Factory function to create a (not yet initialized) browser controller."""
    return BrowserController(config)
