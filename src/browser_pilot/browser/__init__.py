"""
Browser Module

Playwright launch/profile management and the capability interface the agent
loop uses to observe and act on a page.
"""

from .backend import BrowserBackend, PlaywrightBackend, protocol_errors
from .controller import BrowserController, BrowserConfig, create_browser

__all__ = [
    "BrowserBackend",
    "PlaywrightBackend",
    "protocol_errors",
    "BrowserController",
    "BrowserConfig",
    "create_browser",
]
