#!/usr/bin/env python
"""
Simple Navigation Example

Runs one goal in a visible browser and prints every step as it happens.

Usage:
    python examples/simple_navigation.py

Requirements:
    - ANTHROPIC_API_KEY (or OPENAI_API_BASE + OPENAI_API_KEY) set
    - Package installed: pip install -e . && playwright install chromium
"""

import asyncio

from browser_pilot.browser import BrowserConfig, BrowserController
from browser_pilot.events import EventBus
from browser_pilot.llm import create_provider_from_env
from browser_pilot.planner import create_planner
from browser_pilot.sessions import SessionManager
from browser_pilot.tui import EventRenderer


async def main():
    """Run a simple navigation goal."""
    goal = "Navigate to https://example.com and tell me the page heading"
    print(f"Goal: {goal}\n")

    provider = create_provider_from_env()
    bus = EventBus()

    async with BrowserController(BrowserConfig(headless=False, profile_dir=None)) as browser:
        manager = SessionManager(
            create_planner(provider),
            backend_factory=browser.open_backend,
            bus=bus,
            release_backend=browser.close_backend,
        )

        subscription = bus.subscribe()
        session_id = await manager.start(goal)
        async with subscription:
            await EventRenderer().consume(subscription)

        state = await manager.wait(session_id)
        print(f"\nSession {session_id} finished: {state.value}")

    await provider.close()


if __name__ == "__main__":
    asyncio.run(main())
