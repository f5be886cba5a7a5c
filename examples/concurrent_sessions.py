#!/usr/bin/env python
"""
Concurrent Sessions Example

Runs two goals side by side, each in its own tab, sharing one planner and
one event bus. A plain subscriber prints a line per event; the loop
controllers never wait for it.

Usage:
    python examples/concurrent_sessions.py

Requirements:
    - ANTHROPIC_API_KEY (or OPENAI_API_BASE + OPENAI_API_KEY) set
    - Package installed: pip install -e . && playwright install chromium
"""

import asyncio

from browser_pilot.browser import BrowserConfig, BrowserController
from browser_pilot.config import configure_logging
from browser_pilot.events import EventBus, Subscription
from browser_pilot.llm import create_provider_from_env
from browser_pilot.models import StepExecutedEvent, StepPlannedEvent
from browser_pilot.planner import create_planner
from browser_pilot.sessions import SessionManager

GOALS = [
    "Go to https://www.wikipedia.org, search for 'Python programming language' "
    "and find who designed it",
    "Go to https://news.ycombinator.com and extract the title of the top story",
]


async def print_events(subscription: Subscription, sessions: int) -> None:
    """Print one line per event until every session reached a terminal event."""
    finished = 0
    async for event in subscription:
        prefix = f"[{event.session_id}] #{event.iteration}"
        if isinstance(event, StepPlannedEvent):
            print(f"{prefix} plan   {event.step.describe()}")
        elif isinstance(event, StepExecutedEvent):
            print(f"{prefix} result {event.outcome.brief()}")
        elif event.terminal:
            print(f"{prefix} {event.type}")
            finished += 1
            if finished == sessions:
                return


async def main():
    configure_logging()
    provider = create_provider_from_env()
    bus = EventBus()

    async with BrowserController(BrowserConfig(profile_dir=None)) as browser:
        manager = SessionManager(
            create_planner(provider),
            backend_factory=browser.open_backend,
            bus=bus,
            release_backend=browser.close_backend,
        )

        async with bus.subscribe() as subscription:
            printer = asyncio.create_task(print_events(subscription, len(GOALS)))
            session_ids = [await manager.start(goal) for goal in GOALS]
            states = await asyncio.gather(*(manager.wait(sid) for sid in session_ids))
            await printer

        print("=" * 60)
        for session_id, state in zip(session_ids, states):
            controller = manager.get_controller(session_id)
            print(f"{session_id}: {state.value} after {controller.iteration_count} steps")
            if controller.summary:
                print(f"  {controller.summary}")
            manager.forget(session_id)

    await provider.close()


if __name__ == "__main__":
    asyncio.run(main())
