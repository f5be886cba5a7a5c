"""
Browser Pilot CLI Entry Point

Runs one goal in a real browser and renders the agent's progress in the
terminal. Ctrl-C cancels the session at the next state boundary.

Usage:
    browser-pilot "Find the current weather in Paris"
    browser-pilot "Search for Python books" --start-url https://example.com --headless
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from browser_pilot.actuator import ActuatorConfig
from browser_pilot.browser import BrowserConfig, BrowserController, PlaywrightBackend
from browser_pilot.config import configure_logging
from browser_pilot.errors import BrowserPilotError
from browser_pilot.events import EventBus
from browser_pilot.llm import create_provider_from_env
from browser_pilot.loop import LoopConfig
from browser_pilot.models import LoopState
from browser_pilot.planner import create_planner
from browser_pilot.sessions import SessionManager
from browser_pilot.snapshot import create_snapshot_builder
from browser_pilot.tui import EventRenderer, get_console, print_error

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="browser-pilot",
        description="Autonomous browser agent: observe, plan, act until the goal is reached",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    browser-pilot "Search for Python books on Wikipedia"
    browser-pilot "Read the page heading" --start-url https://example.com
    browser-pilot "Find the docs link" --headless --max-iterations 10
        """,
    )

    parser.add_argument(
        "goal",
        help="Natural language goal",
    )

    parser.add_argument(
        "--start-url", "-u",
        type=str,
        default=None,
        help="URL to open before the first observation",
    )

    parser.add_argument(
        "--headless",
        action="store_true",
        help="Run browser in headless mode (for CI/CD)",
    )

    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum loop iterations (default: AGENT_MAX_ITERATIONS or 25)",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show planner THOUGHT blocks as well",
    )

    parser.add_argument(
        "--dev",
        action="store_true",
        help="Development mode with debug logging",
    )

    return parser.parse_args(argv)


async def run_goal(
    goal: str,
    start_url: Optional[str] = None,
    headless: bool = False,
    max_iterations: Optional[int] = None,
    verbose: bool = False,
) -> LoopState:
    """
    Run one goal to a terminal state.

    Returns:
        The session's terminal LoopState
    """
    console = get_console()

    browser_config = BrowserConfig.from_env()
    if headless:
        browser_config.headless = True

    loop_config = LoopConfig.from_env()
    if max_iterations is not None:
        loop_config.max_iterations = max_iterations

    provider = create_provider_from_env()
    planner = create_planner(provider)
    bus = EventBus()
    renderer = EventRenderer(console, verbose=verbose)

    try:
        async with BrowserController(browser_config) as browser:

            async def open_backend() -> PlaywrightBackend:
                backend = await browser.open_backend()
                if start_url:
                    console.print(f"[dim]Opening {start_url}...[/dim]")
                    try:
                        await backend.navigate(start_url, browser_config.navigation_timeout)
                    except BrowserPilotError:
                        await browser.close_backend(backend)
                        raise
                return backend

            manager = SessionManager(
                planner,
                backend_factory=open_backend,
                bus=bus,
                loop_config=loop_config,
                actuator_config=ActuatorConfig.from_env(),
                snapshot_builder=create_snapshot_builder(),
                release_backend=browser.close_backend,
            )

            console.print(f"[bold]Goal:[/bold] {goal}\n")
            async with bus.subscribe() as subscription:
                session_id = await manager.start(goal)
                _install_interrupt(manager, session_id)
                await renderer.consume(subscription)
            return await manager.wait(session_id)
    finally:
        await provider.close()


def _install_interrupt(manager: SessionManager, session_id: str) -> None:
    """Route Ctrl-C to cooperative cancellation of the session."""
    loop = asyncio.get_running_loop()

    def on_interrupt() -> None:
        get_console().print("\n[yellow]Cancelling after the current step...[/yellow]")
        manager.cancel(session_id)

    try:
        loop.add_signal_handler(signal.SIGINT, on_interrupt)
    except (NotImplementedError, RuntimeError):
        # Windows event loops: KeyboardInterrupt tears the run down instead
        logger.debug("SIGINT handler not supported on this platform")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    configure_logging(level=logging.DEBUG if args.dev else None, verbose=args.dev)

    try:
        state = asyncio.run(run_goal(
            goal=args.goal,
            start_url=args.start_url,
            headless=args.headless,
            max_iterations=args.max_iterations,
            verbose=args.verbose,
        ))
    except KeyboardInterrupt:
        get_console().print("\n[yellow]Interrupted[/yellow]")
        return 1
    except ValueError as e:
        # Missing provider credentials, empty goal
        print_error(str(e), title="[CONFIG]")
        return 1
    except BrowserPilotError as e:
        # Start page unreachable, browser failed to launch a page
        print_error(str(e), title="[BROWSER]")
        return 1

    return 0 if state is LoopState.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
