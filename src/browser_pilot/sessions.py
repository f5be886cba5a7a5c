"""
Session Manager

The control surface for agent sessions: start a goal, cancel it, read its
state. Each session gets its own browser backend and loop controller and runs
as an independent asyncio task; sessions share nothing but the event bus.

Usage:
    manager = SessionManager(planner, backend_factory=browser.open_backend)
    session_id = await manager.start("Find the weather in Paris")
    state = await manager.wait(session_id)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from .actuator import Actuator, ActuatorConfig
from .browser.backend import BrowserBackend
from .errors import SessionNotFoundError
from .events import EventBus
from .loop import LoopConfig, LoopController
from .models import LoopState
from .planner import Planner
from .snapshot import SnapshotBuilder

logger = logging.getLogger(__name__)

BackendFactory = Callable[[], Awaitable[BrowserBackend]]
BackendRelease = Callable[[BrowserBackend], Awaitable[None]]


@dataclass
class _Session:
    controller: LoopController
    backend: BrowserBackend
    task: Optional[asyncio.Task] = field(default=None)


class SessionManager:
    """
    Starts and tracks concurrent agent sessions.

    The only mutations exposed are ``start``, ``cancel`` and ``forget``;
    session state is otherwise read-only from the outside. Finished sessions
    stay inspectable until they are forgotten.
    """

    def __init__(
        self,
        planner: Planner,
        backend_factory: BackendFactory,
        bus: Optional[EventBus] = None,
        loop_config: Optional[LoopConfig] = None,
        actuator_config: Optional[ActuatorConfig] = None,
        snapshot_builder: Optional[SnapshotBuilder] = None,
        release_backend: Optional[BackendRelease] = None,
    ):
        """
        Args:
            planner: Shared, stateless planner
            backend_factory: Opens a fresh browser backend for each session
            bus: Event bus to publish on (a new one if None)
            loop_config: Retry/termination bounds for every session
            actuator_config: Timing bounds for every session's actuator
            snapshot_builder: Shared snapshot builder
            release_backend: Called with the backend once its session ends
        """
        self.planner = planner
        self.backend_factory = backend_factory
        self.bus = bus or EventBus()
        self.loop_config = loop_config or LoopConfig()
        self.actuator_config = actuator_config or ActuatorConfig()
        self.snapshot_builder = snapshot_builder or SnapshotBuilder()
        self.release_backend = release_backend
        self._sessions: dict[str, _Session] = {}

    async def start(self, goal: str) -> str:
        """
        Start a new session for ``goal``.

        Returns:
            The new session id

        Raises:
            ValueError: The goal is empty
        """
        if not goal or not goal.strip():
            raise ValueError("A session needs a non-empty goal")

        backend = await self.backend_factory()
        controller = LoopController(
            goal=goal,
            backend=backend,
            planner=self.planner,
            bus=self.bus,
            snapshot_builder=self.snapshot_builder,
            actuator=Actuator(backend, self.actuator_config),
            config=self.loop_config,
        )
        session = _Session(controller=controller, backend=backend)
        self._sessions[controller.session_id] = session
        session.task = asyncio.create_task(
            self._run(session),
            name=f"browser-pilot-{controller.session_id}",
        )
        logger.info("Started session %s", controller.session_id)
        return controller.session_id

    def cancel(self, session_id: str, reason: str = "Cancelled by user") -> None:
        """Request cooperative cancellation of a session."""
        self._get(session_id).controller.cancel(reason)

    def get_status(self, session_id: str) -> LoopState:
        """Current state of a session's loop."""
        return self._get(session_id).controller.state

    def get_controller(self, session_id: str) -> LoopController:
        """The session's controller, for read-only inspection (history, trace)."""
        return self._get(session_id).controller

    async def wait(self, session_id: str) -> LoopState:
        """Wait for a session to reach its terminal state."""
        session = self._get(session_id)
        if session.task is not None:
            await asyncio.shield(session.task)
        return session.controller.state

    def forget(self, session_id: str) -> LoopState:
        """
        Drop a finished session along with its controller and history.

        Returns:
            The session's terminal LoopState

        Raises:
            SessionNotFoundError: Unknown session id
            ValueError: The session is still running
        """
        session = self._get(session_id)
        if session.task is None or not session.task.done():
            raise ValueError(f"Session {session_id} is still running")
        del self._sessions[session_id]
        logger.debug("Forgot session %s", session_id)
        return session.controller.state

    def session_ids(self) -> list[str]:
        return list(self._sessions)

    async def close(self) -> None:
        """Cancel every running session and wait for them to wind down."""
        tasks = []
        for session in self._sessions.values():
            session.controller.cancel("Session manager shutting down")
            if session.task is not None and not session.task.done():
                tasks.append(session.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, session: _Session) -> LoopState:
        try:
            return await session.controller.run()
        finally:
            if self.release_backend is not None:
                try:
                    await self.release_backend(session.backend)
                except Exception as e:
                    logger.warning(
                        "Releasing backend of session %s failed: %s",
                        session.controller.session_id,
                        e,
                    )

    def _get(self, session_id: str) -> _Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None
