"""
Unit tests for the loop controller state machine.

The real planner, snapshot builder and actuator run against FakeBackend and
ScriptedProvider.
"""

import asyncio

import pytest

from browser_pilot.actuator import Actuator
from browser_pilot.errors import ActionErrorKind, PlannerError
from browser_pilot.events import EventBus
from browser_pilot.loop import LoopConfig, LoopController
from browser_pilot.models import (
    CancelledEvent,
    CompletedEvent,
    ErrorEvent,
    LoopState,
    SessionStatus,
    StepExecutedEvent,
)
from browser_pilot.planner import Planner

from conftest import FakePage, ScriptedProvider, eid, link, text_leaf

O, P, A = LoopState.OBSERVING, LoopState.PLANNING, LoopState.ACTING


def drain(subscription) -> list:
    events = []
    while (event := subscription.get_nowait()) is not None:
        events.append(event)
    return events


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def make_controller(fake_backend, bus, loop_config, actuator_config):
    def factory(replies, backend=None, config=None, before_reply=None, goal="find rust agents"):
        backend = backend or fake_backend
        provider = ScriptedProvider(replies, before_reply=before_reply)
        controller = LoopController(
            goal=goal,
            backend=backend,
            planner=Planner(provider),
            bus=bus,
            actuator=Actuator(backend, actuator_config),
            config=config or loop_config,
            session_id="s1",
        )
        controller.provider = provider
        return controller

    return factory


class TestCompletion:

    @pytest.mark.asyncio
    async def test_complete_immediately(self, make_controller, bus):
        events = bus.subscribe()
        controller = make_controller([{"action": "Complete", "summary": "nothing to do"}])

        state = await controller.run()

        assert state is LoopState.COMPLETED
        assert controller.status is SessionStatus.COMPLETED
        assert controller.summary == "nothing to do"
        assert controller.trace == (LoopState.IDLE, O, P, LoopState.COMPLETED)
        assert len(controller.history) == controller.iteration_count == 1
        assert [event.type for event in drain(events)] == ["thinking", "step_planned", "completed"]

    @pytest.mark.asyncio
    async def test_search_scenario(self, make_controller, bus, fake_backend):
        results = FakePage(
            title="rust agents - Search",
            nodes=[text_leaf("Results"), link(0, "Rust agents framework", href="https://a.test/1")],
            elements={eid(0): "Rust agents framework", "#results": ""},
        )
        fake_backend.pages["https://search.test/?q=rust+agents"] = results
        fake_backend.pages["https://a.test/1"] = FakePage(title="Rust agents framework")
        fake_backend.links["Enter"] = "https://search.test/?q=rust+agents"
        fake_backend.current_url = "about:blank"
        fake_backend.page = FakePage(title="")

        events = bus.subscribe()
        controller = make_controller(
            [
                {"action": "Navigate", "url": "https://search.test/"},
                {"action": "TypeInto", "selector": eid(0), "text": "rust agents"},
                {"action": "PressKey", "key": "Enter"},
                {"action": "Wait", "condition": "element", "selector": "#results"},
                {"action": "Click", "selector": eid(0)},
                {"action": "Complete", "summary": "opened first result"},
            ],
            goal="search for 'rust agents' and open the first result",
        )
        fake_backend.links[eid(0)] = "https://a.test/1"

        state = await controller.run()

        assert state is LoopState.COMPLETED
        assert controller.trace == (LoopState.IDLE,) + (O, P, A) * 5 + (O, P, LoopState.COMPLETED)
        assert len(controller.history) == controller.iteration_count == 6
        assert all(entry.outcome.success for entry in controller.history)
        assert fake_backend.current_url == "https://a.test/1"

        published = drain(events)
        assert sum(isinstance(event, CompletedEvent) for event in published) == 1
        assert sum(isinstance(event, StepExecutedEvent) for event in published) == 5
        assert published[-1].type == "completed"
        assert published[-1].iteration == 6

    @pytest.mark.asyncio
    async def test_history_reaches_planner(self, make_controller):
        controller = make_controller(
            [
                {"action": "Click", "selector": eid(1)},
                {"action": "Complete", "summary": "done"},
            ]
        )

        await controller.run()

        second_prompt = controller.provider.prompts[1]
        assert "## Step\n2" in second_prompt
        assert f"1. on Search <https://search.test/>: Click {eid(1)} -> ok" in second_prompt


class TestIterationInvariant:

    @pytest.mark.asyncio
    async def test_history_matches_iteration_count_each_step(self, make_controller, bus):
        events = bus.subscribe()
        controller = make_controller(
            [
                {"action": "Click", "selector": eid(1)},
                {"action": "Click", "selector": "#missing"},
                {"action": "TypeInto", "selector": eid(0), "text": "x"},
                {"action": "Complete", "summary": "done"},
            ]
        )

        await controller.run()

        executed = [event for event in drain(events) if isinstance(event, StepExecutedEvent)]
        assert [event.iteration for event in executed] == [1, 2, 3]
        assert len(controller.history) == controller.iteration_count == 4

    @pytest.mark.asyncio
    async def test_max_iterations_fails(self, make_controller, loop_config):
        loop_config.max_iterations = 3
        controller = make_controller([{"action": "Click", "selector": eid(1)}] * 10)

        state = await controller.run()

        assert state is LoopState.FAILED
        assert controller.iteration_count == 3
        assert "maximum step limit (3)" in controller.error
        assert len(controller.provider.requests) == 3


class TestFailurePolicies:

    @pytest.mark.asyncio
    async def test_element_not_found_is_fed_back(self, make_controller):
        controller = make_controller(
            [
                {"action": "Click", "selector": "#missing"},
                {"action": "Click", "selector": eid(1)},
                {"action": "Complete", "summary": "done"},
            ]
        )

        state = await controller.run()

        assert state is LoopState.COMPLETED
        first = controller.history[0].outcome
        assert not first.success
        assert first.error_kind is ActionErrorKind.ELEMENT_NOT_FOUND
        assert "FAILED (element_not_found" in controller.provider.prompts[1]

    @pytest.mark.asyncio
    async def test_third_identical_failure_is_stuck(self, make_controller, bus):
        events = bus.subscribe()
        controller = make_controller([{"action": "Click", "selector": "#missing"}] * 5)

        state = await controller.run()

        assert state is LoopState.FAILED
        assert controller.trace == (LoopState.IDLE,) + (O, P, A) * 3 + (LoopState.FAILED,)
        assert len(controller.history) == controller.iteration_count == 3
        assert "3 consecutive times" in controller.error

        published = drain(events)
        errors = [event for event in published if isinstance(event, ErrorEvent)]
        assert len(errors) == 1
        assert published[-1] is errors[0]

    @pytest.mark.asyncio
    async def test_different_target_resets_streak(self, make_controller):
        controller = make_controller(
            [
                {"action": "Click", "selector": "#missing"},
                {"action": "Click", "selector": "#missing"},
                {"action": "Click", "selector": "#other"},
                {"action": "Click", "selector": "#missing"},
                {"action": "Complete", "summary": "gave up"},
            ]
        )

        assert await controller.run() is LoopState.COMPLETED
        assert controller.iteration_count == 5

    @pytest.mark.asyncio
    async def test_snapshot_retry_recovers(self, make_controller, fake_backend):
        fake_backend.not_ready = 2
        controller = make_controller([{"action": "Complete", "summary": "done"}])

        assert await controller.run() is LoopState.COMPLETED
        assert controller.trace == (LoopState.IDLE, O, P, LoopState.COMPLETED)

    @pytest.mark.asyncio
    async def test_snapshot_retries_exhausted(self, make_controller, fake_backend, loop_config):
        fake_backend.not_ready = loop_config.snapshot_retries + 1
        controller = make_controller([{"action": "Complete", "summary": "done"}])

        assert await controller.run() is LoopState.FAILED
        assert "after 4 attempts" in controller.error
        assert controller.provider.requests == []

    @pytest.mark.asyncio
    async def test_snapshot_backoff_doubles(self, make_controller, fake_backend, monkeypatch):
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        monkeypatch.setattr("browser_pilot.loop.asyncio.sleep", fake_sleep)
        fake_backend.not_ready = 3
        controller = make_controller(
            [{"action": "Complete", "summary": "done"}],
            config=LoopConfig(snapshot_retries=3, snapshot_backoff_s=0.5),
        )

        assert await controller.run() is LoopState.COMPLETED
        assert delays == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_parse_error_gets_one_correction(self, make_controller):
        controller = make_controller(
            [
                "Sure! I'll click the button.",
                {"action": "Complete", "summary": "done"},
            ]
        )

        assert await controller.run() is LoopState.COMPLETED
        assert "## Correction" in controller.provider.prompts[1]

    @pytest.mark.asyncio
    async def test_second_parse_error_fails(self, make_controller):
        controller = make_controller(["not json", "still not json", {"action": "Complete", "summary": "x"}])

        assert await controller.run() is LoopState.FAILED
        assert controller.trace[-2:] == (P, LoopState.FAILED)
        assert len(controller.provider.requests) == 2
        assert controller.history == ()

    @pytest.mark.asyncio
    async def test_planner_transport_error_fails(self, make_controller):
        controller = make_controller([PlannerError("503 Service Unavailable")])

        assert await controller.run() is LoopState.FAILED
        assert "503" in controller.error

    @pytest.mark.asyncio
    async def test_unexpected_error_stays_in_session(self, make_controller, fake_backend):
        async def broken(script, arg=None):
            raise RuntimeError("boom")

        fake_backend.evaluate = broken
        controller = make_controller([{"action": "Complete", "summary": "done"}])

        assert await controller.run() is LoopState.FAILED
        assert "boom" in controller.error


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_during_planning(self, make_controller, bus):
        events = bus.subscribe()
        controller = None

        def cancel_in_flight(call_number):
            controller.cancel("user pressed stop")

        controller = make_controller(
            [{"action": "Click", "selector": eid(1)}],
            before_reply=cancel_in_flight,
        )

        state = await controller.run()

        assert state is LoopState.CANCELLED
        assert A not in controller.trace
        assert controller.trace == (LoopState.IDLE, O, P, LoopState.CANCELLED)
        assert controller.history == ()

        published = drain(events)
        assert [event.type for event in published] == ["thinking", "cancelled"]
        assert published[-1].reason == "user pressed stop"

    @pytest.mark.asyncio
    async def test_cancel_before_run(self, make_controller):
        controller = make_controller([{"action": "Complete", "summary": "done"}])
        controller.cancel()

        assert await controller.run() is LoopState.CANCELLED
        assert controller.provider.requests == []

    @pytest.mark.asyncio
    async def test_cancel_after_terminal_is_ignored(self, make_controller, bus):
        events = bus.subscribe()
        controller = make_controller([{"action": "Complete", "summary": "done"}])
        await controller.run()

        controller.cancel()

        assert controller.state is LoopState.COMPLETED
        assert sum(event.terminal for event in drain(events)) == 1

    @pytest.mark.asyncio
    async def test_task_cancellation_publishes_cancelled(self, make_controller, bus):
        events = bus.subscribe()
        gate = asyncio.Event()
        controller = make_controller([{"action": "Complete", "summary": "done"}])

        async def hang(messages, **kwargs):
            await gate.wait()

        controller.provider.complete = hang
        task = asyncio.create_task(controller.run())
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert controller.state is LoopState.CANCELLED
        assert isinstance(drain(events)[-1], CancelledEvent)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_run_only_once(self, make_controller):
        controller = make_controller([{"action": "Complete", "summary": "done"}])
        await controller.run()

        with pytest.raises(RuntimeError):
            await controller.run()

    def test_empty_goal_rejected(self, make_controller):
        with pytest.raises(ValueError):
            make_controller([], goal="   ")

    def test_history_is_read_only_view(self, make_controller):
        controller = make_controller([])

        assert controller.history == ()
        assert controller.state is LoopState.IDLE
        assert controller.trace == (LoopState.IDLE,)
