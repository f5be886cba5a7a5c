"""
Shared fixtures: an in-memory browser backend and a scripted LLM provider.

Unit tests drive the real loop, planner, snapshot builder and actuator
against these fakes, so no browser or network is needed.
"""

import json
from typing import Any, Callable, Optional, Union

import pytest

from browser_pilot.actuator import ActuatorConfig
from browser_pilot.browser.backend import BrowserBackend
from browser_pilot.errors import ActionError, ActionErrorKind, PlannerError
from browser_pilot.llm import LLMConfig, LLMProvider, LLMResponse, Message
from browser_pilot.loop import LoopConfig


def eid(n: int) -> str:
    """Selector for the n-th interactive element of a snapshot."""
    return f'[data-eid="e{n}"]'


def link(n: int, text: str, href: str = "#") -> dict:
    return {"eid": f"e{n}", "tag": "a", "role": "link", "text": text, "attrs": {"href": href}}


def textbox(n: int, name: str = "q", placeholder: str = "") -> dict:
    attrs = {"type": "text", "name": name}
    if placeholder:
        attrs["placeholder"] = placeholder
    return {"eid": f"e{n}", "tag": "input", "role": "input", "text": "", "attrs": attrs}


def button(n: int, text: str) -> dict:
    return {"eid": f"e{n}", "tag": "button", "role": "button", "text": text, "attrs": {}}


def text_leaf(text: str, tag: str = "p") -> dict:
    return {"eid": None, "tag": tag, "role": "text", "text": text, "attrs": {}}


class FakePage:
    """State of one fake page: title, raw snapshot nodes and readable elements."""

    def __init__(
        self,
        title: str = "",
        nodes: Optional[list[dict]] = None,
        elements: Optional[dict[str, str]] = None,
    ):
        self.title = title
        self.nodes = list(nodes or [])
        # selector -> text content; every listed selector is visible
        self.elements = dict(elements or {})


class FakeBackend(BrowserBackend):
    """
    In-memory BrowserBackend.

    ``pages`` maps urls to FakePage objects; navigating or clicking a selector
    listed in ``links`` loads the matching page. Every call is recorded in
    ``calls`` as (method, *args).
    """

    def __init__(self, url: str = "about:blank", page: Optional[FakePage] = None):
        self.current_url = url
        self.page = page or FakePage()
        self.pages: dict[str, FakePage] = {}
        self.links: dict[str, str] = {}
        self.typed: dict[str, str] = {}
        self.calls: list[tuple] = []

        # Upcoming is_ready() calls answering False
        self.not_ready = 0
        # selector -> resolve() calls that miss before it becomes visible
        self.appear_after: dict[str, int] = {}
        # method name -> error raised by that method
        self.failures: dict[str, ActionError] = {}

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        if method in self.failures:
            raise self.failures[method]

    def _load(self, url: str) -> None:
        self.current_url = url
        self.page = self.pages.get(url, FakePage(title=url))

    async def url(self) -> str:
        return self.current_url

    async def title(self) -> str:
        return self.page.title

    async def is_ready(self) -> bool:
        if self.not_ready > 0:
            self.not_ready -= 1
            return False
        return True

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self._record("navigate", url)
        self._load(url)

    async def wait_for_load(self, state: str, timeout_ms: int) -> None:
        self._record("wait_for_load", state)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        self._record("evaluate")
        return {"nodes": list(self.page.nodes), "complete": True}

    async def resolve(self, selector: str) -> bool:
        self.calls.append(("resolve", selector))
        pending = self.appear_after.get(selector, 0)
        if pending > 0:
            self.appear_after[selector] = pending - 1
            return False
        return selector in self.page.elements

    async def read(self, selector: str, attribute: Optional[str] = None) -> list[str]:
        self._record("read", selector, attribute)
        if selector not in self.page.elements:
            return []
        return [self.page.elements[selector]]

    async def click(self, selector: str) -> None:
        self._record("click", selector)
        if selector in self.links:
            self._load(self.links[selector])

    async def type(self, selector: str, text: str) -> None:
        self._record("type", selector, text)
        self.typed[selector] = text

    async def press(self, key: str, selector: Optional[str] = None) -> None:
        self._record("press", key, selector)
        if key == "Enter" and "Enter" in self.links:
            self._load(self.links["Enter"])


Reply = Union[str, dict, Exception]


class ScriptedProvider(LLMProvider):
    """
    LLMProvider that answers from a script.

    Each reply is a raw string, a dict (serialized to JSON) or an exception to
    raise. ``before_reply`` runs on every call before answering, which lets a
    test act while the planner call is "in flight".
    """

    def __init__(
        self,
        replies: list[Reply],
        before_reply: Optional[Callable[[int], None]] = None,
    ):
        super().__init__(LLMConfig(api_key="test", model="scripted"))
        self.replies = list(replies)
        self.before_reply = before_reply
        self.requests: list[list[Message]] = []

    async def initialize(self) -> None:
        pass

    async def complete(self, messages: list[Message], **kwargs: Any) -> LLMResponse:
        self.requests.append(list(messages))
        if self.before_reply is not None:
            self.before_reply(len(self.requests))
        if not self.replies:
            raise PlannerError("Scripted provider ran out of replies")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply)
        return LLMResponse(content=reply, model="scripted")

    @property
    def prompts(self) -> list[str]:
        """User prompts sent so far, in order."""
        return [request[-1].content for request in self.requests]


@pytest.fixture
def search_page() -> FakePage:
    """A small search engine front page."""
    return FakePage(
        title="Search",
        nodes=[
            text_leaf("Search the web", tag="h1"),
            textbox(0, placeholder="Search..."),
            button(1, "Go"),
        ],
        elements={eid(0): "", eid(1): "Go"},
    )


@pytest.fixture
def fake_backend(search_page) -> FakeBackend:
    backend = FakeBackend(url="https://search.test/", page=search_page)
    backend.pages["https://search.test/"] = search_page
    return backend


@pytest.fixture
def loop_config() -> LoopConfig:
    """Default bounds with no real backoff delay."""
    return LoopConfig(snapshot_backoff_s=0)


@pytest.fixture
def actuator_config() -> ActuatorConfig:
    """Short smart-wait and no settle delay."""
    return ActuatorConfig(
        element_timeout_ms=200,
        wait_timeout_ms=200,
        poll_interval_ms=5,
        settle_delay_ms=0,
    )


@pytest.fixture
def element_not_found() -> ActionError:
    return ActionError(ActionErrorKind.ELEMENT_NOT_FOUND, "missing")
