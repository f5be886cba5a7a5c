"""
Integration tests against a real headless Chromium.

Pages are served with ``page.set_content`` so no network is needed. The
planner is scripted; everything else (snapshot script, Playwright backend,
actuator, loop) is the production code.

Requires: playwright install chromium
"""

import pytest
import pytest_asyncio
from playwright.async_api import Error as PlaywrightError

from browser_pilot.actuator import Actuator, ActuatorConfig
from browser_pilot.browser import BrowserConfig, BrowserController
from browser_pilot.errors import ActionErrorKind
from browser_pilot.events import EventBus
from browser_pilot.loop import LoopConfig, LoopController
from browser_pilot.models import Click, Extract, LoopState, TypeInto, Wait
from browser_pilot.planner import Planner
from browser_pilot.snapshot import SnapshotBuilder

from conftest import ScriptedProvider, eid

pytestmark = pytest.mark.integration

SEARCH_PAGE = """
<html>
  <head><title>Mini Search</title><style>.hidden { display: none; }</style></head>
  <body>
    <h1>Mini Search</h1>
    <input id="q" name="q" placeholder="Search...">
    <button id="go" onclick="search()">Go</button>
    <input type="hidden" name="token" value="secret">
    <div class="hidden"><a href="/never">Invisible link</a></div>
    <ul id="results"></ul>
    <script>
      function search() {
        const q = document.getElementById('q').value;
        setTimeout(() => {
          document.getElementById('results').innerHTML =
            '<li><a href="#first" onclick="document.title=\\'Opened\\'">Result for ' + q + '</a></li>';
        }, 300);
      }
    </script>
  </body>
</html>
"""

CARD_PAGE = """
<html>
  <head><title>Shop</title></head>
  <body>
    <div class="card" onclick="document.title='Card'">
      <h3>Card title</h3>
      <input name="qty" value="1">
      <button onclick="event.stopPropagation(); document.title='Added'">Add to cart</button>
    </div>
    <p>Total price: <b>$42.00</b></p>
    <div style="display: contents"><span>Shipping included</span></div>
  </body>
</html>
"""


@pytest_asyncio.fixture
async def browser():
    config = BrowserConfig(browser_type="chromium", headless=True, profile_dir=None)
    controller = BrowserController(config)
    try:
        await controller.initialize()
    except PlaywrightError as e:
        await controller.close()
        pytest.skip(f"Chromium is not available: {e}")
    yield controller
    await controller.close()


@pytest_asyncio.fixture
async def backend(browser):
    backend = await browser.open_backend()
    await backend.page.set_content(SEARCH_PAGE)
    yield backend
    await browser.close_backend(backend)


@pytest.mark.asyncio
async def test_snapshot_tags_visible_interactive_elements(backend):
    observation = await SnapshotBuilder().capture(backend)

    interactive = observation.interactive_elements()
    assert [node.eid for node in interactive] == ["e0", "e1"]
    assert interactive[0].attrs["placeholder"] == "Search..."
    assert interactive[1].text == "Go"
    assert "Invisible link" not in observation.render()
    assert "secret" not in observation.render()
    assert observation.title == "Mini Search"

    assert await backend.read(eid(1)) == ["Go"]


@pytest.mark.asyncio
async def test_snapshot_is_stable_for_unchanged_page(backend):
    builder = SnapshotBuilder()

    first = await builder.capture(backend)
    second = await builder.capture(backend)

    assert first.render() == second.render()


@pytest.mark.asyncio
async def test_snapshot_tags_controls_inside_clickable_card(backend):
    await backend.page.set_content(CARD_PAGE)

    observation = await SnapshotBuilder().capture(backend)

    interactive = observation.interactive_elements()
    assert [(node.eid, node.tag) for node in interactive] == [
        ("e0", "div"),
        ("e1", "input"),
        ("e2", "button"),
    ]
    assert interactive[1].attrs["name"] == "qty"
    assert interactive[2].text == "Add to cart"

    actuator = Actuator(backend, ActuatorConfig(settle_delay_ms=0))
    assert (await actuator.execute(Click(selector=eid(2)))).success
    assert await backend.title() == "Added"


@pytest.mark.asyncio
async def test_snapshot_keeps_text_beside_child_elements(backend):
    await backend.page.set_content(CARD_PAGE)

    observation = await SnapshotBuilder().capture(backend)

    texts = [node.text for node in observation.elements if not node.interactive]
    assert "Total price:" in texts
    assert "$42.00" in texts
    assert "Shipping included" in texts
    # Card text is part of the card's own label
    assert "Card title" not in texts


@pytest.mark.asyncio
async def test_actuator_waits_for_late_results(backend):
    actuator = Actuator(backend, ActuatorConfig(settle_delay_ms=0, poll_interval_ms=50))

    assert (await actuator.execute(TypeInto(selector="#q", text="rust agents"))).success
    assert (await actuator.execute(Click(selector="#go"))).success

    outcome = await actuator.execute(Extract(selector="#results li", label="first"))
    assert outcome.success
    assert outcome.data["content"] == "Result for rust agents"


@pytest.mark.asyncio
async def test_actuator_reports_missing_element(backend):
    actuator = Actuator(backend, ActuatorConfig(element_timeout_ms=200, settle_delay_ms=0))

    outcome = await actuator.execute(Click(selector="#does-not-exist"))

    assert not outcome.success
    assert outcome.error_kind is ActionErrorKind.ELEMENT_NOT_FOUND

    outcome = await actuator.execute(Wait(condition="element", selector="#nope", timeout_ms=200))
    assert outcome.error_kind is ActionErrorKind.TIMEOUT


@pytest.mark.asyncio
async def test_full_loop_on_real_page(backend):
    provider = ScriptedProvider(
        [
            {"action": "TypeInto", "selector": eid(0), "text": "rust agents"},
            {"action": "Click", "selector": eid(1)},
            {"action": "Wait", "condition": "element", "selector": "#results a"},
            {"action": "Extract", "selector": "#results a", "label": "first result"},
            {"action": "Click", "selector": "#results a"},
            {"action": "Complete", "summary": "opened first result"},
        ]
    )
    controller = LoopController(
        goal="search for 'rust agents' and open the first result",
        backend=backend,
        planner=Planner(provider),
        bus=EventBus(),
        actuator=Actuator(backend, ActuatorConfig(settle_delay_ms=100, poll_interval_ms=50)),
        config=LoopConfig(snapshot_backoff_s=0.1),
    )

    state = await controller.run()

    assert state is LoopState.COMPLETED, controller.error
    assert controller.iteration_count == 6
    assert all(entry.outcome.success for entry in controller.history)
    assert "[first result] Result for rust agents" in provider.prompts[4]
    assert await backend.title() == "Opened"
