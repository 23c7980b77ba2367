"""Tests for plan dispatch, ordering, isolation and reporting."""
import asyncio
from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import pytest
import pytest_asyncio

from lulo.errors import SessionBusyError
from lulo.executor.dispatcher import DispatchState, StepDispatcher, substitute_user_images
from lulo.models.messages import Ack, MessageType
from lulo.models.step import ActionKind, Plan, TabStatus
from lulo.utils.config import config


def plan_of(*steps):
    return Plan.from_response({"steps": list(steps)})


@pytest_asyncio.fixture
async def dispatcher(host):
    dispatcher = StepDispatcher(host)
    yield dispatcher
    await dispatcher.drain(timeout=5)


@pytest.mark.asyncio
async def test_think_then_email(dispatcher, host):
    plan = plan_of(
        {"action": "THINK", "description": "Opening Gmail"},
        {"action": "EMAIL", "data": {"to": "a@b.com"}},
    )

    report = await dispatcher.dispatch(plan)

    assert report.success is True
    assert report.reply == "Opening Gmail"
    assert len(report.actions) == 1
    action = report.actions[0]
    assert action.type == "email"
    assert action.tab_id in host.tabs
    url = host.created[0]
    assert url.startswith("https://mail.google.com/mail/?view=cm&fs=1&tf=1")
    assert parse_qs(urlparse(url).query)["to"] == ["a@b.com"]
    await dispatcher.drain()


@pytest.mark.asyncio
async def test_click_on_missing_element_is_not_recorded(dispatcher, host):
    tab_id = host.add_tab()
    host.replies[MessageType.CLICK_ELEMENT] = Ack.fail("Element not found: #missing")

    report = await dispatcher.dispatch(plan_of({"action": "CLICK", "data": {"selector": "#missing"}}), tab_id=tab_id)

    assert report.success is True
    assert report.actions == []
    assert host.messages_of(MessageType.CLICK_ELEMENT)[0].selector == "#missing"


@pytest.mark.asyncio
async def test_click_recorded_when_page_confirms(dispatcher, host):
    tab_id = host.add_tab()

    report = await dispatcher.dispatch(plan_of({"action": "CLICK", "data": {"selector": "#buy"}}), tab_id=tab_id)

    assert [a.model_dump(exclude_none=True) for a in report.actions] == [{"type": "click", "description": "Clicked #buy"}]


@pytest.mark.asyncio
async def test_descriptions_survive_failing_steps(dispatcher, host):
    tab_id = host.add_tab()
    host.replies[MessageType.CLICK_ELEMENT] = RuntimeError("tab crashed")

    report = await dispatcher.dispatch(
        plan_of(
            {"action": "CLICK", "description": "Press buy", "data": {"selector": "#buy"}},
            {"action": "TYPE", "description": "Fill the name", "data": {"text": "Ada"}},
            {"action": "THINK", "description": "All done"},
        ),
        tab_id=tab_id,
    )

    assert report.success is True
    assert report.reply == "Press buy\n\nFill the name\n\nAll done"
    assert [a.type for a in report.actions] == ["type"]


@pytest.mark.asyncio
async def test_unknown_and_malformed_steps_are_no_ops(dispatcher, host):
    report = await dispatcher.dispatch(
        plan_of(
            {"action": "LEVITATE", "description": "Trying something"},
            "garbage",
            {"action": "BROWSE"},
            {"action": "SEARCH", "data": {}},
        )
    )

    assert report.reply == "Trying something"
    assert report.actions == []
    assert host.created == []


@pytest.mark.asyncio
async def test_empty_plan_uses_placeholder_reply(dispatcher):
    report = await dispatcher.dispatch(Plan())

    assert report.reply == "Working on your request..."
    assert dispatcher.state == DispatchState.COMPLETED


@pytest.mark.asyncio
async def test_browse_returns_before_tab_is_ready(dispatcher, host):
    report = await dispatcher.dispatch(plan_of({"action": "BROWSE", "data": {"url": "https://example.com"}}))

    new_tab = report.actions[0].tab_id
    assert report.actions[0].description == "Opened https://example.com"
    assert host.tabs[new_tab].status == TabStatus.LOADING
    assert host.messages_of(MessageType.LULO_START, new_tab) == []

    host.set_status(new_tab, TabStatus.COMPLETE)
    await dispatcher.drain()

    assert len(host.messages_of(MessageType.LULO_START, new_tab)) == 1
    assert len(host.messages_of(MessageType.LULO_END, new_tab)) == 1


@pytest.mark.asyncio
async def test_stuck_tab_still_gets_feedback_after_timeout(dispatcher, host, monkeypatch):
    monkeypatch.setattr(dispatcher.waiter, "timeout", 0.05)

    report = await dispatcher.dispatch(plan_of({"action": "SEARCH", "data": {"query": "lulo ai"}}))
    await dispatcher.drain()

    new_tab = report.actions[0].tab_id
    assert host.created == ["https://www.google.com/search?q=lulo%20ai"]
    assert report.actions[0].description == 'Searched for "lulo ai"'
    assert len(host.messages_of(MessageType.LULO_START, new_tab)) == 1


@pytest.mark.asyncio
async def test_blocked_urls_are_skipped(dispatcher, host):
    tab_id = host.add_tab()

    report = await dispatcher.dispatch(
        plan_of(
            {"action": "BROWSE", "data": {"url": "javascript:alert(1)"}},
            {"action": "NAVIGATE", "data": {"url": "chrome://settings/reset"}},
        ),
        tab_id=tab_id,
    )

    assert report.actions == []
    assert host.created == []
    assert host.updated == []


@pytest.mark.asyncio
async def test_navigate_needs_a_tab(dispatcher, host):
    report = await dispatcher.dispatch(plan_of({"action": "NAVIGATE", "data": {"url": "https://example.com"}}))

    assert report.actions == []


@pytest.mark.asyncio
async def test_navigate_updates_tab_and_relights_overlay(dispatcher, host):
    tab_id = host.add_tab()

    report = await dispatcher.dispatch(
        plan_of({"action": "NAVIGATE", "data": {"url": "https://example.com/next"}}), tab_id=tab_id
    )
    host.set_status(tab_id, TabStatus.COMPLETE)
    await dispatcher.drain()

    assert host.updated == [(tab_id, "https://example.com/next")]
    assert report.actions[0].type == "navigate"
    statuses = [m.text for m in host.messages_of(MessageType.LULO_STATUS, tab_id)]
    assert statuses[0] == "Navigating..."
    assert statuses[-1] == config.idle_status_text


def _glow_sequence(host, tab_id):
    return [
        m.type for t, m in host.messages
        if t == tab_id and m.type in (MessageType.LULO_START, MessageType.LULO_END)
    ]


@pytest.mark.asyncio
async def test_slow_navigation_still_ends_with_glow_off(dispatcher, host):
    tab_id = host.add_tab()

    await dispatcher.dispatch(
        plan_of({"action": "NAVIGATE", "data": {"url": "https://example.com/slow"}}), tab_id=tab_id
    )
    # The plan's own end fires while the tab is still loading
    await asyncio.sleep(0.1)
    assert _glow_sequence(host, tab_id) == [MessageType.LULO_START, MessageType.LULO_END]

    host.set_status(tab_id, TabStatus.COMPLETE)
    await dispatcher.drain()

    sequence = _glow_sequence(host, tab_id)
    assert sequence[-1] == MessageType.LULO_END
    assert sequence.count(MessageType.LULO_START) == sequence.count(MessageType.LULO_END)
    statuses = [m.text for m in host.messages_of(MessageType.LULO_STATUS, tab_id)]
    assert statuses[-1] == config.idle_status_text


@pytest.mark.asyncio
async def test_type_defaults_to_focused_input(dispatcher, host):
    tab_id = host.add_tab()

    report = await dispatcher.dispatch(plan_of({"action": "TYPE", "data": {"text": "hello world"}}), tab_id=tab_id)

    message = host.messages_of(MessageType.TYPE_TEXT)[0]
    assert message.selector == "input:focus, textarea:focus"
    assert report.actions[0].description == 'Typed "hello world..."'


@pytest.mark.asyncio
async def test_click_completes_before_next_step(dispatcher, host):
    tab_id = host.add_tab()
    order = []

    async def slow_click(message):
        await asyncio.sleep(0.02)
        order.append("click")
        return Ack.ok()

    async def type_text(message):
        order.append("type")
        return Ack.ok()

    host.replies[MessageType.CLICK_ELEMENT] = slow_click
    host.replies[MessageType.TYPE_TEXT] = type_text

    await dispatcher.dispatch(
        plan_of(
            {"action": "CLICK", "data": {"selector": "#search"}},
            {"action": "TYPE", "data": {"text": "shoes"}},
        ),
        tab_id=tab_id,
    )

    assert order == ["click", "type"]


@pytest.mark.asyncio
async def test_each_step_description_becomes_live_status(dispatcher, host):
    tab_id = host.add_tab()

    await dispatcher.dispatch(plan_of({"action": "THINK", "description": "Looking around"}), tab_id=tab_id)
    await dispatcher.drain()

    assert [m.text for m in host.messages_of(MessageType.LULO_STATUS)] == ["Looking around"]
    assert len(host.messages_of(MessageType.LULO_END, tab_id)) == 1


@pytest.mark.asyncio
async def test_guide_and_preview(dispatcher, host):
    tab_id = host.add_tab()
    host.replies[MessageType.GUIDE] = Ack.ok(highlighted=True)

    report = await dispatcher.dispatch(
        plan_of(
            {"action": "GUIDE", "data": {"message": "Click Save", "target": "Save"}},
            {"action": "GUIDE", "data": {}},
            {"action": "PREVIEW", "data": {"html": "<img src='{{USER_IMAGE}}'>", "css": "img{}"}},
        ),
        tab_id=tab_id,
        images=["data:image/png;base64,AAA"],
    )

    assert [a.description for a in report.actions] == [
        "Highlighted element: Click Save",
        "Generated interactive preview",
    ]
    preview = host.messages_of(MessageType.PREVIEW)[0]
    assert preview.html == "<img src='data:image/png;base64,AAA'>"
    assert preview.css == "img{}"


def test_substitute_user_images():
    html = "{{USER_IMAGE}} {{USER_IMAGE_0}} {{USER_IMAGE_1}} {{USER_IMAGE_2}}"

    assert substitute_user_images(html, ["A", "B"]) == "A A B {{USER_IMAGE_2}}"


@pytest.mark.asyncio
async def test_extract_truncates_large_content(dispatcher, host, monkeypatch):
    tab_id = host.add_tab()
    monkeypatch.setattr(config, "extract_preview_limit", 10)
    host.replies[MessageType.EXTRACT_DATA] = Ack.ok(content="x" * 25)

    report = await dispatcher.dispatch(
        plan_of({"action": "EXTRACT", "data": {"selector": "h2", "format": "csv"}}), tab_id=tab_id
    )

    message = host.messages_of(MessageType.EXTRACT_DATA)[0]
    assert (message.selector, message.format) == ("h2", "csv")
    assert report.actions[0].extracted_data == "x" * 10 + "... (truncated)"
    assert report.actions[0].description == "Extracted data from h2"


@pytest.mark.asyncio
async def test_extract_follow_up_runs_next_plan_inline(dispatcher, host):
    tab_id = host.add_tab()
    host.replies[MessageType.EXTRACT_DATA] = Ack.ok(content='["a@b.com"]')
    follow_up = AsyncMock(return_value=plan_of({"action": "THINK", "description": "Found one address"}))

    report = await dispatcher.dispatch(
        plan_of({"action": "EXTRACT", "description": "Collecting emails"}), tab_id=tab_id, follow_up=follow_up
    )

    prompt, images = follow_up.await_args.args
    assert prompt == 'I have extracted the data: ["a@b.com"]... Now please continue with the next step.'
    assert images is None
    assert report.reply == "Collecting emails\n\nFound one address"


@pytest.mark.asyncio
async def test_follow_up_turns_are_bounded(dispatcher, host):
    tab_id = host.add_tab()
    host.replies[MessageType.EXTRACT_DATA] = Ack.ok(content="[]x")
    follow_up = AsyncMock(return_value=plan_of({"action": "EXTRACT"}))

    report = await dispatcher.dispatch(plan_of({"action": "EXTRACT"}), tab_id=tab_id, follow_up=follow_up)

    assert follow_up.await_count == config.max_follow_up_turns
    assert len(report.actions) == config.max_follow_up_turns + 1


@pytest.mark.asyncio
async def test_follow_up_failure_is_ignored(dispatcher, host):
    tab_id = host.add_tab()
    follow_up = AsyncMock(side_effect=RuntimeError("planner down"))

    report = await dispatcher.dispatch(plan_of({"action": "LOOK"}), tab_id=tab_id, follow_up=follow_up)

    prompt, images = follow_up.await_args.args
    assert "visual snapshot" in prompt
    assert images == [report.actions[0].extracted_data]
    assert report.actions[0].extracted_data.startswith("data:image/jpeg;base64,")
    assert host.captures == [50]


@pytest.mark.asyncio
async def test_screenshot_and_write_file_go_to_downloads(dispatcher, host):
    tab_id = host.add_tab()

    report = await dispatcher.dispatch(
        plan_of(
            {"action": "SCREENSHOT"},
            {"action": "WRITE_FILE", "data": {"filename": "../../notes.md", "content": "# Notes"}},
            {"action": "WRITE_FILE", "data": {"content": "plain"}},
            {"action": "WRITE_FILE", "data": {"filename": "empty.txt"}},
        ),
        tab_id=tab_id,
    )

    assert host.captures == [60]
    (snap_name, snap_bytes), notes, plain = host.downloads
    assert snap_name.startswith("lulo-snap-") and snap_name.endswith(".jpg")
    assert snap_bytes == b"jpeg-bytes"
    assert notes == ("notes.md", "# Notes")
    assert plain == ("lulo-download.txt", "plain")
    assert [a.type for a in report.actions] == ["screenshot", "complete", "complete"]


@pytest.mark.asyncio
async def test_calendar_opens_template(dispatcher, host):
    report = await dispatcher.dispatch(
        plan_of({"action": "CALENDAR", "data": {"title": "Standup", "start": "20250101T090000Z", "end": "20250101T091500Z"}})
    )

    query = parse_qs(urlparse(host.created[0]).query)
    assert query["text"] == ["Standup"]
    assert query["dates"] == ["20250101T090000Z/20250101T091500Z"]
    assert report.actions[0].description == 'Opened Calendar for "Standup"'
    await dispatcher.drain()


@pytest.mark.asyncio
async def test_step_listeners_see_running_and_completed(dispatcher, host):
    updates = []
    dispatcher.add_step_listener(updates.append)
    dispatcher.add_step_listener(lambda update: 1 / 0)

    await dispatcher.dispatch(plan_of({"action": "THINK", "description": "Thinking"}))

    assert [(u.status, u.action, u.index) for u in updates] == [
        ("running", ActionKind.THINK, 1),
        ("completed", ActionKind.THINK, 1),
    ]


@pytest.mark.asyncio
async def test_step_listener_hears_failures(dispatcher, host):
    tab_id = host.add_tab()
    host.replies[MessageType.CLICK_ELEMENT] = RuntimeError("tab crashed")
    updates = []
    dispatcher.add_step_listener(updates.append)

    await dispatcher.dispatch(plan_of({"action": "CLICK", "data": {"selector": "#buy"}}), tab_id=tab_id)

    assert [u.status for u in updates] == ["running", "failed"]


@pytest.mark.asyncio
async def test_overlapping_dispatch_is_rejected(dispatcher, host):
    tab_id = host.add_tab()
    gate = asyncio.Event()

    async def blocked_click(message):
        await gate.wait()
        return Ack.ok()

    host.replies[MessageType.CLICK_ELEMENT] = blocked_click
    first = asyncio.ensure_future(
        dispatcher.dispatch(plan_of({"action": "CLICK", "data": {"selector": "#a"}}), tab_id=tab_id)
    )
    await asyncio.sleep(0.01)

    with pytest.raises(SessionBusyError):
        await dispatcher.dispatch(plan_of({"action": "THINK"}), tab_id=tab_id)

    gate.set()
    report = await first
    assert len(report.actions) == 1

    # Free again once the first plan finished
    await dispatcher.dispatch(Plan())
