import logging

from fakes import (
    FakeBrowser,
    FakeNode,
    clickable_checkbox,
    comment_row,
    inner_input_checkbox,
    page_with_rows,
    stubborn_checkbox,
)

from comment_sweeper.config import SweeperRules
from comment_sweeper.toggle import (
    SKIPPED,
    ClickStrategy,
    ToggleController,
    ToggleStrategy,
    default_strategies,
    read_toggle_state,
)


def _controller(api, strategies=None, sleeps=None):
    recorder = sleeps if sleeps is not None else []
    return ToggleController(
        api,
        SweeperRules(),
        logging.getLogger("test"),
        strategies=strategies,
        sleep=recorder.append,
    )


def _single_row(checkbox, text="spam"):
    row = comment_row(text, checkbox=checkbox)
    return row, FakeBrowser(page_with_rows([row]))


class ScriptedStrategy(ToggleStrategy):
    def __init__(self, name, result):
        self.name = name
        self.result = result
        self.calls = 0

    def attempt(self, ctx, candidate, desired):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def test_default_strategy_order():
    assert [s.name for s in default_strategies()] == [
        "click",
        "property",
        "inner-input",
        "aria",
        "select-action",
        "keyboard",
    ]


def test_read_toggle_state_cascade():
    api = FakeBrowser()
    assert read_toggle_state(api, FakeNode("div", {"aria-checked": "true"})) is True
    assert read_toggle_state(api, FakeNode("div", {"aria-checked": "false"}, props={"checked": True})) is False
    assert read_toggle_state(api, FakeNode("input", props={"checked": True})) is True
    assert read_toggle_state(api, FakeNode("input", {"checked": ""})) is True
    assert read_toggle_state(api, FakeNode("div", {"class": "box checked"})) is True
    assert read_toggle_state(api, FakeNode("div")) is None
    assert read_toggle_state(api, None) is None


def test_plain_click_selects_item():
    box = clickable_checkbox()
    row, api = _single_row(box)
    sleeps = []

    outcome = _controller(api, sleeps=sleeps).drive(row, True)

    assert outcome.success is True
    assert outcome.strategy == "click"
    assert outcome.attempts == ["click"]
    assert box.attrs["aria-checked"] == "true"
    assert sleeps == [0.03, 0.05]


def test_already_in_desired_state_performs_no_activation():
    row, api = _single_row(clickable_checkbox(checked=True))

    outcome = _controller(api).drive(row, True)

    assert outcome.success is True
    assert outcome.strategy == "already"
    assert outcome.attempts == []
    assert api.clicks() == []


def test_unselect_reverses_state():
    box = clickable_checkbox(checked=True)
    row, api = _single_row(box)

    assert _controller(api).set_control_state(row, False) is True
    assert box.attrs["aria-checked"] == "false"


def test_inner_input_host_needs_three_attempts():
    box = inner_input_checkbox()
    row, api = _single_row(box)

    outcome = _controller(api).drive(row, True)

    assert outcome.success is True
    assert outcome.attempts == ["click", "property", "inner-input"]
    assert outcome.strategy == "inner-input"
    assert box.attrs["aria-checked"] == "true"


def test_third_strategy_success_counts_three_attempts():
    row, api = _single_row(stubborn_checkbox())
    scripted = [
        ScriptedStrategy("first", False),
        ScriptedStrategy("second", False),
        ScriptedStrategy("third", True),
        ScriptedStrategy("fourth", True),
    ]

    outcome = _controller(api, strategies=scripted).drive(row, True)

    assert outcome.success is True
    assert outcome.attempts == ["first", "second", "third"]
    assert scripted[3].calls == 0


def test_skipped_strategies_are_not_counted():
    row, api = _single_row(stubborn_checkbox())
    scripted = [ScriptedStrategy("n/a", SKIPPED), ScriptedStrategy("works", True)]

    outcome = _controller(api, strategies=scripted).drive(row, True)

    assert outcome.attempts == ["works"]


def test_stubborn_control_exhausts_applicable_strategies():
    box = stubborn_checkbox()
    row, api = _single_row(box)

    outcome = _controller(api).drive(row, True)

    assert outcome.success is False
    assert outcome.attempts == ["click", "aria", "keyboard"]
    assert outcome.candidates_tried == 1
    assert box.attrs["aria-checked"] == "false"


def test_select_action_button_is_used():
    box = stubborn_checkbox()
    row, api = _single_row(box)
    button = FakeNode("button", {"aria-label": "Select comment"})
    button.on("click", lambda _n: box.attrs.__setitem__("aria-checked", "true"))
    row.children[0].append(button)

    outcome = _controller(api).drive(row, True)

    assert outcome.success is True
    assert outcome.attempts == ["click", "aria", "select-action"]
    assert ("scroll", row) in api.calls


def test_keyboard_fallback():
    box = stubborn_checkbox()
    box.on("keyup", lambda n: n.attrs.__setitem__("aria-checked", "true"))
    row, api = _single_row(box)

    outcome = _controller(api).drive(row, True)

    assert outcome.success is True
    assert outcome.strategy == "keyboard"
    assert ("focus", box) in api.calls
    assert ("space", box) in api.calls


def test_click_falls_through_to_inner_activation_target():
    host = FakeNode("ytcp-checkbox", {"aria-checked": "false"})
    inner = FakeNode("div", {"id": "checkbox"})
    inner.on("click", lambda _n: host.attrs.__setitem__("aria-checked", "true"))
    host.attach_shadow(inner)
    row, api = _single_row(host)

    outcome = _controller(api).drive(row, True)

    assert outcome.success is True
    assert outcome.attempts == ["click"]
    assert api.clicks() == [host, inner]


def test_raising_strategy_is_recorded_and_skipped():
    row, api = _single_row(clickable_checkbox())
    strategies = [ScriptedStrategy("boom", RuntimeError("detached")), ClickStrategy()]

    outcome = _controller(api, strategies=strategies).drive(row, True)

    assert outcome.success is True
    assert outcome.attempts == ["boom", "click"]


def test_environment_failures_never_propagate():
    class BrokenBrowser(FakeBrowser):
        def get_attribute(self, node, name):
            raise RuntimeError("stale element")

        def click(self, node):
            raise RuntimeError("stale element")

    row = comment_row("spam", checkbox=clickable_checkbox())
    api = BrokenBrowser(page_with_rows([row]))

    outcome = _controller(api).drive(row, True)

    assert outcome.success is False
    assert outcome.candidates_tried == 1


def test_no_candidates_reports_failure():
    row, api = _single_row(None)

    outcome = _controller(api).drive(row, True)

    assert outcome.success is False
    assert outcome.candidates_tried == 0
    assert outcome.attempts == []
