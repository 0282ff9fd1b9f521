from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Union

from .candidates import CandidateFinder, deep_query_one
from .config import SweeperRules


# Returned by a strategy that does not apply to the candidate; not counted as an attempt.
SKIPPED = object()

Observed = Union[Optional[bool], object]


@dataclass
class ToggleOutcome:
    success: bool = False
    attempts: List[str] = field(default_factory=list)
    candidates_tried: int = 0
    strategy: str = ""


class ToggleContext:
    """Per-item view handed to strategies: environment, item, timing and state reader."""

    def __init__(
        self,
        api: Any,
        item: Any,
        rules: SweeperRules,
        sleep: Callable[[float], None],
        logger: logging.Logger,
    ) -> None:
        self.api = api
        self.item = item
        self.rules = rules
        self._sleep = sleep
        self.logger = logger

    def pause(self, ms: int) -> None:
        if ms > 0:
            self._sleep(ms / 1000.0)

    def read_state(self, node: Any) -> Optional[bool]:
        return read_toggle_state(self.api, node)

    def inner_input(self, node: Any) -> Any:
        scope = self.api.inner_scope(node)
        if scope is None:
            return None
        found = self.api.query_all(scope, self.rules.native_toggle_selector)
        return found[0] if found else None


def read_toggle_state(api: Any, node: Any) -> Optional[bool]:
    if node is None:
        return None
    aria = api.get_attribute(node, "aria-checked")
    if aria == "true":
        return True
    if aria == "false":
        return False
    if api.has_property(node, "checked"):
        return bool(api.get_property(node, "checked"))
    if api.has_attribute(node, "checked"):
        return True
    if "checked" in (api.class_names(node) or ()):
        return True
    return None


class ToggleStrategy:
    """One rung of the fallback ladder.

    ``apply`` performs the side effects and returns False when the strategy
    does not apply to the candidate; ``attempt`` waits ``settle_ms`` and
    reports the state observed afterwards, or ``SKIPPED``.
    """

    name = "strategy"

    def settle_ms(self, rules: SweeperRules) -> int:
        return rules.click_settle_ms

    def apply(self, ctx: ToggleContext, candidate: Any, desired: bool) -> bool:
        raise NotImplementedError

    def attempt(self, ctx: ToggleContext, candidate: Any, desired: bool) -> Observed:
        if not self.apply(ctx, candidate, desired):
            return SKIPPED
        ctx.pause(self.settle_ms(ctx.rules))
        return ctx.read_state(candidate)


class ClickStrategy(ToggleStrategy):
    name = "click"

    def _targets(self, ctx: ToggleContext, candidate: Any) -> List[Any]:
        api = ctx.api
        targets = [candidate]
        inner = api.inner_scope(candidate)
        for scope in (inner, candidate):
            if scope is None:
                continue
            for selector in (ctx.rules.inner_activation_selector, ctx.rules.role_toggle_selector, ctx.rules.native_toggle_selector):
                found = api.query_all(scope, selector)
                if found:
                    targets.append(found[0])
        return list(dict.fromkeys(t for t in targets if t is not None))

    def attempt(self, ctx: ToggleContext, candidate: Any, desired: bool) -> Observed:
        observed = None
        for target in self._targets(ctx, candidate):
            try:
                ctx.api.scroll_into_view(candidate)
                ctx.pause(ctx.rules.scroll_settle_ms)
                ctx.api.click(target)
                ctx.pause(ctx.rules.click_settle_ms)
                observed = ctx.read_state(candidate)
            except Exception as exc:
                ctx.logger.debug("click target failed (%s)", exc.__class__.__name__)
                continue
            if observed == desired:
                break
        return observed


class PropertyStrategy(ToggleStrategy):
    name = "property"

    def settle_ms(self, rules: SweeperRules) -> int:
        return rules.property_settle_ms

    def apply(self, ctx: ToggleContext, candidate: Any, desired: bool) -> bool:
        if not ctx.api.has_property(candidate, "checked"):
            return False
        ctx.api.set_property(candidate, "checked", desired)
        ctx.api.dispatch_event(candidate, "input")
        ctx.api.dispatch_event(candidate, "change")
        return True


class InnerInputStrategy(ToggleStrategy):
    name = "inner-input"

    def settle_ms(self, rules: SweeperRules) -> int:
        return rules.property_settle_ms

    def apply(self, ctx: ToggleContext, candidate: Any, desired: bool) -> bool:
        inner = ctx.inner_input(candidate)
        if inner is None:
            return False
        ctx.api.set_property(inner, "checked", desired)
        ctx.api.dispatch_event(inner, "input")
        ctx.api.dispatch_event(inner, "change")
        return True


class AriaStrategy(ToggleStrategy):
    name = "aria"

    def settle_ms(self, rules: SweeperRules) -> int:
        return rules.attribute_settle_ms

    def apply(self, ctx: ToggleContext, candidate: Any, desired: bool) -> bool:
        ctx.api.set_attribute(candidate, "aria-checked", "true" if desired else "false")
        ctx.api.dispatch_event(candidate, "change")
        return True


class SelectActionStrategy(ToggleStrategy):
    name = "select-action"

    def apply(self, ctx: ToggleContext, candidate: Any, desired: bool) -> bool:
        action = deep_query_one(
            ctx.api,
            ctx.item,
            [ctx.rules.select_action_selector],
            ctx.rules.discovery_max_depth,
        )
        if action is None:
            return False
        ctx.api.scroll_into_view(ctx.item)
        ctx.pause(ctx.rules.scroll_settle_ms)
        ctx.api.click(action)
        return True


class KeyboardStrategy(ToggleStrategy):
    name = "keyboard"

    def apply(self, ctx: ToggleContext, candidate: Any, desired: bool) -> bool:
        ctx.api.focus(candidate)
        ctx.pause(ctx.rules.focus_settle_ms)
        ctx.api.press_space(candidate)
        return True


def default_strategies() -> List[ToggleStrategy]:
    return [
        ClickStrategy(),
        PropertyStrategy(),
        InnerInputStrategy(),
        AriaStrategy(),
        SelectActionStrategy(),
        KeyboardStrategy(),
    ]


class ToggleController:
    def __init__(
        self,
        api: Any,
        rules: SweeperRules,
        logger: logging.Logger,
        strategies: Optional[Sequence[ToggleStrategy]] = None,
        finder: Optional[CandidateFinder] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api = api
        self.rules = rules
        self.logger = logger
        self.strategies = list(strategies) if strategies is not None else default_strategies()
        self.finder = finder or CandidateFinder(api, rules, logger.getChild("Candidates"))
        self._sleep = sleep

    def set_control_state(self, item: Any, desired: bool) -> bool:
        return self.drive(item, desired).success

    def drive(self, item: Any, desired: bool) -> ToggleOutcome:
        outcome = ToggleOutcome()
        try:
            candidates = self.finder.candidates_for(item)
        except Exception as exc:
            self.logger.debug("candidate discovery failed (%s)", exc.__class__.__name__)
            return outcome

        ctx = ToggleContext(self.api, item, self.rules, self._sleep, self.logger)
        for candidate in candidates:
            outcome.candidates_tried += 1
            try:
                if ctx.read_state(candidate) == desired:
                    outcome.success = True
                    outcome.strategy = "already"
                    return outcome
            except Exception as exc:
                self.logger.debug("state read failed (%s)", exc.__class__.__name__)

            for strategy in self.strategies:
                try:
                    observed = strategy.attempt(ctx, candidate, desired)
                except Exception as exc:
                    self.logger.debug("strategy %s failed (%s)", strategy.name, exc.__class__.__name__)
                    outcome.attempts.append(strategy.name)
                    continue
                if observed is SKIPPED:
                    continue
                outcome.attempts.append(strategy.name)
                if observed == desired:
                    outcome.success = True
                    outcome.strategy = strategy.name
                    return outcome

        if candidates:
            self.logger.debug("toggle exhausted %d candidate(s) after %d attempt(s)", len(candidates), len(outcome.attempts))
        return outcome


__all__ = [
    "SKIPPED",
    "ToggleController",
    "ToggleOutcome",
    "ToggleContext",
    "ToggleStrategy",
    "ClickStrategy",
    "PropertyStrategy",
    "InnerInputStrategy",
    "AriaStrategy",
    "SelectActionStrategy",
    "KeyboardStrategy",
    "default_strategies",
    "read_toggle_state",
]
