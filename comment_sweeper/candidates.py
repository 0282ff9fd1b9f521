from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .config import SweeperRules

Rect = Tuple[int, int, int, int]

SCORE_TOGGLE_COMPONENT = 3
SCORE_ROLE_ATTRIBUTE = 2
SCORE_NATIVE_INPUT = 1


def _rect_width(rect: Rect) -> int:
    return rect[2] - rect[0]


def _rect_height(rect: Rect) -> int:
    return rect[3] - rect[1]


def deep_query_all(
    api: Any,
    root: Any,
    selectors: Sequence[str],
    max_depth: int = 3,
    logger: Optional[logging.Logger] = None,
) -> List[Any]:
    """Collect matches for ``selectors`` under ``root``, crossing inner scopes.

    Each visited node is queried with every selector; children and the inner
    scope of a node (a shadow root in a browser) are visited until
    ``max_depth``. Results keep discovery order and contain each element once.
    """
    found: Dict[Any, None] = {}
    stack: List[Tuple[Any, int]] = [(root, 0)]
    while stack:
        node, depth = stack.pop()
        if node is None:
            continue
        for selector in selectors:
            try:
                matches = api.query_all(node, selector) or []
            except Exception as exc:
                if logger:
                    logger.debug("query_all(%s) failed (%s)", selector, exc.__class__.__name__)
                continue
            for element in matches:
                found.setdefault(element, None)
        if depth >= max_depth:
            continue
        try:
            children = list(api.children(node) or [])
            inner = api.inner_scope(node)
        except Exception as exc:
            if logger:
                logger.debug("tree walk failed (%s)", exc.__class__.__name__)
            continue
        for child in reversed(children):
            stack.append((child, depth + 1))
        if inner is not None:
            stack.append((inner, depth + 1))
    return list(found)


def deep_query_one(api: Any, root: Any, selectors: Sequence[str], max_depth: int = 3) -> Optional[Any]:
    matches = deep_query_all(api, root, selectors, max_depth)
    return matches[0] if matches else None


def is_visible(api: Any, node: Any) -> bool:
    try:
        rect = api.get_rect(node)
    except Exception:
        return False
    if not rect:
        return False
    return _rect_width(rect) > 0 and _rect_height(rect) > 0


class CandidateFinder:
    def __init__(self, api: Any, rules: SweeperRules, logger: logging.Logger) -> None:
        self.api = api
        self.rules = rules
        self.logger = logger
        self._component_tags = frozenset(t.lower() for t in rules.toggle_component_tags)

    def item_scope(self, item: Any) -> Any:
        try:
            return self.api.closest(item, self.rules.thread_selector) or item
        except Exception:
            return item

    def score(self, node: Any) -> int:
        try:
            tag = (self.api.tag_name(node) or "").lower()
            if tag in self._component_tags:
                return SCORE_TOGGLE_COMPONENT
            if self.api.get_attribute(node, "role") == "checkbox":
                return SCORE_ROLE_ATTRIBUTE
            if tag == "input" and (self.api.get_attribute(node, "type") or "").lower() == "checkbox":
                return SCORE_NATIVE_INPUT
        except Exception as exc:
            self.logger.debug("score failed (%s)", exc.__class__.__name__)
        return 0

    def discover(self, scope: Any) -> List[Any]:
        found = deep_query_all(
            self.api,
            scope,
            self.rules.toggle_selectors,
            self.rules.discovery_max_depth,
            logger=self.logger,
        )
        visible = [el for el in found if is_visible(self.api, el)]
        # sorted() is stable, so equal scores keep discovery order.
        return sorted(visible, key=self.score, reverse=True)

    def candidates_for(self, item: Any) -> List[Any]:
        return self.discover(self.item_scope(item))


__all__ = [
    "CandidateFinder",
    "deep_query_all",
    "deep_query_one",
    "is_visible",
    "SCORE_TOGGLE_COMPONENT",
    "SCORE_ROLE_ATTRIBUTE",
    "SCORE_NATIVE_INPUT",
]
