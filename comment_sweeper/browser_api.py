from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple

from selenium import webdriver
from selenium.common.exceptions import NoSuchShadowRootException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.common.action_chains import ActionChains
from selenium.webdriver.common.by import By
from selenium.webdriver.common.keys import Keys
from selenium.webdriver.remote.webelement import WebElement

Rect = Tuple[int, int, int, int]

FLAG_CLASS = "sweeper-flagged"
FLAG_ATTRIBUTE = "data-sweeper-reasons"

_INSTALL_OBSERVER_JS = """
if (!window.__sweeperObserver) {
  window.__sweeperMutations = 0;
  window.__sweeperObserver = new MutationObserver(function () { window.__sweeperMutations += 1; });
  window.__sweeperObserver.observe(document.documentElement, {childList: true, subtree: true});
}
return true;
"""

_REMOVE_OBSERVER_JS = """
if (window.__sweeperObserver) { window.__sweeperObserver.disconnect(); }
window.__sweeperObserver = null;
window.__sweeperMutations = 0;
return true;
"""

# Reading and resetting in one script keeps bursts between polls from being lost.
_TAKE_MUTATIONS_JS = """
var n = window.__sweeperMutations || 0;
window.__sweeperMutations = 0;
return n;
"""

_TEXT_FRAGMENTS_JS = """
return Array.from(arguments[0].querySelectorAll(arguments[1]))
  .map(function (el) { return (el.innerText || '').trim(); });
"""

_IMAGE_SOURCE_JS = """
var img = arguments[0].querySelector(arguments[1]);
return img ? (img.currentSrc || img.src || null) : null;
"""

_CHILDREN_JS = "return Array.from(arguments[0].children || []);"
_CLOSEST_JS = "return arguments[0].closest ? arguments[0].closest(arguments[1]) : null;"
_HAS_PROPERTY_JS = "return arguments[0] != null && (arguments[1] in arguments[0]);"
_SET_PROPERTY_JS = "arguments[0][arguments[1]] = arguments[2];"
_SET_ATTRIBUTE_JS = "arguments[0].setAttribute(arguments[1], arguments[2]);"
_DISPATCH_JS = "arguments[0].dispatchEvent(new Event(arguments[1], {bubbles: true}));"
_CLICK_JS = "arguments[0].click();"
_FOCUS_JS = "if (arguments[0].focus) { arguments[0].focus(); }"
_SCROLL_JS = "arguments[0].scrollIntoView({block: 'center', inline: 'center', behavior: 'instant'});"
_MARK_JS = """
arguments[0].classList.add(arguments[1]);
arguments[0].setAttribute(arguments[2], arguments[3]);
"""
_UNMARK_JS = """
arguments[0].classList.remove(arguments[1]);
arguments[0].removeAttribute(arguments[2]);
"""


def create_driver(headless: bool = False, profile_dir: Optional[str] = None) -> webdriver.Chrome:
    options = Options()
    options.add_argument("--disable-dev-shm-usage")
    options.add_argument("--no-sandbox")
    if profile_dir:
        options.add_argument(f"--user-data-dir={profile_dir}")
    if headless:
        options.add_argument("--headless=new")
    else:
        options.add_argument("--start-maximized")
    return webdriver.Chrome(options=options)


class BrowserAPI:
    """Environment binding over a Selenium ``WebDriver``.

    Scopes are ``WebElement`` or shadow-root handles; both answer CSS queries.
    """

    def __init__(self, driver: Any) -> None:
        self.driver = driver

    def open(self, url: str) -> None:
        self.driver.get(url)

    def _script(self, script: str, *args: Any) -> Any:
        return self.driver.execute_script(script, *args)

    # --- tree --------------------------------------------------------------

    def document_root(self) -> Any:
        return self._script("return document.documentElement;")

    def query_all(self, scope: Any, selector: str) -> List[Any]:
        return list(scope.find_elements(By.CSS_SELECTOR, selector))

    def children(self, node: Any) -> List[Any]:
        return list(self._script(_CHILDREN_JS, node) or [])

    def inner_scope(self, node: Any) -> Any:
        if not isinstance(node, WebElement):
            return None
        try:
            return node.shadow_root
        except NoSuchShadowRootException:
            return None

    def closest(self, node: Any, selector: str) -> Any:
        if not isinstance(node, WebElement):
            return None
        return self._script(_CLOSEST_JS, node, selector)

    def get_rect(self, node: Any) -> Optional[Rect]:
        if not isinstance(node, WebElement):
            return None
        rect = node.rect or {}
        x = int(rect.get("x", 0))
        y = int(rect.get("y", 0))
        return (x, y, x + int(rect.get("width", 0)), y + int(rect.get("height", 0)))

    def tag_name(self, node: Any) -> str:
        return node.tag_name if isinstance(node, WebElement) else ""

    # --- attributes and properties -----------------------------------------

    def get_attribute(self, node: Any, name: str) -> Optional[str]:
        if not isinstance(node, WebElement):
            return None
        return node.get_dom_attribute(name)

    def has_attribute(self, node: Any, name: str) -> bool:
        return self.get_attribute(node, name) is not None

    def set_attribute(self, node: Any, name: str, value: str) -> None:
        self._script(_SET_ATTRIBUTE_JS, node, name, value)

    def has_property(self, node: Any, name: str) -> bool:
        return bool(self._script(_HAS_PROPERTY_JS, node, name))

    def get_property(self, node: Any, name: str) -> Any:
        return node.get_property(name)

    def set_property(self, node: Any, name: str, value: Any) -> None:
        self._script(_SET_PROPERTY_JS, node, name, value)

    def class_names(self, node: Any) -> Sequence[str]:
        return (self.get_attribute(node, "class") or "").split()

    # --- activation --------------------------------------------------------

    def click(self, node: Any) -> None:
        self._script(_CLICK_JS, node)

    def dispatch_event(self, node: Any, event_type: str) -> None:
        self._script(_DISPATCH_JS, node, event_type)

    def scroll_into_view(self, node: Any) -> None:
        self._script(_SCROLL_JS, node)

    def focus(self, node: Any) -> None:
        self._script(_FOCUS_JS, node)

    def press_space(self, node: Any) -> None:
        ActionChains(self.driver).key_down(Keys.SPACE).key_up(Keys.SPACE).perform()

    # --- item content ------------------------------------------------------

    def text_fragments(self, item: Any, selector: str) -> List[str]:
        return [str(t) for t in (self._script(_TEXT_FRAGMENTS_JS, item, selector) or [])]

    def image_source(self, item: Any, selector: str) -> Optional[str]:
        source = self._script(_IMAGE_SOURCE_JS, item, selector)
        return str(source) if source else None

    def mark_item(self, item: Any, reasons: List[str]) -> None:
        self._script(_MARK_JS, item, FLAG_CLASS, FLAG_ATTRIBUTE, " + ".join(reasons))

    def unmark_item(self, item: Any) -> None:
        self._script(_UNMARK_JS, item, FLAG_CLASS, FLAG_ATTRIBUTE)

    # --- structural change notifications -----------------------------------

    def subscribe_changes(self) -> None:
        self._script(_INSTALL_OBSERVER_JS)

    def unsubscribe_changes(self) -> None:
        try:
            self._script(_REMOVE_OBSERVER_JS)
        except WebDriverException:
            # The window may already be gone during shutdown.
            pass

    def poll_changes(self) -> int:
        # A navigation drops the page-side observer; reinstall it so the stream keeps flowing.
        count = self._script(
            "if (!window.__sweeperObserver) { return -1; }" + _TAKE_MUTATIONS_JS
        )
        if count is None or int(count) < 0:
            self._script(_INSTALL_OBSERVER_JS)
            return 1
        return int(count)


__all__ = ["BrowserAPI", "create_driver", "FLAG_CLASS", "FLAG_ATTRIBUTE"]
