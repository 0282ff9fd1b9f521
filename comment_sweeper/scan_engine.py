from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .candidates import CandidateFinder, deep_query_one, is_visible
from .config import APPDATA_DIR, Blocklists, SweeperRules, SweeperSettings, consume_load_warnings
from .debounce import CoalescingTimer
from .patterns import PatternMatcher
from .signatures import is_image_blacklisted, signature_from_reference
from .toggle import ToggleController

REASON_TEXT = "text"
REASON_IMAGE = "image"


@dataclass
class ItemVerdict:
    text: str = ""
    signature: Optional[str] = None
    reasons: List[str] = field(default_factory=list)

    @property
    def flagged(self) -> bool:
        return bool(self.reasons)


@dataclass
class ScanResult:
    flagged_count: int = 0
    selected_count: int = 0


@dataclass
class EngineState:
    running: bool = False
    scanning: bool = False
    auto_scan: bool = True
    item_count: int = 0
    flagged_count: int = 0
    selected_count: int = 0
    scans_completed: int = 0
    scans_skipped: int = 0
    last_scan: float = 0.0
    last_tick: float = 0.0
    last_error: str = ""


def pick_display_text(fragments: List[str], ui_label_re: "re.Pattern[str]") -> str:
    best = ""
    for fragment in fragments:
        text = (fragment or "").strip()
        if not text or ui_label_re.match(text):
            continue
        if len(text) > len(best):
            best = text
    return best


class SweepEngine:
    def __init__(
        self,
        logger: logging.Logger,
        settings: SweeperSettings,
        rules: SweeperRules,
        api: Any,
        blacklists: Optional[Blocklists] = None,
        store: Any = None,
        controller: Optional[ToggleController] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.logger = logger.getChild("SweepEngine")
        self.settings = settings
        self.rules = rules
        self.blacklists = blacklists or Blocklists()
        self.api = api
        self.store = store
        self._clock = clock
        self._sleep = sleep
        self.finder = CandidateFinder(api, rules, self.logger.getChild("Candidates"))
        self.controller = controller or ToggleController(
            api,
            rules,
            self.logger.getChild("Toggle"),
            finder=self.finder,
            sleep=sleep,
        )
        self._ui_label_re = re.compile(rules.ui_label_pattern, re.IGNORECASE)
        self._debouncer = CoalescingTimer(self._debounced_scan, rules.rescan_quiet_ms / 1000.0, clock=clock)

        self._state = EngineState(auto_scan=self.settings.auto_scan)
        self._state_lock = threading.Lock()
        self._data_lock = threading.Lock()
        self._io_lock = threading.RLock()
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._watch_thread: Optional[threading.Thread] = None

        self._subscribed = False
        self._flagged_items: List[Any] = []
        self._unsubscribe_store: Optional[Callable[[], None]] = None
        self._last_log: Dict[str, float] = {}
        self._store_stamp: Any = self._read_store_stamp()

    @property
    def state(self) -> EngineState:
        with self._state_lock:
            return EngineState(**asdict(self._state))

    @property
    def debouncer(self) -> CoalescingTimer:
        return self._debouncer

    def start(self) -> None:
        with self._state_lock:
            if self._state.running:
                return
            self._state.running = True
            self._state.last_error = ""
        if self.store is not None and self._unsubscribe_store is None:
            self._unsubscribe_store = self.store.subscribe(self.on_blacklist_updated)
        self._stop_event.clear()
        self._wake_event.clear()
        self._watch_thread = threading.Thread(target=self._watch_loop, name="CommentSweeperWatch", daemon=True)
        self._watch_thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self._watch_thread and self._watch_thread.is_alive():
            self._watch_thread.join(timeout=5.0)
        self._watch_thread = None
        if self._unsubscribe_store is not None:
            self._unsubscribe_store()
            self._unsubscribe_store = None
        self._unsubscribe_changes()
        with self._state_lock:
            self._state.running = False

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until ``stop`` is called; returns True once stopped."""
        return self._stop_event.wait(timeout)

    def report_warning(self, message: str) -> None:
        if not message:
            return
        with self._state_lock:
            self._state.last_error = message
            self._state.last_tick = time.time()

    # --- state -------------------------------------------------------------

    def reload_state(self) -> bool:
        if self.store is None:
            return False
        # Stamp before reading so a write racing the read is seen on the next tick.
        self._store_stamp = self._read_store_stamp()
        try:
            loaded = self.store.get_state()
            settings = loaded.settings
            blacklists = loaded.blacklists
            if not isinstance(settings, SweeperSettings) or not isinstance(blacklists, Blocklists):
                raise TypeError("store returned malformed state")
        except Exception as exc:
            self.logger.warning("State reload failed, keeping last known state (%s: %s)", exc.__class__.__name__, exc)
            self.report_warning(f"state reload failed: {exc.__class__.__name__}")
            return False
        for warning in consume_load_warnings():
            self.logger.warning(warning)
        with self._data_lock:
            self.settings = settings
            self.blacklists = blacklists
        with self._state_lock:
            running = self._state.running
        if running and settings.auto_scan != self._subscribed:
            self.set_auto_scan(settings.auto_scan)
        return True

    def on_blacklist_updated(self, kind: str) -> None:
        self.logger.info("Blacklist updated: %s. Rescanning", kind)
        self.reload_state()
        self.scan()

    def _read_store_stamp(self) -> Any:
        if self.store is None:
            return None
        try:
            return self.store.stamp()
        except Exception as exc:
            self.logger.debug("store stamp failed (%s)", exc.__class__.__name__)
            return None

    def _check_store_files(self) -> None:
        """Pick up block-list edits written by another process (the CLI store commands)."""
        if self.store is None:
            return
        stamp = self._read_store_stamp()
        if stamp is None or stamp == self._store_stamp:
            return
        previous = self._store_stamp or {}
        changed = sorted(k for k in stamp if stamp.get(k) != previous.get(k))
        self.on_blacklist_updated(",".join(changed))

    def set_auto_scan(self, enabled: bool) -> None:
        enabled_value = bool(enabled)
        with self._data_lock:
            self.settings.auto_scan = enabled_value
        with self._state_lock:
            self._state.auto_scan = enabled_value
        if enabled_value:
            self._subscribe_changes()
        else:
            self._unsubscribe_changes()
            self._debouncer.cancel()
        self._wake_event.set()

    def _subscribe_changes(self) -> None:
        with self._io_lock:
            if self._subscribed:
                return
            try:
                self.api.subscribe_changes()
            except Exception as exc:
                self._set_error(f"subscribe: {exc.__class__.__name__}")
                return
            self._subscribed = True

    def _unsubscribe_changes(self) -> None:
        with self._io_lock:
            if not self._subscribed:
                return
            self._subscribed = False
            try:
                self.api.unsubscribe_changes()
            except Exception as exc:
                self.logger.debug("unsubscribe failed (%s)", exc.__class__.__name__)

    # --- enumeration -------------------------------------------------------

    def wait_for_list_root(self, timeout: Optional[float] = None) -> Any:
        """Block until the comment list has rendered. Only delays the first scan."""
        limit = self.rules.root_wait_timeout_seconds if timeout is None else timeout
        deadline = self._clock() + limit
        while True:
            with self._io_lock:
                for selector in self.rules.list_root_selectors:
                    try:
                        found = self.api.query_all(self.api.document_root(), selector)
                    except Exception as exc:
                        self.logger.debug("root query failed (%s)", exc.__class__.__name__)
                        continue
                    if found:
                        return found[0]
            if self._clock() >= deadline or self._stop_event.is_set():
                break
            self._sleep(self.rules.root_poll_interval_seconds)
        self.logger.info("Comment list not found after %.1fs, scanning the whole document", limit)
        return self.api.document_root()

    def find_items(self, root: Any = None) -> List[Any]:
        # The list container is re-rendered on navigation, so every pass starts from the document.
        scope = root if root is not None else self.api.document_root()
        found: Dict[Any, None] = {}
        for selector in self.rules.item_selectors:
            for element in self.api.query_all(scope, selector) or []:
                found.setdefault(element, None)
        for element in self.api.query_all(scope, self.rules.list_item_selector) or []:
            if element in found:
                continue
            if deep_query_one(self.api, element, self.rules.toggle_selectors, self.rules.discovery_max_depth):
                found.setdefault(element, None)
        return [el for el in found if is_visible(self.api, el)]

    def extract_text(self, item: Any) -> str:
        fragments = self.api.text_fragments(item, self.rules.text_selector) or []
        return pick_display_text(list(fragments), self._ui_label_re)

    def extract_signature(self, item: Any) -> Optional[str]:
        source = self.api.image_source(item, self.rules.avatar_selector)
        if not source:
            return None
        return signature_from_reference(source) or None

    def classify(
        self,
        item: Any,
        settings: Optional[SweeperSettings] = None,
        blacklists: Optional[Blocklists] = None,
        matcher: Optional[PatternMatcher] = None,
    ) -> ItemVerdict:
        settings = settings or self.settings
        blacklists = blacklists or self.blacklists
        if matcher is None:
            matcher = PatternMatcher(blacklists.texts, settings.threshold)
        verdict = ItemVerdict()
        if settings.scan_text:
            verdict.text = self.extract_text(item)
            if verdict.text and matcher.matches(verdict.text):
                verdict.reasons.append(REASON_TEXT)
        if settings.scan_images:
            verdict.signature = self.extract_signature(item)
            if is_image_blacklisted(verdict.signature, frozenset(blacklists.images)):
                verdict.reasons.append(REASON_IMAGE)
        return verdict

    # --- scanning ----------------------------------------------------------

    def scan(self) -> Optional[ScanResult]:
        """Run one pass; returns None when another pass is already in flight."""
        with self._state_lock:
            if self._state.scanning:
                self._state.scans_skipped += 1
                return None
            self._state.scanning = True
        try:
            with self._io_lock:
                return self._scan_items()
        finally:
            with self._state_lock:
                self._state.scanning = False

    def _scan_items(self) -> ScanResult:
        with self._data_lock:
            settings = self.settings
            blacklists = self.blacklists
        matcher = PatternMatcher(blacklists.texts, settings.threshold)
        try:
            items = self.find_items()
        except Exception as exc:
            self._set_error(f"scan: {exc.__class__.__name__}: {exc}")
            items = []

        result = ScanResult()
        flagged_items: List[Any] = []
        for item in items:
            try:
                self.api.unmark_item(item)
                verdict = self.classify(item, settings, blacklists, matcher)
            except Exception as exc:
                self.logger.debug("item skipped (%s)", exc.__class__.__name__)
                continue
            if not verdict.flagged:
                continue
            result.flagged_count += 1
            flagged_items.append(item)
            try:
                self.api.mark_item(item, list(verdict.reasons))
            except Exception as exc:
                self.logger.debug("mark failed (%s)", exc.__class__.__name__)
            if settings.auto_select and self.controller.set_control_state(item, True):
                result.selected_count += 1

        with self._data_lock:
            self._flagged_items = flagged_items
        now = time.time()
        with self._state_lock:
            self._state.item_count = len(items)
            self._state.flagged_count = result.flagged_count
            self._state.selected_count = result.selected_count
            self._state.scans_completed += 1
            self._state.last_scan = now
            self._state.last_tick = now
        self.logger.info(
            "Scan finished: items=%d flagged=%d selected=%d",
            len(items),
            result.flagged_count,
            result.selected_count,
        )
        return result

    def select_flagged(self, desired: bool = True) -> int:
        with self._data_lock:
            items = list(self._flagged_items)
        changed = 0
        with self._io_lock:
            for item in items:
                if self.controller.set_control_state(item, desired):
                    changed += 1
        with self._state_lock:
            self._state.selected_count = changed if desired else 0
        self.logger.info("%s %d of %d flagged item(s)", "Selected" if desired else "Unselected", changed, len(items))
        return changed

    # --- watch loop --------------------------------------------------------

    def _debounced_scan(self) -> None:
        self.scan()

    def _poll_interval_seconds(self) -> float:
        return max(int(self.settings.poll_interval_ms), 50) / 1000.0

    def _wait_next_tick(self, timeout: float) -> None:
        if timeout <= 0:
            return
        self._wake_event.wait(timeout)
        self._wake_event.clear()

    def _watch_loop(self) -> None:
        try:
            self.wait_for_list_root()
            self.scan()
        except Exception as e:
            self._set_error(f"initial scan: {e}")
        if self.settings.auto_scan:
            self._subscribe_changes()

        while not self._stop_event.is_set():
            try:
                self._watch_once()
            except Exception as e:
                self._set_error(f"watch: {e}")
            interval = self._poll_interval_seconds()
            due = self._debouncer.time_until_due()
            if due is not None:
                interval = min(interval, due)
            self._wait_next_tick(interval)

    def _watch_once(self) -> None:
        self._check_store_files()
        if self._subscribed:
            with self._io_lock:
                changes = self.api.poll_changes()
            if changes:
                self._debouncer.notify()
        self._debouncer.poll()
        with self._state_lock:
            self._state.last_tick = time.time()

    def _set_error(self, message: str) -> None:
        now = time.time()
        last = self._last_log.get(message, 0.0)
        if now - last >= self.rules.log_rate_limit_seconds:
            self._last_log[message] = now
            self.logger.error(message)
        with self._state_lock:
            self._state.last_error = message
            self._state.last_tick = now

    # --- diagnostics -------------------------------------------------------

    def dump_items(self, out_dir: Optional[str] = None) -> Optional[str]:
        with self._io_lock:
            items = self.find_items()
            if not items:
                return None
            entries = []
            for index, item in enumerate(items):
                verdict = self.classify(item)
                entries.append(
                    {
                        "index": index,
                        "text": verdict.text,
                        "signature": verdict.signature,
                        "reasons": verdict.reasons,
                        "candidates": len(self.finder.candidates_for(item)),
                    }
                )
        data = {
            "timestamp": datetime.now().isoformat(),
            "threshold": self.settings.threshold,
            "items": entries,
        }
        dump_dir = out_dir or APPDATA_DIR
        os.makedirs(dump_dir, exist_ok=True)
        path = os.path.join(dump_dir, f"item_dump_{datetime.now().strftime('%Y%m%d-%H%M%S')}.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        return path


__all__ = ["SweepEngine", "EngineState", "ScanResult", "ItemVerdict", "pick_display_text", "REASON_TEXT", "REASON_IMAGE"]
