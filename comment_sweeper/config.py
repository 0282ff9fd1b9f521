from __future__ import annotations

import json
import os
import re
import shutil
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, List

from .patterns import MAX_PATTERN_LENGTH, normalize_text
from .signatures import signature_from_reference

VERSION = "1.2.0"
APP_NAME = "Comment Sweeper"
APPDATA_DIRNAME = "CommentSweeper"

_LOAD_WARNINGS: List[str] = []
_LOAD_WARNINGS_LOCK = threading.Lock()


def _push_load_warning(message: str) -> None:
    with _LOAD_WARNINGS_LOCK:
        _LOAD_WARNINGS.append(message)


def consume_load_warnings() -> List[str]:
    with _LOAD_WARNINGS_LOCK:
        out = list(_LOAD_WARNINGS)
        _LOAD_WARNINGS.clear()
        return out


def get_app_data_dir() -> str:
    base = os.environ.get("APPDATA") or os.environ.get("XDG_CONFIG_HOME")
    if not base:
        base = str(Path.home() / ".config")
    path = Path(base) / APPDATA_DIRNAME
    path.mkdir(parents=True, exist_ok=True)
    return str(path)


APPDATA_DIR = get_app_data_dir()
SETTINGS_FILE = os.path.join(APPDATA_DIR, "sweeper_settings.json")
RULES_FILE = os.path.join(APPDATA_DIR, "sweeper_rules.json")
BLOCKLIST_FILE = os.path.join(APPDATA_DIR, "blocklists.json")
LOG_FILE = os.path.join(APPDATA_DIR, "comment_sweeper.log")

BROKEN_BACKUP_KEEP_COUNT = 10
BROKEN_BACKUP_MAX_AGE_DAYS = 30
_BACKUP_STAMP_FORMAT = "%Y%m%d-%H%M%S"
_BROKEN_SUFFIX_RE = re.compile(r"\.broken-(\d{8}-\d{6})$")


def _clamp(value: Any, minimum: Any = None, maximum: Any = None) -> Any:
    if minimum is not None and value < minimum:
        return minimum
    if maximum is not None and value > maximum:
        return maximum
    return value


def _coerce_bool(value: Any, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _coerce_int(value: Any, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    number = value if isinstance(value, int) and not isinstance(value, bool) else default
    return _clamp(number, minimum, maximum)


def _coerce_float(value: Any, default: float, minimum: float | None = None, maximum: float | None = None) -> float:
    is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
    return _clamp(float(value if is_number else default), minimum, maximum)


def _coerce_str(value: Any, default: str) -> str:
    return value if isinstance(value, str) else default


def _coerce_str_list(value: Any, default: List[str]) -> List[str]:
    items = [x for x in value if isinstance(x, str) and x.strip()] if isinstance(value, list) else []
    return items or list(default)


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


def _backup_broken_json(path: str, label: str, reason: str) -> None:
    if not os.path.exists(path):
        return
    backup_path = f"{path}.broken-{datetime.now().strftime(_BACKUP_STAMP_FORMAT)}"
    try:
        shutil.copy2(path, backup_path)
        outcome = f"Backup written to {backup_path}"
    except OSError as exc:
        outcome = f"Backup failed ({exc.__class__.__name__})"
    _push_load_warning(f"{label} is corrupted: {reason}. {outcome}. Using defaults.")
    _prune_broken_backups(path, label)


def _backup_age_key(backup: Path) -> datetime:
    match = _BROKEN_SUFFIX_RE.search(backup.name)
    if match:
        try:
            return datetime.strptime(match.group(1), _BACKUP_STAMP_FORMAT)
        except ValueError:
            pass
    try:
        return datetime.fromtimestamp(backup.stat().st_mtime)
    except OSError:
        return datetime.min


def _prune_broken_backups(path: str, label: str) -> None:
    """Keep the newest backups inside the retention window; delete the rest."""
    target = Path(path)
    cutoff = datetime.now() - timedelta(days=BROKEN_BACKUP_MAX_AGE_DAYS)
    try:
        backups = sorted(target.parent.glob(f"{target.name}.broken-*"), key=_backup_age_key, reverse=True)
    except OSError as exc:
        _push_load_warning(f"{label} backup cleanup failed ({exc.__class__.__name__}).")
        return
    for rank, backup in enumerate(backups):
        if rank < BROKEN_BACKUP_KEEP_COUNT and _backup_age_key(backup) >= cutoff:
            continue
        try:
            backup.unlink()
        except OSError as exc:
            _push_load_warning(f"{label} backup cleanup failed: {backup.name} ({exc.__class__.__name__})")


def _load_json_object(path: str, label: str) -> dict[str, Any] | None:
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        return None
    except Exception as exc:
        _backup_broken_json(path, label, f"JSON parse failed ({exc.__class__.__name__})")
        return None
    if not isinstance(raw, dict):
        _backup_broken_json(path, label, "top-level value is not an object")
        return None
    return raw


def _write_json(path: str, payload: Dict[str, Any]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)


@dataclass
class SweeperSettings:
    threshold: int = 5
    scan_text: bool = True
    scan_images: bool = True
    auto_scan: bool = True
    auto_select: bool = True
    poll_interval_ms: int = 100
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], base: "SweeperSettings | None" = None) -> "SweeperSettings":
        """Merge ``raw`` over ``base`` (built-in defaults when omitted)."""
        defaults = base or cls()
        return cls(
            threshold=_coerce_int(raw.get("threshold"), defaults.threshold, minimum=0, maximum=20),
            scan_text=_coerce_bool(raw.get("scan_text"), defaults.scan_text),
            scan_images=_coerce_bool(raw.get("scan_images"), defaults.scan_images),
            auto_scan=_coerce_bool(raw.get("auto_scan"), defaults.auto_scan),
            auto_select=_coerce_bool(raw.get("auto_select"), defaults.auto_select),
            poll_interval_ms=_coerce_int(raw.get("poll_interval_ms"), defaults.poll_interval_ms, minimum=50, maximum=5000),
            log_level=_coerce_str(raw.get("log_level"), defaults.log_level).upper(),
        )

    @classmethod
    def load(cls, path: str = SETTINGS_FILE) -> "SweeperSettings":
        raw = _load_json_object(path, "sweeper_settings.json")
        if raw is None:
            return cls()
        return cls.from_dict(raw)

    def save(self, path: str = SETTINGS_FILE) -> None:
        _write_json(path, asdict(self))

    @classmethod
    def default_json(cls) -> str:
        return json.dumps(asdict(cls()), indent=2, ensure_ascii=False)


@dataclass
class SweeperRules:
    list_root_selectors: List[str] = field(
        default_factory=lambda: [
            "ytcp-comments",
            "ytcp-threads-list",
            "ytcp-comment-thread",
            "[page-type='comments']",
        ]
    )
    item_selectors: List[str] = field(
        default_factory=lambda: ["ytcp-comment-thread", "ytcp-comment", "ytcp-translated-comment"]
    )
    list_item_selector: str = "[role='listitem']"
    thread_selector: str = "ytcp-comment-thread"
    toggle_component_tags: List[str] = field(default_factory=lambda: ["ytcp-checkbox", "tp-yt-paper-checkbox"])
    role_toggle_selector: str = "[role='checkbox']"
    native_toggle_selector: str = "input[type='checkbox']"
    inner_activation_selector: str = "#checkbox"
    select_action_selector: str = "[aria-label*='Select'], button[aria-label*='Select']"
    text_selector: str = (
        "yt-formatted-string, #content-text, .content-text, [slot='comment'], "
        "[slot='comment-body'], .comment-text, p, span"
    )
    ui_label_pattern: str = r"^(reply|like|dislike|heart|translate|filter)"
    avatar_selector: str = (
        "img[src*='yt3.ggpht.com'], img[src*='yt3.googleusercontent.com'], "
        "img[src*='ytimg.com'], yt-img-shadow img, a[href*='channel'] img"
    )
    discovery_max_depth: int = 3
    root_wait_timeout_seconds: float = 10.0
    root_poll_interval_seconds: float = 0.25
    rescan_quiet_ms: int = 600
    scroll_settle_ms: int = 30
    click_settle_ms: int = 50
    property_settle_ms: int = 40
    attribute_settle_ms: int = 30
    focus_settle_ms: int = 10
    log_rate_limit_seconds: float = 8.0

    @property
    def toggle_selectors(self) -> List[str]:
        return [*self.toggle_component_tags, self.role_toggle_selector, self.native_toggle_selector]

    @classmethod
    def load(cls, path: str = RULES_FILE) -> "SweeperRules":
        defaults = cls()
        raw = _load_json_object(path, "sweeper_rules.json")
        if raw is None:
            return defaults
        return cls(
            list_root_selectors=_coerce_str_list(raw.get("list_root_selectors"), defaults.list_root_selectors),
            item_selectors=_coerce_str_list(raw.get("item_selectors"), defaults.item_selectors),
            list_item_selector=_coerce_str(raw.get("list_item_selector"), defaults.list_item_selector),
            thread_selector=_coerce_str(raw.get("thread_selector"), defaults.thread_selector),
            toggle_component_tags=[
                t.lower() for t in _coerce_str_list(raw.get("toggle_component_tags"), defaults.toggle_component_tags)
            ],
            role_toggle_selector=_coerce_str(raw.get("role_toggle_selector"), defaults.role_toggle_selector),
            native_toggle_selector=_coerce_str(raw.get("native_toggle_selector"), defaults.native_toggle_selector),
            inner_activation_selector=_coerce_str(raw.get("inner_activation_selector"), defaults.inner_activation_selector),
            select_action_selector=_coerce_str(raw.get("select_action_selector"), defaults.select_action_selector),
            text_selector=_coerce_str(raw.get("text_selector"), defaults.text_selector),
            ui_label_pattern=_coerce_regex(raw.get("ui_label_pattern"), defaults.ui_label_pattern),
            avatar_selector=_coerce_str(raw.get("avatar_selector"), defaults.avatar_selector),
            discovery_max_depth=_coerce_int(raw.get("discovery_max_depth"), defaults.discovery_max_depth, minimum=0, maximum=16),
            root_wait_timeout_seconds=_coerce_float(
                raw.get("root_wait_timeout_seconds"),
                defaults.root_wait_timeout_seconds,
                minimum=0.0,
                maximum=120.0,
            ),
            root_poll_interval_seconds=_coerce_float(
                raw.get("root_poll_interval_seconds"),
                defaults.root_poll_interval_seconds,
                minimum=0.05,
                maximum=5.0,
            ),
            rescan_quiet_ms=_coerce_int(raw.get("rescan_quiet_ms"), defaults.rescan_quiet_ms, minimum=50, maximum=10000),
            scroll_settle_ms=_coerce_int(raw.get("scroll_settle_ms"), defaults.scroll_settle_ms, minimum=0, maximum=2000),
            click_settle_ms=_coerce_int(raw.get("click_settle_ms"), defaults.click_settle_ms, minimum=0, maximum=2000),
            property_settle_ms=_coerce_int(raw.get("property_settle_ms"), defaults.property_settle_ms, minimum=0, maximum=2000),
            attribute_settle_ms=_coerce_int(raw.get("attribute_settle_ms"), defaults.attribute_settle_ms, minimum=0, maximum=2000),
            focus_settle_ms=_coerce_int(raw.get("focus_settle_ms"), defaults.focus_settle_ms, minimum=0, maximum=2000),
            log_rate_limit_seconds=_coerce_float(raw.get("log_rate_limit_seconds"), defaults.log_rate_limit_seconds, minimum=0.1),
        )

    def save(self, path: str = RULES_FILE) -> None:
        _write_json(path, asdict(self))

    @classmethod
    def default_json(cls) -> str:
        return json.dumps(asdict(cls()), indent=2, ensure_ascii=False)


def _coerce_regex(value: Any, default: str) -> str:
    candidate = _coerce_str(value, default)
    try:
        re.compile(candidate)
    except re.error:
        _push_load_warning(f"sweeper_rules.json ui_label_pattern is not a valid regex: {candidate!r}")
        return default
    return candidate


@dataclass
class Blocklists:
    texts: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Blocklists":
        # Entries are re-canonicalized so hand-edited files cannot smuggle raw input in.
        texts = [normalize_text(t)[:MAX_PATTERN_LENGTH] for t in _coerce_str_list(raw.get("texts"), [])]
        images = [signature_from_reference(s) for s in _coerce_str_list(raw.get("images"), [])]
        return cls(texts=_unique(texts), images=_unique(images))

    @classmethod
    def load(cls, path: str = BLOCKLIST_FILE) -> "Blocklists":
        raw = _load_json_object(path, "blocklists.json")
        if raw is None:
            return cls()
        return cls.from_dict(raw)

    def save(self, path: str = BLOCKLIST_FILE) -> None:
        _write_json(path, asdict(self))

    @classmethod
    def default_json(cls) -> str:
        return json.dumps(asdict(cls()), indent=2, ensure_ascii=False)


def _write_default(dst: str, default_text: str) -> None:
    if os.path.exists(dst):
        return
    os.makedirs(os.path.dirname(dst) or ".", exist_ok=True)
    with open(dst, "w", encoding="utf-8") as f:
        f.write(default_text)


def ensure_runtime_files() -> None:
    os.makedirs(APPDATA_DIR, exist_ok=True)
    _write_default(SETTINGS_FILE, SweeperSettings.default_json())
    _write_default(RULES_FILE, SweeperRules.default_json())
    _write_default(BLOCKLIST_FILE, Blocklists.default_json())
    if not os.path.exists(LOG_FILE):
        with open(LOG_FILE, "a", encoding="utf-8"):
            pass


__all__ = [
    "VERSION",
    "APP_NAME",
    "APPDATA_DIRNAME",
    "APPDATA_DIR",
    "SETTINGS_FILE",
    "RULES_FILE",
    "BLOCKLIST_FILE",
    "LOG_FILE",
    "SweeperSettings",
    "SweeperRules",
    "Blocklists",
    "get_app_data_dir",
    "ensure_runtime_files",
    "consume_load_warnings",
]
