from __future__ import annotations

import logging
import os
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .config import BLOCKLIST_FILE, SETTINGS_FILE, Blocklists, SweeperSettings
from .patterns import MAX_PATTERN_LENGTH, normalize_text
from .signatures import signature_from_reference

KIND_TEXTS = "texts"
KIND_IMAGES = "images"
KIND_SETTINGS = "settings"
KIND_BLOCKLISTS = "blocklists"

BlocklistListener = Callable[[str], None]
FileStamp = Optional[Tuple[int, int]]


def _file_stamp(path: str) -> FileStamp:
    try:
        info = os.stat(path)
    except FileNotFoundError:
        return None
    return (info.st_mtime_ns, info.st_size)


@dataclass
class StoreState:
    settings: SweeperSettings = field(default_factory=SweeperSettings)
    blacklists: Blocklists = field(default_factory=Blocklists)


class BlocklistStore:
    """JSON-backed settings and block-list provider.

    Every read goes back to disk. Mutations of a list are pushed to in-process
    subscribers as ``listener(kind)`` after the file has been written; writers
    in other processes are detected by comparing ``stamp()`` results.
    """

    def __init__(
        self,
        settings_path: str = SETTINGS_FILE,
        blocklist_path: str = BLOCKLIST_FILE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.settings_path = settings_path
        self.blocklist_path = blocklist_path
        self.logger = logger or logging.getLogger("CommentSweeper.Store")
        self._lock = threading.RLock()
        self._listeners: List[BlocklistListener] = []

    def get_state(self) -> StoreState:
        with self._lock:
            return StoreState(
                settings=SweeperSettings.load(self.settings_path),
                blacklists=Blocklists.load(self.blocklist_path),
            )

    def stamp(self) -> Dict[str, FileStamp]:
        return {
            KIND_SETTINGS: _file_stamp(self.settings_path),
            KIND_BLOCKLISTS: _file_stamp(self.blocklist_path),
        }

    def set_settings(self, settings: Union[SweeperSettings, Dict[str, Any]]) -> SweeperSettings:
        raw = asdict(settings) if isinstance(settings, SweeperSettings) else dict(settings or {})
        with self._lock:
            merged = SweeperSettings.from_dict(raw, base=SweeperSettings.load(self.settings_path))
            merged.save(self.settings_path)
        return merged

    def add_text(self, raw: str) -> str:
        value = normalize_text(raw)[:MAX_PATTERN_LENGTH]
        if not value:
            return value
        with self._lock:
            lists = Blocklists.load(self.blocklist_path)
            if value in lists.texts:
                return value
            lists.texts.append(value)
            lists.save(self.blocklist_path)
        self.logger.info("Blocked text added (%d chars)", len(value))
        self._notify(KIND_TEXTS)
        return value

    def remove_text(self, value: str) -> str:
        normalized = normalize_text(value)
        with self._lock:
            lists = Blocklists.load(self.blocklist_path)
            if normalized not in lists.texts:
                return normalized
            lists.texts = [t for t in lists.texts if t != normalized]
            lists.save(self.blocklist_path)
        self._notify(KIND_TEXTS)
        return normalized

    def add_image(self, reference: str) -> Optional[str]:
        signature = signature_from_reference(reference)
        if not signature:
            return None
        with self._lock:
            lists = Blocklists.load(self.blocklist_path)
            if signature in lists.images:
                return signature
            lists.images.append(signature)
            lists.save(self.blocklist_path)
        self.logger.info("Blocked image added: %s", signature)
        self._notify(KIND_IMAGES)
        return signature

    def remove_image(self, signature: str) -> Optional[str]:
        canonical = signature_from_reference(signature)
        if not canonical:
            return None
        with self._lock:
            lists = Blocklists.load(self.blocklist_path)
            if canonical not in lists.images:
                return canonical
            lists.images = [s for s in lists.images if s != canonical]
            lists.save(self.blocklist_path)
        self._notify(KIND_IMAGES)
        return canonical

    def subscribe(self, listener: BlocklistListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, kind: str) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(kind)
            except Exception as exc:
                self.logger.warning("blacklist listener failed (%s)", exc.__class__.__name__)


__all__ = ["BlocklistStore", "StoreState", "KIND_TEXTS", "KIND_IMAGES", "KIND_SETTINGS", "KIND_BLOCKLISTS"]
