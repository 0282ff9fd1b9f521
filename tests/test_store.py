import json
import logging
from pathlib import Path

from comment_sweeper.config import SweeperSettings
from comment_sweeper.store import KIND_BLOCKLISTS, KIND_IMAGES, KIND_SETTINGS, KIND_TEXTS, BlocklistStore


def _store(tmp_path: Path) -> BlocklistStore:
    return BlocklistStore(
        settings_path=str(tmp_path / "sweeper_settings.json"),
        blocklist_path=str(tmp_path / "blocklists.json"),
        logger=logging.getLogger("test"),
    )


def test_empty_store_returns_defaults(tmp_path: Path):
    state = _store(tmp_path).get_state()
    assert state.settings == SweeperSettings()
    assert state.blacklists.texts == []
    assert state.blacklists.images == []


def test_add_text_normalizes_dedupes_and_persists(tmp_path: Path):
    store = _store(tmp_path)
    assert store.add_text("  Subscribe TO my channel!! ") == "subscribe to my channel"
    assert store.add_text("subscribe to my channel") == "subscribe to my channel"

    raw = json.loads((tmp_path / "blocklists.json").read_text(encoding="utf-8"))
    assert raw["texts"] == ["subscribe to my channel"]
    assert store.get_state().blacklists.texts == ["subscribe to my channel"]


def test_add_text_rejects_empty_after_normalization(tmp_path: Path):
    store = _store(tmp_path)
    assert store.add_text("!!! ???") == ""
    assert not (tmp_path / "blocklists.json").exists()


def test_remove_text_uses_normalized_form(tmp_path: Path):
    store = _store(tmp_path)
    store.add_text("free gift")
    store.add_text("check my profile")
    assert store.remove_text("FREE   Gift!") == "free gift"
    assert store.get_state().blacklists.texts == ["check my profile"]


def test_add_and_remove_image(tmp_path: Path):
    store = _store(tmp_path)
    assert store.add_image("https://yt3.ggpht.com/spammer=s88-c-k") == "yt3.ggpht.com/spammer"
    assert store.add_image("https://yt3.ggpht.com/spammer=s240-c-k") == "yt3.ggpht.com/spammer"
    assert store.get_state().blacklists.images == ["yt3.ggpht.com/spammer"]

    assert store.remove_image("yt3.ggpht.com/spammer") == "yt3.ggpht.com/spammer"
    assert store.get_state().blacklists.images == []
    assert store.add_image("   ") is None


def test_mutations_notify_subscribers(tmp_path: Path):
    store = _store(tmp_path)
    events = []
    unsubscribe = store.subscribe(events.append)

    store.add_text("spam")
    store.add_image("https://yt3.ggpht.com/bot=s88-c")
    store.remove_text("spam")
    store.remove_image("yt3.ggpht.com/bot")
    assert events == [KIND_TEXTS, KIND_IMAGES, KIND_TEXTS, KIND_IMAGES]

    unsubscribe()
    store.add_text("later")
    assert len(events) == 4


def test_failing_listener_does_not_block_others(tmp_path: Path):
    store = _store(tmp_path)
    seen = []

    def broken(_kind):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(seen.append)
    store.add_text("spam")
    assert seen == [KIND_TEXTS]


def test_set_settings_merges_and_clamps(tmp_path: Path):
    store = _store(tmp_path)
    store.set_settings({"threshold": 2, "auto_select": False})
    merged = store.set_settings({"threshold": 50})

    assert merged.threshold == 20
    assert merged.auto_select is False
    assert store.get_state().settings == merged


def test_set_settings_accepts_dataclass(tmp_path: Path):
    store = _store(tmp_path)
    store.set_settings(SweeperSettings(scan_images=False))
    assert store.get_state().settings.scan_images is False


def test_stamp_tracks_file_writes(tmp_path: Path):
    store = _store(tmp_path)
    assert store.stamp() == {KIND_SETTINGS: None, KIND_BLOCKLISTS: None}

    store.add_text("free gift card")
    after_add = store.stamp()
    assert after_add[KIND_SETTINGS] is None
    assert after_add[KIND_BLOCKLISTS] is not None

    store.add_text("free gift card")
    assert store.stamp() == after_add

    store.set_settings({"threshold": 2})
    assert store.stamp()[KIND_SETTINGS] is not None
    assert store.stamp()[KIND_BLOCKLISTS] == after_add[KIND_BLOCKLISTS]
