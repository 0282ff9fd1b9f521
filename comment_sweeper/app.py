from __future__ import annotations

import argparse
import importlib
import os
import sys
from typing import Any, Callable, Optional, Tuple

from .config import APP_NAME, APPDATA_DIR, SweeperRules, VERSION, consume_load_warnings, ensure_runtime_files
from .logging_setup import setup_logging
from .scan_engine import SweepEngine
from .store import BlocklistStore

DEFAULT_URL = "https://studio.youtube.com/"

# Selenium is only needed once a browser is driven; store commands run without it.
BrowserAPI: Any = None
create_driver: Any = None


def _load_browser_dependencies() -> None:
    global BrowserAPI, create_driver
    if BrowserAPI is None or create_driver is None:
        from .browser_api import BrowserAPI as _BrowserAPI
        from .browser_api import create_driver as _create_driver

        BrowserAPI = _BrowserAPI
        create_driver = _create_driver


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=f"{APP_NAME} v{VERSION}")
    parser.add_argument("--url", type=str, default=DEFAULT_URL, help="Page holding the comment list")
    parser.add_argument("--headless", action="store_true", help="Run the browser without a window")
    parser.add_argument("--profile-dir", type=str, default=None, help="Browser profile directory (keeps the login)")
    parser.add_argument("--once", action="store_true", help="Scan once, print the counts and exit")
    parser.add_argument("--dump-items", action="store_true", help="Dump scanned items to JSON and exit")
    parser.add_argument("--dump-dir", type=str, default=None, help="Dump directory for --dump-items")
    parser.add_argument("--self-check", action="store_true", help="Run environment self-check and exit")
    parser.add_argument("--add-text", type=str, default=None, help="Add a text pattern to the block-list")
    parser.add_argument("--remove-text", type=str, default=None, help="Remove a text pattern from the block-list")
    parser.add_argument("--add-image", type=str, default=None, help="Add an avatar URL to the block-list")
    parser.add_argument("--remove-image", type=str, default=None, help="Remove an avatar signature from the block-list")
    parser.add_argument("--list", action="store_true", help="Print the block-lists and exit")
    return parser


def _check_appdata_writable() -> Tuple[bool, str]:
    try:
        os.makedirs(APPDATA_DIR, exist_ok=True)
        check_path = os.path.join(APPDATA_DIR, ".selfcheck-write.tmp")
        with open(check_path, "w", encoding="utf-8") as f:
            f.write("ok")
        os.remove(check_path)
        return True, f"writable ({APPDATA_DIR})"
    except Exception as exc:
        return False, f"{exc.__class__.__name__}: {exc}"


def _check_selenium_import() -> Tuple[bool, str]:
    try:
        module = importlib.import_module("selenium")
        importlib.import_module("selenium.webdriver")
        return True, f"selenium {getattr(module, '__version__', '?')} importable"
    except Exception as exc:
        return False, f"{exc.__class__.__name__}: {exc}"


def _check_store_readable() -> Tuple[bool, str]:
    try:
        state = BlocklistStore().get_state()
        return True, f"{len(state.blacklists.texts)} text / {len(state.blacklists.images)} image entries"
    except Exception as exc:
        return False, f"{exc.__class__.__name__}: {exc}"


def _run_self_check() -> int:
    checks: list[Tuple[str, Callable[[], Tuple[bool, str]]]] = [
        ("app data access/write", _check_appdata_writable),
        ("block-list store", _check_store_readable),
        ("selenium import", _check_selenium_import),
    ]
    passed = 0
    for label, fn in checks:
        ok, detail = fn()
        if ok:
            passed += 1
        print(f"[{'OK' if ok else 'FAIL'}] {label}: {detail}")
    print(f"Summary: {passed}/{len(checks)} checks passed")
    return 0 if passed == len(checks) else 1


def _run_store_command(args: argparse.Namespace, store: BlocklistStore) -> Optional[int]:
    if args.add_text is not None:
        value = store.add_text(args.add_text)
        if not value:
            print("Nothing to add: text is empty after normalization", file=sys.stderr)
            return 1
        print(value)
        return 0
    if args.remove_text is not None:
        print(store.remove_text(args.remove_text))
        return 0
    if args.add_image is not None:
        signature = store.add_image(args.add_image)
        if not signature:
            print("Nothing to add: image reference is empty", file=sys.stderr)
            return 1
        print(signature)
        return 0
    if args.remove_image is not None:
        print(store.remove_image(args.remove_image) or "")
        return 0
    if args.list:
        state = store.get_state()
        print(f"texts ({len(state.blacklists.texts)}):")
        for text in state.blacklists.texts:
            print(f"  {text}")
        print(f"images ({len(state.blacklists.images)}):")
        for signature in state.blacklists.images:
            print(f"  {signature}")
        return 0
    return None


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv if argv is not None else sys.argv[1:])
    if args.self_check:
        return _run_self_check()

    ensure_runtime_files()
    store = BlocklistStore()
    state = store.get_state()
    rules = SweeperRules.load()
    logger = setup_logging(state.settings.log_level)
    store.logger = logger.getChild("Store")
    load_warnings = consume_load_warnings()
    for warning in load_warnings:
        logger.warning(warning)

    handled = _run_store_command(args, store)
    if handled is not None:
        return handled

    _load_browser_dependencies()
    driver = create_driver(headless=args.headless, profile_dir=args.profile_dir)
    engine_started = False
    engine: Optional[SweepEngine] = None
    try:
        api = BrowserAPI(driver)
        api.open(args.url)
        engine = SweepEngine(logger, state.settings, rules, api, blacklists=state.blacklists, store=store)
        if load_warnings:
            engine.report_warning(load_warnings[0])

        if args.dump_items:
            engine.wait_for_list_root()
            path = engine.dump_items(out_dir=args.dump_dir)
            if path:
                print(path)
                return 0
            print("No comment rows found")
            return 1

        if args.once:
            engine.wait_for_list_root()
            result = engine.scan()
            if result is None:
                return 1
            print(f"Flagged: {result.flagged_count} Selected: {result.selected_count}")
            return 0

        engine.start()
        engine_started = True
        logger.info("Watching %s (Ctrl+C to stop)", args.url)
        try:
            engine.wait()
        except KeyboardInterrupt:
            logger.info("Interrupted, shutting down")
        return 0
    finally:
        if engine_started and engine is not None:
            try:
                engine.stop()
            except Exception as exc:
                logger.warning("cleanup: engine.stop failed (%s)", exc.__class__.__name__)
        try:
            driver.quit()
        except Exception as exc:
            logger.warning("cleanup: driver.quit failed (%s)", exc.__class__.__name__)


__all__ = ["main", "build_parser", "VERSION", "DEFAULT_URL"]
