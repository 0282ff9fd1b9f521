from __future__ import annotations

from importlib import import_module
from typing import Dict, Tuple

_MODULE_EXPORTS = {
    "app": "comment_sweeper.app",
}

_ATTR_EXPORTS: Dict[str, Tuple[str, str]] = {
    "main": ("comment_sweeper.app", "main"),
    "VERSION": ("comment_sweeper.config", "VERSION"),
    "APP_NAME": ("comment_sweeper.config", "APP_NAME"),
    "APPDATA_DIR": ("comment_sweeper.config", "APPDATA_DIR"),
    "SETTINGS_FILE": ("comment_sweeper.config", "SETTINGS_FILE"),
    "RULES_FILE": ("comment_sweeper.config", "RULES_FILE"),
    "BLOCKLIST_FILE": ("comment_sweeper.config", "BLOCKLIST_FILE"),
    "LOG_FILE": ("comment_sweeper.config", "LOG_FILE"),
    "SweeperSettings": ("comment_sweeper.config", "SweeperSettings"),
    "SweeperRules": ("comment_sweeper.config", "SweeperRules"),
    "Blocklists": ("comment_sweeper.config", "Blocklists"),
    "ensure_runtime_files": ("comment_sweeper.config", "ensure_runtime_files"),
    "consume_load_warnings": ("comment_sweeper.config", "consume_load_warnings"),
    "normalize_text": ("comment_sweeper.patterns", "normalize_text"),
    "bounded_levenshtein": ("comment_sweeper.patterns", "bounded_levenshtein"),
    "is_text_blacklisted": ("comment_sweeper.patterns", "is_text_blacklisted"),
    "PatternMatcher": ("comment_sweeper.patterns", "PatternMatcher"),
    "signature_from_reference": ("comment_sweeper.signatures", "signature_from_reference"),
    "is_image_blacklisted": ("comment_sweeper.signatures", "is_image_blacklisted"),
    "CandidateFinder": ("comment_sweeper.candidates", "CandidateFinder"),
    "ToggleController": ("comment_sweeper.toggle", "ToggleController"),
    "ToggleOutcome": ("comment_sweeper.toggle", "ToggleOutcome"),
    "CoalescingTimer": ("comment_sweeper.debounce", "CoalescingTimer"),
    "SweepEngine": ("comment_sweeper.scan_engine", "SweepEngine"),
    "EngineState": ("comment_sweeper.scan_engine", "EngineState"),
    "ScanResult": ("comment_sweeper.scan_engine", "ScanResult"),
    "BlocklistStore": ("comment_sweeper.store", "BlocklistStore"),
    "BrowserAPI": ("comment_sweeper.browser_api", "BrowserAPI"),
    "setup_logging": ("comment_sweeper.logging_setup", "setup_logging"),
}

__all__ = [
    "app",
    "main",
    "VERSION",
    "APP_NAME",
    "APPDATA_DIR",
    "SETTINGS_FILE",
    "RULES_FILE",
    "BLOCKLIST_FILE",
    "LOG_FILE",
    "SweeperSettings",
    "SweeperRules",
    "Blocklists",
    "ensure_runtime_files",
    "consume_load_warnings",
    "normalize_text",
    "bounded_levenshtein",
    "is_text_blacklisted",
    "PatternMatcher",
    "signature_from_reference",
    "is_image_blacklisted",
    "CandidateFinder",
    "ToggleController",
    "ToggleOutcome",
    "CoalescingTimer",
    "SweepEngine",
    "EngineState",
    "ScanResult",
    "BlocklistStore",
    "BrowserAPI",
    "setup_logging",
]


def __getattr__(name: str):
    module_name = _MODULE_EXPORTS.get(name)
    if module_name is not None:
        module = import_module(module_name)
        globals()[name] = module
        return module

    target = _ATTR_EXPORTS.get(name)
    if target is not None:
        source_module_name, source_attr_name = target
        source_module = import_module(source_module_name)
        value = getattr(source_module, source_attr_name)
        globals()[name] = value
        return value

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(__all__))
