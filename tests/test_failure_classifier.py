from __future__ import annotations

import pytest

from agent_browser.heal.classify import (
    FAILURE_KINDS,
    ErrorContext,
    classify,
    is_terminal,
)


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ('Unknown ref "e5". Run a new snapshot and use a ref from that snapshot.', "stale_ref"),
        ('Element "e3" not found or not visible. Run a new snapshot to see current elements.', "stale_ref"),
        ('Selector "e2" matched 3 elements. Re-snapshot to get a unique ref.', "strict_mode"),
        ('Element "e1" is not interactable (hidden or covered).', "not_interactable"),
        ("<div class=veil> intercepts pointer events", "not_interactable"),
        ("Element does not receive pointer events", "not_interactable"),
        ("Blocked by Cloudflare human verification", "captcha_detected"),
        ("Please solve the CAPTCHA", "captcha_detected"),
        ("Network request failed", "unknown"),
        ("", "unknown"),
    ],
)
def test_classify_without_context(message: str, expected: str) -> None:
    assert classify(message) == expected


def test_ref_failure_after_url_change_is_navigation() -> None:
    ctx = ErrorContext(pre_action_url="https://a.test/cart", current_url="https://a.test/checkout")
    assert classify('Unknown ref "e5".', ctx) == "navigation_changed"

    same = ErrorContext(pre_action_url="https://a.test/cart", current_url="https://a.test/cart")
    assert classify('Unknown ref "e5".', same) == "stale_ref"

    # One side unknown: no navigation claim.
    assert classify('Unknown ref "e5".', ErrorContext(current_url="https://a.test/")) == "stale_ref"


def test_blocked_escalates_to_overlay() -> None:
    msg = "Element is not interactable"
    assert classify(msg, ErrorContext(not_interactable_count=1)) == "not_interactable"
    assert classify(msg, ErrorContext(not_interactable_count=2)) == "overlay_interference"
    assert classify(msg, ErrorContext(not_interactable_count=5)) == "overlay_interference"


def test_timeout_needs_pending_dialog() -> None:
    msg = "Timeout 5000ms exceeded"
    assert classify(msg, ErrorContext(has_unhandled_dialog=True)) == "dialog_blocking"
    assert classify(msg) == "unknown"
    assert classify("navigation timed out", ErrorContext(has_unhandled_dialog=True)) == "dialog_blocking"


def test_first_match_wins() -> None:
    # Ref phrasing beats timeout even with a dialog pending.
    ctx = ErrorContext(has_unhandled_dialog=True)
    assert classify("Timeout: Unknown ref e1", ctx) == "stale_ref"
    assert classify("matched 2 elements, not interactable") == "strict_mode"


def test_terminal_kinds() -> None:
    assert set(FAILURE_KINDS) >= {"unknown", "captcha_detected", "stale_ref"}
    assert is_terminal("unknown")
    assert is_terminal("captcha_detected")
    assert not is_terminal("stale_ref")
    assert not is_terminal("overlay_interference")
