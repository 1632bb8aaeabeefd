"""Key filter and event pattern matching tests."""

import pytest

from s3local.events.rules import (
    compile_rule,
    compile_rules,
    event_pattern_matches,
    is_known_event_pattern,
    keys_match,
    normalize_event_type,
)
from s3local.events.types import FilterRule

KEYS = ["", "uploads/img.jpg", "uploads/", "img.jpg.bak", "archive/uploads/img.jpg", "UPLOADS/IMG.JPG"]


@pytest.mark.parametrize("key", KEYS)
def test_prefix_rule_matches_startswith(key: str) -> None:
    """Prefix matcher agrees with str.startswith."""
    assert compile_rule(FilterRule(prefix="uploads/")).matches(key) == key.startswith("uploads/")


@pytest.mark.parametrize("key", KEYS)
def test_suffix_rule_matches_endswith(key: str) -> None:
    """Suffix matcher agrees with str.endswith."""
    assert compile_rule(FilterRule(suffix=".jpg")).matches(key) == key.endswith(".jpg")


@pytest.mark.parametrize("key", KEYS)
def test_empty_rule_matches_everything(key: str) -> None:
    """A rule without prefix or suffix accepts every key."""
    assert compile_rule(FilterRule()).matches(key)


def test_prefix_and_suffix_are_anded() -> None:
    """Both fields of one rule must hold."""
    matcher = compile_rule(FilterRule(prefix="uploads/", suffix=".jpg"))
    assert matcher("uploads/img.jpg")
    assert not matcher("uploads/img.png")
    assert not matcher("other/img.jpg")


def test_rule_literals_are_not_patterns() -> None:
    """Regex and glob characters in rules are matched literally."""
    matcher = compile_rule(FilterRule(prefix="a.*", suffix="[0-9]"))
    assert matcher("a.*/x[0-9]")
    assert not matcher("abc/x1")


def test_rules_preserve_order_and_and_together() -> None:
    """Compiled rules keep order and all must accept the key."""
    matchers = compile_rules([FilterRule(prefix="uploads/"), FilterRule(suffix=".jpg")])
    assert [m.prefix for m in matchers] == ["uploads/", ""]
    assert keys_match(matchers, "uploads/img.jpg")
    assert not keys_match(matchers, "uploads/img.png")
    assert keys_match((), "anything")


@pytest.mark.parametrize(
    ("pattern", "event_type", "expected"),
    [
        ("ObjectCreated:*", "ObjectCreated:Put", True),
        ("s3:ObjectCreated:*", "ObjectCreated:CompleteMultipartUpload", True),
        ("ObjectCreated:*", "s3:ObjectCreated:Copy", True),
        ("ObjectCreated:Put", "ObjectCreated:Put", True),
        ("ObjectCreated:Put", "ObjectCreated:Post", False),
        ("ObjectCreated:*", "ObjectRemoved:Delete", False),
        ("ObjectRemoved:*", "ObjectRemoved:DeleteMarkerCreated", True),
        ("ObjectCreated:P*", "ObjectCreated:Post", True),
        ("ObjectCreated:P*", "ObjectCreated:Copy", False),
        ("Object*", "ObjectCreated:Put", False),
        ("LifecycleTransition", "LifecycleTransition", True),
        ("ObjectCreated.*", "ObjectCreated:Put", False),
    ],
)
def test_event_pattern_matching(pattern: str, event_type: str, expected: bool) -> None:
    """Wildcards only span a single segment and the match is anchored."""
    assert event_pattern_matches(pattern, event_type) is expected


def test_normalize_event_type_strips_prefix() -> None:
    assert normalize_event_type("s3:ObjectCreated:*") == "ObjectCreated:*"
    assert normalize_event_type("ObjectCreated:*") == "ObjectCreated:*"


@pytest.mark.parametrize(
    ("pattern", "known"),
    [
        ("s3:ObjectCreated:*", True),
        ("s3:ObjectRemoved:Delete", True),
        ("ObjectRestore:*", True),
        ("s3:ObjectCreated:Upload", False),
        ("s3:Bogus:*", False),
        ("ObjectCreated", False),
    ],
)
def test_known_event_patterns(pattern: str, known: bool) -> None:
    assert is_known_event_pattern(pattern) is known
