"""Key filter compilation and event-type pattern matching.

Both evaluators are pure functions so they can be composed by the router
and tested on their own.
"""
import functools
import re
from collections.abc import Iterable

from s3local.events.types import S3_EVENT_TYPES, AnchoredMatcher, FilterRule

EVENT_PREFIX = "s3:"


def compile_rule(rule: FilterRule) -> AnchoredMatcher:
    """Compile a filter rule into an anchored key matcher.

    Prefix and suffix are literal strings; a rule with neither field
    matches every key.

    Args:
        rule: Declared filter rule.

    Returns:
        Matcher accepting keys that satisfy every field of the rule.
    """
    return AnchoredMatcher(prefix=rule.prefix or "", suffix=rule.suffix or "")


def compile_rules(rules: Iterable[FilterRule]) -> tuple[AnchoredMatcher, ...]:
    """Compile rules preserving declaration order."""
    return tuple(compile_rule(rule) for rule in rules)


def keys_match(matchers: Iterable[AnchoredMatcher], key: str) -> bool:
    """True when every matcher accepts the key (vacuously true when empty)."""
    return all(matcher.matches(key) for matcher in matchers)


def normalize_event_type(value: str) -> str:
    """Strip the ``s3:`` prefix from an event type or pattern."""
    if value.startswith(EVENT_PREFIX):
        return value[len(EVENT_PREFIX):]
    return value


@functools.lru_cache(maxsize=256)
def _pattern_regex(pattern: str) -> re.Pattern[str]:
    parts = (r"[^:]*" if chunk == "*" else re.escape(chunk) for chunk in re.split(r"(\*)", pattern))
    return re.compile("".join(parts))


def event_pattern_matches(pattern: str, event_type: str) -> bool:
    """Match an event type against a hierarchical wildcard pattern.

    ``*`` matches any run of characters inside a single ``:`` segment, so
    ``ObjectCreated:*`` matches ``ObjectCreated:Put`` but not
    ``ObjectRemoved:Delete``.

    Args:
        pattern: Event pattern, with or without the ``s3:`` prefix.
        event_type: Concrete event type, with or without the prefix.

    Returns:
        True if the whole event type matches the pattern.
    """
    regex = _pattern_regex(normalize_event_type(pattern))
    return regex.fullmatch(normalize_event_type(event_type)) is not None


def is_known_event_pattern(pattern: str) -> bool:
    """Check that a pattern selects at least one S3 event type."""
    return any(event_pattern_matches(pattern, event) for event in S3_EVENT_TYPES)
