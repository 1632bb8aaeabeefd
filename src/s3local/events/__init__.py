"""Bucket notification subscription and dispatch engine."""
from s3local.events.registry import Registry, build_registry
from s3local.events.router import EventRouter, build_envelope
from s3local.events.rules import compile_rule, event_pattern_matches
from s3local.events.supervisor import DispatchSupervisor
from s3local.events.types import (
    DispatchOutcome,
    FilterRule,
    NotificationDeclaration,
    OutcomeStatus,
    RawNotification,
    Subscription,
)

__all__ = [
    "DispatchOutcome",
    "DispatchSupervisor",
    "EventRouter",
    "FilterRule",
    "NotificationDeclaration",
    "OutcomeStatus",
    "RawNotification",
    "Registry",
    "Subscription",
    "build_envelope",
    "build_registry",
    "compile_rule",
    "event_pattern_matches",
]
