"""Metric definitions for realtime delivery, calls and push notifications."""

from __future__ import annotations

from .registry import registry


realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of user event websockets connected to this node.",
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Events delivered to connected websockets.",
    label_names=("event",),
)

call_transitions_total = registry.counter(
    "call_transitions_total",
    "Call status transitions applied by the signaling service.",
    label_names=("status",),
)

push_notifications_total = registry.counter(
    "push_notifications_total",
    "Push notification attempts grouped by outcome.",
    label_names=("outcome",),
)
