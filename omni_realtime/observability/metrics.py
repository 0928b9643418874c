"""
Prometheus metrics for the realtime session service.

Exports:
- Session counts and durations
- Transport events by type
- Conversation turns by role
- Gated frames sent
- Errors by code
- Conversation saves by status
"""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Session metrics
# =============================================================================

omni_sessions_total = Counter(
    "omni_sessions_total",
    "Total presentation sessions",
    ["end_reason"],  # completed, error, rejected
)

omni_active_sessions = Gauge(
    "omni_active_sessions",
    "Currently active presentation sessions",
)

omni_connected_sessions = Gauge(
    "omni_connected_sessions",
    "Presentation sessions with a live realtime connection",
)

omni_session_duration = Histogram(
    "omni_session_duration_seconds",
    "Duration of realtime conversations from connect to disconnect",
    buckets=(5, 15, 30, 60, 120, 300, 600, 1200, 3600),
)

# =============================================================================
# Conversation metrics
# =============================================================================

omni_transport_events_total = Counter(
    "omni_transport_events_total",
    "Transport events handled by the coordinator",
    ["type"],
)

omni_messages_total = Counter(
    "omni_messages_total",
    "Conversation turns appended to history",
    ["role"],  # user, assistant
)

omni_frames_sent_total = Counter(
    "omni_frames_sent_total",
    "Camera frames attached to user utterances",
)

omni_errors_total = Counter(
    "omni_errors_total",
    "Errors surfaced to the presentation layer",
    ["code"],
)

omni_conversations_saved_total = Counter(
    "omni_conversations_saved_total",
    "Conversation records handed to the history store",
    ["status"],  # success, error
)


# =============================================================================
# Helper functions
# =============================================================================


def record_transport_event(event_type: str) -> None:
    """Record a handled transport event."""
    omni_transport_events_total.labels(type=event_type).inc()


def record_message(role: str) -> None:
    """Record a conversation turn."""
    omni_messages_total.labels(role=role).inc()


def record_frame_sent() -> None:
    """Record a gated frame sent to the transport."""
    omni_frames_sent_total.inc()


def record_error(code: str) -> None:
    """Record an error shown to the user."""
    omni_errors_total.labels(code=code).inc()


def record_conversation_saved(success: bool) -> None:
    """Record the outcome of a conversation save."""
    status = "success" if success else "error"
    omni_conversations_saved_total.labels(status=status).inc()


def record_session_ended(reason: str) -> None:
    """Record a presentation session ending."""
    omni_sessions_total.labels(end_reason=reason).inc()


def record_conversation_duration(duration_seconds: float) -> None:
    """Record how long a connection stayed up."""
    omni_session_duration.observe(duration_seconds)


def update_session_metrics(active_sessions: int, connected_sessions: int | None = None) -> None:
    """Update session-related gauge metrics."""
    omni_active_sessions.set(active_sessions)
    if connected_sessions is not None:
        omni_connected_sessions.set(connected_sessions)
