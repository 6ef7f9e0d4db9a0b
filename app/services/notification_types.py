"""
Notification type registry.

The closed, versioned list of notification types the engine emits, the
transition → type mapping, and the type → message formatters. Display layers
may mirror this registry with a soft fallback; the engine itself fails loudly
on unknown types.
"""

from typing import Callable, Dict, List, NamedTuple

from app.core.errors import UnknownNotificationType
from app.models.workflow import Actor, Notification, Report, ReportStatus

REGISTRY_VERSION = 1

REPORT_ASSIGNED = "report.assigned"
REPORT_MISROUTED = "report.misrouted"
REPORT_AWAITING_VERIFICATION = "report.awaiting_verification"
REPORT_VERIFIED = "report.verified"
REPORT_CLOSED = "report.closed"


def _format_assigned(n: Notification) -> str:
    officer = n.payload.get("officer_name") or "an officer"
    return f"A report was assigned to {officer}."


def _format_misrouted(n: Notification) -> str:
    reason = n.payload.get("reason")
    return f"Your report was marked misrouted{': ' + reason if reason else ''}."


FORMATTERS: Dict[str, Callable[[Notification], str]] = {
    REPORT_ASSIGNED: _format_assigned,
    REPORT_MISROUTED: _format_misrouted,
    REPORT_AWAITING_VERIFICATION: lambda n: "Your report is awaiting verification.",
    REPORT_VERIFIED: lambda n: "Your report was verified.",
    REPORT_CLOSED: lambda n: "Your report has been closed.",
}

NOTIFICATION_TYPES = frozenset(FORMATTERS)


def ensure_known_type(notification_type: str) -> str:
    if notification_type not in NOTIFICATION_TYPES:
        raise UnknownNotificationType(notification_type)
    return notification_type


def format_notification(notification: Notification) -> str:
    """Human-readable message for a notification. Unknown types raise UnknownNotificationType."""
    return FORMATTERS[ensure_known_type(notification.type)](notification)


class TransitionNotice(NamedTuple):
    type: str
    recipients: Callable[[Report], List[str]]
    payload: Callable[[Report, Actor], Dict]


def _reporter(report: Report) -> List[str]:
    return [report.reporter_id]


def _base_payload(report: Report, actor: Actor) -> Dict:
    return {"status": report.status.value, "actor": actor.id}


# Extend only here. Target statuses missing from this map emit no notification.
TRANSITION_NOTIFICATIONS: Dict[ReportStatus, TransitionNotice] = {
    ReportStatus.ASSIGNED: TransitionNotice(
        REPORT_ASSIGNED,
        _reporter,
        lambda report, actor: {
            **_base_payload(report, actor),
            "officer_name": actor.name,
            "assigned_officer_ids": list(report.assigned_officer_ids),
        },
    ),
    ReportStatus.MISROUTED: TransitionNotice(
        REPORT_MISROUTED,
        _reporter,
        lambda report, actor: {**_base_payload(report, actor), "reason": report.misroute_reason},
    ),
    ReportStatus.AWAITING_VERIFICATION: TransitionNotice(REPORT_AWAITING_VERIFICATION, _reporter, _base_payload),
    ReportStatus.VERIFIED: TransitionNotice(REPORT_VERIFIED, _reporter, _base_payload),
    ReportStatus.CLOSED: TransitionNotice(REPORT_CLOSED, _reporter, _base_payload),
}
