"""
Exception types raised by the workflow engine.

Routine workflow outcomes (invalid transition, unauthorized actor, failed
precondition, stale version, missing report) are NOT exceptions; they come
back as TransitionResult values. Only failures that abort a whole operation
are raised.
"""

from typing import List, Optional


class WorkflowError(Exception):
    """Base class for engine failures."""


class StorageFailure(WorkflowError):
    """The backing store could not complete a read or a commit."""


class ConcurrentModification(WorkflowError):
    """A commit found the report at a different version than it was loaded at."""

    def __init__(self, report_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Report {report_id} is at version {actual_version}, expected {expected_version}"
        )
        self.report_id = report_id
        self.expected_version = expected_version
        self.actual_version = actual_version


class UnknownNotificationType(WorkflowError):
    """A notification type outside the closed registry was requested."""

    def __init__(self, notification_type: str):
        super().__init__(f"Unknown notification type: {notification_type}")
        self.notification_type = notification_type


class DispatchFailure(WorkflowError):
    """
    Notification creation failed after the report update and its audit entry
    were committed. The committed state is kept; undelivered notifications
    are parked as dead letters for a later retry.
    """

    def __init__(self, message: str, report=None, dead_letters: Optional[List] = None):
        super().__init__(message)
        self.report = report
        self.dead_letters = dead_letters or []


class ClassifierError(WorkflowError):
    """The external category classifier failed or returned garbage."""
