"""
Exception taxonomy for the recurring-instance engine.

Configuration and transition errors are the failures callers branch on.
Persistence errors are recoverable: the local state has already advanced.
"""

from __future__ import annotations

from typing import Any, Optional


class TaskcycleError(Exception):
    """Base exception for taskcycle."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class RecurrenceConfigError(TaskcycleError):
    """Invalid recurrence rule, rejected before any generation."""

    pass


class InvalidTransitionError(TaskcycleError):
    """Status change not allowed from the current status."""

    def __init__(self, current: str, requested: str, reason: str):
        super().__init__(reason, details={"from": current, "to": requested})
        self.current = current
        self.requested = requested


class InvalidOverrideError(TaskcycleError):
    """Override fields outside the mutable set, or with ill-typed values."""

    pass


class OverridePersistenceError(TaskcycleError):
    """Writing an override to the backing store failed.

    The in-process cache already holds ``override``; the write can be retried.
    """

    def __init__(self, message: str, override: Any, cause: Exception):
        super().__init__(message, details={"key": getattr(override, "key", None)})
        self.override = override
        self.cause = cause


class TemplateNotFoundError(TaskcycleError):
    """No recurring template with the given id."""

    pass


class UnknownOccurrenceError(TaskcycleError):
    """The date is not an occurrence of the template."""

    pass
