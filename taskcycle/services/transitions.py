from __future__ import annotations

import logging
from dataclasses import dataclass

from taskcycle.domain.enums import TaskStatus
from taskcycle.domain.errors import InvalidTransitionError

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.TODO: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.TODO, TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset({TaskStatus.TODO, TaskStatus.CANCELLED}),
    # reactivation goes through todo
    TaskStatus.CANCELLED: frozenset({TaskStatus.TODO}),
}


@dataclass(frozen=True)
class TransitionResult:
    valid: bool
    reason: str | None = None


class StatusTransitionPolicy:
    def __init__(self, allowed: dict[TaskStatus, frozenset[TaskStatus]] | None = None) -> None:
        self._allowed = ALLOWED_TRANSITIONS if allowed is None else allowed

    def validate(self, current: str, requested: str) -> TransitionResult:
        source, target = _as_status(current), _as_status(requested)
        errors = []
        if source is None:
            errors.append(f"Invalid current status: {current}")
        if target is None:
            errors.append(f"Invalid target status: {requested}")
        if errors:
            allowed = ", ".join(s.value for s in TaskStatus)
            return TransitionResult(False, f"{'; '.join(errors)}. Must be one of: {allowed}")

        if source == target or target in self._allowed.get(source, frozenset()):
            return TransitionResult(True)
        return TransitionResult(False, f"Cannot transition from {source.value} to {target.value}")

    def ensure_allowed(self, current: str, requested: str) -> None:
        result = self.validate(current, requested)
        if not result.valid:
            logger.info("Rejected status change %s -> %s: %s", current, requested, result.reason)
            raise InvalidTransitionError(str(current), str(requested), result.reason or "")

    def allowed_targets(self, current: str) -> list[TaskStatus]:
        source = _as_status(current)
        if source is None:
            return []
        return sorted(self._allowed.get(source, frozenset()), key=list(TaskStatus).index)


def _as_status(value: object) -> TaskStatus | None:
    try:
        return TaskStatus(value)
    except ValueError:
        return None
