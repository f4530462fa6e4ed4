from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass, field, replace
from datetime import date, datetime
from typing import Any, Optional

from .enums import TaskStatus
from .errors import InvalidOverrideError
from .recurrence import RecurrenceRule
from .window import format_date, parse_date

logger = logging.getLogger(__name__)

MUTABLE_FIELDS = frozenset({"status", "title", "description", "priority", "assignee_ids"})

# stored override maps use the record names
RECORD_NAMES = {"assignee_ids": "assigneeIds"}
FIELD_ALIASES = {record: name for name, record in RECORD_NAMES.items()}

IDENTITY_KEYS = frozenset({
    "id",
    "template_id",
    "templateId",
    "parent_template_id",
    "parentTemplateId",
    "parentTaskId",
    "task_id",
    "taskId",
    "occurrence_date",
    "occurrenceDate",
    "due_date",
    "dueDate",
    "date",
})

MIN_PRIORITY = 1
MAX_PRIORITY = 10


def override_key(template_id: str, occurrence_date: date) -> str:
    return f"{template_id}_{format_date(occurrence_date)}"


def _coerce_field(name: str, value: Any) -> Any:
    if name == "status":
        try:
            return TaskStatus(value)
        except ValueError:
            raise InvalidOverrideError(
                f"Invalid status: {value}. Must be one of: "
                + ", ".join(s.value for s in TaskStatus)
            ) from None
    if name == "title":
        if not isinstance(value, str) or not value.strip():
            raise InvalidOverrideError("Title must be a non-empty string")
        return value.strip()
    if name == "description":
        if value is not None and not isinstance(value, str):
            raise InvalidOverrideError("Description must be a string")
        return value
    if name == "priority":
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidOverrideError("Priority must be an integer")
        if not MIN_PRIORITY <= value <= MAX_PRIORITY:
            raise InvalidOverrideError(
                f"Priority must be between {MIN_PRIORITY} and {MAX_PRIORITY}"
            )
        return value
    if name == "assignee_ids":
        if isinstance(value, str) or not isinstance(value, Iterable):
            raise InvalidOverrideError("Assignees must be a list of ids")
        ids = list(value)
        if not all(isinstance(item, str) and item for item in ids):
            raise InvalidOverrideError("Assignees must be a list of ids")
        return tuple(dict.fromkeys(ids))
    raise InvalidOverrideError(f"Field cannot be overridden: {name}")


def sanitize_override_fields(fields: Mapping[str, Any], strict: bool = True) -> dict[str, Any]:
    """Return the overridable subset of ``fields`` with normalized values.

    Identity keys (template id, occurrence date, generated ids) are dropped
    silently.  With ``strict`` any other key outside the mutable set, or an
    ill-typed value, raises InvalidOverrideError; otherwise it is logged and
    dropped, which is how stored records are read back.
    """
    clean: dict[str, Any] = {}
    unknown: list[str] = []
    for key, value in fields.items():
        if not isinstance(key, str):
            unknown.append(repr(key))
            continue
        if key in IDENTITY_KEYS:
            continue
        name = FIELD_ALIASES.get(key, key)
        if name not in MUTABLE_FIELDS:
            unknown.append(key)
            continue
        try:
            clean[name] = _coerce_field(name, value)
        except InvalidOverrideError as exc:
            if strict:
                raise
            logger.warning("Dropping stored override field %s: %s", key, exc)
    if unknown:
        if strict:
            raise InvalidOverrideError(
                "Unknown override fields: " + ", ".join(sorted(unknown)),
                details={"allowed": sorted(MUTABLE_FIELDS)},
            )
        logger.warning("Dropping unknown stored override fields: %s", ", ".join(sorted(unknown)))
    return clean


@dataclass(frozen=True)
class TaskTemplate:
    id: str
    title: str
    status: TaskStatus
    priority: int
    anchor_date: Optional[date]
    recurrence: Optional[RecurrenceRule] = None
    description: str | None = None
    assignee_ids: tuple[str, ...] = ()
    project_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "status", TaskStatus(self.status))
        object.__setattr__(self, "assignee_ids", tuple(self.assignee_ids or ()))
        if self.recurrence is not None and self.anchor_date is not None:
            self.recurrence.validate_for_anchor(self.anchor_date)

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None


@dataclass(frozen=True)
class InstanceOverride:
    template_id: str
    occurrence_date: date
    fields: Mapping[str, Any]
    created_at: datetime
    updated_at: datetime

    @property
    def key(self) -> str:
        return override_key(self.template_id, self.occurrence_date)

    def merged(self, fields: Mapping[str, Any], now: datetime) -> InstanceOverride:
        return replace(self, fields={**self.fields, **fields}, updated_at=now)

    def to_document(self) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for name, value in self.fields.items():
            if isinstance(value, TaskStatus):
                value = value.value
            elif isinstance(value, tuple):
                value = list(value)
            overrides[RECORD_NAMES.get(name, name)] = value
        return {
            "taskId": self.template_id,
            "date": format_date(self.occurrence_date),
            "overrides": overrides,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> InstanceOverride:
        created_at = datetime.fromisoformat(document["createdAt"])
        return cls(
            template_id=str(document["taskId"]),
            occurrence_date=parse_date(document["date"]),
            fields=sanitize_override_fields(document.get("overrides") or {}, strict=False),
            created_at=created_at,
            updated_at=datetime.fromisoformat(document.get("updatedAt") or document["createdAt"]),
        )


@dataclass(frozen=True)
class VirtualInstance:
    id: str
    parent_template_id: str
    due_date: Optional[date]
    title: str
    status: TaskStatus
    priority: int
    description: str | None = None
    assignee_ids: tuple[str, ...] = ()
    project_id: str | None = None
    is_recurring: bool = True
    overrides: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["due_date"] = format_date(self.due_date) if self.due_date else None
        data["status"] = self.status.value
        data["assignee_ids"] = list(self.assignee_ids)
        data["overrides"] = {
            key: value.value if isinstance(value, TaskStatus) else value
            for key, value in self.overrides.items()
        }
        return data
