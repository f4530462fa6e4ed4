from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import select

from taskcycle.domain.entities import TaskTemplate
from taskcycle.domain.enums import EndConditionKind, TaskStatus
from taskcycle.domain.errors import TaskcycleError
from taskcycle.domain.recurrence import RecurrenceRule

from .db import SessionLocal
from .models import RecurringOverrideModel, TaskTemplateModel

logger = logging.getLogger(__name__)


def _to_rule(model: TaskTemplateModel) -> Optional[RecurrenceRule]:
    if not model.recurrence_frequency:
        return None
    config: dict[str, Any] = {
        "frequency": model.recurrence_frequency,
        "interval": model.recurrence_interval,
        "endCondition": model.recurrence_end_condition,
    }
    if model.recurrence_end_condition == EndConditionKind.AFTER.value:
        config["endValue"] = model.recurrence_end_count
    elif model.recurrence_end_condition == EndConditionKind.UNTIL.value:
        config["endValue"] = model.recurrence_end_date
    return RecurrenceRule.from_dict(config)


def _to_entity(model: TaskTemplateModel) -> TaskTemplate:
    return TaskTemplate(
        id=model.id,
        title=model.title,
        description=model.description,
        status=TaskStatus(model.status),
        priority=model.priority,
        anchor_date=model.anchor_date,
        recurrence=_to_rule(model),
        assignee_ids=tuple(model.assignee_ids or ()),
        project_id=model.project_id,
    )


def _recurrence_columns(rule: Optional[RecurrenceRule]) -> dict[str, Any]:
    if rule is None:
        return {
            "recurrence_frequency": None,
            "recurrence_interval": 1,
            "recurrence_end_condition": EndConditionKind.NEVER.value,
            "recurrence_end_count": None,
            "recurrence_end_date": None,
        }
    return {
        "recurrence_frequency": rule.frequency.value,
        "recurrence_interval": rule.interval,
        "recurrence_end_condition": rule.end_condition.kind.value,
        "recurrence_end_count": rule.count,
        "recurrence_end_date": rule.until,
    }


class TemplateRepository:
    """Read side of the task templates, plus creation for seeding."""

    def list_recurring_templates(self) -> list[TaskTemplate]:
        with SessionLocal() as session:
            stmt = (
                select(TaskTemplateModel)
                .where(TaskTemplateModel.recurrence_frequency.is_not(None))
                .order_by(TaskTemplateModel.anchor_date.asc(), TaskTemplateModel.id.asc())
            )
            templates = []
            for model in session.scalars(stmt):
                try:
                    templates.append(_to_entity(model))
                except (TaskcycleError, ValueError) as exc:
                    logger.warning("Skipping template %s with invalid recurrence: %s", model.id, exc)
            return templates

    def get_template(self, template_id: str) -> Optional[TaskTemplate]:
        with SessionLocal() as session:
            model = session.get(TaskTemplateModel, template_id)
            return _to_entity(model) if model else None

    def create_template(self, data: dict) -> TaskTemplate:
        data = dict(data)
        rule = data.pop("recurrence", None)
        if isinstance(rule, dict):
            rule = RecurrenceRule.from_dict(rule)
        if isinstance(data.get("status"), TaskStatus):
            data["status"] = data["status"].value
        data["assignee_ids"] = list(data.get("assignee_ids") or [])
        if rule is not None and data.get("anchor_date") is not None:
            rule.validate_for_anchor(data["anchor_date"])
        data.update(_recurrence_columns(rule))

        with SessionLocal() as session:
            model = TaskTemplateModel(**data)
            session.add(model)
            session.commit()
            session.refresh(model)
            return _to_entity(model)


def _to_document(model: RecurringOverrideModel) -> dict[str, Any]:
    return {
        "id": model.id,
        "taskId": model.task_id,
        "date": model.date,
        "overrides": dict(model.overrides or {}),
        "createdAt": model.created_at.isoformat(),
        "updatedAt": model.updated_at.isoformat(),
    }


class SqlOverrideDocuments:
    """Override records as documents keyed ``{taskId}_{YYYY-MM-DD}``."""

    def get(self, key: str) -> Optional[dict[str, Any]]:
        with SessionLocal() as session:
            model = session.get(RecurringOverrideModel, key)
            return _to_document(model) if model else None

    def set(self, key: str, document: dict[str, Any]) -> None:
        with SessionLocal() as session:
            model = session.get(RecurringOverrideModel, key)
            if model is None:
                model = RecurringOverrideModel(id=key)
                session.add(model)
            model.task_id = document["taskId"]
            model.date = document["date"]
            model.overrides = dict(document.get("overrides") or {})
            model.created_at = datetime.fromisoformat(document["createdAt"])
            model.updated_at = datetime.fromisoformat(document["updatedAt"])
            session.commit()

    def delete(self, key: str) -> None:
        with SessionLocal() as session:
            model = session.get(RecurringOverrideModel, key)
            if not model:
                return
            session.delete(model)
            session.commit()

    def query_by_task(self, task_id: str) -> list[dict[str, Any]]:
        with SessionLocal() as session:
            stmt = (
                select(RecurringOverrideModel)
                .where(RecurringOverrideModel.task_id == task_id)
                .order_by(RecurringOverrideModel.date.asc())
            )
            return [_to_document(model) for model in session.scalars(stmt)]

    def list_all(self) -> list[dict[str, Any]]:
        with SessionLocal() as session:
            stmt = select(RecurringOverrideModel).order_by(
                RecurringOverrideModel.task_id.asc(), RecurringOverrideModel.date.asc()
            )
            return [_to_document(model) for model in session.scalars(stmt)]
