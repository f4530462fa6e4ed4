from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import JSON, Column, Date, DateTime, Integer, String, Text

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class TaskTemplateModel(Base):
    __tablename__ = "task_templates"

    id = Column(String(64), primary_key=True, default=new_id)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="todo", index=True)
    priority = Column(Integer, nullable=False, default=5)
    anchor_date = Column(Date, nullable=True)
    assignee_ids = Column(JSON, nullable=False, default=list)
    project_id = Column(String(64), nullable=True)
    recurrence_frequency = Column(String(20), nullable=True, index=True)
    recurrence_interval = Column(Integer, nullable=False, default=1)
    recurrence_end_condition = Column(String(10), nullable=False, default="never")
    recurrence_end_count = Column(Integer, nullable=True)
    recurrence_end_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class RecurringOverrideModel(Base):
    __tablename__ = "recurring_overrides"

    id = Column(String(128), primary_key=True)
    task_id = Column(String(64), nullable=False, index=True)
    date = Column(String(10), nullable=False)
    overrides = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
