from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Protocol

from taskcycle.domain.entities import InstanceOverride, TaskTemplate, VirtualInstance
from taskcycle.domain.enums import TaskStatus
from taskcycle.domain.errors import (
    OverridePersistenceError,
    TemplateNotFoundError,
    UnknownOccurrenceError,
)
from taskcycle.domain.window import DateWindow, format_date, parse_date
from taskcycle.services.merger import VirtualInstanceMerger
from taskcycle.services.occurrences import OccurrenceGenerator
from taskcycle.services.override_store import InstanceOverrideStore
from taskcycle.services.transitions import StatusTransitionPolicy

logger = logging.getLogger(__name__)

CLOSED_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})


class TemplateSource(Protocol):
    def list_recurring_templates(self) -> list[TaskTemplate]: ...


@dataclass(frozen=True)
class UpdateResult:
    instance: VirtualInstance
    override: InstanceOverride | None
    warning: str | None = None

    @property
    def persisted(self) -> bool:
        return self.warning is None


class VirtualInstanceService:
    def __init__(
        self,
        templates: TemplateSource,
        overrides: InstanceOverrideStore,
        generator: OccurrenceGenerator | None = None,
        merger: VirtualInstanceMerger | None = None,
        policy: StatusTransitionPolicy | None = None,
        next_instance_horizon_days: int = 90,
        overdue_lookback_days: int = 30,
    ) -> None:
        self._templates = templates
        self._overrides = overrides
        self._generator = generator or OccurrenceGenerator()
        self._merger = merger or VirtualInstanceMerger()
        self._policy = policy or StatusTransitionPolicy()
        self._horizon = timedelta(days=next_instance_horizon_days)
        self._lookback = timedelta(days=overdue_lookback_days)
        self._overrides.load_all()

    def list_recurring_templates(self) -> list[TaskTemplate]:
        return self._templates.list_recurring_templates()

    def list_instances(
        self,
        templates: Iterable[TaskTemplate],
        window_start: date | datetime | str,
        window_end: date | datetime | str,
    ) -> list[VirtualInstance]:
        """Return every occurrence of ``templates`` inside the window.

        Ordered by due date, then template id.
        """
        window = DateWindow.of(window_start, window_end)
        instances: list[VirtualInstance] = []
        for template in templates:
            for day in self._generator.iter_occurrences(template, window.start, window.end):
                instance = self._merger.merge(template, day, self._overrides.get(template.id, day))
                if instance.due_date is None:
                    logger.warning("Skipping malformed instance %s", instance.id)
                    continue
                instances.append(instance)
        instances.sort(key=lambda instance: (instance.due_date, instance.parent_template_id))
        return instances

    def list_window(
        self, window_start: date | datetime | str, window_end: date | datetime | str
    ) -> list[VirtualInstance]:
        return self.list_instances(self.list_recurring_templates(), window_start, window_end)

    def get_instance(self, template_id: str, occurrence_date: date | str) -> VirtualInstance:
        template, day = self._resolve(template_id, occurrence_date)
        return self._merger.merge(template, day, self._overrides.get(template.id, day))

    def update_instance(
        self,
        template_id: str,
        occurrence_date: date | str,
        field_changes: Mapping[str, Any],
    ) -> UpdateResult:
        """Apply ``field_changes`` to a single occurrence.

        A status change is checked against the transition policy first; a
        rejected change raises InvalidTransitionError and nothing is written.
        A failed backend write is reported through ``UpdateResult.warning``
        while the change stays visible locally.
        """
        template, day = self._resolve(template_id, occurrence_date)
        if "status" in field_changes:
            current = self._merger.merge(template, day, self._overrides.get(template.id, day))
            self._policy.ensure_allowed(current.status.value, field_changes["status"])

        warning = None
        try:
            override = self._overrides.put(template.id, day, field_changes)
        except OverridePersistenceError as exc:
            override = exc.override
            warning = exc.message

        instance = self._merger.merge(template, day, override)
        logger.info("Updated instance %s", instance.id)
        return UpdateResult(instance=instance, override=override, warning=warning)

    def reset_instance(self, template_id: str, occurrence_date: date | str) -> bool:
        template, day = self._resolve(template_id, occurrence_date)
        return self._overrides.delete(template.id, day)

    def retry_pending(self) -> list[str]:
        return self._overrides.retry_pending()

    def next_instance(self, template: TaskTemplate, today: date | None = None) -> VirtualInstance | None:
        today = today or date.today()
        for instance in self.list_instances([template], today, today + self._horizon):
            if instance.status not in CLOSED_STATUSES:
                return instance
        return None

    def overdue_instances(self, template: TaskTemplate, today: date | None = None) -> list[VirtualInstance]:
        today = today or date.today()
        yesterday = today - timedelta(days=1)
        start = today - self._lookback
        if yesterday < start:
            return []
        return [
            instance
            for instance in self.list_instances([template], start, yesterday)
            if instance.status not in CLOSED_STATUSES
        ]

    def _resolve(self, template_id: str, occurrence_date: date | str) -> tuple[TaskTemplate, date]:
        try:
            day = parse_date(occurrence_date)
        except ValueError:
            raise UnknownOccurrenceError(f"Not a calendar date: {occurrence_date!r}") from None

        template = next(
            (t for t in self.list_recurring_templates() if t.id == template_id),
            None,
        )
        if template is None:
            raise TemplateNotFoundError(f"Recurring template not found: {template_id}")
        if not self._generator.is_occurrence(template, day):
            raise UnknownOccurrenceError(
                f"{format_date(day)} is not an occurrence of template {template_id}",
                details={"template_id": template_id, "date": format_date(day)},
            )
        return template, day
