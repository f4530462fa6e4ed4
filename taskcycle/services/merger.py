from __future__ import annotations

import logging
from dataclasses import fields, replace
from datetime import date

from taskcycle.domain.entities import InstanceOverride, TaskTemplate, VirtualInstance, override_key
from taskcycle.domain.window import parse_date

logger = logging.getLogger(__name__)

INSTANCE_FIELDS = frozenset(f.name for f in fields(VirtualInstance)) - {"overrides"}


class VirtualInstanceMerger:
    """Combines a generated occurrence with its override into the caller's view."""

    def merge(
        self,
        template: TaskTemplate,
        occurrence_date: date | str | None,
        override: InstanceOverride | None = None,
    ) -> VirtualInstance:
        try:
            due_date = parse_date(occurrence_date)
        except ValueError:
            logger.warning(
                "Instance of template %s has unusable due date %r; override not applied",
                template.id,
                occurrence_date,
            )
            return self._base(template, None, f"{template.id}_{occurrence_date}")

        base = self._base(template, due_date, override_key(template.id, due_date))
        if override is None:
            return base

        overlay = {key: value for key, value in override.fields.items() if key in INSTANCE_FIELDS}
        merged = replace(base, **overlay, overrides=dict(override.fields))
        # the override never decides which occurrence this is
        return replace(
            merged,
            id=base.id,
            parent_template_id=base.parent_template_id,
            due_date=base.due_date,
            is_recurring=True,
        )

    @staticmethod
    def _base(template: TaskTemplate, due_date: date | None, instance_id: str) -> VirtualInstance:
        return VirtualInstance(
            id=instance_id,
            parent_template_id=template.id,
            due_date=due_date,
            title=template.title,
            status=template.status,
            priority=template.priority,
            description=template.description,
            assignee_ids=template.assignee_ids,
            project_id=template.project_id,
        )
