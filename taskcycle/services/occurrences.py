from __future__ import annotations

from collections.abc import Iterator
from datetime import date, timedelta

from taskcycle.domain.entities import TaskTemplate
from taskcycle.domain.enums import Frequency
from taskcycle.domain.recurrence import RecurrenceRule

ONE_DAY = timedelta(days=1)


class OccurrenceGenerator:
    """Expands a recurring template into the dates it falls on.

    Candidates are scanned one day at a time and tested against the rule, so
    a monthly rule anchored on the 31st simply has no match in shorter months.
    """

    def generate(self, template: TaskTemplate, window_start: date, window_end: date) -> list[date]:
        return list(self.iter_occurrences(template, window_start, window_end))

    def iter_occurrences(
        self, template: TaskTemplate, window_start: date, window_end: date
    ) -> Iterator[date]:
        anchor = template.anchor_date
        rule = template.recurrence
        if anchor is None or rule is None:
            return

        upper = window_end
        if rule.until is not None and rule.until < upper:
            upper = rule.until

        limit = rule.count
        # a count limit is series-wide, so counting has to start at the anchor
        candidate = anchor if limit is not None else max(anchor, window_start)
        emitted = 0
        while candidate <= upper:
            if matches_rule(candidate, anchor, rule):
                emitted += 1
                if candidate >= window_start:
                    yield candidate
                if limit is not None and emitted >= limit:
                    return
            candidate += ONE_DAY

    def is_occurrence(self, template: TaskTemplate, day: date) -> bool:
        return day in self.generate(template, day, day)


def matches_rule(candidate: date, anchor: date, rule: RecurrenceRule) -> bool:
    days = (candidate - anchor).days
    if days < 0:
        return False

    interval = rule.interval
    if rule.frequency == Frequency.DAILY:
        return days % interval == 0
    if rule.frequency == Frequency.WEEKLY:
        return days % 7 == 0 and (days // 7) % interval == 0
    if rule.frequency == Frequency.MONTHLY:
        months = (candidate.year - anchor.year) * 12 + (candidate.month - anchor.month)
        return months % interval == 0 and candidate.day == anchor.day
    if rule.frequency == Frequency.YEARLY:
        years = candidate.year - anchor.year
        return (
            years % interval == 0
            and candidate.month == anchor.month
            and candidate.day == anchor.day
        )
    return False
