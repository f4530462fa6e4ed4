"""
Recurrence rules.

A rule is immutable and validated on construction, so a rule that exists is a
rule that can be expanded.  The end condition is one of three variants:
``Never``, ``AfterCount(count)`` or ``UntilDate(until)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping, Union

from .enums import EndConditionKind, Frequency
from .errors import RecurrenceConfigError
from .window import format_date, parse_date

MIN_INTERVAL = 1
MAX_INTERVAL = 365
MAX_AFTER_COUNT = 1000


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class Never:
    kind = EndConditionKind.NEVER


@dataclass(frozen=True)
class AfterCount:
    count: int
    kind = EndConditionKind.AFTER

    def __post_init__(self) -> None:
        if not _is_int(self.count):
            raise RecurrenceConfigError('End value must be a number for "after" condition')
        if self.count < 1:
            raise RecurrenceConfigError('End value must be a positive integer for "after" condition')
        if self.count > MAX_AFTER_COUNT:
            raise RecurrenceConfigError(
                f'End value cannot exceed {MAX_AFTER_COUNT} for "after" condition'
            )


@dataclass(frozen=True)
class UntilDate:
    until: date
    kind = EndConditionKind.UNTIL

    def __post_init__(self) -> None:
        if not isinstance(self.until, date):
            raise RecurrenceConfigError('End value must be a valid date for "until" condition')


EndCondition = Union[Never, AfterCount, UntilDate]


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    interval: int = 1
    end_condition: EndCondition = field(default_factory=Never)

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "frequency", Frequency(self.frequency))
        except ValueError:
            raise RecurrenceConfigError(
                f"Invalid frequency: {self.frequency}. Must be one of: "
                + ", ".join(f.value for f in Frequency)
            ) from None
        if not _is_int(self.interval):
            raise RecurrenceConfigError("Interval must be an integer")
        if self.interval < MIN_INTERVAL:
            raise RecurrenceConfigError(f"Interval must be at least {MIN_INTERVAL}")
        if self.interval > MAX_INTERVAL:
            raise RecurrenceConfigError(f"Interval cannot exceed {MAX_INTERVAL}")
        if not isinstance(self.end_condition, (Never, AfterCount, UntilDate)):
            raise RecurrenceConfigError(f"Invalid end condition: {self.end_condition!r}")

    @property
    def until(self) -> date | None:
        if isinstance(self.end_condition, UntilDate):
            return self.end_condition.until
        return None

    @property
    def count(self) -> int | None:
        if isinstance(self.end_condition, AfterCount):
            return self.end_condition.count
        return None

    def validate_for_anchor(self, anchor: date) -> None:
        until = self.until
        if until is not None and until < anchor:
            raise RecurrenceConfigError(
                "End date must be after start date",
                details={"anchor": format_date(anchor), "until": format_date(until)},
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RecurrenceRule:
        """Build a rule from the stored template config.

        Accepts ``{frequency, interval, endCondition, endValue}``; a bare
        ``endDate`` without ``endCondition`` is read as an until-date.
        """
        condition = data.get("endCondition")
        end_value = data.get("endValue")
        if condition is None and data.get("endDate"):
            condition, end_value = EndConditionKind.UNTIL.value, data["endDate"]

        try:
            kind = EndConditionKind(condition or EndConditionKind.NEVER.value)
        except ValueError:
            raise RecurrenceConfigError(
                f"Invalid end condition: {condition}. Must be one of: never, after, until"
            ) from None

        end: EndCondition
        if kind is EndConditionKind.NEVER:
            end = Never()
        elif kind is EndConditionKind.AFTER:
            if end_value is None:
                raise RecurrenceConfigError('End value is required for "after" condition')
            end = AfterCount(end_value)
        else:
            if end_value is None:
                raise RecurrenceConfigError('End value is required for "until" condition')
            try:
                end = UntilDate(parse_date(end_value))
            except ValueError:
                raise RecurrenceConfigError(
                    'End value must be a valid date for "until" condition'
                ) from None

        return cls(
            frequency=data.get("frequency"),
            interval=data.get("interval", 1),
            end_condition=end,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "frequency": self.frequency.value,
            "interval": self.interval,
            "endCondition": self.end_condition.kind.value,
        }
        if self.count is not None:
            data["endValue"] = self.count
        elif self.until is not None:
            data["endValue"] = format_date(self.until)
        return data
