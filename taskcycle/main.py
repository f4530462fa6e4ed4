from __future__ import annotations

import argparse
import logging
import sys
from datetime import date

from taskcycle.config import SETTINGS
from taskcycle.domain.entities import VirtualInstance
from taskcycle.domain.enums import TaskStatus
from taskcycle.domain.errors import TaskcycleError, TemplateNotFoundError
from taskcycle.domain.window import DateWindow, format_date, parse_date
from taskcycle.infra.db import init_db
from taskcycle.infra.logging import setup_logging
from taskcycle.infra.repository import SqlOverrideDocuments, TemplateRepository
from taskcycle.services.instance_service import VirtualInstanceService
from taskcycle.services.override_store import InstanceOverrideStore

logger = logging.getLogger(__name__)


def build_service() -> VirtualInstanceService:
    return VirtualInstanceService(
        TemplateRepository(),
        InstanceOverrideStore(SqlOverrideDocuments()),
        next_instance_horizon_days=SETTINGS.next_instance_horizon_days,
        overdue_lookback_days=SETTINGS.overdue_lookback_days,
    )


def _format_instance(instance: VirtualInstance) -> str:
    due = format_date(instance.due_date) if instance.due_date else "????-??-??"
    marker = "*" if instance.overrides else " "
    assignees = ",".join(instance.assignee_ids) or "-"
    return f"{due} {marker} [{instance.status.value:<11}] p{instance.priority:<2} {instance.title} ({instance.parent_template_id}; {assignees})"


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Expand recurring task templates into calendar instances.")
    ap.add_argument("--create-schema", action="store_true", help="Create missing tables before running")
    ap.add_argument("--log-level", default=None, help=f"Log level (default: {SETTINGS.log_level})")
    ap.add_argument("--no-log-file", action="store_true", help="Log to stderr only")
    sub = ap.add_subparsers(dest="command", required=True)

    p_list = sub.add_parser("list", help="List instances inside a date window")
    p_list.add_argument("--start", default=None, help="Window start YYYY-MM-DD (default: today)")
    p_list.add_argument("--end", default=None, help="Window end YYYY-MM-DD (default: start + --days - 1)")
    p_list.add_argument("--days", type=int, default=SETTINGS.window_days, help=f"Window length in days (default: {SETTINGS.window_days})")

    p_update = sub.add_parser("update", help="Change one instance")
    p_update.add_argument("template_id")
    p_update.add_argument("date", help="Occurrence date YYYY-MM-DD")
    p_update.add_argument("--status", choices=[s.value for s in TaskStatus])
    p_update.add_argument("--title")
    p_update.add_argument("--description")
    p_update.add_argument("--priority", type=int)
    p_update.add_argument("--assignee", action="append", dest="assignees", help="Assignee id (repeatable)")

    p_reset = sub.add_parser("reset", help="Drop the override of one instance")
    p_reset.add_argument("template_id")
    p_reset.add_argument("date")

    sub.add_parser("retry", help="Re-send override writes that failed in this process")

    for name, text in (("next", "Show the next open instance"), ("overdue", "Show open instances in the past")):
        p = sub.add_parser(name, help=text)
        p.add_argument("template_id")
        p.add_argument("--today", default=None, help="Reference date YYYY-MM-DD (default: today)")

    return ap.parse_args(argv)


def _window(args: argparse.Namespace) -> DateWindow:
    start = parse_date(args.start) if args.start else date.today()
    if args.end:
        return DateWindow(start, parse_date(args.end))
    return DateWindow.starting(start, args.days)


def _template(service: VirtualInstanceService, template_id: str):
    for template in service.list_recurring_templates():
        if template.id == template_id:
            return template
    raise TemplateNotFoundError(f"Recurring template not found: {template_id}")


def run(args: argparse.Namespace, service: VirtualInstanceService) -> int:
    if args.command == "list":
        window = _window(args)
        for instance in service.list_window(window.start, window.end):
            print(_format_instance(instance))
        return 0

    if args.command == "update":
        changes = {
            key: value
            for key, value in (
                ("status", args.status),
                ("title", args.title),
                ("description", args.description),
                ("priority", args.priority),
                ("assignee_ids", args.assignees),
            )
            if value is not None
        }
        if not changes:
            print("Nothing to change.", file=sys.stderr)
            return 2
        result = service.update_instance(args.template_id, args.date, changes)
        print(_format_instance(result.instance))
        if not result.persisted:
            print(f"warning: {result.warning}", file=sys.stderr)
        return 0

    if args.command == "reset":
        removed = service.reset_instance(args.template_id, args.date)
        print("override removed" if removed else "no override")
        return 0

    if args.command in ("next", "overdue"):
        template = _template(service, args.template_id)
        today = parse_date(args.today) if args.today else None
        if args.command == "next":
            instance = service.next_instance(template, today)
            print(_format_instance(instance) if instance else "no upcoming instance")
        else:
            for instance in service.overdue_instances(template, today):
                print(_format_instance(instance))
        return 0

    if args.command == "retry":
        failed = service.retry_pending()
        for key in failed:
            print(key)
        print(f"{len(failed)} write(s) still pending" if failed else "all overrides persisted")
        return 1 if failed else 0

    return 2


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging(args.log_level, log_to_file=not args.no_log_file)
    try:
        init_db(create_schema=args.create_schema)
    except Exception as exc:  # noqa: BLE001
        logger.error("Database unavailable: %s", exc)
        print(f"DB error: {exc}", file=sys.stderr)
        return 1

    try:
        return run(args, build_service())
    except (TaskcycleError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
