#!/usr/bin/env python3
"""
ReportDraft CLI

Usage:
    python -m reportdraft draft <template> [--dry-run] [--test-mode] [--send] [--overrides <json>]
    python -m reportdraft batch <template>... [--dry-run] [--test-mode] [--send]
    python -m reportdraft validate <template>...
    python -m reportdraft schedule-add <template> --frequency daily --hour 9
    python -m reportdraft schedule-list
    python -m reportdraft schedule-remove <id>
    python -m reportdraft schedule-clear <template>
    python -m reportdraft run-due
    python -m reportdraft show-config
    python -m reportdraft set-config key=value...
    python -m reportdraft logs [--limit N] [--status STATUS]
    python -m reportdraft load-csv <path>
    python -m reportdraft load-sheet <url>

All commands output JSON to stdout; logs go to stderr.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict

from reportdraft.config import AppConfig, save_settings, validate_config
from reportdraft.errors import ConfigError

LOGGER = logging.getLogger("reportdraft")


def output_json(data: Any, success: bool = True) -> None:
    """Output JSON response to stdout."""
    response = {
        "success": success,
        "data": data if success else None,
        "error": None if success else data,
    }
    print(json.dumps(response, indent=2, ensure_ascii=False, default=str))


def _overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides = json.loads(args.overrides) if getattr(args, "overrides", None) else {}
    if getattr(args, "dry_run", False):
        overrides["dry_run"] = True
    if getattr(args, "test_mode", False):
        overrides["test_mode"] = True
    if getattr(args, "send", False):
        overrides["email_action"] = "send"
    return overrides


def _load_config(args: argparse.Namespace) -> AppConfig:
    return AppConfig.load(_overrides(args), settings_path=args.settings)


def build_orchestrator(config: AppConfig):
    """Wire the pipeline to Markdown templates, Google Sheets and Gmail."""
    from reportdraft.data_sources import directory_source_for
    from reportdraft.documents import MarkdownDocumentSource
    from reportdraft.execution_log import ExecutionLog, NullExecutionLog
    from reportdraft.generator import DeliveryOrchestrator
    from reportdraft.google_api import GMAIL_SCOPES, SHEETS_SCOPES, build_service
    from reportdraft.mailbox import GmailMailbox
    from reportdraft.sheets import GoogleSheetsTableSource

    scopes = GMAIL_SCOPES + SHEETS_SCOPES
    gmail = build_service("gmail", "v1", config.google_token_path, scopes)
    sheets = build_service("sheets", "v4", config.google_token_path, scopes)

    log = ExecutionLog(config.execution_log_path) if config.execution_log_path else NullExecutionLog()
    return DeliveryOrchestrator(
        config,
        documents=MarkdownDocumentSource(),
        tables=GoogleSheetsTableSource(sheets),
        directory=directory_source_for(config.directory_source_id),
        mailbox=GmailMailbox(gmail),
        link_source=directory_source_for(config.link_repository_source_id),
        execution_log=log,
    )


def _fail(e: Exception) -> None:
    if isinstance(e, ConfigError):
        output_json({"message": str(e), "errors": e.errors}, success=False)
    else:
        output_json(str(e), success=False)


# ============================================================
# commands
# ============================================================

def cmd_draft(args: argparse.Namespace) -> None:
    try:
        config = _load_config(args).require_valid()
        result = build_orchestrator(config).generate_draft(args.template)
        output_json(result.to_dict(), success=result.success)
    except Exception as e:
        _fail(e)


def cmd_batch(args: argparse.Namespace) -> None:
    try:
        config = _load_config(args).require_valid()
        result = build_orchestrator(config).generate_batch(args.templates)
        output_json(result.to_dict())
    except Exception as e:
        _fail(e)


def cmd_validate(args: argparse.Namespace) -> None:
    from reportdraft.documents import MarkdownDocumentSource
    from reportdraft.validator import validate_templates

    try:
        config = _load_config(args)
        results = validate_templates(MarkdownDocumentSource(), config.template_document_id, args.templates)
        output_json(results, success=not results["invalid"])
    except Exception as e:
        _fail(e)


def cmd_schedule_add(args: argparse.Namespace) -> None:
    from reportdraft.schedule import Schedule, ScheduleStore

    try:
        config = _load_config(args)
        schedule = Schedule(
            template_name=args.template,
            frequency=args.frequency.lower(),
            hour=args.hour,
            minute=args.minute,
            day_of_week=args.day_of_week,
            day_of_month=args.day_of_month,
            every_minutes=args.every_minutes,
            overrides=json.loads(args.schedule_overrides),
        )
        ScheduleStore(config.schedule_path).add(schedule)
        output_json(schedule.to_dict())
    except Exception as e:
        _fail(e)


def cmd_schedule_list(args: argparse.Namespace) -> None:
    from reportdraft.schedule import ScheduleStore

    try:
        config = _load_config(args)
        schedules = ScheduleStore(config.schedule_path).load()
        output_json({"schedules": [s.to_dict() for s in schedules], "count": len(schedules)})
    except Exception as e:
        _fail(e)


def cmd_schedule_remove(args: argparse.Namespace) -> None:
    from reportdraft.schedule import ScheduleStore

    try:
        config = _load_config(args)
        removed = ScheduleStore(config.schedule_path).remove(args.schedule_id)
        output_json({"removed": removed}, success=removed)
    except Exception as e:
        _fail(e)


def cmd_schedule_clear(args: argparse.Namespace) -> None:
    from reportdraft.schedule import ScheduleStore

    try:
        config = _load_config(args)
        removed = ScheduleStore(config.schedule_path).remove_template(args.template)
        output_json({"template_name": args.template, "removed": removed})
    except Exception as e:
        _fail(e)


def cmd_run_due(args: argparse.Namespace) -> None:
    from reportdraft.schedule import ScheduleStore, run_due

    try:
        config = _load_config(args)
        store = ScheduleStore(config.schedule_path)

        def run(schedule):
            scheduled = config.with_overrides(schedule.overrides).require_valid()
            return build_orchestrator(scheduled).generate_draft(schedule.template_name)

        ran = run_due(store, run, datetime.now().astimezone())
        output_json({
            "ran": [
                {
                    "schedule_id": s.id,
                    "template_name": s.template_name,
                    "result": outcome.to_dict() if hasattr(outcome, "to_dict") else str(outcome),
                }
                for s, outcome in ran
            ],
            "count": len(ran),
        })
    except Exception as e:
        _fail(e)


def cmd_show_config(args: argparse.Namespace) -> None:
    try:
        config = _load_config(args)
        output_json({"config": config.to_dict(), "errors": validate_config(config)})
    except Exception as e:
        _fail(e)


def cmd_set_config(args: argparse.Namespace) -> None:
    try:
        values = {}
        for pair in args.pairs:
            if "=" not in pair:
                raise ValueError(f"Expected key=value, got '{pair}'")
            key, value = pair.split("=", 1)
            values[key] = value
        path = save_settings(values, args.settings)
        output_json({"settings_path": path, "updated": sorted(values)})
    except Exception as e:
        _fail(e)


def cmd_logs(args: argparse.Namespace) -> None:
    from reportdraft.execution_log import ExecutionLog

    try:
        config = _load_config(args)
        rows = ExecutionLog(config.execution_log_path).recent(args.limit, status=args.status)
        output_json({"logs": rows, "count": len(rows)})
    except Exception as e:
        _fail(e)


def cmd_load_csv(args: argparse.Namespace) -> None:
    """Load CSV file and return rows + headers."""
    from reportdraft.data_sources import load_csv

    try:
        rows, headers = load_csv(args.path)
        output_json({"rows": rows, "headers": headers, "count": len(rows)})
    except Exception as e:
        output_json(str(e), success=False)


def cmd_load_sheet(args: argparse.Namespace) -> None:
    """Load Google Sheet and return rows + headers."""
    from reportdraft.data_sources import load_google_sheet

    try:
        rows, headers = load_google_sheet(args.url)
        output_json({"rows": rows, "headers": headers, "count": len(rows)})
    except Exception as e:
        output_json(str(e), success=False)


def _add_mode_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--dry-run", action="store_true", help="Resolve and decide, but don't touch the mailbox")
    p.add_argument("--test-mode", action="store_true", help="Send everything to the operator address only")
    p.add_argument("--send", action="store_true", help="Send the draft after creating or updating it")
    p.add_argument("--overrides", default="{}", help="JSON object of config overrides")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="reportdraft",
        description="ReportDraft CLI - compile report templates into idempotent Gmail drafts",
    )
    parser.add_argument("--settings", help="Path to settings.json")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # draft
    p_draft = subparsers.add_parser("draft", help="Create or update the draft for one template")
    p_draft.add_argument("template", help="Template section name")
    _add_mode_flags(p_draft)
    p_draft.set_defaults(func=cmd_draft)

    # batch
    p_batch = subparsers.add_parser("batch", help="Process several templates in one run")
    p_batch.add_argument("templates", nargs="+", help="Template section names")
    _add_mode_flags(p_batch)
    p_batch.set_defaults(func=cmd_batch)

    # validate
    p_val = subparsers.add_parser("validate", help="Check templates for authoring mistakes")
    p_val.add_argument("templates", nargs="+", help="Template section names")
    p_val.set_defaults(func=cmd_validate)

    # schedules
    p_sadd = subparsers.add_parser("schedule-add", help="Schedule a recurring report")
    p_sadd.add_argument("template", help="Template section name")
    p_sadd.add_argument("--frequency", required=True, help="hourly, daily, weekly or monthly")
    p_sadd.add_argument("--hour", type=int, default=9)
    p_sadd.add_argument("--minute", type=int, default=0)
    p_sadd.add_argument("--day-of-week", type=int, help="1 = Monday ... 7 = Sunday")
    p_sadd.add_argument("--day-of-month", type=int, help="1-31, clamped to the month length")
    p_sadd.add_argument("--every-minutes", type=int, default=60)
    p_sadd.add_argument("--overrides", dest="schedule_overrides", default="{}",
                        help="JSON object of config overrides for this schedule")
    p_sadd.set_defaults(func=cmd_schedule_add)

    p_slist = subparsers.add_parser("schedule-list", help="List scheduled reports")
    p_slist.set_defaults(func=cmd_schedule_list)

    p_srm = subparsers.add_parser("schedule-remove", help="Remove a scheduled report")
    p_srm.add_argument("schedule_id", help="Schedule id")
    p_srm.set_defaults(func=cmd_schedule_remove)

    p_sclr = subparsers.add_parser("schedule-clear", help="Remove every schedule for a template")
    p_sclr.add_argument("template", help="Template name")
    p_sclr.set_defaults(func=cmd_schedule_clear)

    p_due = subparsers.add_parser("run-due", help="Run every schedule that is due now")
    p_due.set_defaults(func=cmd_run_due)

    # config
    p_show = subparsers.add_parser("show-config", help="Print the effective configuration")
    p_show.set_defaults(func=cmd_show_config)

    p_set = subparsers.add_parser("set-config", help="Persist settings")
    p_set.add_argument("pairs", nargs="+", help="key=value")
    p_set.set_defaults(func=cmd_set_config)

    # logs
    p_logs = subparsers.add_parser("logs", help="Show recent executions")
    p_logs.add_argument("--limit", type=int, default=50)
    p_logs.add_argument("--status", help="Filter by status, e.g. ERROR")
    p_logs.set_defaults(func=cmd_logs)

    # directory inspection
    p_csv = subparsers.add_parser("load-csv", help="Load data from CSV file")
    p_csv.add_argument("path", help="Path to CSV file")
    p_csv.set_defaults(func=cmd_load_csv)

    p_sheet = subparsers.add_parser("load-sheet", help="Load data from Google Sheet")
    p_sheet.add_argument("url", help="Google Sheets URL")
    p_sheet.set_defaults(func=cmd_load_sheet)

    args = parser.parse_args()
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
