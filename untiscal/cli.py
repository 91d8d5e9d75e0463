"""
CLI (Command Line Interface).

    untiscal fetch --base-url URL --element-id ID out/calendar.ics
    untiscal convert raw.json out/calendar.ics

Both commands run the same pipeline and accept the same options, e.g.:

    --merge-gap 15            merge lessons separated by <= 15 minutes
    --previous old.ics        append to a previously published calendar
    --overrides "M=Math"      rename courses / PRIO buckets

Every output group is written next to the requested .ics path using its
suffix (calendar.ics, calendar_PRIO.ics, ...).
"""

from __future__ import annotations

import argparse
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

import requests

from untiscal.config import DEFAULT_TIMEZONE, PipelineConfig, parse_overrides
from untiscal.errors import UntiscalError
from untiscal.log import setup_logging
from untiscal.pipeline import RawTimetable, build_periods, render_groups, run_pipeline
from untiscal.source import UntisSource, fetch_windows, week_windows
from untiscal.storage import load_previous_calendar, load_raw_timetable, save_raw_timetable, write_groups

log = logging.getLogger(__name__)

WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


def _non_negative_int(value: str) -> int:
    n = int(value)
    if n < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {n}")
    return n


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    """
    Build the pipeline configuration from parsed arguments.
    Raises ValueError for an invalid override mapping.
    """
    return PipelineConfig(
        gap_tolerance=args.merge_gap,
        breaks=not args.no_breaks,
        multi_day=not args.no_multi_day,
        split_day_gaps=not args.no_day_gap_split,
        first_weekday=WEEKDAYS.index(args.first_weekday),
        remove_from_main=not args.keep_prio_in_main,
        dedicated_bucket=not args.no_prio_bucket,
        group_by_priority=args.group_by_priority,
        overrides=parse_overrides(args.overrides),
        split_by_course=args.split_by_course,
        timezone=args.timezone,
        locale=args.locale,
        dst_correction=not args.no_dst_correction,
    )


def _local_import_time(raw: RawTimetable, zone: str) -> Optional[datetime]:
    if raw.last_import is None:
        return None
    if raw.last_import.tzinfo is None:
        return raw.last_import
    return raw.last_import.astimezone(ZoneInfo(zone)).replace(tzinfo=None)


def _run(raw: RawTimetable, args: argparse.Namespace) -> int:
    """
    Shared part of all commands: pipeline + writing output files.
    """
    try:
        config = config_from_args(args)
    except ValueError as e:
        print(f"Invalid --overrides: {e}")
        return 2

    previous_text = load_previous_calendar(args.previous)
    if args.previous and previous_text is None:
        print(f"No previous calendar at {args.previous}, generating a new one.")

    try:
        periods = build_periods(raw, config)
        groups = run_pipeline(
            periods,
            config,
            previous_calendar=previous_text,
            last_import=_local_import_time(raw, config.timezone),
        )
    except UntiscalError as e:
        log.error("%s", e)
        return 1

    written = write_groups(render_groups(groups, config), args.out)
    for group, path in zip(groups, written):
        print(f"{group.name}: {len(group.events)} events -> {path}")
    return 0


def _cmd_convert(args: argparse.Namespace) -> int:
    """
    Run the pipeline on a raw JSON dump.
    """
    try:
        raw = load_raw_timetable(args.raw)
    except FileNotFoundError:
        print(f"Raw timetable not found: {args.raw}")
        return 1
    except ValueError as e:
        print(f"Invalid raw timetable {args.raw}: {e}")
        return 1
    return _run(raw, args)


def _cmd_fetch(args: argparse.Namespace) -> int:
    """
    Fetch week windows from the server, then run the pipeline.
    """
    source = UntisSource(
        base_url=args.base_url,
        element_id=args.element_id,
        element_type=args.element_type,
        cookie=args.cookie,
        tenant_id=args.tenant_id,
        format_id=args.format_id,
    )
    start = date.fromisoformat(args.start) if args.start else date.today()

    try:
        raw = fetch_windows(source, week_windows(start, args.weeks))
    except requests.RequestException as e:
        log.error("Fetching timetable failed: %s", e)
        return 1

    if args.dump:
        save_raw_timetable(raw, args.dump)
    return _run(raw, args)


def _pipeline_options() -> argparse.ArgumentParser:
    """
    Options shared by every command (argparse parent parser).
    """
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument("out", type=Path, help="Output .ics path (suffixes are added per group)")
    p.add_argument("--previous", type=Path, default=None, help="Previously published .ics to append to")
    p.add_argument(
        "--merge-gap",
        type=_non_negative_int,
        default=None,
        metavar="MINUTES",
        help="Merge adjacent identical lessons separated by at most MINUTES (default: off)",
    )
    p.add_argument("--no-breaks", action="store_true", help="Do not add break events for merged gaps")
    p.add_argument("--no-multi-day", action="store_true", help="Do not add weekly summary events")
    p.add_argument("--no-day-gap-split", action="store_true", help="One summary per week, ignoring day gaps")
    p.add_argument("--first-weekday", choices=WEEKDAYS, default="mon")
    p.add_argument("--keep-prio-in-main", action="store_true", help="Keep urgent lessons in the main calendar too")
    p.add_argument("--no-prio-bucket", action="store_true", help="No dedicated PRIO calendar")
    p.add_argument("--group-by-priority", action="store_true", help="One PRIO<n> calendar per priority value")
    p.add_argument("--overrides", default=None, help='Name overrides, "M=Math;PRIO8=Exams" or a JSON object')
    p.add_argument("--split-by-course", action="store_true", help="Also write one calendar per course")
    p.add_argument("--timezone", default=DEFAULT_TIMEZONE)
    p.add_argument("--locale", default=None, help="Display locale for descriptions (e.g. de-DE)")
    p.add_argument(
        "--no-dst-correction",
        action="store_true",
        help="Do not shift lessons by the current DST offset (+1h in summer, -1h in winter)",
    )
    p.add_argument("-v", "--verbose", action="count", default=0)
    return p


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    common = _pipeline_options()
    parser = argparse.ArgumentParser(prog="untiscal", description="WebUntis timetable to iCalendar")
    sub = parser.add_subparsers(dest="command", required=True)

    p_convert = sub.add_parser("convert", parents=[common], help="Convert a raw JSON dump")
    p_convert.add_argument("raw", type=Path, help="Raw timetable JSON")

    p_fetch = sub.add_parser("fetch", parents=[common], help="Fetch from a WebUntis server")
    p_fetch.add_argument("--base-url", required=True)
    p_fetch.add_argument("--element-id", type=int, required=True)
    p_fetch.add_argument("--element-type", type=int, default=5)
    p_fetch.add_argument("--format-id", type=int, default=1)
    p_fetch.add_argument("--cookie", default=None)
    p_fetch.add_argument("--tenant-id", default=None)
    p_fetch.add_argument("--start", default=None, help="First week (YYYY-MM-DD, default: today)")
    p_fetch.add_argument("--weeks", type=_non_negative_int, default=4)
    p_fetch.add_argument("--dump", type=Path, default=None, help="Also save the raw data as JSON")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    if args.command == "convert":
        raise SystemExit(_cmd_convert(args))
    if args.command == "fetch":
        raise SystemExit(_cmd_fetch(args))

    raise SystemExit(2)
