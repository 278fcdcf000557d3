"""Command-line entry for recurrence_lite.

Prints the occurrences of a recurrence rule, or of a whole event read from a
JSON file, as date-keys one per line.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import NoReturn, Optional

from dateutil.parser import isoparse
from pydantic import ValidationError

from . import _init_logging
from .config_manager import load_expander_config
from .lite_datetime_utils import to_date_key
from .lite_logging import configure_lite_logging
from .lite_models import RecurringEvent
from .lite_occurrence_expander import expand, expand_event
from .lite_rule_spec import RuleSpec

logger = logging.getLogger(__name__)


def _wall_time(value: str) -> datetime:
    """argparse type: an ISO date or date-time, read as a naive wall-clock time."""
    try:
        return isoparse(value).replace(tzinfo=None, microsecond=0)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO 8601 date-time: {value!r}") from exc


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for recurrence_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="recurrence_lite",
        description="Expand recurring calendar events into occurrence date-keys",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m recurrence_lite --rule '{"frequency": "weekly", "count": 3}' --start 2024-01-01T09:00:00
  python -m recurrence_lite --event event.json --begin 2024-03-01 --end 2024-04-01
  python -m recurrence_lite --rule '{"frequency": "monthly", "byMonthDay": [31]}' --ical
        """,
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--rule", metavar="JSON", help="Recurrence rule in its JSON wire format")
    source.add_argument(
        "--event", type=Path, metavar="FILE", help="JSON file holding a whole event"
    )

    parser.add_argument("--start", type=_wall_time, help="Series start (required with --rule)")
    parser.add_argument("--begin", type=_wall_time, help="Window start (default: series start)")
    parser.add_argument("--end", type=_wall_time, help="Window end, exclusive")
    parser.add_argument(
        "--ical", action="store_true", help="Print the rule as an iCalendar RRULE instead"
    )
    parser.add_argument(
        "--env-file", type=Path, metavar="FILE", help="Read RECURRENCE_* settings from this file"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: WARNING)",
    )

    return parser


def _run(args: argparse.Namespace) -> list[str]:
    config = load_expander_config(args.env_file)

    if args.event is not None:
        event = RecurringEvent.from_json(json.loads(args.event.read_text(encoding="utf-8")))
        if args.ical:
            rule = event.recurrence_rule
            return [f"RRULE:{rule.to_ical()}"] if rule is not None else []
        dates = expand_event(event, args.begin, args.end, config)
    else:
        rule = RuleSpec.from_json(json.loads(args.rule))
        if args.ical:
            return [f"RRULE:{rule.to_ical()}"]
        if args.start is None:
            raise ValueError("--start is required with --rule")
        dates = expand(rule, args.start, args.begin, args.end, config)

    logger.debug("Expanded %d occurrences", len(dates))
    return [to_date_key(when) for when in dates]


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the recurrence_lite CLI.

    Exits 0 after printing results, or 2 when the input cannot be read.
    """
    parser = _create_parser()
    args = parser.parse_args(argv)
    _init_logging(args.log_level)
    configure_lite_logging(debug_mode=args.log_level == "DEBUG", log_level=args.log_level)

    try:
        lines = _run(args)
    except (OSError, ValueError, ValidationError) as exc:
        # json.JSONDecodeError and InvalidDateKeyError are ValueErrors
        print(f"recurrence_lite: {exc}", file=sys.stderr)
        sys.exit(2)

    for line in lines:
        print(line)
    sys.exit(0)


if __name__ == "__main__":
    main()
