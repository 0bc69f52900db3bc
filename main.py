#!/usr/bin/env python3
"""
selfheal - Self-healing runtime failure monitoring.

Operator CLI over the persisted failure snapshot.
"""

import argparse
import json
import logging
import sys
from typing import Any, Callable, Dict

from pydantic import ValidationError

from selfheal.core.config import get_settings
from selfheal.core.exceptions import SelfHealError
from selfheal.core.logger import setup_structured_logging
from selfheal.monitoring import MonitoringContext
from selfheal.utils import get_metrics


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def build_context() -> MonitoringContext:
    """Create a context and load the persisted failures without starting capture."""
    settings = get_settings().model_copy(update={"install_runtime_hooks": False})
    context = MonitoringContext(settings=settings)
    context.store.load_persisted()
    return context


def cmd_health(context: MonitoringContext, args: argparse.Namespace) -> int:
    _print_json(context.get_health())
    return 0


def cmd_stats(context: MonitoringContext, args: argparse.Namespace) -> int:
    _print_json(context.get_stats())
    return 0


def cmd_trends(context: MonitoringContext, args: argparse.Namespace) -> int:
    _print_json(context.store.get_trends())
    return 0


def cmd_search(context: MonitoringContext, args: argparse.Namespace) -> int:
    _print_json([event.to_dict() for event in context.store.search(args.query)])
    return 0


def cmd_export(context: MonitoringContext, args: argparse.Namespace) -> int:
    print(context.store.export())
    return 0


def cmd_clear(context: MonitoringContext, args: argparse.Namespace) -> int:
    removed = len(context.store)
    context.store.clear()
    _print_json({"cleared": removed})
    return 0


def cmd_rules(context: MonitoringContext, args: argparse.Namespace) -> int:
    rules = context.registry.get_all()
    if args.category:
        rules = context.registry.get_by_category(args.category)
    _print_json([rule.to_dict() for rule in rules])
    return 0


def cmd_report(context: MonitoringContext, args: argparse.Namespace) -> int:
    print(context.generate_report_json())
    return 0


def cmd_metrics(context: MonitoringContext, args: argparse.Namespace) -> int:
    print(get_metrics().decode("utf-8"), end="")
    return 0


COMMANDS: Dict[str, Callable[[MonitoringContext, argparse.Namespace], int]] = {
    "health": cmd_health,
    "stats": cmd_stats,
    "trends": cmd_trends,
    "search": cmd_search,
    "export": cmd_export,
    "clear": cmd_clear,
    "rules": cmd_rules,
    "report": cmd_report,
    "metrics": cmd_metrics,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="selfheal - Runtime failure monitoring")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("health", help="Health status from recent failures")
    subparsers.add_parser("stats", help="Failure statistics")
    subparsers.add_parser("trends", help="Failures per day")
    search = subparsers.add_parser("search", help="Search failures by text")
    search.add_argument("query", help="Case-insensitive text to look for")
    subparsers.add_parser("export", help="Export failures and statistics as JSON")
    subparsers.add_parser("clear", help="Delete all stored failures")
    rules = subparsers.add_parser("rules", help="List remediation rules")
    rules.add_argument(
        "--category",
        choices=["dependency", "configuration", "runtime", "ui", "build"],
        help="Only rules of this category",
    )
    subparsers.add_parser("report", help="Full monitoring report")
    subparsers.add_parser("metrics", help="Prometheus metrics in text format")
    return parser


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logger = logging.getLogger(__name__)

    try:
        settings = get_settings()
        setup_structured_logging(
            args.log_level, json_format=settings.log_json, logs_dir=settings.logs_dir
        )
        context = build_context()
        return COMMANDS[args.command](context, args)
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    except SelfHealError as e:
        logger.error(f"Command failed: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
