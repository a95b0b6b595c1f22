"""CLI for re-running the idempotent repair entry points.

Recomputes Fixture rollups, reconciles Negotiation/Contract status pairs,
recomputes Negotiation analytics, or prints an entity's activity history.
Output formats: table (default) or JSON.

Usage::

    python -m tradedesk.repair.cli --fixture 3f2c... --format json
    python -m tradedesk.repair.cli --negotiation 9ab1... --contract 77de...
    python -m tradedesk.repair.cli --all-fixtures
    python -m tradedesk.repair.cli --activity negotiation 9ab1...
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from typing import Any

import structlog

from tradedesk.app import configure_logging, initialize_services
from tradedesk.config import get_settings
from tradedesk.domain.errors import TradeDeskError
from tradedesk.domain.models import ConsistencyReport, Fixture
from tradedesk.domain.types import EntityType
from tradedesk.lifecycle.facade import TradeDesk
from tradedesk.store.event_log import EventLog
from tradedesk.store.schema import close_database

logger = structlog.get_logger()

FIXTURE_COLUMNS = [
    ("fixture_id", 34),
    ("fixture_number", 14),
    ("last_updated", 15),
    ("search_text", 50),
]
CORRECTION_COLUMNS = [
    ("kind", 10),
    ("rule", 44),
    ("entity_type", 12),
    ("entity_id", 34),
    ("detail", 40),
]
ANALYTICS_COLUMNS = [("field", 34), ("value", 20)]
ACTIVITY_COLUMNS = [("timestamp", 15), ("action", 16), ("status", 24), ("description", 50)]


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for repair runs.

    Returns:
        A configured :class:`argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(description="Repair derived trade desk state")

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--fixture",
        type=str,
        help="Recompute last_updated and search_text for one Fixture",
    )
    target.add_argument(
        "--all-fixtures",
        action="store_true",
        help="Recompute rollups for every Fixture",
    )
    target.add_argument(
        "--negotiation",
        type=str,
        help="Reconcile a Negotiation with its Contract",
    )
    target.add_argument(
        "--analytics",
        type=str,
        metavar="NEGOTIATION",
        help="Recompute rate analytics for a Negotiation",
    )
    target.add_argument(
        "--activity",
        nargs=2,
        metavar=("TYPE", "ID"),
        help="Print the activity history of one entity",
    )

    parser.add_argument(
        "--contract",
        type=str,
        help="Contract to reconcile against (with --negotiation)",
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )
    parser.add_argument(
        "--db",
        type=str,
        default=None,
        help="Path to the trade desk database (default: settings.database_path)",
    )

    return parser


def format_table(rows: list[dict[str, Any]], columns: list[tuple[str, int]]) -> str:
    """Format rows as a fixed-width table.

    Args:
        rows: Row dicts keyed by column name.
        columns: ``(name, width)`` pairs; long values are truncated.

    Returns:
        Formatted table string with header row.
    """
    if not rows:
        return "No results found."

    def truncate(value: Any, width: int) -> str:
        s = "" if value is None else str(value)
        if len(s) > width:
            return s[: width - 3] + "..."
        return s

    widths = [w for _, w in columns]
    header_line = "  ".join(name.ljust(w) for name, w in columns)
    lines = [header_line, "-" * len(header_line)]
    for row in rows:
        cells = [truncate(row.get(name), w) for name, w in columns]
        lines.append("  ".join(c.ljust(w) for c, w in zip(cells, widths, strict=True)))
    return "\n".join(lines)


def format_json(rows: list[dict[str, Any]]) -> str:
    """Format rows as pretty-printed JSON."""
    return json.dumps(rows, indent=2, default=str)


def fixture_rows(fixtures: list[Fixture]) -> list[dict[str, Any]]:
    return [
        {
            "fixture_id": f.id,
            "fixture_number": f.fixture_number,
            "last_updated": f.last_updated,
            "search_text": f.search_text,
        }
        for f in fixtures
    ]


def report_rows(report: ConsistencyReport) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = [
        {
            "kind": "correction",
            "rule": c.rule,
            "entity_type": c.entity_type.value,
            "entity_id": c.entity_id,
            "detail": ", ".join(f"{k}: {c.previous.get(k)} -> {v}" for k, v in c.changes.items()),
        }
        for c in report.corrections
    ]
    rows += [
        {
            "kind": "warning",
            "rule": w.rule,
            "entity_type": w.entity_type.value,
            "entity_id": w.entity_id,
            "detail": w.message,
        }
        for w in report.warnings
    ]
    return rows


def activity_rows(event_log: EventLog, entity_type: str, entity_id: str) -> list[dict[str, Any]]:
    return [
        {
            "timestamp": entry.timestamp,
            "action": entry.action,
            "status": entry.status.value if entry.status else None,
            "description": entry.description,
            "expandable": [item.model_dump() for item in entry.expandable or []],
        }
        for entry in event_log.query_by_entity(EntityType(entity_type), entity_id)
    ]


def run(args: argparse.Namespace, desk: TradeDesk, event_log: EventLog) -> str:
    """Execute the selected repair and return formatted output."""
    as_json = args.output_format == "json"

    if args.fixture or args.all_fixtures:
        fixtures = (
            desk.repair_all_fixtures()
            if args.all_fixtures
            else [desk.repair_fixture_rollups(args.fixture)]
        )
        rows = fixture_rows(fixtures)
        return format_json(rows) if as_json else format_table(rows, FIXTURE_COLUMNS)

    if args.negotiation:
        report = desk.repair_status_consistency(args.negotiation, args.contract)
        if as_json:
            return report.model_dump_json(indent=2)
        return format_table(report_rows(report), CORRECTION_COLUMNS)

    if args.analytics:
        analytics = desk.compute_negotiation_analytics(args.analytics)
        if as_json:
            return analytics.model_dump_json(indent=2)
        rows = [{"field": k, "value": v} for k, v in analytics.model_dump().items()]
        return format_table(rows, ANALYTICS_COLUMNS)

    entity_type, entity_id = args.activity
    rows = activity_rows(event_log, entity_type, entity_id)
    return format_json(rows) if as_json else format_table(rows, ACTIVITY_COLUMNS)


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments, run the repair, and print results.

    Returns:
        Process exit status: 0 on success, 1 if a record was missing or a
        link was inconsistent.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.contract and not args.negotiation:
        parser.error("--contract requires --negotiation")
    if args.activity and args.activity[0] not in {e.value for e in EntityType}:
        parser.error(f"unknown entity type {args.activity[0]!r}")

    services = initialize_services(db_path=args.db)
    try:
        print(run(args, services["desk"], services["event_log"]))
    except TradeDeskError as exc:
        logger.error("repair_failed", error=str(exc))
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        close_database(services["conn"])
    return 0


def entrypoint() -> None:
    """Console script entry: log to stderr so stdout carries only results."""
    configure_logging(get_settings().production, file=sys.stderr)
    sys.exit(main())


if __name__ == "__main__":
    entrypoint()
