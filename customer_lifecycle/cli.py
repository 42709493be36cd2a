"""Command line entry points for customer lifecycle reports."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from pathlib import Path
from typing import Any, Callable

import pandas as pd
import structlog

from customer_lifecycle.config import ReportSettings
from customer_lifecycle.exports import export_dataframe_csv, export_dataframe_json
from customer_lifecycle.foundation.calendar import PeriodGranularity
from customer_lifecycle.foundation.events import channel_segment
from customer_lifecycle.observability import configure_logging
from customer_lifecycle.pandas.ranking import (
    class_report_to_dataframe,
    ranked_aggregates_to_dataframe,
    top_customers_to_dataframe,
)
from customer_lifecycle.reports import (
    RetailSnapshot,
    build_class_report,
    build_lifecycle_report,
    build_top_customers_report,
)

logger = structlog.get_logger(__name__)


MAX_INPUT_BYTES = 25 * 1024 * 1024  # 25 MiB cap to avoid accidental OOM


def _load_snapshot(path: Path) -> RetailSnapshot:
    resolved = path.resolve()
    size = resolved.stat().st_size
    if size > MAX_INPUT_BYTES:
        raise ValueError(
            f"Input file {resolved} is {size} bytes; exceeds limit of {MAX_INPUT_BYTES} bytes"
        )
    with path.open("r", encoding="utf-8") as fh:
        payload = json.load(fh)
    if not isinstance(payload, dict):
        raise ValueError(
            "Expected a JSON object with headers, lines and taxonomy in the input file"
        )
    return RetailSnapshot.from_mapping(payload)


def _base_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument(
        "input",
        type=Path,
        help="Path to JSON snapshot with headers, lines, taxonomy (and optional calendar)",
    )
    parser.add_argument(
        "--settings",
        type=Path,
        help="Optional JSON settings file (exclusions, classification, rules).",
    )
    parser.add_argument(
        "--output",
        type=Path,
        help="Output path; .json writes JSON, anything else CSV. Defaults to CSV on stdout.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for messages written to stderr (default: INFO)",
    )
    parser.add_argument(
        "--log-format",
        default="json",
        choices=["json", "console"],
        help="Render log events as JSON lines or console key/value pairs",
    )
    return parser


def _prepare(
    args: argparse.Namespace,
) -> tuple[RetailSnapshot, ReportSettings] | None:
    """Load settings and snapshot; log and return None when unusable."""

    configure_logging(args.log_level, json_output=args.log_format == "json")
    try:
        settings = (
            ReportSettings.from_file(args.settings) if args.settings else ReportSettings()
        )
    except (OSError, ValueError) as exc:
        logger.error("invalid_settings", path=str(args.settings), error=str(exc))
        return None

    logger.info("loading_snapshot", path=str(args.input))
    try:
        snapshot = _load_snapshot(args.input)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        logger.error("invalid_snapshot", path=str(args.input), error=str(exc))
        return None

    if not snapshot.lines:
        logger.error("empty_snapshot", path=str(args.input))
        return None

    logger.info(
        "snapshot_loaded",
        headers=len(snapshot.headers),
        lines=len(snapshot.lines),
        taxonomy=len(snapshot.taxonomy),
        calendar_days=len(snapshot.calendar) if snapshot.calendar else 0,
    )
    return snapshot, settings


def _write(df: pd.DataFrame, output: Path | None, metadata: dict[str, Any]) -> None:
    if output is None:
        # stdout fallback enables piping in shell usage.
        df.to_csv(sys.stdout, index=False)
    elif output.suffix.lower() == ".json":
        export_dataframe_json(df, output, metadata=metadata)
    else:
        export_dataframe_csv(df, output)


def lifecycle_report_cli(argv: list[str] | None = None) -> int:
    """Classify customers as New / Retained / Reactivated per period and segment.

    Writes one row per (period, segment, label) with customer, order, value
    and unit totals, ranked by value within each period.
    """

    parser = _base_parser("Customer lifecycle report")
    parser.add_argument(
        "--granularity",
        choices=[item.value for item in PeriodGranularity],
        help="Period granularity (overrides settings; default: month)",
    )
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        help="Reporting date (YYYY-MM-DD); its own period is excluded from the report",
    )
    parser.add_argument(
        "--window",
        type=int,
        help="Number of periods before --as-of to report on",
    )
    parser.add_argument(
        "--shared-history",
        action="store_true",
        help="Track first purchase across all channels instead of per channel",
    )
    parser.add_argument(
        "--total-business",
        action="store_true",
        help="Do not split results by Retail / Direct channel",
    )

    args = parser.parse_args(argv)
    prepared = _prepare(args)
    if prepared is None:
        return 1
    snapshot, settings = prepared

    classification = settings.classification
    updates: dict[str, Any] = {}
    if args.granularity:
        updates["granularity"] = args.granularity
    if args.shared_history:
        updates["shared_history"] = True
    if args.total_business:
        updates["segmented"] = False
    classification = classification.model_copy(update=updates)

    try:
        config = classification.to_classification_config()
    except ValueError as exc:
        logger.error("invalid_classification_config", error=str(exc))
        return 1

    as_of = args.as_of or settings.as_of
    window = args.window or settings.window
    report_periods = None
    if as_of is not None:
        try:
            snapshot = snapshot.covering(as_of)
            report_periods = snapshot.resolve_calendar().rolling_window(
                as_of, window or 1, config.granularity
            )
        except (KeyError, ValueError) as exc:
            logger.error("invalid_as_of", as_of=as_of.isoformat(), error=str(exc))
            return 1

    report = build_lifecycle_report(
        snapshot,
        config=config,
        policy=settings.to_policy(),
        segment_fn=channel_segment if classification.segmented else None,
        report_periods=report_periods,
    )
    if not report.aggregates:
        logger.error("no_reportable_activity", stats=report.stats.as_dict())
        return 1

    metadata = {
        "report": "lifecycle",
        "granularity": config.granularity.value,
        "retention_window": config.retention_window,
        "reactivation_gap": config.reactivation_gap,
        "shared_history": config.shared_history,
        "as_of": as_of.isoformat() if as_of else None,
        "extraction": report.stats.as_dict(),
    }
    _write(ranked_aggregates_to_dataframe(report.ranked), args.output, metadata)
    logger.info(
        "lifecycle_report_complete",
        rows=len(report.aggregates),
        events=len(report.classified),
        output=str(args.output) if args.output else "stdout",
    )
    return 0


def top_customers_cli(argv: list[str] | None = None) -> int:
    """Rank customers that satisfy every per-period qualification rule."""

    parser = _base_parser("Top customers report")
    parser.add_argument(
        "--limit",
        type=int,
        help="Maximum number of customers to return (overrides settings)",
    )

    args = parser.parse_args(argv)
    prepared = _prepare(args)
    if prepared is None:
        return 1
    snapshot, settings = prepared

    limit = args.limit or settings.limit
    if limit < 1:
        logger.error("invalid_limit", limit=limit)
        return 1

    rules = settings.to_rules()
    if not rules:
        logger.warning("no_qualification_rules", detail="every customer qualifies")

    ranked = build_top_customers_report(
        snapshot, rules, limit=limit, policy=settings.to_policy()
    )
    metadata = {
        "report": "top_customers",
        "limit": limit,
        "rules": [rule.model_dump(mode="json") for rule in settings.qualification_rules],
    }
    _write(top_customers_to_dataframe(ranked), args.output, metadata)
    logger.info("top_customers_complete", customers=len(ranked))
    return 0


def class_report_cli(argv: list[str] | None = None) -> int:
    """Rank product classes by sales for New vs Existing customers."""

    parser = _base_parser("Class sales by customer tenure")
    parser.add_argument("--year", type=int, help="Analysis year (overrides settings)")
    parser.add_argument("--category", help="Restrict to one category, e.g. 'COOKING SCHOOL'")
    parser.add_argument("--top-n", type=int, help="Size of the Top N flag (default: 10)")

    args = parser.parse_args(argv)
    prepared = _prepare(args)
    if prepared is None:
        return 1
    snapshot, settings = prepared

    year = args.year or settings.analysis_year
    if year is None:
        logger.error("missing_analysis_year")
        return 1
    if not snapshot.acquisitions:
        logger.error("missing_acquisitions", detail="snapshot has no acquisitions section")
        return 1

    top_n = args.top_n or settings.top_n
    metrics = build_class_report(
        snapshot,
        year,
        category=args.category or settings.category,
        top_n=top_n,
        policy=settings.to_policy(),
    )
    metadata = {"report": "class_tenure", "analysis_year": year, "top_n": top_n}
    _write(class_report_to_dataframe(metrics), args.output, metadata)
    logger.info("class_report_complete", rows=len(metrics))
    return 0


COMMANDS: dict[str, Callable[[list[str] | None], int]] = {
    "lifecycle-report": lifecycle_report_cli,
    "top-customers": top_customers_cli,
    "class-report": class_report_cli,
}


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if not argv or argv[0] not in COMMANDS:
        print(
            f"usage: customer-lifecycle {{{','.join(COMMANDS)}}} [options]",
            file=sys.stderr,
        )
        return 2
    return COMMANDS[argv[0]](argv[1:])


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
