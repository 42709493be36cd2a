"""Export report results to CSV and JSON.

Reports are consumed by downstream spreadsheet and dashboard tools, so
exports stay tabular: one row per aggregate, customer or class.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, TextIO

import pandas as pd

logger = logging.getLogger(__name__)


def export_dataframe_csv(df: pd.DataFrame, output_path: str | Path) -> None:
    """Write a report DataFrame to CSV.

    Parameters
    ----------
    df:
        Report rows, e.g. from
        :func:`customer_lifecycle.pandas.ranked_aggregates_to_dataframe`.
    output_path:
        Destination file; parent directories are created.

    Examples
    --------
    >>> report = build_lifecycle_report(snapshot)
    >>> export_dataframe_csv(
    ...     ranked_aggregates_to_dataframe(report.ranked), "lifecycle_2024.csv"
    ... )
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, index=False)
    logger.info(f"Exported {len(df)} rows to {output_path}")


def export_dataframe_json(
    df: pd.DataFrame,
    output_path: str | Path | None = None,
    metadata: dict[str, Any] | None = None,
    stream: TextIO | None = None,
) -> dict[str, Any]:
    """Write a report DataFrame as a JSON document with optional metadata.

    The document has ``metadata`` and ``rows`` keys. It is written to
    ``output_path`` when given, else to ``stream`` when given, and always
    returned.

    Parameters
    ----------
    df:
        Report rows.
    output_path:
        Optional destination file.
    metadata:
        Run parameters to embed (as-of date, granularity, exclusion counts).
    stream:
        Optional text stream, e.g. ``sys.stdout`` for piping.
    """
    rows = json.loads(df.to_json(orient="records", date_format="iso"))
    document = {"metadata": metadata or {}, "rows": rows}

    if output_path is not None:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2, sort_keys=True, default=str)
        logger.info(f"Exported {len(rows)} rows to {output_path}")
    elif stream is not None:
        json.dump(document, stream, indent=2, sort_keys=True, default=str)
        stream.write("\n")

    return document
