"""Report rendering: human-readable text, append-only CSV log, and a JSON-ready dict."""

import csv
import logging
from pathlib import Path
from typing import Any

from .classifier import AMBIGUOUS_DESCRIPTION
from .normalize import format_hex
from .types import AddressReading, CounterKind, DetailLevel, GroupReading, RenderOptions, Report

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "model",
    "group_label",
    "group_type",
    "addr",
    "value_hex",
    "percent_255",
    "group_sum",
    "normalized_percent",
    "group_max_percent",
]


def _pct(fraction: float | None, digits: int) -> str:
    """Fraction -> percent text, blank when undefined."""
    if fraction is None:
        return ""
    return f"{fraction * 100.0:.{digits}f}"


def visible_groups(report: Report, options: RenderOptions) -> list[GroupReading]:
    return [
        g for g in report.groups
        if options.show_ambiguous or g.group.kind is not CounterKind.AMBIGUOUS
    ]


def format_summary(reading: GroupReading) -> str:
    """Normalized percent with the raw sum, or else the max per-address percent; never both."""
    if reading.failed:
        return f"unable to read ({reading.error})"
    if reading.normalized_fraction is not None:
        return f"{_pct(reading.normalized_fraction, 2)}% (sum {reading.total})"
    if reading.max_fraction is not None:
        return f"(max {_pct(reading.max_fraction, 1)}%)"
    return "(no data)"


def format_address_line(reading: AddressReading) -> str:
    if reading.value is None:
        return f"addr {format_hex(reading.address)}: NA"
    flag = " (high)" if reading.is_high else ""
    return f"addr {format_hex(reading.address)}: {format_hex(reading.value)} ({_pct(reading.fraction, 1)}%){flag}"


def render_text(report: Report, options: RenderOptions | None = None) -> str:
    """Render a report for the terminal / status log."""
    options = options or RenderOptions()
    lines = [f" - Model: {report.model}", " - Counters:"]
    for reading in visible_groups(report, options):
        label = reading.group.label
        if reading.group.kind is CounterKind.AMBIGUOUS:
            label = f"{label} (spec: {AMBIGUOUS_DESCRIPTION})"
        lines.append(f"   • {label}: {format_summary(reading)}")
        if options.detail_level is DetailLevel.DETAIL:
            for r in reading.readings:
                lines.append(f"      - {format_address_line(r)}")
    return "\n".join(lines)


def csv_rows(report: Report, options: RenderOptions | None = None) -> list[list[str]]:
    """One row per address reading across all visible groups (failed groups have none)."""
    options = options or RenderOptions()
    rows: list[list[str]] = []
    for reading in visible_groups(report, options):
        group = reading.group
        normalized = "" if group.kind is CounterKind.AMBIGUOUS else _pct(reading.normalized_fraction, 2)
        group_max = _pct(reading.max_fraction, 1)
        for r in reading.readings:
            rows.append([
                report.model,
                group.label,
                group.kind.value,
                format_hex(r.address),
                "NA" if r.value is None else format_hex(r.value),
                _pct(r.fraction, 1),
                str(reading.total),
                normalized,
                group_max,
            ])
    return rows


def append_csv(report: Report, path: Path, options: RenderOptions | None = None) -> int:
    """
    Append the report's rows to a CSV log, writing the header only when the
    file is new or empty. Returns the number of data rows written.
    """
    path = Path(path)
    rows = csv_rows(report, options)
    new_file = not path.exists() or path.stat().st_size == 0
    if new_file:
        path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, lineterminator="\n")
        if new_file:
            writer.writerow(CSV_HEADER)
        writer.writerows(rows)
    logger.debug("Appended %d rows to %s", len(rows), path)
    return len(rows)


def report_to_dict(report: Report, options: RenderOptions | None = None) -> dict[str, Any]:
    """Machine-readable report for --json output."""
    options = options or RenderOptions()
    groups = []
    for reading in visible_groups(report, options):
        group = reading.group
        groups.append({
            "label": group.label,
            "kind": group.kind.value,
            "addresses": [format_hex(a) for a in group.addresses],
            "capacity": group.capacity,
            "sum": reading.total,
            "max_fraction": reading.max_fraction,
            "normalized_fraction": reading.normalized_fraction,
            "error": reading.error,
            "readings": [
                {
                    "address": format_hex(r.address),
                    "value": None if r.value is None else format_hex(r.value),
                    "high": r.is_high,
                }
                for r in reading.readings
            ],
        })
    return {
        "model": report.model,
        "generated_at": report.generated_at.isoformat(),
        "groups": groups,
    }
