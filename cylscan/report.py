"""Rendering utilities for machine-readable and human-readable outputs."""
from __future__ import annotations

from datetime import date, datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from .checks import SessionSummary
from .models import CylinderRecord

if TYPE_CHECKING:
    from .pipeline import ScanOutcome

EXPORT_HEADERS = [
    "Cylinder ID",
    "Serial Number",
    "Gas Type",
    "Gas Category",
    "Manufacturer",
    "Capacity (kg)",
    "Working Pressure",
    "Test Pressure",
    "Test Date",
    "Standard Code (IS Code)",
    "Expiry Date",
    "Inspection Date",
    "Location Type",
    "Rust Level",
    "Hazard Type",
    "Cap Present",
    "Label Condition",
    "Remarks",
]


def export_filename(day: date) -> str:
    return f"Cylinder_Registry_{day.isoformat()}.csv"


def write_csv(path: Path, records: Iterable[CylinderRecord]) -> None:
    import csv

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(EXPORT_HEADERS)
        for record in records:
            writer.writerow(record.as_row())


def write_json(path: Path, outcomes: Iterable["ScanOutcome"]) -> None:
    import json

    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [outcome.as_json() for outcome in outcomes]
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2)


def _cell(value: str) -> str:
    return value.replace("|", "\\|")


def generate_markdown_summary(outcomes: list["ScanOutcome"], summary: SessionSummary) -> str:
    lines = ["# Cylinder Scan Report", ""]
    lines.append(f"Generated: {datetime.now(timezone.utc).isoformat()}")
    lines.append("")
    lines.append("## Overview")
    lines.append("")
    lines.append(f"- Cylinders scanned: **{summary.scanned}**")
    lines.append(f"- Fit for use: **{summary.fit_for_use}**")
    lines.append(f"- Hazard detected: **{summary.hazard_detected}**")
    lines.append(f"- Not in registry: **{summary.unregistered}**")
    lines.append("")

    if not outcomes:
        lines.append("No images were scanned.")
        return "\n".join(lines)

    lines.append("## Scans")
    lines.append("")
    lines.append("| Source | OCR text | Confidence | Score | Cylinder ID | Serial | Gas | Hazard | Remarks |")
    lines.append("| --- | --- | --- | --- | --- | --- | --- | --- | --- |")
    for outcome in outcomes:
        record = outcome.record
        lines.append(
            "| {source} | {text} | {confidence} | {score:.1f} | {cid} | {serial} | {gas} | {hazard} | {remarks} |".format(
                source=_cell(outcome.source),
                text=_cell(outcome.ocr_text) or "(none)",
                confidence=outcome.decision.confidence,
                score=outcome.decision.score,
                cid=_cell(record.cylinder_id) if record else "",
                serial=_cell(record.serial_number) if record else "",
                gas=_cell(record.gas_type) if record else "",
                hazard=_cell(record.hazard_type) if record else "",
                remarks=_cell(record.remarks) if record else "",
            )
        )
    lines.append("")
    return "\n".join(lines)


def write_markdown(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        handle.write(content)
