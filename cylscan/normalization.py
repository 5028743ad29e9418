"""Serial normal forms and registry file parsing."""
from __future__ import annotations

import csv
import re
from pathlib import Path
from typing import List

from .models import FIELD_NAMES, RegistryRecord

_NON_DIGITS = re.compile(r"\D")

REQUIRED_COLUMNS = {"cylinder_id", "serial_number"}

EXPORT_COLUMNS = {
    "Cylinder ID": "cylinder_id",
    "Serial Number": "serial_number",
    "Gas Type": "gas_type",
    "Gas Category": "gas_category",
    "Manufacturer": "manufacturer",
    "Capacity (kg)": "capacity",
    "Working Pressure": "working_pressure",
    "Test Pressure": "test_pressure",
    "Test Date": "test_date",
    "Standard Code (IS Code)": "standard_code",
    "Expiry Date": "expiry_date",
    "Inspection Date": "inspection_date",
    "Location Type": "location_type",
    "Rust Level": "rust_level",
    "Hazard Type": "hazard_type",
    "Cap Present": "cap_present",
    "Label Condition": "label_condition",
    "Remarks": "remarks",
}


class NormalizationError(RuntimeError):
    """Raised when a registry file cannot be normalised."""


def normalize_serial(raw: str | None) -> str:
    return (raw or "").strip().upper()


def digits_only(raw: str | None) -> str:
    return _NON_DIGITS.sub("", raw or "")


def serial_suffix(normalized: str) -> str:
    """Return the last ``.``-separated segment of a normalised serial."""

    return normalized.split(".")[-1]


def normalise_row(row: dict[str, str]) -> RegistryRecord:
    values = {name: (row.get(name) or "").strip() for name in FIELD_NAMES}
    return RegistryRecord(**values)


def _sniff_delimiter(sample: str) -> str:
    """Detect a CSV delimiter, defaulting to comma when uncertain."""

    try:
        dialect = csv.Sniffer().sniff(sample, delimiters=",;")
        return dialect.delimiter
    except csv.Error:
        return ";" if sample.count(";") > sample.count(",") else ","


def _transform_export(row: dict[str, str]) -> dict[str, str]:
    return {field: row.get(header, "") for header, field in EXPORT_COLUMNS.items()}


def load_registry_file(path: Path) -> List[RegistryRecord]:
    if not path.exists():
        raise FileNotFoundError(path)

    with path.open(newline="", encoding="utf-8-sig") as handle:
        sample = handle.read(1024)
        handle.seek(0)
        delimiter = _sniff_delimiter(sample)
        reader = csv.DictReader(handle, delimiter=delimiter)

        if reader.fieldnames is None:
            raise NormalizationError(f"Missing expected columns in {path}")

        headers = {name.strip() for name in reader.fieldnames}
        if REQUIRED_COLUMNS.issubset(headers):
            rows = ({k.strip(): v for k, v in row.items() if k} for row in reader)
        elif {"Cylinder ID", "Serial Number"}.issubset(headers):
            rows = (_transform_export({k.strip(): v for k, v in row.items() if k}) for row in reader)
        else:
            raise NormalizationError(f"Missing expected columns in {path}")

        records = [normalise_row(row) for row in rows]
    return records
