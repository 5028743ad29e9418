"""Deterministic checks that classify committed cylinder records."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from .models import CylinderRecord

_NEGATED_FIT = re.compile(r"\b(unfit|not\s+fit)\b", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class SessionSummary:
    scanned: int = 0
    fit_for_use: int = 0
    hazard_detected: int = 0
    unregistered: int = 0


def is_fit_for_use(record: CylinderRecord) -> bool:
    remarks = record.remarks.lower()
    return "fit" in remarks and not _NEGATED_FIT.search(remarks)


def has_hazard(record: CylinderRecord) -> bool:
    return "highly" in record.hazard_type.lower()


def summarise(records: Iterable[CylinderRecord]) -> SessionSummary:
    scanned = fit = hazard = unregistered = 0
    for record in records:
        scanned += 1
        fit += is_fit_for_use(record)
        hazard += has_hazard(record)
        unregistered += record.is_unregistered
    return SessionSummary(
        scanned=scanned,
        fit_for_use=fit,
        hazard_detected=hazard,
        unregistered=unregistered,
    )
