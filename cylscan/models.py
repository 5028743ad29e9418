"""Data models shared by the registry, matcher and scan workflow."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from enum import IntEnum
from typing import NamedTuple, Optional


@dataclass(frozen=True, slots=True)
class CylinderRecord(ABC):
    """One physical cylinder, in export column order."""

    cylinder_id: str
    serial_number: str
    gas_type: str = ""
    gas_category: str = ""
    manufacturer: str = ""
    capacity: str = ""
    working_pressure: str = ""
    test_pressure: str = ""
    test_date: str = ""
    standard_code: str = ""
    expiry_date: str = ""
    inspection_date: str = ""
    location_type: str = ""
    rust_level: str = ""
    hazard_type: str = ""
    cap_present: str = ""
    label_condition: str = ""
    remarks: str = ""

    @property
    @abstractmethod
    def is_unregistered(self) -> bool:
        ...

    def as_row(self) -> list[str]:
        return [getattr(self, name) for name in FIELD_NAMES]

    def as_json(self) -> dict[str, object]:
        payload: dict[str, object] = asdict(self)
        payload["is_unregistered"] = self.is_unregistered
        return payload


@dataclass(frozen=True, slots=True)
class RegistryRecord(CylinderRecord):
    """A cylinder known to the registry."""

    @property
    def is_unregistered(self) -> bool:
        return False


@dataclass(frozen=True, slots=True)
class UnregisteredRecord(CylinderRecord):
    """A cylinder synthesised from an image because no registry entry matched."""

    @property
    def is_unregistered(self) -> bool:
        return True


FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in fields(CylinderRecord))


class Confidence(IntEnum):
    NONE = 0
    LOW = 1
    HIGH = 2

    def __str__(self) -> str:
        return self.name.lower()

    def __format__(self, format_spec: str) -> str:
        return format(str(self), format_spec)


class ScoreBreakdown(NamedTuple):
    numeric: float = 0.0
    suffix: float = 0.0
    overlap: float = 0.0

    @property
    def total(self) -> float:
        return self.numeric + self.suffix + self.overlap


@dataclass(frozen=True, slots=True)
class MatchDecision:
    """Outcome of reconciling one OCR fragment against the registry."""

    record: Optional[RegistryRecord]
    confidence: Confidence
    score: float = 0.0

    def __post_init__(self) -> None:
        if (self.record is None) != (self.confidence is Confidence.NONE):
            raise ValueError(
                f"A {self.confidence} decision cannot carry record={self.record!r}"
            )

    @property
    def matched(self) -> bool:
        return self.record is not None

    def as_dict(self) -> dict[str, object]:
        return {
            "cylinder_id": self.record.cylinder_id if self.record else None,
            "serial_number": self.record.serial_number if self.record else None,
            "confidence": str(self.confidence),
            "score": round(self.score, 2),
        }


NO_MATCH = MatchDecision(record=None, confidence=Confidence.NONE)
