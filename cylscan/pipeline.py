"""High-level orchestration: image to OCR text to registry decision."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

from .checks import SessionSummary, summarise
from .matching import default_weights, match_serial
from .models import CylinderRecord, MatchDecision
from .registry import Registry
from .report import generate_markdown_summary, write_csv, write_json, write_markdown
from .vision import RecognitionService, default_service

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScanOutcome:
    source: str
    ocr_text: str
    decision: MatchDecision
    record: Optional[CylinderRecord]

    def as_json(self) -> dict[str, object]:
        return {
            "source": self.source,
            "ocr_text": self.ocr_text,
            "decision": self.decision.as_dict(),
            "record": self.record.as_json() if self.record else None,
        }


@dataclass
class ScanSession:
    """Records committed by the operator during one run."""

    history: List[CylinderRecord] = field(default_factory=list)

    def commit(self, record: CylinderRecord) -> None:
        self.history.append(record)

    def summary(self) -> SessionSummary:
        return summarise(self.history)


def scan_image(
    image: bytes,
    *,
    registry: Registry,
    service: RecognitionService,
    analyse_unregistered: bool = True,
    source: str = "",
) -> ScanOutcome:
    ocr_text = service.read_serial(image)
    decision = match_serial(ocr_text, registry.records(), weights=default_weights())

    record: Optional[CylinderRecord] = decision.record
    if record is None and analyse_unregistered:
        record = service.analyze_unregistered(image, ocr_text or "Unknown Serial")

    LOGGER.info(
        "Scanned %s: %r -> %s (%s)",
        source or "image",
        ocr_text,
        record.cylinder_id if record else "no record",
        decision.confidence,
    )
    return ScanOutcome(source=source, ocr_text=ocr_text, decision=decision, record=record)


def run_scan(
    image_paths: Iterable[Path],
    *,
    registry: Registry,
    out_dir: Path,
    service: RecognitionService | None = None,
    analyse_unregistered: bool = True,
) -> list[ScanOutcome]:
    service = service or default_service()
    session = ScanSession()
    outcomes: list[ScanOutcome] = []

    try:
        for path in image_paths:
            outcome = scan_image(
                path.read_bytes(),
                registry=registry,
                service=service,
                analyse_unregistered=analyse_unregistered,
                source=path.name,
            )
            outcomes.append(outcome)
            if outcome.record is not None:
                session.commit(outcome.record)
    finally:
        # Whatever was scanned before a failure is still written out.
        out_dir.mkdir(parents=True, exist_ok=True)
        write_csv(out_dir / "scan_results.csv", session.history)
        write_json(out_dir / "scan_results.json", outcomes)
        write_markdown(out_dir / "scan_report.md", generate_markdown_summary(outcomes, session.summary()))
    return outcomes
