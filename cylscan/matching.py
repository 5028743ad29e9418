"""Reconcile OCR fragments against the cylinder registry.

Every registry record receives an additive score built from three signals:

* numeric containment of the fragment's digits in the record's digits,
* agreement of a one-character ``.`` suffix (``.S``, ``.T``, ``.B`` ...),
* character overlap, scaled by the record's serial length.

A normalised exact match bypasses scoring and is always ``high`` confidence.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache, reduce
from typing import Iterable, Optional, Tuple

from .models import NO_MATCH, Confidence, MatchDecision, RegistryRecord, ScoreBreakdown
from .normalization import digits_only, normalize_serial, serial_suffix
from .registry import default_registry

LOGGER = logging.getLogger(__name__)

EXACT_MATCH_SCORE = 100.0


@dataclass(frozen=True)
class MatchWeights:
    """Scoring weights and confidence thresholds.

    The defaults were chosen empirically; keep them unless a change has been
    validated against real cylinder markings.
    """

    numeric_containment: float = 50.0
    suffix_agreement: float = 30.0
    character_overlap: float = 20.0
    low_threshold: float = 40.0
    high_threshold: float = 80.0
    min_fragment_length: int = 4
    min_digit_run: int = 4

    @classmethod
    def from_env(cls) -> "MatchWeights":
        defaults = cls()
        return cls(
            numeric_containment=float(os.getenv("CYLSCAN_MATCH_NUMERIC_WEIGHT", defaults.numeric_containment)),
            suffix_agreement=float(os.getenv("CYLSCAN_MATCH_SUFFIX_WEIGHT", defaults.suffix_agreement)),
            character_overlap=float(os.getenv("CYLSCAN_MATCH_OVERLAP_WEIGHT", defaults.character_overlap)),
            low_threshold=float(os.getenv("CYLSCAN_MATCH_LOW_THRESHOLD", defaults.low_threshold)),
            high_threshold=float(os.getenv("CYLSCAN_MATCH_HIGH_THRESHOLD", defaults.high_threshold)),
            min_fragment_length=int(os.getenv("CYLSCAN_MATCH_MIN_LENGTH", defaults.min_fragment_length)),
            min_digit_run=int(os.getenv("CYLSCAN_MATCH_MIN_DIGITS", defaults.min_digit_run)),
        )

    def confidence_for(self, score: float) -> Confidence:
        if score >= self.high_threshold:
            return Confidence.HIGH
        if score >= self.low_threshold:
            return Confidence.LOW
        return Confidence.NONE


DEFAULT_WEIGHTS = MatchWeights()

_Best = Tuple[float, Optional[RegistryRecord]]


def score_record(
    normalized: str,
    digits: str,
    record: RegistryRecord,
    weights: MatchWeights = DEFAULT_WEIGHTS,
) -> ScoreBreakdown:
    """Score one record against an already normalised fragment."""

    serial = normalize_serial(record.serial_number)

    numeric = 0.0
    if len(digits) >= weights.min_digit_run and digits in digits_only(serial):
        numeric = weights.numeric_containment

    suffix = 0.0
    fragment_suffix = serial_suffix(normalized)
    record_suffix = serial_suffix(serial)
    if len(fragment_suffix) == 1 and fragment_suffix == record_suffix:
        suffix = weights.suffix_agreement

    overlap = 0.0
    if serial and len(normalized) >= weights.min_fragment_length:
        shared = sum(1 for char in normalized if char in serial)
        overlap = min(shared / len(serial), 1.0) * weights.character_overlap

    return ScoreBreakdown(numeric=numeric, suffix=suffix, overlap=overlap)


def _exact_match(normalized: str, records: Iterable[RegistryRecord]) -> Optional[RegistryRecord]:
    return next(
        (record for record in records if normalize_serial(record.serial_number) == normalized),
        None,
    )


def match_serial(
    ocr_text: str | None,
    records: Iterable[RegistryRecord],
    *,
    weights: MatchWeights = DEFAULT_WEIGHTS,
) -> MatchDecision:
    """Return the registry record identified by ``ocr_text``, if any."""

    normalized = normalize_serial(ocr_text)
    if len(normalized) < weights.min_fragment_length:
        return NO_MATCH

    candidates = tuple(records)
    exact = _exact_match(normalized, candidates)
    if exact is not None:
        LOGGER.debug("Exact serial match %s -> %s", normalized, exact.cylinder_id)
        return MatchDecision(record=exact, confidence=Confidence.HIGH, score=EXACT_MATCH_SCORE)

    digits = digits_only(normalized)

    def keep_best(best: _Best, record: RegistryRecord) -> _Best:
        score = score_record(normalized, digits, record, weights).total
        return (score, record) if score > best[0] else best

    best_score, best_record = reduce(keep_best, candidates, (0.0, None))
    confidence = weights.confidence_for(best_score)
    LOGGER.debug(
        "Fragment %s scored %.1f against %s (%s)",
        normalized,
        best_score,
        best_record.cylinder_id if best_record else None,
        confidence,
    )
    if confidence is Confidence.NONE or best_record is None:
        return MatchDecision(record=None, confidence=Confidence.NONE, score=best_score)
    return MatchDecision(record=best_record, confidence=confidence, score=best_score)


@lru_cache(maxsize=1)
def default_weights() -> MatchWeights:
    """Return the process-wide weights, honouring ``CYLSCAN_MATCH_*`` overrides."""

    return MatchWeights.from_env()


def match(ocr_text: str | None) -> MatchDecision:
    """Reconcile ``ocr_text`` against the process-wide registry."""

    return match_serial(ocr_text, default_registry().records(), weights=default_weights())
