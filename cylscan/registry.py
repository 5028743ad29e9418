"""Read-only registry of known cylinders."""
from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from .models import RegistryRecord
from .normalization import load_registry_file

LOGGER = logging.getLogger(__name__)

BUNDLED_REGISTRY = Path(__file__).resolve().parent / "data" / "registry.csv"


class RegistryError(ValueError):
    """Raised when registry records violate the registry invariants."""


class Registry:
    """Immutable, ordered collection of registry records."""

    def __init__(self, records: Iterable[RegistryRecord] = ()) -> None:
        ordered = tuple(records)
        seen: set[str] = set()
        for record in ordered:
            if not record.serial_number.strip():
                raise RegistryError(f"Cylinder {record.cylinder_id!r} has no serial number")
            if record.cylinder_id in seen:
                raise RegistryError(f"Duplicate cylinder id {record.cylinder_id!r}")
            seen.add(record.cylinder_id)
        self._records = ordered
        self._by_id = {record.cylinder_id: record for record in ordered}

    @classmethod
    def from_file(cls, path: Path) -> "Registry":
        registry = cls(load_registry_file(path))
        LOGGER.info("Loaded %d registry records from %s", len(registry), path)
        return registry

    def records(self) -> Sequence[RegistryRecord]:
        return self._records

    def get(self, cylinder_id: str) -> Optional[RegistryRecord]:
        return self._by_id.get(cylinder_id)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[RegistryRecord]:
        return iter(self._records)


@lru_cache(maxsize=1)
def default_registry() -> Registry:
    """Return the process-wide registry, loading it on first use."""

    configured = os.getenv("CYLSCAN_REGISTRY_FILE")
    path = Path(configured) if configured else BUNDLED_REGISTRY
    return Registry.from_file(path)
