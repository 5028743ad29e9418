import base64
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest

from cylscan import matching, vision
from cylscan.models import RegistryRecord
from cylscan.registry import Registry


class StubVisionClient:
    """Treats image bytes as the marking printed on the cylinder."""

    def __init__(self, analysis=None):
        self.analysis = analysis
        self.calls = []

    def request(self, *, messages, schema):  # type: ignore[override]
        image = self._extract_image(messages)
        self.calls.append((image, schema))
        if schema is None:
            return image.decode("utf-8").strip()
        if self.analysis is not None:
            return self.analysis
        return {
            "serial_number": image.decode("utf-8").strip(),
            "gas_type": "Oxygen",
            "gas_category": "Oxidising",
            "location_type": "Industrial",
            "manufacturer": "Unknown",
        }

    @staticmethod
    def _extract_image(messages):
        for block in messages:
            for item in block.get("content", []):
                if item.get("type") == "image_url":
                    url = item["image_url"]["url"]
                    return base64.b64decode(url.split(",", 1)[1])
        raise AssertionError("No image attached to the vision request")


@pytest.fixture
def stub_client():
    return StubVisionClient()


@pytest.fixture(autouse=True)
def stubbed_vision_client(stub_client):
    """Provide deterministic vision outputs for tests without network access."""

    vision.set_client_for_testing(stub_client)
    yield
    vision.set_client_for_testing(None)


def make_record(cylinder_id: str, serial_number: str, **extra: str) -> RegistryRecord:
    return RegistryRecord(cylinder_id=cylinder_id, serial_number=serial_number, **extra)


@pytest.fixture
def registry() -> Registry:
    return Registry(
        [
            make_record("CYL-001", "AB123.S", gas_type="LPG", hazard_type="Highly Flammable", remarks="Fit for use"),
            make_record("CYL-002", "XY98765.T", gas_type="Oxygen", hazard_type="Oxidiser", remarks="Fit for use"),
            make_record("CYL-003", "ZZ111.B", gas_type="Nitrogen", hazard_type="Asphyxiant", remarks="Unfit - rusted"),
        ]
    )


@pytest.fixture(autouse=True)
def fresh_match_weights():
    """Re-read ``CYLSCAN_MATCH_*`` overrides for every test."""

    matching.default_weights.cache_clear()
    yield
    matching.default_weights.cache_clear()
