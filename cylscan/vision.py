"""Vision-model text recognition and unregistered cylinder analysis."""
from __future__ import annotations

import base64
import json
import logging
import os
import re
import uuid
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Any, Dict, Protocol

from .models import UnregisteredRecord

LOGGER = logging.getLogger(__name__)

_QUOTA_STATUS = re.compile(r"(?<![\w.])429(?![\w.])")

NOT_AVAILABLE = "Not Available"
UNKNOWN = "Unknown"

OCR_PROMPT = (
    "Extract the cylinder serial number. Focus on markings on the shroud, neck, or body. "
    "Preserve all alphanumeric characters, dots (.), and suffixes like .S, .T, .B, .J, or .P. "
    "Return only the serial string."
)

ANALYSIS_PROMPT = (
    "Analyze this cylinder image. Report the exact detected serial number, the gas type "
    "inferred from labels or colour (LPG, Oxygen, ...), the gas category for that gas, the "
    "location type (Domestic/Industrial) if visible, and the manufacturer only if visible, "
    'otherwise "Unknown". Do not guess test dates, expiry dates, pressures or standard codes.'
)

_JSON_SCHEMA = {
    "name": "unregistered_cylinder_analysis",
    "schema": {
        "type": "object",
        "properties": {
            "serial_number": {"type": "string"},
            "gas_type": {"type": "string"},
            "gas_category": {"type": "string"},
            "location_type": {"type": "string"},
            "manufacturer": {"type": "string"},
        },
        "required": ["serial_number", "gas_type", "gas_category", "location_type", "manufacturer"],
        "additionalProperties": False,
    },
}


class QuotaExhaustedError(RuntimeError):
    """Raised when the vision provider rejects a request for quota reasons."""


class StructuredClient(Protocol):
    def request(self, *, messages: list[dict[str, Any]], schema: dict[str, Any] | None) -> Any:
        ...


@dataclass(frozen=True)
class VisionConfig:
    """Runtime configuration for the vision integration."""

    model: str
    temperature: float
    api_key: str | None

    @classmethod
    def from_env(cls) -> "VisionConfig":
        model = os.getenv("CYLSCAN_OPENAI_MODEL", "gpt-4o-mini")
        temperature = float(os.getenv("CYLSCAN_OPENAI_TEMPERATURE", "0"))
        api_key = os.getenv("CYLSCAN_OPENAI_API_KEY") or os.getenv("OPENAI_API_KEY")
        return cls(model=model, temperature=temperature, api_key=api_key)


def _is_quota_error(exc: Exception) -> bool:
    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if status is not None:
        return status == 429
    return bool(_QUOTA_STATUS.search(str(exc)))


class _OpenAIStructuredClient:
    """Adapter over the OpenAI chat completions API."""

    def __init__(self, client: Any, config: VisionConfig) -> None:
        self._client = client
        self._config = config

    def request(self, *, messages: list[dict[str, Any]], schema: dict[str, Any] | None) -> Any:
        options: Dict[str, Any] = {}
        if schema is not None:
            options["response_format"] = {"type": "json_schema", "json_schema": schema}
        response = self._client.chat.completions.create(
            model=self._config.model,
            temperature=self._config.temperature,
            messages=messages,
            **options,
        )
        text = _extract_text(response)
        if schema is None:
            return text
        return _parse_json(text)


def _load_openai_client(config: VisionConfig) -> StructuredClient | None:
    if not config.api_key:
        return None

    try:  # Import lazily so tests work without the dependency installed.
        from openai import OpenAI  # type: ignore import-not-found
    except ModuleNotFoundError:  # pragma: no cover - optional dependency
        LOGGER.warning("OpenAI Python client not installed; text recognition is unavailable.")
        return None

    return _OpenAIStructuredClient(OpenAI(api_key=config.api_key), config)


def _extract_text(response: Any) -> str:
    """Pull the first text block out of a chat completion response."""

    choices = getattr(response, "choices", None)
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    if isinstance(content, list):
        parts = [part.get("text", "") for part in content if isinstance(part, dict)]
        return "".join(parts).strip()
    return (content or "").strip()


def _parse_json(text: str) -> Dict[str, Any] | None:
    if not text:
        return None
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        LOGGER.warning("Vision response could not be parsed as JSON.")
        return None
    return payload if isinstance(payload, dict) else None


def _image_message(image: bytes, prompt: str) -> list[dict[str, Any]]:
    encoded = base64.b64encode(image).decode("ascii")
    return [
        {
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": f"data:image/jpeg;base64,{encoded}"}},
                {"type": "text", "text": prompt},
            ],
        }
    ]


def _unregistered_id() -> str:
    return "UNREG-" + uuid.uuid4().hex[:4].upper()


def build_unregistered_record(payload: Dict[str, Any] | None, detected_serial: str) -> UnregisteredRecord:
    """Fill an unregistered record from an analysis payload, defaulting what is missing."""

    payload = payload or {}

    def pick(name: str) -> str:
        value = payload.get(name)
        return value.strip() if isinstance(value, str) and value.strip() else UNKNOWN

    serial = payload.get("serial_number")
    if not isinstance(serial, str) or not serial.strip():
        serial = detected_serial.strip() or UNKNOWN

    return UnregisteredRecord(
        cylinder_id=_unregistered_id(),
        serial_number=serial.strip(),
        gas_type=pick("gas_type"),
        gas_category=pick("gas_category"),
        manufacturer=pick("manufacturer"),
        capacity=NOT_AVAILABLE,
        working_pressure=NOT_AVAILABLE,
        test_pressure=NOT_AVAILABLE,
        test_date=NOT_AVAILABLE,
        standard_code=NOT_AVAILABLE,
        expiry_date=NOT_AVAILABLE,
        inspection_date=date.today().isoformat(),
        location_type=pick("location_type"),
        rust_level="Not Assessed",
        hazard_type=UNKNOWN,
        cap_present=UNKNOWN,
        label_condition="Unreadable / Unknown",
        remarks="Cylinder not part of registry",
    )


class RecognitionService:
    """Reads serial markings and describes unregistered cylinders."""

    def __init__(self, config: VisionConfig, client: StructuredClient | None) -> None:
        self._config = config
        self._client = client

    @classmethod
    def from_env(cls) -> "RecognitionService":
        config = VisionConfig.from_env()
        return cls(config=config, client=_load_openai_client(config))

    def read_serial(self, image: bytes) -> str:
        if self._client is None:
            LOGGER.warning("No vision client configured; returning empty OCR text.")
            return ""

        try:
            text = self._client.request(messages=_image_message(image, OCR_PROMPT), schema=None)
        except Exception as exc:
            if _is_quota_error(exc):
                raise QuotaExhaustedError(
                    "API quota exhausted. Please wait a moment before trying again."
                ) from exc
            LOGGER.warning("Text recognition failed: %s", exc)
            return ""

        return text.strip() if isinstance(text, str) else ""

    def analyze_unregistered(self, image: bytes, detected_serial: str) -> UnregisteredRecord:
        if self._client is None:
            return build_unregistered_record(None, detected_serial)

        try:
            payload = self._client.request(
                messages=_image_message(image, ANALYSIS_PROMPT), schema=_JSON_SCHEMA
            )
        except Exception as exc:
            if _is_quota_error(exc):
                raise QuotaExhaustedError("API quota exhausted.") from exc
            LOGGER.warning("Unregistered cylinder analysis failed; using detected serial: %s", exc)
            payload = None

        return build_unregistered_record(payload if isinstance(payload, dict) else None, detected_serial)


_TEST_CLIENT: StructuredClient | None = None


def set_client_for_testing(client: StructuredClient | None) -> None:
    """Route every module-level call through ``client`` (``None`` restores the default)."""

    global _TEST_CLIENT
    _TEST_CLIENT = client
    _service.cache_clear()


@lru_cache(maxsize=1)
def _service() -> RecognitionService:
    if _TEST_CLIENT is not None:
        return RecognitionService(config=VisionConfig.from_env(), client=_TEST_CLIENT)
    return RecognitionService.from_env()


def default_service() -> RecognitionService:
    return _service()


def read_serial(image: bytes) -> str:
    """Return the serial text visible in ``image`` or an empty string."""

    return _service().read_serial(image)


def analyze_unregistered(image: bytes, detected_serial: str) -> UnregisteredRecord:
    """Describe a cylinder that is not part of the registry."""

    return _service().analyze_unregistered(image, detected_serial)
