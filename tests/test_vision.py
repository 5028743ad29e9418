from types import SimpleNamespace

import pytest

from cylscan import vision
from cylscan.vision import (
    QuotaExhaustedError,
    RecognitionService,
    VisionConfig,
    _extract_text,
    analyze_unregistered,
    read_serial,
    set_client_for_testing,
)

CONFIG = VisionConfig(model="test-model", temperature=0.0, api_key=None)


class _RaisingClient:
    def __init__(self, exc: Exception):
        self.exc = exc

    def request(self, *, messages, schema):  # type: ignore[override]
        raise self.exc


class _RateLimitError(Exception):
    status_code = 429


@pytest.mark.parametrize(
    "content, expected",
    [
        (" XY98765.T \n", "XY98765.T"),
        ([{"type": "text", "text": "ZZ111"}, {"type": "text", "text": ".B"}], "ZZ111.B"),
        (None, ""),
    ],
)
def test_extract_text_handles_content_shapes(content, expected):
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    assert _extract_text(response) == expected


def test_extract_text_without_choices():
    assert _extract_text(SimpleNamespace(choices=[])) == ""


def test_read_serial_uses_configured_client():
    assert read_serial(b" AB123.S ") == "AB123.S"


def test_read_serial_without_client_returns_empty_text():
    service = RecognitionService(config=CONFIG, client=None)
    assert service.read_serial(b"AB123.S") == ""


def test_read_serial_swallows_provider_failures():
    service = RecognitionService(config=CONFIG, client=_RaisingClient(RuntimeError("boom")))
    assert service.read_serial(b"AB123.S") == ""


def test_read_serial_raises_on_quota_exhaustion():
    service = RecognitionService(config=CONFIG, client=_RaisingClient(_RateLimitError("slow down")))
    with pytest.raises(QuotaExhaustedError):
        service.read_serial(b"AB123.S")


def test_analyze_unregistered_fills_forbidden_fields(stub_client):
    record = analyze_unregistered(b"QQ777.P", "QQ777.P")
    assert record.is_unregistered
    assert record.cylinder_id.startswith("UNREG-")
    assert len(record.cylinder_id) == len("UNREG-") + 4
    assert record.serial_number == "QQ777.P"
    assert record.gas_type == "Oxygen"
    assert record.test_date == vision.NOT_AVAILABLE
    assert record.working_pressure == vision.NOT_AVAILABLE
    assert record.remarks == "Cylinder not part of registry"
    assert stub_client.calls[-1][1] is not None


def test_analyze_unregistered_defaults_missing_values():
    class _SparseClient:
        def request(self, *, messages, schema):  # type: ignore[override]
            return {"gas_type": "  ", "serial_number": ""}

    set_client_for_testing(_SparseClient())
    record = analyze_unregistered(b"image", "LM5511")
    assert record.serial_number == "LM5511"
    assert record.gas_type == vision.UNKNOWN
    assert record.manufacturer == vision.UNKNOWN


def test_analyze_unregistered_falls_back_on_failure():
    service = RecognitionService(config=CONFIG, client=_RaisingClient(RuntimeError("boom")))
    record = service.analyze_unregistered(b"image", "")
    assert record.serial_number == vision.UNKNOWN
    assert record.is_unregistered


def test_analyze_unregistered_propagates_quota_errors():
    service = RecognitionService(config=CONFIG, client=_RaisingClient(_RateLimitError("429")))
    with pytest.raises(QuotaExhaustedError):
        service.analyze_unregistered(b"image", "AB123.S")


def test_config_reads_environment(monkeypatch):
    monkeypatch.setenv("CYLSCAN_OPENAI_MODEL", "gpt-test")
    monkeypatch.delenv("CYLSCAN_OPENAI_API_KEY", raising=False)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    config = VisionConfig.from_env()
    assert config.model == "gpt-test"
    assert config.api_key == "sk-test"
    assert config.temperature == 0.0


def test_serial_digits_in_error_text_are_not_quota_errors():
    service = RecognitionService(
        config=CONFIG, client=_RaisingClient(RuntimeError("could not read marking XY4291.S"))
    )
    assert service.read_serial(b"image") == ""


def test_status_code_decides_quota_errors():
    class _ServerError(Exception):
        status_code = 500

    service = RecognitionService(config=CONFIG, client=_RaisingClient(_ServerError("upstream 429 relay")))
    assert service.read_serial(b"image") == ""


def test_bare_429_status_in_message_is_a_quota_error():
    service = RecognitionService(config=CONFIG, client=_RaisingClient(RuntimeError("Error code: 429")))
    with pytest.raises(QuotaExhaustedError):
        service.read_serial(b"image")
