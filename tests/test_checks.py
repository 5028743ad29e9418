from cylscan.checks import has_hazard, is_fit_for_use, summarise
from cylscan.models import RegistryRecord, UnregisteredRecord


def make_record(*, remarks: str = "", hazard_type: str = "") -> RegistryRecord:
    return RegistryRecord(
        cylinder_id="CYL-1",
        serial_number="AB123.S",
        hazard_type=hazard_type,
        remarks=remarks,
    )


def test_fit_for_use_reads_remarks():
    assert is_fit_for_use(make_record(remarks="Fit for use"))
    assert not is_fit_for_use(make_record(remarks="Unfit - hydrotest overdue"))
    assert not is_fit_for_use(make_record(remarks="Not fit for use"))
    assert not is_fit_for_use(make_record(remarks=""))


def test_hazard_requires_highly_rating():
    assert has_hazard(make_record(hazard_type="Highly Flammable"))
    assert not has_hazard(make_record(hazard_type="Asphyxiant"))


def test_summarise_counts_each_category():
    records = [
        make_record(remarks="Fit for use", hazard_type="Highly Flammable"),
        make_record(remarks="Unfit", hazard_type="Oxidiser"),
        UnregisteredRecord(cylinder_id="UNREG-ABCD", serial_number="QQ1", hazard_type="Unknown"),
    ]
    summary = summarise(records)
    assert summary.scanned == 3
    assert summary.fit_for_use == 1
    assert summary.hazard_detected == 1
    assert summary.unregistered == 1
