import pytest

from carelink.core.exceptions import FormError
from carelink.models.patient import PatientRecord, doctor_display_name
from carelink.services.forms import normalize_email, validate_new_account


def test_normalize_email():
    assert normalize_email("  Pat@Example.COM ") == "pat@example.com"
    assert normalize_email(None) == ""


def test_name_is_checked_first_for_registration():
    with pytest.raises(FormError) as info:
        validate_new_account("", "", name=" ", require_name=True)
    assert info.value.message == "Please enter your name"


def test_valid_account_passes():
    validate_new_account("d@x.com", "secret1", "secret1")


def test_doctor_display_name():
    assert doctor_display_name("dr.house@example.com") == "dr.house"
    assert doctor_display_name(None) == "Doctor"
    assert doctor_display_name("@example.com") == "Doctor"


def test_patient_record_defaults():
    record = PatientRecord.from_doc("p1", {"id": "", "name": None, "assignedDoctors": None})

    assert record.id == "p1"
    assert record.name == "Unknown Patient"
    assert record.assigned_doctors == []
    assert record.to_doc()["assignedDoctors"] == []
