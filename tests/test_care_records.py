import pytest

from carelink.core.exceptions import FormError, NotOwnerError, RecordNotFoundError
from carelink.services.care_records import AppointmentBook, ClinicalNotebook, RecentMessages


@pytest.fixture
def book(store):
    return AppointmentBook(store)


@pytest.fixture
def notebook(store):
    return ClinicalNotebook(store)


def test_create_appointment_denormalizes_doctor(book, doctor, fake_db):
    appointment = book.create(doctor, "p1", "2024-06-01T10:00", notes="bring labs")

    stored = fake_db.doc("appointments", appointment.id)
    assert stored["patientId"] == "p1"
    assert stored["doctorId"] == doctor.uid
    assert stored["doctorName"] == "dr.house"
    assert stored["specialty"] == "General"
    assert stored["status"] == "scheduled"
    assert stored["notes"] == "bring labs"
    assert stored["createdAt"].endswith("Z")


def test_appointment_requires_a_date(book, doctor):
    with pytest.raises(FormError):
        book.create(doctor, "p1", "  ")


def test_list_for_orders_newest_first(book, doctor):
    book.create(doctor, "p1", "2024-06-01T10:00")
    book.create(doctor, "p1", "2024-07-01T10:00")
    book.create(doctor, "p2", "2024-08-01T10:00")

    dates = [a.date for a in book.list_for("p1")]
    assert dates == ["2024-07-01T10:00", "2024-06-01T10:00"]

    dates = [a.date for a in book.list_for("p1", direction="asc")]
    assert dates == ["2024-06-01T10:00", "2024-07-01T10:00"]


def test_upcoming_for_skips_past_appointments(book, doctor):
    book.create(doctor, "p1", "2024-01-01T09:00")
    book.create(doctor, "p1", "2024-09-01T09:00")
    book.create(doctor, "p1", "2024-06-01T09:00")

    upcoming = book.upcoming_for("p1", now="2024-05-01T00:00:00.000Z")
    assert [a.date for a in upcoming] == ["2024-06-01T09:00", "2024-09-01T09:00"]


def test_delete_by_non_owner_keeps_record(book, notebook, doctor, other_doctor):
    appointment = book.create(doctor, "p1", "2024-06-01T10:00")
    note = notebook.create(doctor, "p1", "Flu", "Rest")

    with pytest.raises(NotOwnerError):
        book.delete(appointment.id, other_doctor.uid)
    with pytest.raises(NotOwnerError):
        notebook.delete(note.id, other_doctor.uid)

    assert [a.id for a in book.list_for("p1")] == [appointment.id]
    assert [n.id for n in notebook.list_for("p1")] == [note.id]


def test_owner_can_delete(book, doctor):
    appointment = book.create(doctor, "p1", "2024-06-01T10:00")

    book.delete(appointment.id, doctor.uid)

    assert book.list_for("p1") == []
    with pytest.raises(RecordNotFoundError):
        book.delete(appointment.id, doctor.uid)


def test_note_requires_diagnosis_and_treatment(notebook, doctor):
    with pytest.raises(FormError) as info:
        notebook.create(doctor, "p1", "Flu", "")
    assert info.value.message == "Diagnosis and treatment are required"


def test_note_is_dated_at_creation(notebook, doctor, fake_db):
    note = notebook.create(doctor, "p1", " Flu ", " Rest ")

    stored = fake_db.doc("doctorNotes", note.id)
    assert stored["diagnosis"] == "Flu"
    assert stored["treatment"] == "Rest"
    assert stored["date"] == stored["createdAt"]


def test_recent_messages_newest_first(store, fake_db):
    fake_db.seed("messages", "m1", {"patientId": "p1", "lastMessage": "old", "timestamp": "2024-01-01"})
    fake_db.seed("messages", "m2", {"patientId": "p1", "lastMessage": "new", "timestamp": "2024-02-01"})
    fake_db.seed("messages", "m3", {"patientId": "p2", "lastMessage": "other", "timestamp": "2024-03-01"})

    messages = RecentMessages(store).list_for("p1")

    assert [m.last_message for m in messages] == ["new", "old"]
