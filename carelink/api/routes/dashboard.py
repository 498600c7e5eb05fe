"""Doctor dashboard routes.

- The roster: patients whose ``assignedDoctors`` contains the doctor
- Per-patient detail: appointments and clinical notes, newest first
- Live variants of both over WebSocket (``?token=<id token>``)
"""
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket
from starlette.concurrency import run_in_threadpool

from carelink.api.deps import get_guard, get_identity, get_store, require_doctor
from carelink.api.live import open_channel, pump_snapshots
from carelink.core.identity import IdentityProvider
from carelink.models.principal import DoctorPrincipal
from carelink.models.schemas import AppointmentIn, ClinicalNoteIn, LinkPatientIn, ProvisionPatientIn
from carelink.services.care_records import AppointmentBook, ClinicalNotebook
from carelink.services.document_store import DocumentStore
from carelink.services.roster import RosterManager
from carelink.services.submission_guard import SubmissionGuard

router = APIRouter(prefix="/dashboard", tags=["doctor_dashboard"])


@router.get("")
def doctor_dashboard(
    doctor: DoctorPrincipal = Depends(require_doctor),
    store: DocumentStore = Depends(get_store),
):
    patients = RosterManager(store).list_patients(doctor.uid)
    return {
        "doctor": {"uid": doctor.uid, "email": doctor.email, "name": doctor.display_name},
        "items": [p.to_doc() for p in patients],
    }


@router.post("/patients", status_code=201)
async def add_patient(
    body: LinkPatientIn,
    doctor: DoctorPrincipal = Depends(require_doctor),
    store: DocumentStore = Depends(get_store),
    guard: SubmissionGuard = Depends(get_guard),
):
    """
    Link an existing patient by email.

    When no patient has that email the first call answers ``needs_name``;
    sending the same email again with ``name`` creates the record.
    """
    roster = RosterManager(store)
    async with guard.hold((doctor.uid, "link_patient", body.email.strip().lower())):
        result = await run_in_threadpool(
            roster.link_patient_by_email, doctor.uid, body.email, body.name, doctor.email
        )
    return {"created": result.created, "patient": result.patient.to_doc()}


@router.post("/patients/accounts", status_code=201)
async def create_patient_account(
    body: ProvisionPatientIn,
    doctor: DoctorPrincipal = Depends(require_doctor),
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
    guard: SubmissionGuard = Depends(get_guard),
):
    roster = RosterManager(store, identity)
    async with guard.hold((doctor.uid, "provision_patient", body.email.strip().lower())):
        result = await run_in_threadpool(
            roster.create_doctor_managed_patient,
            doctor.uid,
            body.email,
            body.name,
            body.password,
            doctor.email,
            body.confirm_password,
        )
    return {"patient": result.patient.to_doc(), "next": result.next_route}


@router.get("/patients/{patient_id}")
def patient_detail(
    patient_id: str,
    doctor: DoctorPrincipal = Depends(require_doctor),
    store: DocumentStore = Depends(get_store),
):
    patient = RosterManager(store).patient_for(doctor, patient_id)
    appointments = AppointmentBook(store).list_for(patient_id)
    notes = ClinicalNotebook(store).list_for(patient_id)
    return {
        "patient": patient.to_doc(),
        "appointments": [a.to_view() for a in appointments],
        "notes": [n.to_view() for n in notes],
    }


@router.delete("/patients/{patient_id}")
async def remove_patient(
    patient_id: str,
    doctor: DoctorPrincipal = Depends(require_doctor),
    store: DocumentStore = Depends(get_store),
):
    patient = await run_in_threadpool(RosterManager(store).unlink, patient_id, doctor.uid)
    return {"patient": patient.to_doc()}


@router.post("/patients/{patient_id}/appointments", status_code=201)
async def add_appointment(
    patient_id: str,
    body: AppointmentIn,
    doctor: DoctorPrincipal = Depends(require_doctor),
    store: DocumentStore = Depends(get_store),
    guard: SubmissionGuard = Depends(get_guard),
):
    book = AppointmentBook(store)
    async with guard.hold((doctor.uid, "appointment", patient_id)):
        await run_in_threadpool(RosterManager(store).patient_for, doctor, patient_id)
        appointment = await run_in_threadpool(
            book.create, doctor, patient_id, body.date, body.notes, body.specialty
        )
    return {"id": appointment.id, "appointment": appointment.to_view()}


@router.delete("/appointments/{appointment_id}")
async def delete_appointment(
    appointment_id: str,
    doctor: DoctorPrincipal = Depends(require_doctor),
    store: DocumentStore = Depends(get_store),
):
    await run_in_threadpool(AppointmentBook(store).delete, appointment_id, doctor.uid)
    return {"message": "Appointment deleted", "id": appointment_id}


@router.post("/patients/{patient_id}/notes", status_code=201)
async def add_note(
    patient_id: str,
    body: ClinicalNoteIn,
    doctor: DoctorPrincipal = Depends(require_doctor),
    store: DocumentStore = Depends(get_store),
    guard: SubmissionGuard = Depends(get_guard),
):
    notebook = ClinicalNotebook(store)
    async with guard.hold((doctor.uid, "note", patient_id)):
        await run_in_threadpool(RosterManager(store).patient_for, doctor, patient_id)
        note = await run_in_threadpool(
            notebook.create, doctor, patient_id, body.diagnosis, body.treatment
        )
    return {"id": note.id, "note": note.to_view()}


@router.delete("/notes/{note_id}")
async def delete_note(
    note_id: str,
    doctor: DoctorPrincipal = Depends(require_doctor),
    store: DocumentStore = Depends(get_store),
):
    await run_in_threadpool(ClinicalNotebook(store).delete, note_id, doctor.uid)
    return {"message": "Note deleted", "id": note_id}


# -------------------------
# Live views
# -------------------------
@router.websocket("/live")
async def roster_live(
    websocket: WebSocket,
    token: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    access = await open_channel(websocket, token, identity, store, role="doctor")
    if access is None:
        return
    roster = RosterManager(store).stream_roster(access.principal.uid)
    await pump_snapshots(websocket, access, {"patients": roster})


@router.websocket("/patients/{patient_id}/live")
async def patient_live(
    websocket: WebSocket,
    patient_id: str,
    token: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    access = await open_channel(websocket, token, identity, store, role="doctor", patient_id=patient_id)
    if access is None:
        return
    await pump_snapshots(
        websocket,
        access,
        {
            "appointments": AppointmentBook(store).stream_for(patient_id),
            "notes": ClinicalNotebook(store).stream_for(patient_id),
        },
    )
