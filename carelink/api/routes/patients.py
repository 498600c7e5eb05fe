"""Patient portal routes: sign-in, registration and the patient dashboard."""
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket
from starlette.concurrency import run_in_threadpool

from carelink.api.deps import get_guard, get_identity, get_session, get_store, require_patient
from carelink.api.live import open_channel, pump_snapshots
from carelink.core.identity import IdentityProvider
from carelink.models.principal import PatientPrincipal, session_payload
from carelink.models.schemas import Credentials, LinkDoctorIn, PatientRegistrationIn
from carelink.services.care_records import AppointmentBook, ClinicalNotebook, RecentMessages
from carelink.services.document_store import DocumentStore
from carelink.services.roster import RosterManager
from carelink.services.session import PatientSession, Session
from carelink.services.submission_guard import SubmissionGuard

router = APIRouter(prefix="/patient", tags=["patient"])


@router.post("/login")
async def patient_login(
    body: Credentials,
    identity: IdentityProvider = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
):
    patients = PatientSession(identity, store, Session())
    principal = await run_in_threadpool(patients.sign_in, body.email, body.password)
    return session_payload(principal)


@router.post("/register", status_code=201)
async def patient_register(
    body: PatientRegistrationIn,
    identity: IdentityProvider = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
):
    patients = PatientSession(identity, store, Session())
    principal = await run_in_threadpool(
        patients.register, body.email, body.password, body.name, body.confirm_password
    )
    return session_payload(principal)


@router.post("/logout")
async def patient_logout(
    session: Session = Depends(get_session),
    identity: IdentityProvider = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
):
    await run_in_threadpool(PatientSession(identity, store, session).logout)
    return {"message": "Signed out"}


@router.get("/dashboard")
def patient_dashboard(
    patient: PatientPrincipal = Depends(require_patient),
    store: DocumentStore = Depends(get_store),
):
    """
    Patient dashboard:
    - The doctors caring for the patient
    - Upcoming appointments, soonest first
    - Clinical notes, newest first
    - Recent messages from the root ``messages`` collection
    """
    roster = RosterManager(store)
    record = roster.get_patient(patient.uid)
    doctors = roster.list_doctors(patient.uid)
    appointments = AppointmentBook(store).upcoming_for(patient.uid)
    notes = ClinicalNotebook(store).list_for(patient.uid)
    messages = RecentMessages(store).list_for(patient.uid)
    return {
        "patient": record.to_doc(),
        "doctors": [d.to_card() for d in doctors],
        "appointments": [a.to_view() for a in appointments],
        "notes": [n.to_view() for n in notes],
        "messages": [m.to_view() for m in messages],
    }


@router.get("/dashboard/doctors")
def my_doctors(
    patient: PatientPrincipal = Depends(require_patient),
    store: DocumentStore = Depends(get_store),
):
    doctors = RosterManager(store).list_doctors(patient.uid)
    return {"items": [d.to_card() for d in doctors]}


@router.post("/dashboard/doctors", status_code=201)
async def add_doctor(
    body: LinkDoctorIn,
    patient: PatientPrincipal = Depends(require_patient),
    store: DocumentStore = Depends(get_store),
    guard: SubmissionGuard = Depends(get_guard),
):
    roster = RosterManager(store)
    async with guard.hold((patient.uid, "link_doctor", body.email.strip().lower())):
        doctor = await run_in_threadpool(roster.link_doctor_by_email, patient.uid, body.email)
    return {"doctor": doctor.to_card()}


@router.delete("/dashboard/doctors/{doctor_id}")
async def remove_doctor(
    doctor_id: str,
    patient: PatientPrincipal = Depends(require_patient),
    store: DocumentStore = Depends(get_store),
):
    record = await run_in_threadpool(RosterManager(store).unlink, patient.uid, doctor_id)
    return {"patient": record.to_doc()}


@router.websocket("/dashboard/live")
async def patient_dashboard_live(
    websocket: WebSocket,
    token: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    access = await open_channel(websocket, token, identity, store, role="patient")
    if access is None:
        return
    patient_id = access.principal.uid
    access.patient_id = patient_id
    await pump_snapshots(
        websocket,
        access,
        {
            "appointments": AppointmentBook(store).stream_upcoming(patient_id),
            "notes": ClinicalNotebook(store).stream_for(patient_id),
        },
    )
