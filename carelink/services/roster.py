"""Business logic for the doctor/patient roster.

The roster lives on the patient record: ``assignedDoctors`` lists the
uids of the doctors caring for the patient, ``doctorNames`` caches their
display names. Additions go through Firestore's array-union transform so
concurrent duplicate links collapse into one entry; removals rewrite the
filtered list (last writer wins).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from carelink.core.exceptions import (
    AlreadyLinkedError,
    DoctorNotFoundError,
    FormError,
    NeedsNameError,
    PermissionDeniedError,
    ProviderError,
    RecordNotFoundError,
)
from carelink.core.identity import IdentityProvider
from carelink.models.patient import DoctorAccount, PatientRecord, doctor_display_name
from carelink.models.principal import PatientPrincipal, Principal
from carelink.services.document_store import DocumentSpec, DocumentStore, QuerySpec, Row
from carelink.services.forms import normalize_email, validate_new_account
from carelink.services.live_query import SnapshotStream
from carelink.services.logger import log_debug
from carelink.services.time_utils import now_iso

logger = logging.getLogger(__name__)

PATIENTS = "patients"
USERS = "users"


@dataclass
class LinkResult:
    patient: PatientRecord
    created: bool = False


@dataclass
class OnboardingResult:
    """A doctor-provisioned patient account, waiting for its first sign-in."""

    patient: PatientRecord
    next_route: str = "/patient/login"


def _roster_view(rows: List[Row]) -> List[dict]:
    return [PatientRecord.from_doc(doc_id, data).to_doc() for doc_id, data in rows]


def pick_first(rows: List[Row]) -> Optional[Row]:
    """Deterministic tie-break when several documents share an email."""
    if not rows:
        return None
    return min(rows, key=lambda row: (row[1].get("createdAt") or "", row[0]))


class RosterManager:
    def __init__(self, store: DocumentStore, identity: Optional[IdentityProvider] = None):
        self.store = store
        self.identity = identity

    # -------------------------
    # Lookups
    # -------------------------
    def find_patient_by_email(self, email: str) -> Optional[PatientRecord]:
        rows = self.store.get(QuerySpec(PATIENTS, (("email", "==", normalize_email(email)),)))
        row = pick_first(rows)
        return PatientRecord.from_doc(*row) if row else None

    def find_doctor_by_email(self, email: str) -> Optional[DoctorAccount]:
        rows = self.store.get(QuerySpec(USERS, (("email", "==", normalize_email(email)),)))
        # users also holds patient accounts; only doctors can be linked
        doctors = [r for r in rows if r[1].get("type", "doctor") == "doctor"]
        row = pick_first(doctors)
        if row is None:
            return None
        doc_id, data = row
        return DoctorAccount(**{**data, "uid": data.get("uid") or doc_id})

    def get_patient(self, patient_id: str) -> PatientRecord:
        data = self.store.get_one(PATIENTS, patient_id)
        if data is None:
            raise RecordNotFoundError("Patient not found")
        return PatientRecord.from_doc(patient_id, data)

    def patient_for(self, principal: Principal, patient_id: str) -> PatientRecord:
        """Load a patient record the caller is allowed to see."""
        if isinstance(principal, PatientPrincipal):
            if principal.uid != patient_id:
                raise PermissionDeniedError()
            return self.get_patient(patient_id)
        patient = self.get_patient(patient_id)
        if principal.uid not in patient.assigned_doctors:
            raise PermissionDeniedError("This patient is not in your care")
        return patient

    def list_patients(self, doctor_id: str) -> List[PatientRecord]:
        rows = self.store.get(QuerySpec(PATIENTS, (("assignedDoctors", "array_contains", doctor_id),)))
        return [PatientRecord.from_doc(*row) for row in rows]

    def stream_roster(self, doctor_id: str) -> SnapshotStream:
        spec = QuerySpec(PATIENTS, (("assignedDoctors", "array_contains", doctor_id),))
        return SnapshotStream(self.store, spec, view=_roster_view)

    def watch_patient(self, patient_id: str) -> SnapshotStream:
        """Follow one patient record; an empty delivery means it was deleted."""
        return SnapshotStream(self.store, DocumentSpec(PATIENTS, patient_id), view=_roster_view)

    @staticmethod
    def still_admits(principal: Principal, items: List[dict]) -> bool:
        """Whether a watched patient record still lets ``principal`` in."""
        if not items:
            return False
        if isinstance(principal, PatientPrincipal):
            return items[0]["id"] == principal.uid
        return principal.uid in items[0].get("assignedDoctors", [])

    def list_doctors(self, patient_id: str) -> List[DoctorAccount]:
        patient = self.get_patient(patient_id)
        doctors = []
        for doctor_id in patient.assigned_doctors:
            data = self.store.get_one(USERS, doctor_id)
            if data is None:
                rows = self.store.get(QuerySpec(USERS, (("uid", "==", doctor_id),)))
                row = pick_first(rows)
                data = row[1] if row else None
            if data is None:
                logger.info("Assigned doctor %s has no users record", doctor_id)
                continue
            doctors.append(DoctorAccount(**{**data, "uid": doctor_id}))
        return doctors

    # -------------------------
    # Mutations
    # -------------------------
    def link_patient_by_email(
        self,
        doctor_id: str,
        email: str,
        fallback_name: Optional[str] = None,
        doctor_email: Optional[str] = None,
    ) -> LinkResult:
        email = normalize_email(email)
        if not email:
            raise FormError("Please enter the patient's email address")

        patient = self.find_patient_by_email(email)
        if patient is not None:
            if doctor_id in patient.assigned_doctors:
                raise AlreadyLinkedError("This patient is already in your care")
            self.store.update(
                PATIENTS,
                patient.id,
                {"assignedDoctors": self.store.array_union([doctor_id])},
            )
            log_debug("roster_link_patient", {"doctor": doctor_id, "patient": patient.id})
            patient.assigned_doctors.append(doctor_id)
            return LinkResult(patient=patient)

        name = (fallback_name or "").strip()
        if not name:
            raise NeedsNameError()

        record = {
            "id": "",
            "name": name,
            "email": email,
            "type": "patient",
            "assignedDoctors": [doctor_id],
            "doctorNames": [doctor_display_name(doctor_email)],
            "createdAt": now_iso(),
        }
        new_id = self.store.create(PATIENTS, record)
        self.store.update(PATIENTS, new_id, {"id": new_id})
        log_debug("roster_create_patient", {"doctor": doctor_id, "patient": new_id})
        return LinkResult(patient=PatientRecord.from_doc(new_id, record), created=True)

    def link_doctor_by_email(self, patient_id: str, email: str) -> DoctorAccount:
        email = normalize_email(email)
        if not email:
            raise FormError("Please enter a doctor's email address")

        doctor = self.find_doctor_by_email(email)
        if doctor is None:
            raise DoctorNotFoundError()

        patient = self.get_patient(patient_id)
        if doctor.uid in patient.assigned_doctors:
            raise AlreadyLinkedError("This doctor is already assigned to you")

        self.store.update(
            PATIENTS,
            patient.id,
            {
                "assignedDoctors": self.store.array_union([doctor.uid]),
                "doctorNames": self.store.array_union([doctor.name]),
            },
        )
        log_debug("roster_link_doctor", {"doctor": doctor.uid, "patient": patient.id})
        return doctor

    def unlink(self, patient_record_id: str, counterparty_id: str) -> PatientRecord:
        patient = self.get_patient(patient_record_id)
        if counterparty_id not in patient.assigned_doctors:
            return patient

        remaining = [d for d in patient.assigned_doctors if d != counterparty_id]
        self.store.update(PATIENTS, patient.id, {"assignedDoctors": remaining})
        log_debug("roster_unlink", {"patient": patient.id, "removed": counterparty_id})
        patient.assigned_doctors = remaining
        return patient

    def create_doctor_managed_patient(
        self,
        doctor_id: str,
        email: str,
        name: str,
        password: str,
        doctor_email: Optional[str] = None,
        confirm_password: Optional[str] = None,
    ) -> OnboardingResult:
        if self.identity is None:
            raise ProviderError("No identity provider configured")
        if not (name or "").strip():
            raise FormError("All fields are required")
        validate_new_account(email, password, confirm_password)

        email = normalize_email(email)
        ident = self.identity.create_account(email, password)

        record = {
            "uid": ident.uid,
            "id": ident.uid,
            "name": name.strip(),
            "email": email,
            "type": "patient",
            "assignedDoctors": [doctor_id],
            "doctorNames": [doctor_display_name(doctor_email)],
            "createdAt": now_iso(),
        }
        self.store.create(USERS, record, doc_id=ident.uid)
        self.store.create(PATIENTS, record, doc_id=ident.uid)

        # The new account must not stay signed in anywhere; the patient
        # completes onboarding through the patient sign-in screen.
        self.identity.sign_out(ident.uid)

        logger.info("Doctor %s provisioned patient account %s", doctor_id, ident.uid)
        return OnboardingResult(patient=PatientRecord.from_doc(ident.uid, record))
