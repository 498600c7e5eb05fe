"""Appointments and clinical notes.

Both collections are addressed by ``patientId`` and owned by the doctor
who wrote the record; only the owner may delete. The ownership check
here is a courtesy to the screens: the real boundary is the store's
security rules.
"""
from __future__ import annotations

import logging
from typing import Generic, List, Optional, Type, TypeVar

from carelink.core.config import settings
from carelink.core.exceptions import FormError, NotOwnerError, RecordNotFoundError
from carelink.models.care_record import Appointment, ClinicalNote, RecentMessage, StoredRecord
from carelink.models.principal import DoctorPrincipal
from carelink.services.document_store import (
    ASCENDING,
    DESCENDING,
    DocumentStore,
    QuerySpec,
    direction_from,
)
from carelink.services.live_query import SnapshotStream
from carelink.services.logger import log_debug
from carelink.services.time_utils import now_iso

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=StoredRecord)


class CareRecordCollection(Generic[R]):
    collection: str = ""
    model: Type[R]
    default_order = "date"

    def __init__(self, store: DocumentStore):
        self.store = store

    def query_for(
        self,
        patient_id: str,
        order_by: Optional[str] = None,
        direction: str = "desc",
    ) -> QuerySpec:
        return QuerySpec(
            self.collection,
            (("patientId", "==", patient_id),),
            order_by or self.default_order,
            direction_from(direction),
        )

    def _view(self, rows) -> List[dict]:
        return [self.model.from_doc(doc_id, data).to_view() for doc_id, data in rows]

    def stream_for(self, patient_id: str) -> SnapshotStream:
        return SnapshotStream(self.store, self.query_for(patient_id), view=self._view)

    def _insert(self, record: R) -> R:
        record.id = self.store.create(self.collection, record.to_doc())
        log_debug(f"{self.collection}_create", record.to_view())
        return record

    def list_for(
        self,
        patient_id: str,
        order_by: Optional[str] = None,
        direction: str = "desc",
    ) -> List[R]:
        rows = self.store.get(self.query_for(patient_id, order_by, direction))
        return [self.model.from_doc(doc_id, data) for doc_id, data in rows]

    def get(self, record_id: str) -> R:
        data = self.store.get_one(self.collection, record_id)
        if data is None:
            raise RecordNotFoundError()
        return self.model.from_doc(record_id, data)

    def delete(self, record_id: str, acting_doctor_id: str) -> None:
        record = self.get(record_id)
        if record.doctor_id != acting_doctor_id:
            logger.warning(
                "Doctor %s tried to delete %s/%s owned by %s",
                acting_doctor_id, self.collection, record_id, record.doctor_id,
            )
            raise NotOwnerError()
        self.store.delete(self.collection, record_id)
        log_debug(f"{self.collection}_delete", {"id": record_id, "by": acting_doctor_id})


class AppointmentBook(CareRecordCollection[Appointment]):
    collection = "appointments"
    model = Appointment

    def create(
        self,
        doctor: DoctorPrincipal,
        patient_id: str,
        date: str,
        notes: Optional[str] = "",
        specialty: Optional[str] = None,
    ) -> Appointment:
        if not (date or "").strip():
            raise FormError("Please choose a date and time")
        appointment = Appointment(
            patient_id=patient_id,
            doctor_id=doctor.uid,
            doctor_name=doctor.display_name,
            date=date.strip(),
            specialty=specialty or settings.DEFAULT_SPECIALTY,
            notes=notes or "",
            status="scheduled",
            created_at=now_iso(),
        )
        return self._insert(appointment)

    def upcoming_query(self, patient_id: str, now: Optional[str] = None) -> QuerySpec:
        return QuerySpec(
            self.collection,
            (("patientId", "==", patient_id), ("date", ">=", now or now_iso())),
            "date",
            ASCENDING,
        )

    def upcoming_for(self, patient_id: str, now: Optional[str] = None) -> List[Appointment]:
        rows = self.store.get(self.upcoming_query(patient_id, now))
        return [Appointment.from_doc(doc_id, data) for doc_id, data in rows]

    def stream_upcoming(self, patient_id: str) -> SnapshotStream:
        # "now" is fixed when the screen opens, like the web client's query.
        return SnapshotStream(self.store, self.upcoming_query(patient_id), view=self._view)


class ClinicalNotebook(CareRecordCollection[ClinicalNote]):
    collection = "doctorNotes"
    model = ClinicalNote

    def create(
        self,
        doctor: DoctorPrincipal,
        patient_id: str,
        diagnosis: str,
        treatment: str,
    ) -> ClinicalNote:
        if not (diagnosis or "").strip() or not (treatment or "").strip():
            raise FormError("Diagnosis and treatment are required")
        stamp = now_iso()
        note = ClinicalNote(
            patient_id=patient_id,
            doctor_id=doctor.uid,
            doctor_name=doctor.display_name,
            diagnosis=diagnosis.strip(),
            treatment=treatment.strip(),
            date=stamp,
            created_at=stamp,
        )
        return self._insert(note)


class RecentMessages:
    """Root ``messages`` collection shown on the patient dashboard.

    Not the chat history: chat lives in ``patients/{id}/messages`` and the
    two are not kept in sync.
    """

    collection = "messages"

    def __init__(self, store: DocumentStore):
        self.store = store

    def list_for(self, patient_id: str) -> List[RecentMessage]:
        spec = QuerySpec(
            self.collection,
            (("patientId", "==", patient_id),),
            "timestamp",
            DESCENDING,
        )
        return [RecentMessage.from_doc(doc_id, data) for doc_id, data in self.store.get(spec)]
