"""Pydantic models for appointments, clinical notes and chat messages."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class StoredRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None

    @classmethod
    def from_doc(cls, doc_id: str, data: Dict[str, Any]):
        return cls(**{**data, "id": doc_id})

    def to_doc(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"id"})

    def to_view(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class Appointment(StoredRecord):
    patient_id: str = Field(..., alias="patientId")
    doctor_id: str = Field(..., alias="doctorId")
    doctor_name: str = Field("Doctor", alias="doctorName")
    # ISO-8601 string so that lexical order is chronological order
    date: str
    specialty: str = "General"
    notes: str = ""
    status: str = "scheduled"
    created_at: Optional[str] = Field(None, alias="createdAt")


class ClinicalNote(StoredRecord):
    patient_id: str = Field(..., alias="patientId")
    doctor_id: str = Field(..., alias="doctorId")
    doctor_name: str = Field("Doctor", alias="doctorName")
    diagnosis: str
    treatment: str
    date: str
    created_at: Optional[str] = Field(None, alias="createdAt")


class ChatMessage(StoredRecord):
    sender_id: str = Field(..., alias="senderId")
    sender_name: Optional[str] = Field(None, alias="senderName")
    text: str
    timestamp: str


class RecentMessage(StoredRecord):
    """Entry of the root ``messages`` collection (patient dashboard)."""

    patient_id: Optional[str] = Field(None, alias="patientId")
    doctor_id: Optional[str] = Field(None, alias="doctorId")
    doctor_name: Optional[str] = Field(None, alias="doctorName")
    last_message: Optional[str] = Field(None, alias="lastMessage")
    timestamp: Optional[str] = None
    unread: bool = False
