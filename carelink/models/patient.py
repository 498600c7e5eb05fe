"""Pydantic models for the roster: patient records and doctor accounts.

Field aliases are the names persisted in Firestore, which the web
client reads directly.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

UNKNOWN_PATIENT = "Unknown Patient"


def doctor_display_name(email: Optional[str]) -> str:
    """Denormalized doctor name: the local part of the email."""
    if email:
        local = email.split("@")[0]
        if local:
            return local
    return "Doctor"


class PatientRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    uid: Optional[str] = None
    name: str = UNKNOWN_PATIENT
    email: Optional[str] = None
    assigned_doctors: List[str] = Field(default_factory=list, alias="assignedDoctors")
    doctor_names: List[str] = Field(default_factory=list, alias="doctorNames")
    type: str = "patient"
    created_at: Optional[str] = Field(None, alias="createdAt")

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, v):
        return v or UNKNOWN_PATIENT

    @field_validator("assigned_doctors", "doctor_names", mode="before")
    @classmethod
    def default_list(cls, v):
        return list(v or [])

    @classmethod
    def from_doc(cls, doc_id: str, data: Dict[str, Any]) -> "PatientRecord":
        # Older records carry an empty "id" placeholder; the document id wins.
        return cls(**{**data, "id": doc_id})

    def to_doc(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class DoctorAccount(BaseModel):
    """A ``users`` record with ``type == "doctor"``."""

    model_config = ConfigDict(populate_by_name=True)

    uid: str
    email: Optional[str] = None
    specialty: Optional[str] = None
    type: str = "doctor"
    created_at: Optional[str] = Field(None, alias="createdAt")

    @property
    def name(self) -> str:
        return doctor_display_name(self.email)

    def to_card(self) -> Dict[str, Any]:
        return {
            "id": self.uid,
            "uid": self.uid,
            "email": self.email,
            "name": self.name,
            "specialty": self.specialty,
        }
