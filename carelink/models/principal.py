"""Authenticated principals.

Doctors and patients are the same kind of Firebase account; which one a
caller is gets decided once, when the session is established, by the
side-table record that exists for the uid.
"""
from typing import Literal, Optional, Union

from pydantic import BaseModel

from carelink.models.patient import doctor_display_name


class DoctorPrincipal(BaseModel):
    role: Literal["doctor"] = "doctor"
    uid: str
    email: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def display_name(self) -> str:
        return doctor_display_name(self.email)


class PatientPrincipal(BaseModel):
    role: Literal["patient"] = "patient"
    uid: str
    email: Optional[str] = None
    name: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email or "Patient"


Principal = Union[DoctorPrincipal, PatientPrincipal]


def session_payload(principal: Principal) -> dict:
    """Body returned by the sign-in screens; the client keeps the tokens."""
    return {
        "uid": principal.uid,
        "email": principal.email,
        "role": principal.role,
        "displayName": principal.display_name,
        "idToken": principal.id_token,
        "refreshToken": principal.refresh_token,
    }
