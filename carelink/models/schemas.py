from pydantic import BaseModel
from typing import Optional

# Request bodies accepted by the screens. Form rules that produce the
# inline messages (password length, confirmation) live in
# carelink.services.forms so the wording stays under our control.


class Credentials(BaseModel):
    # Left unchecked here: every sign-in failure reads the same, malformed
    # emails included, and the identity provider is the one to reject them.
    email: str = ""
    password: str = ""


class AccountIn(BaseModel):
    email: str = ""
    password: str = ""
    confirm_password: Optional[str] = None


class PatientRegistrationIn(AccountIn):
    name: str = ""


class LinkPatientIn(BaseModel):
    email: str = ""
    name: Optional[str] = None


class ProvisionPatientIn(BaseModel):
    email: str = ""
    name: str = ""
    password: str = ""
    confirm_password: Optional[str] = None


class LinkDoctorIn(BaseModel):
    email: str = ""


class AppointmentIn(BaseModel):
    date: str = ""
    notes: Optional[str] = ""
    specialty: Optional[str] = None


class ClinicalNoteIn(BaseModel):
    diagnosis: str = ""
    treatment: str = ""


class MessageIn(BaseModel):
    text: str = ""
