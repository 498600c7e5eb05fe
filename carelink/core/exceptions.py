"""Error taxonomy shared by the services and the API layer.

Every error carries the short message shown next to the form that
triggered it, plus the HTTP status the API answers with.
"""
from __future__ import annotations


class CareLinkError(Exception):
    """Base exception for every failure surfaced to a screen."""

    status_code = 400
    code = "error"
    default_message = "An error occurred. Please try again."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthError(CareLinkError):
    """Bad credential or duplicate account."""

    status_code = 401
    code = "auth_error"
    default_message = "Failed to sign in. Please check your credentials."


class NotAPatientError(CareLinkError):
    """The identity has no patient record."""

    status_code = 403
    code = "not_a_patient"
    default_message = "Not a patient account"


class PermissionDeniedError(CareLinkError):
    status_code = 403
    code = "forbidden"
    default_message = "You do not have access to this page"


class AlreadyLinkedError(CareLinkError):
    status_code = 409
    code = "already_linked"
    default_message = "This patient is already in your care"


class NeedsNameError(CareLinkError):
    """Not a terminal failure: the caller should ask for a name and retry."""

    status_code = 422
    code = "needs_name"
    default_message = "Patient not found. Please enter their name to create a new account."


class DoctorNotFoundError(CareLinkError):
    status_code = 404
    code = "doctor_not_found"
    default_message = "Doctor not found. Please check the email address and try again."


class RecordNotFoundError(CareLinkError):
    status_code = 404
    code = "not_found"
    default_message = "Record not found"


class NotOwnerError(CareLinkError):
    status_code = 403
    code = "not_owner"
    default_message = "Only the doctor who created this record can delete it"


class EmptyMessageError(CareLinkError):
    code = "empty_message"
    default_message = "Message cannot be empty"


class MessageTooLongError(CareLinkError):
    code = "message_too_long"
    default_message = "Message is too long"


class FormError(CareLinkError):
    code = "invalid_form"
    default_message = "All fields are required"


class DuplicateSubmissionError(CareLinkError):
    status_code = 409
    code = "duplicate_submission"
    default_message = "This request is already being processed"


class ProviderError(CareLinkError):
    """Opaque passthrough of an identity provider or document store failure."""

    status_code = 502
    code = "provider_error"
    default_message = "The service is temporarily unavailable. Please try again."
