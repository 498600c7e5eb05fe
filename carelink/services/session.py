"""Doctor and patient sessions.

A ``Session`` is a single-writer, multi-reader cell holding the current
principal. It is created per connection or request and handed to the
screens that need it; nothing here is module-global. ``DoctorSession``
and ``PatientSession`` are the only writers.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Optional

from carelink.core.exceptions import AuthError, NotAPatientError, ProviderError
from carelink.core.identity import Identity, IdentityProvider
from carelink.models.principal import DoctorPrincipal, PatientPrincipal, Principal
from carelink.services.document_store import DocumentStore
from carelink.services.forms import normalize_email, validate_new_account
from carelink.services.logger import log_debug
from carelink.services.time_utils import now_iso

logger = logging.getLogger(__name__)

PATIENTS = "patients"
USERS = "users"

Listener = Callable[["Session"], None]


class Session:
    def __init__(self, principal: Optional[Principal] = None):
        self._principal = principal
        self._listeners: List[Listener] = []

    @property
    def principal(self) -> Optional[Principal]:
        return self._principal

    @property
    def is_authenticated(self) -> bool:
        return self._principal is not None

    @property
    def is_doctor(self) -> bool:
        return isinstance(self._principal, DoctorPrincipal)

    @property
    def is_patient(self) -> bool:
        return isinstance(self._principal, PatientPrincipal)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; it is called now and on every change."""
        self._listeners.append(listener)
        listener(self)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, principal: Optional[Principal]) -> None:
        self._principal = principal
        for listener in list(self._listeners):
            listener(self)


def _sign_out_quietly(identity: IdentityProvider, uid: str) -> None:
    try:
        identity.sign_out(uid)
    except ProviderError:
        # The local session is cleared either way.
        logger.warning("Token revocation failed for %s", uid)


class DoctorSession:
    def __init__(self, identity: IdentityProvider, store: DocumentStore, session: Session):
        self.identity = identity
        self.store = store
        self.session = session

    @staticmethod
    def _principal(ident: Identity) -> DoctorPrincipal:
        return DoctorPrincipal(
            uid=ident.uid,
            email=ident.email,
            id_token=ident.id_token,
            refresh_token=ident.refresh_token,
        )

    def sign_in(self, email: str, password: str) -> DoctorPrincipal:
        try:
            ident = self.identity.sign_in(normalize_email(email), password)
        except ProviderError as exc:
            logger.info("Doctor sign-in rejected: %s", exc.message)
            raise AuthError("Failed to sign in. Please check your credentials.") from exc

        principal = self._principal(ident)
        self.session.publish(principal)
        log_debug("doctor_sign_in", {"uid": principal.uid})
        return principal

    def sign_up(self, email: str, password: str, confirm_password: Optional[str] = None) -> DoctorPrincipal:
        validate_new_account(email, password, confirm_password)
        email = normalize_email(email)
        try:
            ident = self.identity.create_account(email, password)
        except ProviderError as exc:
            logger.info("Doctor sign-up rejected: %s", exc.message)
            raise AuthError("Failed to create account. Email might be in use.") from exc

        # Patients find doctors through this record.
        self.store.create(
            USERS,
            {"uid": ident.uid, "email": email, "type": "doctor", "createdAt": now_iso()},
            doc_id=ident.uid,
        )

        principal = self._principal(ident)
        self.session.publish(principal)
        log_debug("doctor_sign_up", {"uid": principal.uid})
        return principal

    def logout(self) -> None:
        principal = self.session.principal
        if principal is None:
            return
        _sign_out_quietly(self.identity, principal.uid)
        self.session.publish(None)


class PatientSession:
    def __init__(self, identity: IdentityProvider, store: DocumentStore, session: Session):
        self.identity = identity
        self.store = store
        self.session = session

    def _principal(self, ident: Identity, record: dict) -> PatientPrincipal:
        return PatientPrincipal(
            uid=ident.uid,
            email=ident.email or record.get("email"),
            name=record.get("name"),
            id_token=ident.id_token,
            refresh_token=ident.refresh_token,
        )

    def sign_in(self, email: str, password: str) -> PatientPrincipal:
        try:
            ident = self.identity.sign_in(normalize_email(email), password)
        except ProviderError as exc:
            logger.info("Patient sign-in rejected: %s", exc.message)
            raise AuthError("Failed to sign in. Please check your credentials.") from exc

        record = self.store.get_one(PATIENTS, ident.uid)
        if record is None:
            _sign_out_quietly(self.identity, ident.uid)
            self.session.publish(None)
            raise NotAPatientError()

        principal = self._principal(ident, record)
        self.session.publish(principal)
        log_debug("patient_sign_in", {"uid": principal.uid})
        return principal

    def register(
        self,
        email: str,
        password: str,
        name: str,
        confirm_password: Optional[str] = None,
    ) -> PatientPrincipal:
        validate_new_account(email, password, confirm_password, name=name, require_name=True)
        email = normalize_email(email)
        try:
            ident = self.identity.create_account(email, password)
        except ProviderError as exc:
            logger.info("Patient registration rejected: %s", exc.message)
            raise AuthError("Failed to create account. Email might be in use.") from exc

        record = {
            "id": ident.uid,
            "uid": ident.uid,
            "name": name.strip(),
            "email": email,
            "type": "patient",
            "assignedDoctors": [],
            "doctorNames": [],
            "createdAt": now_iso(),
        }
        self.store.create(PATIENTS, record, doc_id=ident.uid)

        principal = self._principal(ident, record)
        self.session.publish(principal)
        log_debug("patient_register", {"uid": principal.uid})
        return principal

    def logout(self) -> None:
        principal = self.session.principal
        if principal is None:
            return
        _sign_out_quietly(self.identity, principal.uid)
        self.session.publish(None)


def resolve_principal(identity: IdentityProvider, store: DocumentStore, id_token: str) -> Principal:
    """Verify a bearer token and decide, once, which kind of user it is."""
    ident = identity.verify(id_token)
    record = store.get_one(PATIENTS, ident.uid)
    if record is not None:
        return PatientPrincipal(
            uid=ident.uid,
            email=ident.email or record.get("email"),
            name=record.get("name"),
            id_token=id_token,
        )
    return DoctorPrincipal(uid=ident.uid, email=ident.email, id_token=id_token)
