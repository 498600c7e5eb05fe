"""
API dependencies (e.g., Firebase auth verification).

Provides FastAPI dependencies that build the per-request service
objects and resolve the caller's principal from a Firebase ID token.
"""

from functools import lru_cache
from typing import Callable, List, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from carelink.core.exceptions import AuthError, PermissionDeniedError
from carelink.core.firebase import get_db
from carelink.core.identity import IdentityProvider
from carelink.models.principal import DoctorPrincipal, PatientPrincipal, Principal
from carelink.services.document_store import DocumentStore
from carelink.services.session import Session, resolve_principal
from carelink.services.submission_guard import SubmissionGuard

# FastAPI security scheme (Swagger + header binding); missing headers are
# reported through AuthError so every screen sees the same error shape.
security = HTTPBearer(auto_error=False)


def get_store() -> DocumentStore:
    db = get_db()
    if db is None:
        raise HTTPException(status_code=500, detail="Firestore client not initialized")
    return DocumentStore(db)


@lru_cache
def get_identity() -> IdentityProvider:
    return IdentityProvider()


def get_guard(request: Request) -> SubmissionGuard:
    return request.app.state.submission_guard


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    identity: IdentityProvider = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
) -> Principal:
    """
    Verify the Firebase ID token from the Authorization header.

    Expects:
        Authorization: Bearer <id_token>
    """
    if credentials is None:
        raise AuthError("Missing Authorization Bearer token")
    return resolve_principal(identity, store, credentials.credentials)


def get_session(request: Request, user: Principal = Depends(get_current_user)) -> Session:
    """
    Per-request session for the caller.

    Signing out through it also ends the caller's open live channels.
    """
    session = Session(user)
    channels = request.app.state.live_channels

    def _on_change(current: Session) -> None:
        if not current.is_authenticated:
            channels.sign_out(user.uid)

    session.subscribe(_on_change)
    return session


def require_role(allowed: List[str]) -> Callable:
    """
    Return a FastAPI dependency that enforces the caller's role.

    Roles are "doctor" and "patient", decided once by resolve_principal.
    """

    def _checker(user: Principal = Depends(get_current_user)) -> Principal:
        if user.role not in allowed:
            raise PermissionDeniedError()
        return user

    return _checker


def require_doctor(user: Principal = Depends(require_role(["doctor"]))) -> DoctorPrincipal:
    return user


def require_patient(user: Principal = Depends(require_role(["patient"]))) -> PatientPrincipal:
    return user
