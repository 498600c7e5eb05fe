"""Doctor authentication routes.

Sign-in and sign-up go through Firebase's password endpoints; the
returned ID token is what every other route expects as its Bearer token.
"""
from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from carelink.api.deps import get_current_user, get_identity, get_session, get_store
from carelink.core.identity import IdentityProvider
from carelink.models.principal import Principal, session_payload
from carelink.models.schemas import AccountIn, Credentials
from carelink.services.document_store import DocumentStore
from carelink.services.session import DoctorSession, Session

router = APIRouter(tags=["auth"])


@router.post("/login")
async def login(
    body: Credentials,
    identity: IdentityProvider = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
):
    doctors = DoctorSession(identity, store, Session())
    principal = await run_in_threadpool(doctors.sign_in, body.email, body.password)
    return session_payload(principal)


@router.post("/login/signup", status_code=201)
async def signup(
    body: AccountIn,
    identity: IdentityProvider = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
):
    doctors = DoctorSession(identity, store, Session())
    principal = await run_in_threadpool(
        doctors.sign_up, body.email, body.password, body.confirm_password
    )
    return session_payload(principal)


@router.post("/logout")
async def logout(
    session: Session = Depends(get_session),
    identity: IdentityProvider = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
):
    # Any signed-in user may leave through here; patients usually use /patient/logout.
    await run_in_threadpool(DoctorSession(identity, store, session).logout)
    return {"message": "Signed out"}


@router.get("/auth/me")
async def get_me(user: Principal = Depends(get_current_user)):
    return {
        "uid": user.uid,
        "email": user.email,
        "role": user.role,
        "displayName": user.display_name,
    }
