import pytest
from fastapi.testclient import TestClient

from carelink.api.deps import get_identity, get_store
from carelink.main import create_app
from carelink.services.document_store import DocumentStore
from carelink.services.session import DoctorSession, PatientSession, Session

from fakes import FakeFirestore, FakeIdentity


@pytest.fixture
def fake_db():
    return FakeFirestore()


@pytest.fixture
def store(fake_db):
    return DocumentStore(fake_db)


@pytest.fixture
def identity():
    return FakeIdentity()


@pytest.fixture
def app(store, identity):
    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_identity] = lambda: identity
    return app


@pytest.fixture
def client(app):
    # No context manager: the lifespan (Firebase init) must not run.
    return TestClient(app)


@pytest.fixture
def doctor(identity, store):
    return DoctorSession(identity, store, Session()).sign_up("dr.house@example.com", "secret1")


@pytest.fixture
def other_doctor(identity, store):
    return DoctorSession(identity, store, Session()).sign_up("wilson@example.com", "secret2")


@pytest.fixture
def patient(identity, store):
    return PatientSession(identity, store, Session()).register("pat@example.com", "secret1", "Pat")


def bearer(principal):
    return {"Authorization": f"Bearer {principal.id_token}"}


@pytest.fixture
def auth_headers():
    return bearer
