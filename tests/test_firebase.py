import firebase_admin
import pytest
from firebase_admin import firestore

from carelink.core import firebase


def test_missing_key_file_names_the_setting(monkeypatch, tmp_path):
    monkeypatch.setattr(firebase_admin, "_apps", {})
    monkeypatch.setattr(firebase, "db", None)
    monkeypatch.setenv("FIREBASE_CREDENTIALS", str(tmp_path / "missing.json"))

    with pytest.raises(RuntimeError, match="FIREBASE_CREDENTIALS"):
        firebase.init_firebase()
    assert firebase.get_db() is None


def test_second_init_reuses_the_running_app(monkeypatch):
    client = object()
    monkeypatch.setattr(firebase_admin, "_apps", {"[DEFAULT]": object()})
    monkeypatch.setattr(firebase, "db", None)
    monkeypatch.setattr(firestore, "client", lambda: client)

    firebase.init_firebase()
    firebase.init_firebase()

    assert firebase.get_db() is client
