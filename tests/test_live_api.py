import pytest
from starlette.websockets import WebSocketDisconnect

from carelink.core.config import settings
from carelink.services.roster import RosterManager


def snapshots(ws, count):
    frames = {}
    for _ in range(count):
        frame = ws.receive_json()
        assert frame["type"] == "snapshot"
        frames[frame["collection"]] = frame["items"]
    return frames


def closed_with(ws, code, close_code):
    assert ws.receive_json()["code"] == code
    with pytest.raises(WebSocketDisconnect) as info:
        ws.receive_json()
    assert info.value.code == close_code


def test_appointment_reaches_attached_subscription(client, doctor, patient, store, auth_headers, fake_db):
    RosterManager(store).link_doctor_by_email(patient.uid, doctor.email)

    with client.websocket_connect(f"/dashboard/patients/{patient.uid}/live?token={doctor.id_token}") as ws:
        assert snapshots(ws, 2) == {"appointments": [], "notes": []}

        r = client.post(
            f"/dashboard/patients/{patient.uid}/appointments",
            json={"date": "2024-06-01T10:00"},
            headers=auth_headers(doctor),
        )
        assert r.status_code == 201

        frame = ws.receive_json()
        assert frame["collection"] == "appointments"
        assert [a["id"] for a in frame["items"]] == [r.json()["id"]]
        assert frame["items"][0]["date"] == "2024-06-01T10:00"

    assert fake_db.listener_count == 0


def test_roster_updates_live(client, doctor, auth_headers):
    with client.websocket_connect(f"/dashboard/live?token={doctor.id_token}") as ws:
        assert snapshots(ws, 1) == {"patients": []}

        client.post(
            "/dashboard/patients",
            json={"email": "new@x.com", "name": "New Pat"},
            headers=auth_headers(doctor),
        )

        items = ws.receive_json()["items"]
        assert [p["email"] for p in items] == ["new@x.com"]
        assert items[0]["name"] == "New Pat"


def test_live_channel_requires_token(client):
    with client.websocket_connect("/dashboard/live") as ws:
        frame = ws.receive_json()
        assert frame == {"type": "error", "code": "auth_error", "message": "Missing token"}
        with pytest.raises(WebSocketDisconnect) as info:
            ws.receive_json()
        assert info.value.code == 4401


def test_patient_cannot_open_doctor_live_view(client, patient):
    with client.websocket_connect(f"/dashboard/live?token={patient.id_token}") as ws:
        assert ws.receive_json()["code"] == "forbidden"
        with pytest.raises(WebSocketDisconnect) as info:
            ws.receive_json()
        assert info.value.code == 4403


def test_doctor_needs_patient_on_roster(client, doctor, patient, fake_db):
    with client.websocket_connect(f"/dashboard/patients/{patient.uid}/live?token={doctor.id_token}") as ws:
        assert ws.receive_json()["code"] == "forbidden"
        with pytest.raises(WebSocketDisconnect):
            ws.receive_json()
    assert fake_db.listener_count == 0


def test_read_only_channel(client, doctor):
    with client.websocket_connect(f"/dashboard/live?token={doctor.id_token}") as ws:
        snapshots(ws, 1)
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        ws.send_json({"type": "send", "text": "hi"})
        assert ws.receive_json()["code"] == "unsupported_type"
        ws.send_text("{not json")
        assert ws.receive_json()["code"] == "invalid_json"


def test_live_chat_send_and_ack(client, doctor, patient, store):
    RosterManager(store).link_doctor_by_email(patient.uid, doctor.email)

    with client.websocket_connect(f"/chat/{patient.uid}/live?token={patient.id_token}") as ws:
        assert snapshots(ws, 1) == {"messages": []}

        ws.send_json({"type": "send", "text": "  Hello doctor  "})
        frames = [ws.receive_json(), ws.receive_json()]

        ack = next(f for f in frames if f["type"] == "ack")
        history = next(f for f in frames if f["type"] == "snapshot")["items"]
        assert [m["id"] for m in history] == [ack["id"]]
        assert history[0]["text"] == "Hello doctor"
        assert history[0]["senderId"] == patient.uid

        ws.send_json({"type": "send", "text": ""})
        assert ws.receive_json()["code"] == "empty_message"

        ws.send_json({"type": "send", "text": "x" * 2001})
        assert ws.receive_json()["code"] == "message_too_long"


def test_patient_dashboard_live(client, doctor, patient, store, auth_headers):
    RosterManager(store).link_doctor_by_email(patient.uid, doctor.email)

    with client.websocket_connect(f"/patient/dashboard/live?token={patient.id_token}") as ws:
        assert snapshots(ws, 2) == {"appointments": [], "notes": []}

        client.post(
            f"/dashboard/patients/{patient.uid}/notes",
            json={"diagnosis": "Flu", "treatment": "Rest"},
            headers=auth_headers(doctor),
        )

        frame = ws.receive_json()
        assert frame["collection"] == "notes"
        assert frame["items"][0]["diagnosis"] == "Flu"


# -------------------------
# Access lost while connected
# -------------------------
def test_unlinked_doctor_loses_live_patient_view(client, doctor, other_doctor, patient, store, auth_headers, fake_db):
    roster = RosterManager(store)
    roster.link_doctor_by_email(patient.uid, doctor.email)
    roster.link_doctor_by_email(patient.uid, other_doctor.email)

    with client.websocket_connect(f"/dashboard/patients/{patient.uid}/live?token={doctor.id_token}") as ws:
        snapshots(ws, 2)

        r = client.delete(f"/patient/dashboard/doctors/{doctor.uid}", headers=auth_headers(patient))
        assert r.status_code == 200

        closed_with(ws, "forbidden", 4403)

    assert fake_db.listener_count == 0
    r = client.post(
        f"/dashboard/patients/{patient.uid}/notes",
        json={"diagnosis": "Secret dx", "treatment": "Rest"},
        headers=auth_headers(other_doctor),
    )
    assert r.status_code == 201


def test_deleted_patient_record_closes_chat(client, doctor, patient, store, fake_db):
    RosterManager(store).link_doctor_by_email(patient.uid, doctor.email)

    with client.websocket_connect(f"/chat/{patient.uid}/live?token={doctor.id_token}") as ws:
        snapshots(ws, 1)
        store.delete("patients", patient.uid)
        closed_with(ws, "forbidden", 4403)

    assert fake_db.listener_count == 0


def test_logout_ends_open_live_channels(app, client, doctor, patient, store, auth_headers):
    RosterManager(store).link_doctor_by_email(patient.uid, doctor.email)
    channels = app.state.live_channels

    with client.websocket_connect(f"/chat/{patient.uid}/live?token={doctor.id_token}") as ws:
        snapshots(ws, 1)
        assert channels.count(doctor.uid) == 1

        assert client.post("/logout", headers=auth_headers(doctor)).status_code == 200

        assert ws.receive_json() == {"type": "error", "code": "auth_error", "message": "Signed out"}
        with pytest.raises(WebSocketDisconnect) as info:
            ws.receive_json()
        assert info.value.code == 4401

    assert channels.count(doctor.uid) == 0


def test_patient_logout_ends_dashboard_channel(client, patient, auth_headers):
    with client.websocket_connect(f"/patient/dashboard/live?token={patient.id_token}") as ws:
        snapshots(ws, 2)
        assert client.post("/patient/logout", headers=auth_headers(patient)).status_code == 200
        closed_with(ws, "auth_error", 4401)


def test_revoked_token_is_noticed_on_ping(client, doctor, identity):
    with client.websocket_connect(f"/dashboard/live?token={doctor.id_token}") as ws:
        snapshots(ws, 1)
        identity.sign_out(doctor.uid)
        ws.send_json({"type": "ping"})
        closed_with(ws, "auth_error", 4401)


def test_revoked_token_is_noticed_by_periodic_check(client, doctor, identity, monkeypatch):
    monkeypatch.setattr(settings, "LIVE_RECHECK_SECONDS", 0.05)

    with client.websocket_connect(f"/dashboard/live?token={doctor.id_token}") as ws:
        snapshots(ws, 1)
        identity.sign_out(doctor.uid)
        closed_with(ws, "auth_error", 4401)


def test_chat_send_rechecks_access(client, doctor, patient, store, identity, fake_db):
    RosterManager(store).link_doctor_by_email(patient.uid, doctor.email)

    with client.websocket_connect(f"/chat/{patient.uid}/live?token={doctor.id_token}") as ws:
        snapshots(ws, 1)
        identity.sign_out(doctor.uid)
        ws.send_json({"type": "send", "text": "still here?"})
        closed_with(ws, "auth_error", 4401)

    assert fake_db.docs(f"patients/{patient.uid}/messages") == {}


def test_chat_socket_send_is_guarded(app, client, patient, fake_db):
    app.state.submission_guard._in_flight.add((patient.uid, "chat", patient.uid))

    with client.websocket_connect(f"/chat/{patient.uid}/live?token={patient.id_token}") as ws:
        snapshots(ws, 1)
        ws.send_json({"type": "send", "text": "Hello"})
        assert ws.receive_json()["code"] == "duplicate_submission"

    assert fake_db.docs(f"patients/{patient.uid}/messages") == {}
