"""Chat between a patient and the doctors caring for them.

Messages live under ``patients/{patient_id}/messages``. A doctor can open
the chat of any patient on their roster; a patient only their own.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket
from starlette.concurrency import run_in_threadpool

from carelink.api.deps import get_current_user, get_guard, get_identity, get_store
from carelink.api.live import open_channel, pump_snapshots, ws_error
from carelink.core.identity import IdentityProvider
from carelink.models.principal import Principal
from carelink.models.schemas import MessageIn
from carelink.services.document_store import DocumentStore
from carelink.services.firestore_chat_store import ChatMessages
from carelink.services.roster import RosterManager
from carelink.services.submission_guard import SubmissionGuard

router = APIRouter(prefix="/chat", tags=["chat"])


def _sender_name(user: Principal) -> str:
    return user.email or user.display_name


@router.get("/{patient_id}")
def chat_history(
    patient_id: str,
    user: Principal = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
):
    patient = RosterManager(store).patient_for(user, patient_id)
    messages = ChatMessages(store).list_for(patient_id)
    return {
        "patient": {"id": patient.id, "name": patient.name, "email": patient.email},
        "items": [m.to_view() for m in messages],
    }


@router.post("/{patient_id}/messages", status_code=201)
async def send_message(
    patient_id: str,
    body: MessageIn,
    user: Principal = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    guard: SubmissionGuard = Depends(get_guard),
):
    chat = ChatMessages(store)
    async with guard.hold((user.uid, "chat", patient_id)):
        await run_in_threadpool(RosterManager(store).patient_for, user, patient_id)
        message = await run_in_threadpool(
            chat.create, patient_id, user.uid, _sender_name(user), body.text
        )
    return {"id": message.id, "message": message.to_view()}


@router.websocket("/{patient_id}/live")
async def chat_live(
    websocket: WebSocket,
    patient_id: str,
    token: Optional[str] = None,
    store: DocumentStore = Depends(get_store),
    identity: IdentityProvider = Depends(get_identity),
):
    """
    Live chat channel.

    Server -> client: ``snapshot`` frames with the full history, ``ack``
    after each accepted message, ``error`` frames. Access is checked
    again before every send.
    Client -> server: ``{"type": "send", "text": "..."}`` or ``{"type": "ping"}``.
    """
    access = await open_channel(websocket, token, identity, store, patient_id=patient_id)
    if access is None:
        return
    user = access.principal
    chat = ChatMessages(store)
    guard: SubmissionGuard = websocket.app.state.submission_guard

    async def on_message(data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if data.get("type") != "send":
            await ws_error(websocket, "unsupported_type", "Unsupported message type")
            return None
        text = data.get("text")
        if not isinstance(text, str):
            text = ""
        async with guard.hold((user.uid, "chat", patient_id)):
            message = await run_in_threadpool(
                chat.create, patient_id, user.uid, _sender_name(user), text
            )
        return {"type": "ack", "id": message.id, "timestamp": message.timestamp}

    await pump_snapshots(websocket, access, {"messages": chat.stream_for(patient_id)}, on_message=on_message)
