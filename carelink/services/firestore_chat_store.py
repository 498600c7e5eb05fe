from __future__ import annotations

from typing import List, Optional

from carelink.core.config import settings
from carelink.core.exceptions import EmptyMessageError, MessageTooLongError
from carelink.models.care_record import ChatMessage
from carelink.services.document_store import ASCENDING, DocumentStore, QuerySpec
from carelink.services.live_query import SnapshotStream
from carelink.services.logger import log_debug
from carelink.services.time_utils import now_iso


# -------------------------
# Helpers
# -------------------------
def _messages_path(patient_id: str) -> str:
    return f"patients/{patient_id}/messages"


def _chat_view(rows):
    return [ChatMessage.from_doc(doc_id, data).to_view() for doc_id, data in rows]


class ChatMessages:
    """
    Chat history of one patient, stored under:
      patients/{patient_id}/messages/{message_id}

    Append-only: there is no edit or delete.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def query_for(self, patient_id: str) -> QuerySpec:
        return QuerySpec(_messages_path(patient_id), order_by="timestamp", direction=ASCENDING)

    # -------------------------
    # Core API
    # -------------------------
    def create(
        self,
        patient_id: str,
        sender_id: str,
        sender_name: Optional[str],
        text: str,
    ) -> ChatMessage:
        text = (text or "").strip()
        if not text:
            raise EmptyMessageError()
        if len(text) > settings.MAX_MESSAGE_LENGTH:
            raise MessageTooLongError()

        message = ChatMessage(
            sender_id=sender_id,
            sender_name=sender_name,
            text=text,
            timestamp=now_iso(),
        )
        message.id = self.store.create(_messages_path(patient_id), message.to_doc())
        log_debug("chat_send", {"patient": patient_id, "sender": sender_id, "id": message.id})
        return message

    def list_for(self, patient_id: str) -> List[ChatMessage]:
        rows = self.store.get(self.query_for(patient_id))
        return [ChatMessage.from_doc(doc_id, data) for doc_id, data in rows]

    def stream_for(self, patient_id: str) -> SnapshotStream:
        """Live chronological history; call ``open()`` inside the event loop."""
        return SnapshotStream(self.store, self.query_for(patient_id), view=_chat_view)
