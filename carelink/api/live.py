"""WebSocket plumbing shared by the live screens.

A live screen accepts the socket, authenticates it from the ``token``
query parameter, opens its snapshot streams and forwards every delivery
as ``{"type": "snapshot", "collection": <name>, "items": [...]}``.

The access that let the socket in is watched for as long as it stays
open: the patient record (when the screen is about one patient), a
logout in this process, and the token itself on every ping, every
incoming message and every ``LIVE_RECHECK_SECONDS``. Losing any of them
closes all streams, as does the socket going away or a stream failing.
"""
from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Tuple

from fastapi import WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from carelink.core.config import settings
from carelink.core.exceptions import AuthError, CareLinkError, PermissionDeniedError
from carelink.core.identity import IdentityProvider
from carelink.models.principal import Principal
from carelink.services.document_store import DocumentStore
from carelink.services.live_query import SnapshotStream
from carelink.services.roster import RosterManager
from carelink.services.session import resolve_principal

logger = logging.getLogger(__name__)

# Application close codes: 4xxx client side, 4500+ upstream failures
CLOSE_UNAUTHORIZED = 4401
CLOSE_FORBIDDEN = 4403
CLOSE_UPSTREAM = 4502

MessageHandler = Callable[[Dict[str, Any]], Awaitable[Optional[Dict[str, Any]]]]


def close_code_for(exc: CareLinkError) -> int:
    if exc.status_code == 401:
        return CLOSE_UNAUTHORIZED
    if exc.status_code in (403, 404):
        return CLOSE_FORBIDDEN
    return CLOSE_UPSTREAM


class LiveChannels:
    """Open live channels per uid, so that a logout can end them at once.

    Logout runs on a worker thread while each channel waits on its own
    event loop, hence the lock and ``call_soon_threadsafe``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._channels: Dict[str, Set[Tuple[asyncio.AbstractEventLoop, asyncio.Event]]] = {}

    def register(self, uid: str) -> Tuple[asyncio.Event, Callable[[], None]]:
        entry = (asyncio.get_running_loop(), asyncio.Event())
        with self._lock:
            self._channels.setdefault(uid, set()).add(entry)

        def unregister() -> None:
            with self._lock:
                entries = self._channels.get(uid)
                if entries is not None:
                    entries.discard(entry)
                    if not entries:
                        del self._channels[uid]

        return entry[1], unregister

    def count(self, uid: str) -> int:
        with self._lock:
            return len(self._channels.get(uid, ()))

    def sign_out(self, uid: str) -> None:
        with self._lock:
            entries = list(self._channels.get(uid, ()))
        for loop, event in entries:
            try:
                loop.call_soon_threadsafe(event.set)
            except RuntimeError:
                logger.debug("Live channel loop for %s already closed", uid)
        if entries:
            logger.info("Ending %d live channel(s) for %s", len(entries), uid)


@dataclass
class LiveAccess:
    """What let a socket in: a token, its principal and optionally one patient."""

    identity: IdentityProvider
    store: DocumentStore
    token: str
    principal: Principal
    patient_id: Optional[str] = None

    def verify(self) -> None:
        """Re-run the admission checks; raises CareLinkError once access is gone."""
        principal = resolve_principal(self.identity, self.store, self.token)
        if principal.uid != self.principal.uid or principal.role != self.principal.role:
            raise PermissionDeniedError()
        if self.patient_id is not None:
            RosterManager(self.store).patient_for(principal, self.patient_id)

    def watch(self) -> Optional[SnapshotStream]:
        if self.patient_id is None:
            return None
        return RosterManager(self.store).watch_patient(self.patient_id)


async def ws_error(ws: WebSocket, code: str, message: str, *, close_code: Optional[int] = None) -> None:
    """Send an error frame, optionally closing the socket afterwards."""
    try:
        await ws.send_json({"type": "error", "code": code, "message": message})
    except (RuntimeError, WebSocketDisconnect):
        logger.debug("Could not deliver error frame %s", code)
        return
    if close_code is not None:
        try:
            await ws.close(code=close_code)
        except RuntimeError:
            logger.debug("Socket already closed before %s", close_code)


async def open_channel(
    ws: WebSocket,
    token: Optional[str],
    identity: IdentityProvider,
    store: DocumentStore,
    role: Optional[str] = None,
    patient_id: Optional[str] = None,
) -> Optional[LiveAccess]:
    """Accept the socket and check who may use it; close it on failure."""
    await ws.accept()
    if not token:
        await ws_error(ws, "auth_error", "Missing token", close_code=CLOSE_UNAUTHORIZED)
        return None
    try:
        principal = await run_in_threadpool(resolve_principal, identity, store, token)
    except CareLinkError as exc:
        await ws_error(ws, exc.code, exc.message, close_code=CLOSE_UNAUTHORIZED)
        return None
    if role is not None and principal.role != role:
        await ws_error(ws, "forbidden", "You do not have access to this page", close_code=CLOSE_FORBIDDEN)
        return None

    access = LiveAccess(identity, store, token, principal, patient_id)
    if patient_id is not None:
        try:
            await run_in_threadpool(RosterManager(store).patient_for, principal, patient_id)
        except CareLinkError as exc:
            await ws_error(ws, exc.code, exc.message, close_code=close_code_for(exc))
            return None
    return access


async def pump_snapshots(
    ws: WebSocket,
    access: LiveAccess,
    streams: Dict[str, SnapshotStream],
    on_message: Optional[MessageHandler] = None,
) -> None:
    channels: LiveChannels = ws.app.state.live_channels
    watch = access.watch()

    async def forward(name: str, stream: SnapshotStream) -> None:
        async for items in stream:
            await ws.send_json({"type": "snapshot", "collection": name, "items": items})

    async def admitted(stream: SnapshotStream) -> None:
        async for items in stream:
            if not RosterManager.still_admits(access.principal, items):
                raise PermissionDeniedError()

    async def recheck() -> None:
        while True:
            await asyncio.sleep(settings.LIVE_RECHECK_SECONDS)
            await run_in_threadpool(access.verify)

    async def signed_out(event: asyncio.Event) -> None:
        await event.wait()
        raise AuthError("Signed out")

    async def receive() -> None:
        while True:
            text = await ws.receive_text()
            try:
                data = json.loads(text)
            except ValueError:
                await ws_error(ws, "invalid_json", "Message is not valid JSON")
                continue
            if not isinstance(data, dict):
                await ws_error(ws, "invalid_payload", "Message must be a JSON object")
                continue
            if data.get("type") == "ping":
                await run_in_threadpool(access.verify)
                await ws.send_json({"type": "pong"})
                continue
            if on_message is None:
                await ws_error(ws, "unsupported_type", "This channel is read-only")
                continue
            await run_in_threadpool(access.verify)
            try:
                reply = await on_message(data)
            except CareLinkError as exc:
                await ws_error(ws, exc.code, exc.message)
                continue
            if reply is not None:
                await ws.send_json(reply)

    tasks = []
    revoked, unregister = channels.register(access.principal.uid)
    try:
        for stream in streams.values():
            stream.open()
        tasks = [asyncio.create_task(forward(name, s)) for name, s in streams.items()]
        if watch is not None:
            watch.open()
            tasks.append(asyncio.create_task(admitted(watch)))
        tasks.append(asyncio.create_task(recheck()))
        tasks.append(asyncio.create_task(signed_out(revoked)))
        tasks.append(asyncio.create_task(receive()))

        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is None or isinstance(exc, WebSocketDisconnect):
                continue
            if isinstance(exc, CareLinkError):
                logger.warning("Live channel for %s ended: %s", access.principal.uid, exc.message)
                await ws_error(ws, exc.code, exc.message, close_code=close_code_for(exc))
                break
            raise exc
    except CareLinkError as exc:
        logger.warning("Could not open live channel: %s", exc.message)
        await ws_error(ws, exc.code, exc.message, close_code=close_code_for(exc))
    finally:
        unregister()
        for stream in streams.values():
            stream.close()
        if watch is not None:
            watch.close()
        for task in tasks:
            task.cancel()
