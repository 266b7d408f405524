"""WebSocket transport for chat sessions.

Frames are JSON objects with an ``event`` field, e.g.
``{"event": "join_channel", "channel_id": 1, "secret": "pw"}`` or
``{"event": "send_message", "channel_id": 1, "content": "hi"}``.
"""

import logging

import anyio
from fastapi import WebSocket, WebSocketDisconnect, status
from starlette.websockets import WebSocketState

from parley.errors import InvalidInput, NotFound
from parley.events import parse_inbound
from parley.gateway import MessageGateway
from parley.server.dependencies import GatewayDep, StoreDep
from parley.session import Session

logger = logging.getLogger(__name__)


async def chat_session(
    websocket: WebSocket,
    user_id: int,
    gateway: GatewayDep,
    store: StoreDep,
) -> None:
    """Run one client session until either side hangs up."""
    try:
        user = await store.get_user(user_id)
    except NotFound:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    session = gateway.connect(user)
    try:
        async with anyio.create_task_group() as tg:
            tg.start_soon(_write_events, websocket, session, tg.cancel_scope)
            await _read_events(websocket, gateway, session)
            tg.cancel_scope.cancel()
    finally:
        gateway.disconnect(session)

    if (
        websocket.client_state is WebSocketState.CONNECTED
        and websocket.application_state is WebSocketState.CONNECTED
    ):
        # Evicted: the client could not keep up with its channel
        await websocket.close(code=status.WS_1013_TRY_AGAIN_LATER)


async def _read_events(
    websocket: WebSocket, gateway: MessageGateway, session: Session
) -> None:
    """Feed client frames to the gateway until the client disconnects."""
    while session.connected:
        try:
            frame = await websocket.receive_text()
        except WebSocketDisconnect:
            return
        try:
            event = parse_inbound(frame)
        except InvalidInput as e:
            gateway.reject(session, "unknown", e)
            continue
        await gateway.handle(session, event)


async def _write_events(
    websocket: WebSocket, session: Session, cancel_scope: anyio.CancelScope
) -> None:
    """Drain the session outbox to the client."""
    try:
        async for event in session.events():
            await websocket.send_text(event.model_dump_json())
    except (WebSocketDisconnect, RuntimeError, OSError):
        logger.info("Session %s transport closed while sending", session.id)
    # Outbox closed or transport gone: stop reading too
    cancel_scope.cancel()
