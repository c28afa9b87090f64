from __future__ import annotations

import logging
from typing import Any

import socketio
from pydantic import ValidationError

from devfusion.exceptions import AuthenticationError, NotFoundError, PersistenceError
from devfusion.models.chat import ActivityEvent
from devfusion.services.ai_interceptor import AIMentionInterceptor
from devfusion.services.gateway import ConnectionContext, ConnectionGateway, ConnectionState
from devfusion.services.message_relay import PROJECT_ACTIVITY_EVENT, PROJECT_MESSAGE_EVENT, MessageRelay
from devfusion.services.session_tracker import SessionTracker
from devfusion.services.task_service import TaskService

logger = logging.getLogger(__name__)


class RealtimeService:
    """Socket.IO handlers for project rooms.

    Each connection is authorized once, joins the room of its project and
    stays there until it disconnects.
    """

    def __init__(
        self,
        sio: socketio.AsyncServer,
        gateway: ConnectionGateway,
        relay: MessageRelay,
        interceptor: AIMentionInterceptor,
        session_tracker: SessionTracker,
        task_service: TaskService,
    ):
        self.sio = sio
        self.gateway = gateway
        self.relay = relay
        self.interceptor = interceptor
        self.session_tracker = session_tracker
        self.task_service = task_service
        self._connections: dict[str, ConnectionContext] = {}

    def register(self) -> None:
        self.sio.on("connect", self.on_connect)
        self.sio.on("disconnect", self.on_disconnect)
        self.sio.on(PROJECT_MESSAGE_EVENT, self.on_project_message)
        self.sio.on(PROJECT_ACTIVITY_EVENT, self.on_project_activity)

    def connection(self, sid: str) -> ConnectionContext | None:
        return self._connections.get(sid)

    async def on_connect(self, sid: str, environ: dict[str, Any], auth: Any = None) -> None:
        try:
            context = await self.gateway.authorize(sid, environ, auth)
        except (AuthenticationError, NotFoundError, PersistenceError) as exc:
            logger.warning("Socket.IO connection %s rejected: %s", sid, exc)
            raise socketio.exceptions.ConnectionRefusedError("Authentication error") from exc

        self._connections[sid] = context
        await self.sio.enter_room(sid, context.room)
        context.session_id = await self.session_tracker.open(context.project.id, context.identity.id)
        context.state = ConnectionState.ACTIVE
        logger.info("User %s connected to project %s (sid=%s)", context.identity.id, context.room, sid)

    async def on_disconnect(self, sid: str, reason: Any = None) -> None:
        context = self._connections.pop(sid, None)
        if context is None:
            return
        context.state = ConnectionState.CLOSED
        await self.session_tracker.close(context.session_id)
        logger.info("User %s disconnected from project %s (reason=%s)", context.identity.id, context.room, reason)

    async def on_project_message(self, sid: str, data: Any) -> None:
        context = self._connections.get(sid)
        if context is None:
            logger.warning("Ignoring %s from unknown connection %s", PROJECT_MESSAGE_EVENT, sid)
            return

        message = await self.relay.relay(sid, context.room, context.project.id, data)
        if message is None:
            return

        prompt = self.interceptor.extract_prompt(message.message)
        if prompt is None:
            return

        await self.task_service.spawn(
            self.interceptor.respond(context.room, context.project.id, context.identity.id, prompt),
            name=f"ai-reply:{context.project.id}",
        )

    async def on_project_activity(self, sid: str, data: Any) -> None:
        context = self._connections.get(sid)
        if context is None:
            return
        try:
            ActivityEvent.model_validate(data)
        except ValidationError:
            logger.debug("Dropping malformed %s from %s", PROJECT_ACTIVITY_EVENT, sid)
            return
        try:
            await self.sio.emit(PROJECT_ACTIVITY_EVENT, data, room=context.room, skip_sid=sid)
        except Exception:
            logger.exception("Failed to broadcast activity in project %s", context.room)

    async def shutdown(self) -> None:
        """Close the sessions of connections still open when the server stops."""
        contexts = list(self._connections.values())
        self._connections.clear()
        for context in contexts:
            context.state = ConnectionState.CLOSED
            await self.session_tracker.close(context.session_id)
