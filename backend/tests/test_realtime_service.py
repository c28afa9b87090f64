import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import socketio
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from helpers import T0, FakeSocketServer, FrozenClock
from devfusion.exceptions import AuthenticationError, GenerationError, PersistenceError
from devfusion.models.ai import FileTreePatchReply, TextReply
from devfusion.models.chat import UserPreferences
from devfusion.models.session_db import ProjectSessionDB
from devfusion.repositories.message_repository import MessageRepository
from devfusion.repositories.project_repository import ProjectNotFoundError, ProjectRepository
from devfusion.repositories.session_repository import SessionRepository
from devfusion.services.ai_interceptor import FALLBACK_TEXT, RATE_LIMITED_TEXT, AIMentionInterceptor
from devfusion.services.ai_service import AIService
from devfusion.services.gateway import ConnectionGateway, ConnectionState
from devfusion.services.message_relay import MessageRelay
from devfusion.services.rate_limiter import AIRateLimiter
from devfusion.services.realtime_service import RealtimeService
from devfusion.services.session_tracker import SessionTracker
from devfusion.services.task_service import TaskService
from devfusion.tools.clock import isoformat

AI_SENDER = {"_id": "ai", "email": "AI"}


def handshake(project_id):
    return {"QUERY_STRING": f"projectId={project_id}"}


@pytest.fixture
def sio():
    return FakeSocketServer()


@pytest.fixture
def ai_service():
    service = MagicMock(spec=AIService)
    service.generate = AsyncMock(return_value=TextReply(body="4"))
    return service


@pytest.fixture
def rate_limiter():
    return AIRateLimiter(min_interval=2.0, clock=lambda: 100.0)


@pytest.fixture
def task_service():
    return TaskService()


@pytest.fixture
def realtime(sio, auth_service, session_factory, ai_service, rate_limiter, task_service, clock):
    relay = MessageRelay(sio, session_factory, clock=clock)
    service = RealtimeService(
        sio=sio,
        gateway=ConnectionGateway(auth_service, session_factory),
        relay=relay,
        interceptor=AIMentionInterceptor(
            ai_service,
            relay,
            session_factory,
            rate_limiter=rate_limiter,
            clock=clock,
        ),
        session_tracker=SessionTracker(session_factory, clock=clock),
        task_service=task_service,
    )
    service.register()
    return service


@pytest.fixture
async def connected(realtime, auth_service, project):
    await realtime.on_connect("sid-a", handshake(project.id), {"token": auth_service.issue_token("u1", "a@x.com")})
    await realtime.on_connect("sid-b", handshake(project.id), {"token": auth_service.issue_token("u2", "b@x.com")})
    return project


async def count_sessions(session_factory):
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(ProjectSessionDB))


async def stored_messages(session_factory, project_id):
    async with session_factory() as session:
        return await MessageRepository(session).list_by_project(project_id)


async def test_register_binds_all_events(realtime, sio):
    assert set(sio.handlers) == {"connect", "disconnect", "project-message", "project-activity"}


@pytest.mark.asyncio
async def test_gateway_rejects_expired_token_without_session(realtime, auth_service, session_factory, project, sio):
    expired = auth_service.issue_token("u1", "a@x.com", expires_in=timedelta(seconds=-30))

    with pytest.raises(socketio.exceptions.ConnectionRefusedError):
        await realtime.on_connect("sid-a", handshake(project.id), {"token": expired})

    assert realtime.connection("sid-a") is None
    assert not sio.rooms
    assert await count_sessions(session_factory) == 0


@pytest.mark.asyncio
async def test_gateway_rejects_missing_token_and_unknown_project(auth_service, session_factory, project):
    gateway = ConnectionGateway(auth_service, session_factory)
    token = auth_service.issue_token("u1", "a@x.com")

    with pytest.raises(AuthenticationError):
        await gateway.authorize("sid", handshake(project.id), None)
    with pytest.raises(AuthenticationError):
        await gateway.authorize("sid", {}, {"token": token})
    with pytest.raises(ProjectNotFoundError):
        await gateway.authorize("sid", handshake("missing"), {"token": token})


@pytest.mark.asyncio
async def test_gateway_accepts_authorization_header(auth_service, session_factory, project):
    gateway = ConnectionGateway(auth_service, session_factory)
    environ = {
        **handshake(project.id),
        "HTTP_AUTHORIZATION": f"Bearer {auth_service.issue_token('u1', 'a@x.com')}",
    }

    context = await gateway.authorize("sid", environ)

    assert context.identity.id == "u1"
    assert context.room == project.id
    assert context.state == ConnectionState.CONNECTING


@pytest.mark.asyncio
async def test_connect_joins_room_and_opens_session(connected, realtime, sio, session_factory):
    context = realtime.connection("sid-a")

    assert context.state == ConnectionState.ACTIVE
    assert sio.rooms[connected.id] == {"sid-a", "sid-b"}
    async with session_factory() as session:
        record = await SessionRepository(session).get(context.session_id)
    assert record.login_time == T0
    assert record.logout_time is None


@pytest.mark.asyncio
async def test_message_relayed_to_others_and_persisted(connected, realtime, sio, session_factory, ai_service):
    payload = {"message": "hello", "sender": {"_id": "u1", "email": "a@x.com"}}

    await realtime.on_project_message("sid-a", payload)

    assert sio.received["sid-b"] == [("project-message", payload)]
    assert sio.received["sid-a"] == []
    [message] = await stored_messages(session_factory, connected.id)
    assert message.project_id == connected.id
    assert message.sender.id == "u1"
    assert message.message == "hello"
    assert message.timestamp == T0
    ai_service.generate.assert_not_awaited()


@pytest.mark.asyncio
async def test_malformed_message_is_dropped(connected, realtime, sio, session_factory):
    await realtime.on_project_message("sid-a", {"text": "no sender"})

    assert sio.received["sid-b"] == []
    assert await stored_messages(session_factory, connected.id) == []


@pytest.mark.asyncio
async def test_ai_mention_reaches_every_member(connected, realtime, sio, session_factory, ai_service, task_service):
    payload = {"message": "@ai what is 2+2", "sender": {"_id": "u1", "email": "a@x.com"}}

    await realtime.on_project_message("sid-a", payload)
    await task_service.wait_idle()

    ai_service.generate.assert_awaited_once_with("what is 2+2", UserPreferences())
    for sid in ("sid-a", "sid-b"):
        event, data = sio.received[sid][-1]
        assert event == "project-message"
        assert data["sender"] == AI_SENDER
        assert json.loads(data["message"]) == {"text": "4"}
        assert data["timestamp"] == isoformat(T0)
    assert sio.received["sid-b"][0] == ("project-message", payload)

    messages = await stored_messages(session_factory, connected.id)
    assert [m.sender.id for m in messages] == ["u1", "ai"]
    assert messages[1].sender.email == "AI"


@pytest.mark.asyncio
async def test_ai_failure_broadcasts_fallback(connected, realtime, sio, session_factory, ai_service, task_service):
    ai_service.generate.side_effect = GenerationError("upstream exploded")

    await realtime.on_project_message("sid-a", {"message": "@ai help", "sender": {"_id": "u1"}})
    await task_service.wait_idle()

    for sid in ("sid-a", "sid-b"):
        _event, data = sio.received[sid][-1]
        assert data["message"] == FALLBACK_TEXT
        assert data["sender"] == AI_SENDER
    messages = await stored_messages(session_factory, connected.id)
    assert [m.sender.id for m in messages] == ["u1"]


@pytest.mark.asyncio
async def test_unexpected_ai_error_also_falls_back(connected, realtime, sio, ai_service, task_service):
    ai_service.generate.side_effect = KeyError("boom")

    await realtime.on_project_message("sid-a", {"message": "@ai help", "sender": {"_id": "u1"}})
    await task_service.wait_idle()

    assert sio.received["sid-a"][-1][1]["message"] == FALLBACK_TEXT


@pytest.mark.asyncio
async def test_socket_ai_path_shares_the_cooldown(connected, realtime, sio, ai_service, task_service, rate_limiter):
    rate_limiter.acquire()

    await realtime.on_project_message("sid-a", {"message": "@ai again", "sender": {"_id": "u1"}})
    await task_service.wait_idle()

    ai_service.generate.assert_not_awaited()
    assert sio.received["sid-b"][-1][1]["message"] == RATE_LIMITED_TEXT


@pytest.mark.asyncio
async def test_ai_file_tree_patch_is_stamped_and_applied(
    connected, realtime, sio, session_factory, ai_service, task_service
):
    ai_service.generate.return_value = FileTreePatchReply(
        body="Added a server",
        tree={"server.js": {"file": {"contents": "listen()"}}},
    )

    await realtime.on_project_message("sid-a", {"message": "@ai make a server", "sender": {"_id": "u1"}})
    await task_service.wait_idle()

    _event, data = sio.received["sid-b"][-1]
    wire = json.loads(data["message"])
    assert wire["text"] == "Added a server"
    assert wire["fileTree"]["server.js"]["lastModified"] == isoformat(T0)

    async with session_factory() as session:
        stored = await ProjectRepository(session).get_project(connected.id)
    assert stored.file_tree == wire["fileTree"]


@pytest.mark.asyncio
async def test_activity_reaches_others_only(connected, realtime, sio):
    activity = {"userId": "u1", "email": "a@x.com", "field": "viewing", "value": "index.js"}

    await realtime.on_project_activity("sid-a", activity)

    assert sio.received["sid-b"] == [("project-activity", activity)]
    assert sio.received["sid-a"] == []


@pytest.mark.asyncio
async def test_disconnect_closes_session_with_duration(connected, realtime, session_factory, clock):
    session_id = realtime.connection("sid-a").session_id
    clock.advance(125)

    await realtime.on_disconnect("sid-a", "client disconnect")

    assert realtime.connection("sid-a") is None
    async with session_factory() as session:
        record = await SessionRepository(session).get(session_id)
    assert record.login_time == T0
    assert record.logout_time == T0 + timedelta(seconds=125)
    assert record.duration == 125


@pytest.mark.asyncio
async def test_disconnect_of_unknown_sid_is_ignored(realtime):
    await realtime.on_disconnect("never-connected")


@pytest.mark.asyncio
async def test_session_tracker_swallows_missing_record(session_factory):
    tracker = SessionTracker(session_factory, clock=FrozenClock())

    assert await tracker.close("missing") is None
    assert await tracker.close(None) is None


def database_locked():
    return OperationalError("SELECT 1", {}, Exception("database is locked"))


@pytest.mark.asyncio
async def test_handshake_refused_when_project_lookup_fails(realtime, auth_service, project, monkeypatch):
    async def locked(self, project_id):
        raise database_locked()

    monkeypatch.setattr(ProjectRepository, "find_by_id", locked)

    with pytest.raises(socketio.exceptions.ConnectionRefusedError):
        await realtime.on_connect("sid-x", handshake(project.id), {"token": auth_service.issue_token("u1", "a@x.com")})
    assert realtime.connection("sid-x") is None


@pytest.mark.asyncio
async def test_gateway_wraps_datastore_errors(auth_service, session_factory, project, monkeypatch):
    async def locked(self, project_id):
        raise database_locked()

    monkeypatch.setattr(ProjectRepository, "find_by_id", locked)
    gateway = ConnectionGateway(auth_service, session_factory)

    with pytest.raises(PersistenceError):
        await gateway.authorize("sid", handshake(project.id), {"token": auth_service.issue_token("u1", "a@x.com")})


@pytest.mark.asyncio
async def test_failed_message_write_still_broadcasts(connected, realtime, sio, session_factory, monkeypatch):
    async def failing_append(self, *args, **kwargs):
        raise PersistenceError("disk full")

    monkeypatch.setattr(MessageRepository, "append", failing_append)
    payload = {"message": "still here", "sender": {"_id": "u1", "email": "a@x.com"}}

    await realtime.on_project_message("sid-a", payload)

    assert sio.received["sid-b"] == [("project-message", payload)]
    assert await stored_messages(session_factory, connected.id) == []


@pytest.mark.asyncio
async def test_failed_broadcast_still_persists(connected, realtime, sio, session_factory, monkeypatch):
    monkeypatch.setattr(sio, "emit", AsyncMock(side_effect=RuntimeError("transport gone")))

    await realtime.on_project_message("sid-a", {"message": "kept", "sender": {"_id": "u1"}})

    [message] = await stored_messages(session_factory, connected.id)
    assert message.message == "kept"


@pytest.mark.asyncio
async def test_connection_works_without_session_tracking(realtime, auth_service, project, sio, monkeypatch):
    async def failing_open(self, *args, **kwargs):
        raise database_locked()

    monkeypatch.setattr(SessionRepository, "open", failing_open)

    await realtime.on_connect("sid-a", handshake(project.id), {"token": auth_service.issue_token("u1", "a@x.com")})
    await realtime.on_connect("sid-b", handshake(project.id), {"token": auth_service.issue_token("u2", "b@x.com")})

    context = realtime.connection("sid-a")
    assert context.session_id is None
    assert context.state == ConnectionState.ACTIVE
    assert sio.rooms[project.id] == {"sid-a", "sid-b"}

    payload = {"message": "hi", "sender": {"_id": "u1"}}
    await realtime.on_project_message("sid-a", payload)
    assert sio.received["sid-b"] == [("project-message", payload)]

    await realtime.on_disconnect("sid-a")
    assert realtime.connection("sid-a") is None


@pytest.mark.asyncio
async def test_pending_ai_reply_does_not_block_room_traffic(connected, realtime, sio, ai_service, task_service):
    release = asyncio.Event()

    async def slow_generate(prompt, preferences=None):
        await release.wait()
        return TextReply(body="late answer")

    ai_service.generate.side_effect = slow_generate
    await realtime.on_project_message("sid-a", {"message": "@ai think hard", "sender": {"_id": "u1"}})
    await asyncio.sleep(0)

    reply = {"message": "meanwhile", "sender": {"_id": "u2", "email": "b@x.com"}}
    await realtime.on_project_message("sid-b", reply)
    assert sio.received["sid-a"] == [("project-message", reply)]
    assert task_service.pending == 1

    release.set()
    await task_service.wait_idle()

    messages = [data["message"] for _event, data in sio.received["sid-a"]]
    assert messages == ["meanwhile", json.dumps({"text": "late answer"})]


@pytest.mark.asyncio
async def test_requester_disconnect_does_not_cancel_ai_reply(
    connected, realtime, sio, session_factory, ai_service, task_service
):
    release = asyncio.Event()

    async def slow_generate(prompt, preferences=None):
        await release.wait()
        return TextReply(body="for the room")

    ai_service.generate.side_effect = slow_generate
    await realtime.on_project_message("sid-a", {"message": "@ai explain", "sender": {"_id": "u1"}})
    await asyncio.sleep(0)

    await realtime.on_disconnect("sid-a", "client disconnect")
    sio.rooms[connected.id].discard("sid-a")
    release.set()
    await task_service.wait_idle()

    _event, data = sio.received["sid-b"][-1]
    assert data["sender"] == AI_SENDER
    assert json.loads(data["message"]) == {"text": "for the room"}
    assert sio.received["sid-a"] == []
    messages = await stored_messages(session_factory, connected.id)
    assert [m.sender.id for m in messages] == ["u1", "ai"]


@pytest.mark.asyncio
async def test_shutdown_closes_open_sessions(connected, realtime, session_factory, clock):
    session_ids = [realtime.connection(sid).session_id for sid in ("sid-a", "sid-b")]
    clock.advance(30)

    await realtime.shutdown()

    assert realtime.connection("sid-a") is None
    async with session_factory() as session:
        repo = SessionRepository(session)
        for session_id in session_ids:
            record = await repo.get(session_id)
            assert record.duration == 30
            assert record.logout_time == T0 + timedelta(seconds=30)
