from collections import defaultdict
from datetime import UTC, datetime, timedelta

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)
TEST_SECRET = "test-secret"


class FrozenClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeSocketServer:
    """Records room membership and what each connection would receive."""

    def __init__(self):
        self.handlers = {}
        self.rooms = defaultdict(set)
        self.received = defaultdict(list)

    def on(self, event, handler=None, namespace=None):
        self.handlers[event] = handler

    async def enter_room(self, sid, room, namespace=None):
        self.rooms[room].add(sid)

    async def emit(self, event, data=None, *, room=None, skip_sid=None, **kwargs):
        for sid in sorted(self.rooms.get(room, ())):
            if sid != skip_sid:
                self.received[sid].append((event, data))
