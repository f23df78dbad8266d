import asyncio
from typing import Any, List

import pytest

from yrelay.errors import MergeRejected
from yrelay.presence import PresenceStore
from yrelay.sessions import Session, SessionRegistry

_END = object()


class FakeWebSocket:
    """In-memory stand-in for a websockets connection."""

    def __init__(self, remote=("127.0.0.1", 50000)):
        self.remote_address = remote
        self.sent: List[Any] = []
        self.closed = False
        self.close_calls = 0
        self.fail_sends = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def send(self, data):
        if self.fail_sends or self.closed:
            raise ConnectionError("transport gone")
        self.sent.append(data)

    async def close(self, code=1000, reason=""):
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_END)

    def feed(self, item):
        self._incoming.put_nowait(item)

    def hang_up(self):
        self._incoming.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class RecordingEngine:
    """MergeEngine double: records applied bytes, can be told to reject."""

    def __init__(self, state=b"STATE"):
        self.applied: List[bytes] = []
        self.state = state
        self.reject = False

    def apply_update(self, update: bytes) -> None:
        if self.reject:
            raise MergeRejected("nope")
        self.applied.append(bytes(update))

    def encode_full_state(self) -> bytes:
        return self.state


async def settle(*sessions: Session, rounds: int = 10):
    for _ in range(rounds):
        await asyncio.sleep(0)
    for session in sessions:
        await session.flush()


@pytest.fixture
def engine():
    return RecordingEngine()


@pytest.fixture
def presence():
    return PresenceStore()


@pytest.fixture
def registry():
    return SessionRegistry()
