import pytest

from conftest import FakeWebSocket, settle
from yrelay.handler import SyncProtocolHandler
from yrelay.presence import decode_presence_update, encode_presence_update
from yrelay.protocol import Outcome, document_frame, make_frame, presence_frame
from yrelay.sessions import Session


async def open_sessions(registry, n):
    sessions = []
    for _ in range(n):
        s = Session(FakeWebSocket())
        registry.register(s)
        s.open()
        sessions.append(s)
    return sessions


@pytest.mark.asyncio
async def test_document_update_applied_then_forwarded(engine, presence, registry):
    a, b, c = await open_sessions(registry, 3)
    sync = SyncProtocolHandler(engine, presence, registry)
    frame = document_frame(b"delta-1")

    assert sync.handle_inbound(a, frame) is Outcome.APPLIED_DOCUMENT
    await settle(a, b, c)
    assert engine.applied == [b"delta-1"]
    assert a.ws.sent == []
    assert b.ws.sent == [frame]
    assert c.ws.sent == [frame]


@pytest.mark.asyncio
async def test_original_bytes_forwarded_untouched(engine, presence, registry):
    a, b = await open_sessions(registry, 2)
    sync = SyncProtocolHandler(engine, presence, registry)
    # trailing bytes survive because the frame is relayed, not re-encoded
    frame = document_frame(b"d") + b"\x99"
    sync.handle_inbound(a, frame)
    await settle(b)
    assert b.ws.sent == [frame]


@pytest.mark.asyncio
async def test_rejected_update_not_broadcast(engine, presence, registry):
    a, b = await open_sessions(registry, 2)
    engine.reject = True
    sync = SyncProtocolHandler(engine, presence, registry)

    assert sync.handle_inbound(a, document_frame(b"bad")) is Outcome.DROPPED
    await settle(a, b)
    assert b.ws.sent == []
    assert a.is_open


@pytest.mark.asyncio
async def test_unknown_tag_changes_nothing(engine, presence, registry):
    a, b = await open_sessions(registry, 2)
    sync = SyncProtocolHandler(engine, presence, registry)

    assert sync.handle_inbound(a, make_frame(7, b"x")) is Outcome.DROPPED
    await settle(a, b)
    assert engine.applied == []
    assert len(presence) == 0
    assert b.ws.sent == []
    assert a.is_open


@pytest.mark.asyncio
async def test_text_frames_are_ignored(engine, presence, registry):
    a, b = await open_sessions(registry, 2)
    sync = SyncProtocolHandler(engine, presence, registry)

    assert sync.handle_inbound(a, "hello there") is Outcome.IGNORED_TEXT
    await settle(b)
    assert engine.applied == []
    assert b.ws.sent == []


@pytest.mark.asyncio
async def test_truncated_frame_dropped(engine, presence, registry):
    a, b = await open_sessions(registry, 2)
    sync = SyncProtocolHandler(engine, presence, registry)
    assert sync.handle_inbound(a, b"\x00\x09abc") is Outcome.DROPPED
    await settle(b)
    assert b.ws.sent == []


@pytest.mark.asyncio
async def test_presence_update_owned_by_sender(engine, presence, registry):
    a, b = await open_sessions(registry, 2)
    sync = SyncProtocolHandler(engine, presence, registry)
    frame = presence_frame(encode_presence_update([(42, 1, {"name": "ada"})]))

    assert sync.handle_inbound(a, frame) is Outcome.APPLIED_PRESENCE
    await settle(a, b)
    assert presence.get(42).owner == a.id
    assert a.ws.sent == []
    assert b.ws.sent == [frame]


@pytest.mark.asyncio
async def test_malformed_presence_dropped(engine, presence, registry):
    a, b = await open_sessions(registry, 2)
    sync = SyncProtocolHandler(engine, presence, registry)
    frame = presence_frame(b"\x01\x2a\x01\x05{nope")

    assert sync.handle_inbound(a, frame) is Outcome.DROPPED
    await settle(b)
    assert len(presence) == 0
    assert b.ws.sent == []


def test_presence_payload_helper_roundtrip():
    entries = [(1, 2, {"cursor": {"index": 4, "length": 0}})]
    assert decode_presence_update(encode_presence_update(entries)) == entries
