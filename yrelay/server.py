import asyncio
import logging
from typing import Any, Optional

import websockets
import websockets.exceptions

from .config import RelayConfig
from .engine import MergeEngine, create_engine
from .errors import SendFailure, TransportError
from .handler import SyncProtocolHandler
from .presence import PresenceStore
from .protocol import document_frame, presence_frame
from .sessions import DEFAULT_SEND_QUEUE, Session, SessionRegistry


class RelayServer:
    """Owns the shared document, the presence store and the live sessions."""

    def __init__(
        self,
        engine: Optional[MergeEngine] = None,
        presence: Optional[PresenceStore] = None,
        send_queue_size: int = DEFAULT_SEND_QUEUE,
    ):
        self.engine = engine if engine is not None else create_engine()
        self.presence = presence if presence is not None else PresenceStore()
        self.registry = SessionRegistry()
        self.sync = SyncProtocolHandler(self.engine, self.presence, self.registry)
        self.send_queue_size = send_queue_size

    @classmethod
    def from_config(cls, config: RelayConfig) -> "RelayServer":
        engine = create_engine(seed=config.seed, texts=config.texts)
        return cls(engine=engine, send_queue_size=config.send_queue_size)

    def open_session(self, session: Session) -> None:
        self.registry.register(session)
        session.open()
        # newcomer starts from the authoritative state, then current cursors
        session.enqueue(document_frame(self.engine.encode_full_state()))
        if len(self.presence):
            session.enqueue(presence_frame(self.presence.snapshot()))
        logging.info("Client connected: %s %s", session.id, session.remote)

    async def handler(self, ws: Any, path: Optional[str] = None):
        session = Session(ws, self.send_queue_size)
        try:
            self.open_session(session)
            await self.receive_loop(session)
        except SendFailure as e:
            logging.warning("Could not send initial state to %s: %s", session.id, e)
        finally:
            await self.teardown(session)

    async def receive_loop(self, session: Session):
        try:
            async for raw in session.ws:
                self.sync.handle_inbound(session, raw)
        except websockets.exceptions.ConnectionClosedOK:
            pass
        except websockets.exceptions.ConnectionClosedError as e:
            await self.on_transport_error(session, TransportError(str(e)))
        except Exception as e:
            logging.exception("Error in receive loop for %s: %s", session.id, e)
            await self.on_transport_error(session, TransportError(repr(e)))

    async def on_transport_error(self, session: Session, error: TransportError):
        logging.warning("Transport error on %s: %s", session.id, error)
        await self.teardown(session)

    async def teardown(self, session: Session) -> bool:
        """Unregister, drop the session's presence and announce it. Runs once per session."""
        if not session.begin_close():
            return False
        self.registry.unregister(session)
        removal = self.presence.remove_owned(session.id)
        if removal is not None:
            self.registry.broadcast_all(presence_frame(removal))
        await session.close()
        logging.info("Client disconnected: %s", session.id)
        return True

    async def shutdown(self):
        for session in list(self.registry.sessions.values()):
            await self.teardown(session)

    def list_status(self) -> dict[str, Any]:
        return {
            "sessions": sorted(self.registry.sessions),
            "presence": sorted(self.presence.records),
        }


async def main_loop(config: RelayConfig, stop: Optional[asyncio.Event] = None):
    relay = RelayServer.from_config(config)
    stop = stop or asyncio.Event()

    server = await websockets.serve(
        relay.handler,
        config.host,
        config.port,
        ping_interval=config.ping_interval,
        ping_timeout=config.ping_timeout,
        max_size=config.max_frame_bytes,
    )
    logging.info("Relay listening on ws://%s:%s", config.host, config.port)

    async def status_printer():
        while True:
            await asyncio.sleep(config.status_interval)
            st = relay.list_status()
            logging.info("Sessions: %s", st["sessions"])
            logging.info("Presence identities: %s", st["presence"])

    status_task = None
    if config.status_interval > 0:
        status_task = asyncio.create_task(status_printer())

    try:
        await stop.wait()
    finally:
        if status_task:
            status_task.cancel()
            try:
                await status_task
            except asyncio.CancelledError:
                pass
        server.close()
        await server.wait_closed()
        await relay.shutdown()
        logging.info("Relay shutdown complete")
