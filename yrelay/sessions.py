import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import SendFailure

DEFAULT_SEND_QUEUE = 256


class SessionState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


def new_session_id() -> str:
    return f"S-{uuid.uuid4().hex[:8]}"


class Session:
    """One client connection: transport handle, lifecycle state and outbound queue.

    Frames are queued with ``enqueue`` and written by a per-session writer
    task, so a slow peer only ever backs up its own queue.
    """

    def __init__(self, ws: Any, send_queue_size: int = DEFAULT_SEND_QUEUE, session_id: Optional[str] = None):
        self.id = session_id or new_session_id()
        self.ws = ws
        self.remote = getattr(ws, "remote_address", None)
        self.state = SessionState.CONNECTING
        self.frames_sent = 0
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=send_queue_size)
        self._writer_task: Optional[asyncio.Task] = None
        self._close_claimed = False
        self._closer: Optional[asyncio.Task] = None

    def __repr__(self) -> str:
        return f"<Session {self.id} {self.state.value}>"

    @property
    def is_open(self) -> bool:
        return self.state is SessionState.OPEN

    def open(self) -> None:
        if self.state is not SessionState.CONNECTING:
            raise RuntimeError(f"cannot open session in state {self.state.value}")
        self.state = SessionState.OPEN
        self._writer_task = asyncio.create_task(self._writer_loop())

    def begin_close(self) -> bool:
        """Claim teardown. True for the first caller only; later close/error events get False."""
        if self._close_claimed:
            return False
        self._close_claimed = True
        if self.state is not SessionState.CLOSED:
            self.state = SessionState.CLOSING
        return True

    def enqueue(self, frame: bytes) -> None:
        if not self.is_open:
            raise SendFailure(self.id, f"session {self.id} is {self.state.value}")
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            raise SendFailure(self.id, f"send queue full for {self.id}") from None

    async def flush(self) -> None:
        """Wait until every queued frame has been written (or dropped)."""
        await self._outbox.join()

    async def _writer_loop(self):
        while True:
            frame = await self._outbox.get()
            try:
                await self.ws.send(frame)
                self.frames_sent += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logging.warning("Failed to send to %s: %s", self.id, e)
                # stop accepting frames; the receive loop notices the dead transport
                if self.state is SessionState.OPEN:
                    self.state = SessionState.CLOSING
                self._drop_pending()
                await self._close_transport()
                return
            finally:
                self._outbox.task_done()

    def _drop_pending(self) -> None:
        while True:
            try:
                self._outbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._outbox.task_done()

    async def _close_transport(self) -> None:
        try:
            await self.ws.close()
        except Exception:
            pass

    def abort(self) -> None:
        """Stop delivery now and close the transport in the background."""
        if self.state is SessionState.OPEN:
            self.state = SessionState.CLOSING
        self._drop_pending()
        if self._closer is None:
            self._closer = asyncio.create_task(self._close_transport())

    async def close(self) -> None:
        self.state = SessionState.CLOSED
        if self._writer_task and not self._writer_task.done():
            self._writer_task.cancel()
            try:
                await self._writer_task
            except asyncio.CancelledError:
                pass
        self._drop_pending()
        await self._close_transport()


class SessionRegistry:
    """The set of live sessions; the only place membership changes."""

    def __init__(self):
        self.sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self.sessions)

    def __contains__(self, session: Session) -> bool:
        return self.sessions.get(session.id) is session

    def register(self, session: Session) -> None:
        self.sessions[session.id] = session

    def unregister(self, session: Session) -> bool:
        if self.sessions.get(session.id) is session:
            del self.sessions[session.id]
            return True
        return False

    def get(self, session_id: str) -> Optional[Session]:
        return self.sessions.get(session_id)

    def live(self) -> List[Session]:
        return [s for s in self.sessions.values() if s.is_open]

    def broadcast_except(self, sender: Optional[Session], frame: bytes) -> int:
        """Queue ``frame`` for every open session other than ``sender``.

        A failing recipient is logged and aborted; delivery to the rest continues.
        Returns the number of sessions the frame was queued for.
        """
        delivered = 0
        # live() is a snapshot, so abort() below cannot disturb iteration
        for session in self.live():
            if session is sender:
                continue
            try:
                session.enqueue(frame)
            except SendFailure as e:
                logging.warning("Broadcast skipped %s: %s", session.id, e)
                session.abort()
                continue
            delivered += 1
        return delivered

    def broadcast_all(self, frame: bytes) -> int:
        return self.broadcast_except(None, frame)
