from .engine import MergeEngine, PycrdtEngine, create_engine
from .errors import (
    DecodeError,
    MergeRejected,
    RelayError,
    SendFailure,
    TransportError,
    UnknownMessageType,
)
from .handler import SyncProtocolHandler
from .presence import PresenceRecord, PresenceStore
from .protocol import MessageType, Outcome, document_frame, parse_frame, presence_frame
from .server import RelayServer, main_loop
from .sessions import Session, SessionRegistry, SessionState

__version__ = "0.1.0"
