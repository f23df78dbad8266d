import logging
from typing import Union

from .engine import MergeEngine
from .errors import DecodeError, MergeRejected, UnknownMessageType
from .presence import PresenceStore
from .protocol import MessageType, Outcome, parse_frame
from .sessions import Session, SessionRegistry


class SyncProtocolHandler:
    """Classifies inbound frames, applies them and decides who hears about it."""

    def __init__(self, engine: MergeEngine, presence: PresenceStore, registry: SessionRegistry):
        self.engine = engine
        self.presence = presence
        self.registry = registry

    def handle_inbound(self, session: Session, raw: Union[bytes, str]) -> Outcome:
        if isinstance(raw, str):
            logging.info("Non-sync text message from %s: %.200s", session.id, raw)
            return Outcome.IGNORED_TEXT

        try:
            envelope = parse_frame(raw)
        except UnknownMessageType as e:
            logging.warning("Dropping frame from %s: %s", session.id, e)
            return Outcome.DROPPED
        except DecodeError as e:
            logging.warning("Dropping malformed frame from %s: %s", session.id, e)
            return Outcome.DROPPED

        if envelope.type is MessageType.DOCUMENT_UPDATE:
            try:
                self.engine.apply_update(envelope.payload)
            except MergeRejected as e:
                logging.warning("Document update from %s rejected: %s", session.id, e)
                return Outcome.DROPPED
            # forward the original bytes, never a re-encoding
            self.registry.broadcast_except(session, bytes(raw))
            return Outcome.APPLIED_DOCUMENT

        try:
            upserted, removed = self.presence.apply_update(envelope.payload, owner=session.id)
        except DecodeError as e:
            logging.warning("Presence update from %s rejected: %s", session.id, e)
            return Outcome.DROPPED
        logging.debug(
            "Presence from %s: upserted=%s removed=%s", session.id, upserted, removed
        )
        self.registry.broadcast_except(session, bytes(raw))
        return Outcome.APPLIED_PRESENCE
