from enum import Enum, IntEnum
from typing import NamedTuple, Union

from .encoding import Decoder, write_var_bytes, write_var_uint
from .errors import DecodeError, UnknownMessageType


class MessageType(IntEnum):
    DOCUMENT_UPDATE = 0
    PRESENCE_UPDATE = 1


class Outcome(Enum):
    APPLIED_DOCUMENT = "applied_document"
    APPLIED_PRESENCE = "applied_presence"
    IGNORED_TEXT = "ignored_text"
    DROPPED = "dropped"


class Envelope(NamedTuple):
    type: MessageType
    payload: bytes


def make_frame(msg_type: Union[MessageType, int], payload: bytes) -> bytes:
    buf = bytearray()
    write_var_uint(buf, int(msg_type))
    write_var_bytes(buf, payload)
    return bytes(buf)


def document_frame(update: bytes) -> bytes:
    return make_frame(MessageType.DOCUMENT_UPDATE, update)


def presence_frame(update: bytes) -> bytes:
    return make_frame(MessageType.PRESENCE_UPDATE, update)


def parse_frame(raw: bytes) -> Envelope:
    """Decode ``varuint tag, var bytes payload``.

    Raises UnknownMessageType for tags other than 0/1 and DecodeError for
    truncated or otherwise malformed frames. Trailing bytes after the payload
    are tolerated, as lib0 decoders do.
    """
    dec = Decoder(raw)
    tag = dec.read_var_uint()
    try:
        msg_type = MessageType(tag)
    except ValueError:
        raise UnknownMessageType(tag) from None
    payload = dec.read_var_bytes()
    return Envelope(msg_type, payload)


__all__ = [
    "DecodeError",
    "Envelope",
    "MessageType",
    "Outcome",
    "UnknownMessageType",
    "document_frame",
    "make_frame",
    "parse_frame",
    "presence_frame",
]
