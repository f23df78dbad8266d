"""
Relay error types. All of them are recovered inside the relay; none reach clients.
"""

from typing import Any, Optional


class RelayError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class DecodeError(RelayError):
    """Malformed tag or length prefix; the frame is dropped, the connection stays open."""

    def __init__(self, message: str, code: str = "decode_error"):
        super().__init__(code, message)


class UnknownMessageType(DecodeError):
    def __init__(self, tag: int):
        super().__init__(f"unknown message type {tag}", code="unknown_message_type")
        self.tag = tag


class MergeRejected(RelayError):
    def __init__(self, message: str):
        super().__init__("merge_rejected", message)


class SendFailure(RelayError):
    def __init__(self, session_id: str, message: str):
        super().__init__("send_failure", message, {"session_id": session_id})
        self.session_id = session_id


class TransportError(RelayError):
    def __init__(self, message: str):
        super().__init__("transport_error", message)
