"""
Merge Engine: the authoritative shared document.

The relay never looks inside updates; every mutation goes through
``apply_update`` so merges stay commutative and idempotent.
"""

from typing import Dict, Optional, Protocol

from pycrdt import Doc, Text

from .errors import MergeRejected

DEFAULT_TEXTS = {
    "quill-doc": "Hello from Yjs Quill Document!",
    "plaintext-doc": "Hello from Yjs Plaintext Document!",
}


class MergeEngine(Protocol):
    def apply_update(self, update: bytes) -> None: ...

    def encode_full_state(self) -> bytes: ...


class PycrdtEngine:
    """MergeEngine backed by a pycrdt (Yjs) document."""

    def __init__(self, texts: Optional[Dict[str, str]] = None):
        self.doc = Doc()
        for name, initial in (texts or {}).items():
            self.doc[name] = Text(initial) if initial else Text()

    def apply_update(self, update: bytes) -> None:
        try:
            self.doc.apply_update(bytes(update))
        except Exception as e:
            raise MergeRejected(f"update rejected by merge engine: {e}") from e

    def encode_full_state(self) -> bytes:
        return self.doc.get_update()

    def text(self, name: str) -> str:
        return str(self.doc.get(name, type=Text))


def create_engine(seed: bool = True, texts: Optional[Dict[str, str]] = None) -> PycrdtEngine:
    texts = dict(DEFAULT_TEXTS if texts is None else texts)
    if not seed:
        # keep the named containers, drop their initial content
        texts = {name: "" for name in texts}
    return PycrdtEngine(texts)
