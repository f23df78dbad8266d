"""
Presence Store: transient per-identity state (cursor, name, color).

Blobs use the awareness wire format: varuint count, then per entry
varuint identity, varuint clock and a JSON string (``null`` = removal).
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .encoding import Decoder, write_var_string, write_var_uint
from .errors import DecodeError

PresenceEntry = Tuple[int, int, Any]  # (identity, clock, state or None)

# how long a removed identity keeps its clock (y-protocols uses a 30s outdated timeout)
TOMBSTONE_TTL = 30.0


@dataclass
class PresenceRecord:
    identity: int
    state: Any
    clock: int
    owner: Optional[str] = None
    updates: int = 0
    last_updated: float = 0.0


def decode_presence_update(blob: bytes) -> List[PresenceEntry]:
    dec = Decoder(blob)
    count = dec.read_var_uint()
    entries: List[PresenceEntry] = []
    for _ in range(count):
        identity = dec.read_var_uint()
        clock = dec.read_var_uint()
        raw_state = dec.read_var_string()
        try:
            state = json.loads(raw_state)
        except json.JSONDecodeError as exc:
            raise DecodeError(f"presence state for {identity} is not JSON: {exc}") from exc
        entries.append((identity, clock, state))
    return entries


def encode_presence_update(entries: Iterable[PresenceEntry]) -> bytes:
    entries = list(entries)
    buf = bytearray()
    write_var_uint(buf, len(entries))
    for identity, clock, state in entries:
        write_var_uint(buf, identity)
        write_var_uint(buf, clock)
        write_var_string(buf, json.dumps(state, separators=(",", ":")))
    return bytes(buf)


class PresenceStore:
    def __init__(self):
        self.records: Dict[int, PresenceRecord] = {}
        # last clock per identity, kept after removal so removals can be encoded
        self._clocks: Dict[int, int] = {}
        # removal time per identity no longer in records
        self._tombstones: Dict[int, float] = {}

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, identity: int) -> bool:
        return identity in self.records

    def get(self, identity: int) -> Optional[PresenceRecord]:
        return self.records.get(identity)

    def upsert(
        self,
        identity: int,
        state: Any,
        clock: Optional[int] = None,
        owner: Optional[str] = None,
    ) -> PresenceRecord:
        """Overwrite the record for ``identity``; arrival order wins."""
        prev = self.records.get(identity)
        last_clock = self._clocks.get(identity, 0)
        if clock is None:
            clock = last_clock + 1
        elif clock < last_clock:
            logging.debug(
                "Presence %s: clock went back %s -> %s; overwriting anyway",
                identity,
                last_clock,
                clock,
            )
        record = PresenceRecord(
            identity=identity,
            state=state,
            clock=clock,
            owner=owner,
            updates=(prev.updates if prev else 0) + 1,
            last_updated=time.monotonic(),
        )
        self.records[identity] = record
        self._clocks[identity] = clock
        self._tombstones.pop(identity, None)
        return record

    def remove(self, identities: Iterable[int]) -> List[int]:
        """Delete identities; missing ones are skipped. Returns those actually removed."""
        removed = []
        for identity in identities:
            record = self.records.pop(identity, None)
            if record is None:
                continue
            self._clocks[identity] = record.clock + 1
            self._tombstones[identity] = time.monotonic()
            removed.append(identity)
        self.prune_tombstones()
        return removed

    def prune_tombstones(self, now: Optional[float] = None) -> int:
        """Forget clocks of identities removed more than TOMBSTONE_TTL ago."""
        now = time.monotonic() if now is None else now
        expired = [i for i, ts in self._tombstones.items() if now - ts > TOMBSTONE_TTL]
        for identity in expired:
            del self._tombstones[identity]
            self._clocks.pop(identity, None)
        return len(expired)

    def owned_by(self, session_id: str) -> Set[int]:
        return {i for i, rec in self.records.items() if rec.owner == session_id}

    def apply_update(self, blob: bytes, owner: Optional[str] = None) -> Tuple[List[int], List[int]]:
        """Apply an incoming presence delta attributed to ``owner``.

        The blob is fully decoded before any mutation, so a malformed blob
        leaves the store untouched. Returns (upserted, removed) identities.
        """
        entries = decode_presence_update(blob)
        upserted: List[int] = []
        removed: List[int] = []
        for identity, clock, state in entries:
            if state is None:
                removed.extend(self.remove([identity]))
                self._clocks[identity] = max(self._clocks.get(identity, 0), clock)
                self._tombstones.setdefault(identity, time.monotonic())
            else:
                self.upsert(identity, state, clock=clock, owner=owner)
                upserted.append(identity)
        return upserted, removed

    def encode_update(self, identities: Iterable[int]) -> bytes:
        entries = []
        for identity in identities:
            record = self.records.get(identity)
            if record is not None:
                entries.append((identity, record.clock, record.state))
            else:
                entries.append((identity, self._clocks.get(identity, 0), None))
        return encode_presence_update(entries)

    def remove_owned(self, session_id: str) -> Optional[bytes]:
        """Drop the identities ``session_id`` owns; returns the removal blob or None."""
        removed = self.remove(sorted(self.owned_by(session_id)))
        if not removed:
            return None
        return self.encode_update(removed)

    def snapshot(self) -> bytes:
        return self.encode_update(sorted(self.records))
