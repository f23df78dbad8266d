import pytest
from pycrdt import Doc, Text

from yrelay.engine import DEFAULT_TEXTS, PycrdtEngine, create_engine
from yrelay.errors import MergeRejected


def client_edit(base_state: bytes, name: str, index: int, value: str) -> bytes:
    """Simulate a browser client: sync to ``base_state``, edit, return the delta."""
    doc = Doc()
    doc.apply_update(base_state)
    text = doc.get(name, type=Text)
    before = doc.get_state()
    text.insert(index, value)
    return doc.get_update(before)


def test_seeded_texts():
    engine = create_engine()
    for name, value in DEFAULT_TEXTS.items():
        assert engine.text(name) == value


def test_unseeded_texts_are_empty():
    engine = create_engine(seed=False)
    assert engine.text("quill-doc") == ""


def test_apply_delta():
    engine = create_engine()
    delta = client_edit(engine.encode_full_state(), "plaintext-doc", 0, ">> ")
    engine.apply_update(delta)
    assert engine.text("plaintext-doc") == ">> Hello from Yjs Plaintext Document!"


def test_idempotent_application():
    engine = create_engine()
    delta = client_edit(engine.encode_full_state(), "quill-doc", 0, "x")
    engine.apply_update(delta)
    once = engine.encode_full_state()
    engine.apply_update(delta)
    assert engine.encode_full_state() == once
    assert engine.text("quill-doc").count("x") == 1


def test_convergence_any_order():
    d1 = client_edit(b"\x00\x00", "notes", 0, "alpha")
    d2 = client_edit(b"\x00\x00", "notes", 0, "beta")
    left, right = PycrdtEngine(), PycrdtEngine()
    left.apply_update(d1)
    left.apply_update(d2)
    right.apply_update(d2)
    right.apply_update(d1)
    assert left.text("notes") == right.text("notes")
    assert sorted(left.text("notes")) == sorted("alphabeta")


def test_snapshot_reproduces_state():
    engine = create_engine()
    engine.apply_update(client_edit(engine.encode_full_state(), "quill-doc", 5, "!!"))
    fresh = Doc()
    fresh.apply_update(engine.encode_full_state())
    for name in DEFAULT_TEXTS:
        assert str(fresh.get(name, type=Text)) == engine.text(name)


def test_engine_errors_become_merge_rejected(monkeypatch):
    engine = PycrdtEngine()

    class Broken:
        def apply_update(self, update):
            raise ValueError("cannot decode")

    monkeypatch.setattr(engine, "doc", Broken())
    with pytest.raises(MergeRejected):
        engine.apply_update(b"\x01")
