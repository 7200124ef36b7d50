"""Tests for capidocs.signatures."""

from __future__ import annotations

from typing import Dict

from capidocs.models import DocModel, FunctionEntry
from capidocs.signatures import SignatureTracker
from capidocs.versions import HEAD


def _model(signatures: Dict[str, str]) -> DocModel:
    model = DocModel()
    for name, sig in signatures.items():
        model.functions[name] = FunctionEntry(sig=sig)
    return model


def test_unchanged_signature_records_existence_only() -> None:
    tracker = SignatureTracker()
    for version in ("1.0.0", "2.0.0", HEAD):
        tracker.tally(version, _model({"foo": "int"}))
    tracker.finalize()

    history = tracker.histories["foo"]
    assert history.exists == ["1.0.0", "2.0.0", HEAD]
    assert history.changes == {}


def test_changed_signature_flags_the_later_version() -> None:
    tracker = SignatureTracker()
    tracker.tally("1.0.0", _model({"bar": "void"}))
    tracker.tally("2.0.0", _model({"bar": "int"}))
    tracker.finalize()

    assert tracker.histories["bar"].changes == {"2.0.0": True}
    assert tracker.changed_at("bar", "2.0.0")
    assert not tracker.changed_at("bar", "1.0.0")


def test_finalize_restores_chronological_existence() -> None:
    tracker = SignatureTracker()
    for version in (HEAD, "2.0.0", "1.0.0"):
        tracker.tally(version, _model({"foo": "int"}))
    tracker.finalize()

    assert tracker.histories["foo"].exists == ["1.0.0", "2.0.0", HEAD]


def test_function_added_later_starts_without_changes() -> None:
    tracker = SignatureTracker()
    tracker.tally("1.0.0", _model({"foo": "int"}))
    tracker.tally("2.0.0", _model({"foo": "int", "baz": "char *"}))
    tracker.finalize()

    assert tracker.to_dict() == {
        "baz": {"exists": ["2.0.0"], "changes": {}},
        "foo": {"exists": ["1.0.0", "2.0.0"], "changes": {}},
    }
