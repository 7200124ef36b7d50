"""Cross-version function signature history."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from .models import DocModel
from .versions import chronological


@dataclass
class SignatureHistory:
    """Versions a function exists in, and the versions its signature changed at."""

    exists: List[str] = field(default_factory=list)
    changes: Dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {"exists": list(self.exists), "changes": dict(self.changes)}


class SignatureTracker:
    """Tallies function signatures across the versions of a run.

    Change detection compares against the last tallied signature of each
    function, so ``tally`` must be fed versions in chronological order for the
    ``changes`` map to mean "changed since the previous release".
    ``finalize`` only restores the order of ``exists``.
    """

    def __init__(self) -> None:
        self.histories: Dict[str, SignatureHistory] = {}
        self._last_signature: Dict[str, str] = {}

    def tally(self, version: str, model: DocModel) -> None:
        for name, entry in model.functions.items():
            history = self.histories.get(name)
            if history is None:
                self.histories[name] = history = SignatureHistory()
            elif self._last_signature.get(name) != entry.sig:
                history.changes[version] = True
            history.exists.append(version)
            self._last_signature[name] = entry.sig

    def finalize(self) -> None:
        for history in self.histories.values():
            history.exists = chronological(history.exists)

    def changed_at(self, name: str, version: str) -> bool:
        history = self.histories.get(name)
        return bool(history and history.changes.get(version))

    def to_dict(self) -> Dict[str, Dict[str, object]]:
        return {name: self.histories[name].to_dict() for name in sorted(self.histories)}


__all__ = ["SignatureHistory", "SignatureTracker"]
