"""API documentation checks for a completed model."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from itertools import groupby
from typing import Iterable, List, Mapping, Optional, Tuple

from .models import DocModel
from .signatures import SignatureTracker
from .versions import HEAD

UNMATCHED_PARAM = "unmatched_param"
SIGNATURE_CHANGED = "signature_changed"
MISSING_DOCUMENTATION = "missing_documentation"

WARNING_KINDS = (UNMATCHED_PARAM, SIGNATURE_CHANGED, MISSING_DOCUMENTATION)

MISSING_FILE = "<missing>"
PARAM_MARKER = "@param"

_LABELS = {
    UNMATCHED_PARAM: "unmatched param",
    SIGNATURE_CHANGED: "signature changed",
    MISSING_DOCUMENTATION: "missing documentation",
}


@dataclass(frozen=True)
class ApiWarning:
    """A documentation problem attached to one symbol."""

    warning: str
    subject: str
    identifier: str
    file: str = MISSING_FILE
    line: int = 1
    column: int = 1

    def __post_init__(self) -> None:
        if self.warning not in WARNING_KINDS:
            raise ValueError(f"invalid warning class {self.warning!r}")

    @property
    def message(self) -> str:
        if self.warning == MISSING_DOCUMENTATION:
            return f"{self.subject} {self.identifier} is missing documentation"
        return _LABELS[self.warning]

    def location(self) -> str:
        return f"{self.file}:{self.line}:{self.column}"


def collect_warnings(
    model: DocModel,
    tracker: SignatureTracker,
    *,
    head: str = HEAD,
    input_dir: Optional[str] = None,
) -> List[ApiWarning]:
    warnings: List[ApiWarning] = []

    def _at(entry: object) -> Mapping[str, object]:
        file = getattr(entry, "file", "") or ""
        if not file:
            return {}
        if input_dir:
            file = posixpath.join(input_dir, file)
        return {"file": file, "line": getattr(entry, "line", 0) or 1}

    for name, entry in model.functions.items():
        if PARAM_MARKER in entry.comments:
            warnings.append(ApiWarning(UNMATCHED_PARAM, "function", name, **_at(entry)))

    for name in tracker.histories:
        if tracker.changed_at(name, head):
            located = _at(model.functions[name]) if name in model.functions else {}
            warnings.append(ApiWarning(SIGNATURE_CHANGED, "function", name, **located))

    symbols: Iterable[Tuple[str, Mapping[str, object]]] = (
        ("function", model.functions),
        ("callback", model.callbacks),
        ("global", model.globals),
    )
    for subject, mapping in symbols:
        for ident, entry in mapping.items():
            if not getattr(entry, "description", ""):
                warnings.append(ApiWarning(MISSING_DOCUMENTATION, subject, ident, **_at(entry)))

    for ident, type_entry in model.types.items():
        if not type_entry.description:
            warnings.append(
                ApiWarning(MISSING_DOCUMENTATION, type_entry.type or "type", ident, **_at(type_entry))
            )
        if type_entry.type == "struct":
            for item in type_entry.fields:
                if not item.comments:
                    warnings.append(
                        ApiWarning(
                            MISSING_DOCUMENTATION,
                            "field",
                            f"{ident}.{item.name}",
                            **_at(type_entry),
                        )
                    )
    return warnings


def group_warnings(
    warnings: Iterable[ApiWarning],
) -> List[Tuple[str, str, List[ApiWarning]]]:
    """Group by warning kind, then subject kind; members sorted by identifier."""
    ordered = sorted(
        warnings,
        key=lambda item: (WARNING_KINDS.index(item.warning), item.subject, item.identifier),
    )
    groups = []
    for (kind, subject), members in groupby(ordered, key=lambda item: (item.warning, item.subject)):
        groups.append((kind, subject, list(members)))
    return groups


def format_report(warnings: Iterable[ApiWarning]) -> List[str]:
    lines = []
    for kind, subject, members in group_warnings(warnings):
        lines.append(f"  - {_LABELS[kind]} ({subject})")
        lines.extend(f"\t{member.identifier}" for member in members)
    return lines


def format_locations(warnings: Iterable[ApiWarning]) -> List[str]:
    """One ``file:line:column: message`` line per warning, compiler style."""
    return [f"{warning.location()}: {warning.message}" for warning in warnings]


__all__ = [
    "ApiWarning",
    "MISSING_DOCUMENTATION",
    "SIGNATURE_CHANGED",
    "UNMATCHED_PARAM",
    "WARNING_KINDS",
    "collect_warnings",
    "format_locations",
    "format_report",
    "group_warnings",
]
