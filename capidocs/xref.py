"""Cross-reference passes over a completed documentation model."""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from .logging import TraceFilter, get_logger
from .models import DocModel, FunctionEntry, TypeEntry

logger = get_logger("xref")

Groups = List[Tuple[str, List[str]]]


def split_group(name: str, prefix: Optional[str] = None) -> Tuple[str, Optional[str]]:
    """Return ``(group, remainder)`` for a function name.

    A configured prefix is removed from the front of the name, then the rest is
    split at the first underscore: ``git_repository_open`` with prefix ``git_``
    groups under ``repository``.
    """
    key = name[len(prefix):] if prefix and name.startswith(prefix) else name
    group, sep, rest = key.partition("_")
    return group, rest if sep else None


def group_functions(
    model: DocModel,
    prefix: Optional[str] = None,
    *,
    trace: Optional[TraceFilter] = None,
) -> Groups:
    """Assign each function a group and return the sorted group index.

    Functions whose group is empty after stripping the prefix stay in the
    function mapping but are left out of the index.
    """
    trace = trace or TraceFilter()
    groups: Dict[str, List[str]] = {}
    for name, entry in model.functions.items():
        group, rest = split_group(name, prefix)
        if trace.wants("function", name):
            logger.debug("grouped %s: group=%r rest=%r", name, group, rest)
        if not group:
            logger.info("empty group for function %s", name)
            continue
        entry.group = group
        groups.setdefault(group, []).append(name)
    return [(group, sorted(names)) for group, names in sorted(groups.items())]


def type_pattern(type_name: str) -> Pattern[str]:
    """Match ``type_name`` followed by a space, ``;``, ``)``, ``*`` or the end.

    Only the trailing edge is checked, so ``MyFoo`` still counts as a use of
    ``Foo`` while ``FooBar`` does not.
    """
    return re.compile(rf"{re.escape(type_name)}(?=[ ;)*]|$)")


def find_type_usage(model: DocModel) -> None:
    """Fill every type's ``used`` triple from function, callback and struct text."""
    for entry in model.types.values():
        entry.used.returns.clear()
        entry.used.needs.clear()
        entry.used.fields.clear()

    users: List[Tuple[str, object]] = []
    users.extend(model.functions.items())
    users.extend(model.callbacks.items())
    users.extend(
        (name, entry)
        for name, entry in model.types.items()
        if entry.type == "struct" and entry.fields
    )

    patterns = {name: type_pattern(name) for name in model.types}
    for user, data in users:
        returns, argline, field_types = _usage_text(data)
        for type_name, type_entry in model.types.items():
            pattern = patterns[type_name]
            if returns and pattern.search(returns):
                type_entry.used.add("returns", user)
            if argline and pattern.search(argline):
                type_entry.used.add("needs", user)
            if any(pattern.search(text) for text in field_types):
                type_entry.used.add("fields", user)


def _usage_text(entry: object) -> Tuple[str, str, Iterable[str]]:
    if isinstance(entry, FunctionEntry):
        returns = entry.returns.type if entry.returns else ""
        return returns, entry.argline, ()
    if isinstance(entry, TypeEntry):
        return "", "", [item.type for item in entry.fields]
    return "", "", ()


def cross_reference(
    model: DocModel,
    prefix: Optional[str] = None,
    *,
    trace: Optional[TraceFilter] = None,
) -> DocModel:
    """Run grouping, type ordering and usage passes on a completed model."""
    model.groups = group_functions(model, prefix, trace=trace)
    model.sort_types()
    find_type_usage(model)
    return model


__all__ = ["cross_reference", "find_type_usage", "group_functions", "split_group", "type_pattern"]
