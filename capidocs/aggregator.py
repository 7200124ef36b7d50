"""Folds declaration records into a per-version documentation model."""

from __future__ import annotations

import re
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional

from .logging import TraceFilter, get_logger
from .models import (
    Declaration,
    DocModel,
    EnumDeclaration,
    Field,
    FileDeclaration,
    FileEntry,
    FunctionDeclaration,
    FunctionEntry,
    GlobalEntry,
    MacroDeclaration,
    ReturnValue,
    TypeDeclaration,
    TypeEntry,
)
from .render.markdown import MarkdownRenderer

_ENUM_VALUE = re.compile(r"\s*=\s*([^,}]+)")

Handler = Callable[[Declaration, FileEntry], None]


class RecordAggregator:
    """Builds one version's ``DocModel`` from parser output.

    Records are applied in order. A later record for an existing key refines
    the entry: attributes it declares overwrite, attributes it leaves unset are
    kept. Records of unknown kinds are ignored.
    """

    def __init__(
        self,
        model: Optional[DocModel] = None,
        *,
        markdown: Optional[MarkdownRenderer] = None,
        trace: Optional[TraceFilter] = None,
    ) -> None:
        self.model = model or DocModel()
        self._markdown = markdown or MarkdownRenderer()
        self._trace = trace or TraceFilter()
        self.logger = get_logger("aggregator")
        self._handlers: Dict[str, Handler] = {
            "function": self._add_function,
            "callback": self._add_function,
            "macro": self._add_macro,
            "define": self._add_macro,
            "file": self._add_file_meta,
            "enum": self._add_enum,
            "struct": self._add_type,
            "fnptr": self._add_type,
        }

    def add_file(self, path: str, records: Iterable[Declaration]) -> FileEntry:
        """Apply every record parsed from ``path`` and append its file aggregate."""
        file_entry = FileEntry(file=path)
        for record in records:
            traced = self._traced(record)
            if traced:
                self.logger.debug("processing record: %r", record)
            if record.lineto > file_entry.lines:
                file_entry.lines = record.lineto
            handler = self._handlers.get(record.kind)
            if handler is None:
                continue
            handler(record, file_entry)
            if traced:
                self.logger.debug("processed record %s %s", record.kind, record.name or "")
        self.model.files.append(file_entry)
        return file_entry

    # ------------------------------------------------------------------
    # Handlers

    def _add_function(self, record: Declaration, file_entry: FileEntry) -> None:
        if not isinstance(record, FunctionDeclaration) or not record.name:
            return
        mapping = self.model.functions if record.kind == "function" else self.model.callbacks
        entry = mapping.get(record.name)
        if entry is None:
            entry = mapping[record.name] = FunctionEntry(type=record.kind)
        entry.type = record.kind
        entry.file = record.file
        entry.line = record.line
        entry.lineto = record.lineto
        if record.args is not None:
            entry.args = list(record.args)
        if record.argline is not None:
            entry.argline = record.argline
        if record.sig is not None:
            entry.sig = record.sig
        if record.return_type is not None or record.return_comment is not None:
            entry.returns = ReturnValue(
                type=record.return_type or "",
                comment=record.return_comment or "",
            )
        if record.description is not None:
            entry.description = self._render(record.description)
        if record.comments is not None:
            entry.comments = self._render(record.comments)
        file_entry.functions.append(record.name)

    def _add_macro(self, record: Declaration, file_entry: FileEntry) -> None:
        if not isinstance(record, MacroDeclaration) or not record.decl:
            return
        entry = self.model.globals.get(record.decl)
        if entry is None:
            entry = self.model.globals[record.decl] = GlobalEntry()
        entry.file = record.file
        entry.line = record.line
        entry.lineto = record.lineto
        if record.value is not None:
            entry.value = record.value
        if record.description is not None:
            entry.description = self._render(record.description)
        if record.comments is not None:
            entry.comments = self._render(record.comments)

    def _add_file_meta(self, record: Declaration, file_entry: FileEntry) -> None:
        if not isinstance(record, FileDeclaration):
            return
        for key in ("brief", "defgroup", "ingroup", "comments"):
            value = getattr(record, key)
            if value is not None:
                file_entry.meta[key] = value

    def _add_enum(self, record: Declaration, file_entry: FileEntry) -> None:
        if not isinstance(record, EnumDeclaration):
            return
        if not record.name:
            self._explode_enum(record)
            return

        entry = self.model.types.get(record.name)
        if entry is None:
            entry = self.model.types[record.name] = TypeEntry()
        entry.type = "enum"
        entry.decl = list(record.decl)
        entry.file = record.file
        entry.line = record.line
        entry.lineto = record.lineto
        if record.tdef is not None:
            entry.tdef = record.tdef
        if record.description is not None:
            entry.description = record.description
        if record.comments is not None:
            entry.comments = self._render(record.comments)
        if record.block is not None:
            entry.block = "\n".join([entry.block, record.block]) if entry.block else record.block
        if record.fields is not None:
            entry.fields = self._render_fields(record.fields)

    def _explode_enum(self, record: EnumDeclaration) -> None:
        """Turn each enumerator of an anonymous enum into its own global."""
        comments = self._render(record.comments)
        description = self._render(record.description)
        for token in record.decl:
            entry = GlobalEntry(
                file=record.file,
                line=record.line,
                lineto=record.lineto,
                value="",
                description=description,
                comments=comments,
            )
            match = re.search(rf"(?<!\w){re.escape(token)}(?!\w)", record.body)
            if match:
                entry.line += record.body[: match.start()].count("\n")
                value = _ENUM_VALUE.match(record.body[match.end():])
                if value:
                    entry.value = value.group(1).strip()
            self.model.globals[token] = entry

    def _add_type(self, record: Declaration, file_entry: FileEntry) -> None:
        if not isinstance(record, TypeDeclaration) or not record.name:
            return
        entry = self.model.types.get(record.name)
        if entry is None:
            entry = self.model.types[record.name] = TypeEntry()

        if self._keeps_existing_definition(record, entry):
            self._backfill_field_comments(entry, record.fields or ())
        else:
            bodiless = record.fields is None and record.block is None
            if not (bodiless and _has_definition(entry)):
                entry.file = record.file
                entry.line = record.line
                entry.lineto = record.lineto
            entry.type = record.kind
            entry.decl = record.decl if record.decl is not None else record.name
            entry.value = record.value or record.name
            for key in ("tdef", "block", "argline", "return_type"):
                value = getattr(record, key)
                if value is not None:
                    setattr(entry, key, value)
            if record.description:
                entry.description = record.description
            if record.comments:
                entry.comments = self._render(record.comments)
            if record.fields is not None:
                entry.fields = self._render_fields(record.fields)

        if record.kind == "fnptr":
            entry.type = "function pointer"

    @staticmethod
    def _keeps_existing_definition(record: TypeDeclaration, entry: TypeEntry) -> bool:
        """An un-aliased record never replaces an already documented definition."""
        return (
            record.tdef is None
            and bool(entry.fields)
            and bool(entry.description or entry.comments)
        )

    def _backfill_field_comments(self, entry: TypeEntry, fields: Iterable[Field]) -> None:
        incoming = {item.name: item.comments for item in fields if item.comments}
        if not incoming:
            return
        updated: List[Field] = []
        for item in entry.fields:
            if not item.comments and item.name in incoming:
                item = replace(item, comments=self._render(incoming[item.name]))
            updated.append(item)
        entry.fields = updated

    # ------------------------------------------------------------------
    # Helpers

    def _render(self, text: Optional[str]) -> str:
        return self._markdown.render(text or "")

    def _render_fields(self, fields: Iterable[Field]) -> List[Field]:
        return [replace(item, comments=self._render(item.comments)) for item in fields]

    def _traced(self, record: Declaration) -> bool:
        if not self._trace.active:
            return False
        if self._trace.wants("file", record.file):
            return True
        kind = "type" if record.kind in {"struct", "enum", "fnptr"} else record.kind
        return self._trace.wants(kind, record.name)


def _has_definition(entry: TypeEntry) -> bool:
    return bool(entry.block) or bool(entry.fields)


__all__ = ["RecordAggregator"]
