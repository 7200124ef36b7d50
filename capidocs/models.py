"""Core data models shared across capidocs components."""

from __future__ import annotations

import json
from bisect import insort
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Argument:
    """A declared function or callback argument."""

    name: str
    type: str
    comment: str = ""


@dataclass(frozen=True)
class Field:
    """A struct member or named enumerator."""

    name: str
    type: str
    comments: str = ""


# ----------------------------------------------------------------------
# Declaration records (emitted by header parsers, immutable)


@dataclass(frozen=True)
class Declaration:
    """One parsed unit of a header file.

    ``kind`` is the tag of the variant: ``function``, ``callback``, ``macro``
    (or ``define``), ``file``, ``enum``, ``struct`` or ``fnptr``. Optional
    attributes left as ``None`` were not declared by the parser and are not
    copied into the documentation model.
    """

    kind: str
    file: str
    line: int
    lineto: int
    comments: Optional[str] = None
    description: Optional[str] = None
    name: Optional[str] = None


@dataclass(frozen=True)
class FunctionDeclaration(Declaration):
    args: Optional[Tuple[Argument, ...]] = None
    argline: Optional[str] = None
    sig: Optional[str] = None
    return_type: Optional[str] = None
    return_comment: Optional[str] = None


@dataclass(frozen=True)
class MacroDeclaration(Declaration):
    decl: str = ""
    value: Optional[str] = None


@dataclass(frozen=True)
class FileDeclaration(Declaration):
    brief: Optional[str] = None
    defgroup: Optional[str] = None
    ingroup: Optional[str] = None


@dataclass(frozen=True)
class EnumDeclaration(Declaration):
    decl: Tuple[str, ...] = ()
    body: str = ""
    block: Optional[str] = None
    tdef: Optional[str] = None
    fields: Optional[Tuple[Field, ...]] = None


@dataclass(frozen=True)
class TypeDeclaration(Declaration):
    """Struct or function-pointer typedef."""

    decl: Optional[str] = None
    tdef: Optional[str] = None
    block: Optional[str] = None
    fields: Optional[Tuple[Field, ...]] = None
    value: Optional[str] = None
    argline: Optional[str] = None
    return_type: Optional[str] = None


# ----------------------------------------------------------------------
# Documentation model (one per version)


@dataclass
class ReturnValue:
    type: str = ""
    comment: str = ""


@dataclass
class FunctionEntry:
    type: str = "function"
    file: str = ""
    line: int = 0
    lineto: int = 0
    args: List[Argument] = field(default_factory=list)
    argline: str = ""
    sig: str = ""
    returns: Optional[ReturnValue] = None
    group: Optional[str] = None
    description: str = ""
    comments: str = ""
    examples: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class GlobalEntry:
    file: str = ""
    line: int = 0
    lineto: int = 0
    value: str = ""
    description: str = ""
    comments: str = ""


@dataclass
class TypeUsage:
    """Symbols that return, accept, or embed a type. Each list stays sorted."""

    returns: List[str] = field(default_factory=list)
    needs: List[str] = field(default_factory=list)
    fields: List[str] = field(default_factory=list)

    def add(self, bucket: str, symbol: str) -> None:
        names: List[str] = getattr(self, bucket)
        if symbol not in names:
            insort(names, symbol)


@dataclass
class TypeEntry:
    type: str = ""
    decl: Union[str, List[str], None] = None
    value: str = ""
    file: str = ""
    line: int = 0
    lineto: int = 0
    block: str = ""
    tdef: Optional[str] = None
    description: str = ""
    comments: str = ""
    argline: str = ""
    return_type: str = ""
    fields: List[Field] = field(default_factory=list)
    used: TypeUsage = field(default_factory=TypeUsage)


@dataclass
class FileEntry:
    file: str
    functions: List[str] = field(default_factory=list)
    meta: Dict[str, str] = field(default_factory=dict)
    lines: int = 0


@dataclass
class DocModel:
    """Structured documentation for one version of the project."""

    prefix: str = ""
    functions: Dict[str, FunctionEntry] = field(default_factory=dict)
    callbacks: Dict[str, FunctionEntry] = field(default_factory=dict)
    globals: Dict[str, GlobalEntry] = field(default_factory=dict)
    types: Dict[str, TypeEntry] = field(default_factory=dict)
    files: List[FileEntry] = field(default_factory=list)
    groups: List[Tuple[str, List[str]]] = field(default_factory=list)
    examples: List[Tuple[str, str]] = field(default_factory=list)

    def sort_types(self) -> None:
        self.types = dict(sorted(self.types.items()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prefix": self.prefix,
            "functions": {name: _function_to_dict(entry) for name, entry in self.functions.items()},
            "callbacks": {name: _function_to_dict(entry) for name, entry in self.callbacks.items()},
            "globals": {name: asdict(entry) for name, entry in self.globals.items()},
            "types": [[name, asdict(entry)] for name, entry in self.types.items()],
            "files": [asdict(entry) for entry in self.files],
            "groups": [[name, list(members)] for name, members in self.groups],
            "examples": [[source, path] for source, path in self.examples],
        }

    def to_json(self) -> str:
        """Serialise deterministically so unchanged models hash identically."""
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DocModel":
        return cls(
            prefix=str(payload.get("prefix") or ""),
            functions={
                name: _function_from_dict(raw)
                for name, raw in (payload.get("functions") or {}).items()
            },
            callbacks={
                name: _function_from_dict(raw)
                for name, raw in (payload.get("callbacks") or {}).items()
            },
            globals={
                name: GlobalEntry(**raw) for name, raw in (payload.get("globals") or {}).items()
            },
            types={name: _type_from_dict(raw) for name, raw in payload.get("types") or []},
            files=[FileEntry(**raw) for raw in payload.get("files") or []],
            groups=[(name, list(members)) for name, members in payload.get("groups") or []],
            examples=[(source, path) for source, path in payload.get("examples") or []],
        )

    @classmethod
    def from_json(cls, text: str) -> "DocModel":
        return cls.from_dict(json.loads(text))


def _function_to_dict(entry: FunctionEntry) -> Dict[str, Any]:
    data = asdict(entry)
    data["return"] = data.pop("returns")
    return data


def _function_from_dict(raw: Dict[str, Any]) -> FunctionEntry:
    data = dict(raw)
    returns = data.pop("return", None)
    args = [Argument(**arg) for arg in data.pop("args", None) or []]
    return FunctionEntry(
        returns=ReturnValue(**returns) if returns else None,
        args=args,
        **data,
    )


def _type_from_dict(raw: Dict[str, Any]) -> TypeEntry:
    data = dict(raw)
    fields = [Field(**item) for item in data.pop("fields", None) or []]
    used = TypeUsage(**(data.pop("used", None) or {}))
    return TypeEntry(fields=fields, used=used, **data)


# ----------------------------------------------------------------------
# Generation results


@dataclass(frozen=True)
class OutputObject:
    """A blob destined for the output tree.

    Freshly rendered objects carry ``data``; objects reused from a previous
    build carry the ``oid`` already present in the store.
    """

    path: str
    data: Optional[bytes] = None
    oid: Optional[str] = None


@dataclass
class GenerationResult:
    """Per-version output of a generation task."""

    model: Optional[DocModel] = None
    examples: List[OutputObject] = field(default_factory=list)
    reused: bool = False

    @property
    def ok(self) -> bool:
        return self.model is not None

    @classmethod
    def failed(cls) -> "GenerationResult":
        return cls()


__all__ = [
    "Argument",
    "Declaration",
    "DocModel",
    "EnumDeclaration",
    "Field",
    "FileDeclaration",
    "FileEntry",
    "FunctionDeclaration",
    "FunctionEntry",
    "GenerationResult",
    "GlobalEntry",
    "MacroDeclaration",
    "OutputObject",
    "ReturnValue",
    "TypeDeclaration",
    "TypeEntry",
    "TypeUsage",
]
