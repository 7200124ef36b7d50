"""Tree-sitter powered C header parser."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import tree_sitter_c
from tree_sitter import Language, Node, Parser

from ..logging import get_logger
from ..models import (
    Argument,
    Declaration,
    EnumDeclaration,
    Field,
    FileDeclaration,
    FunctionDeclaration,
    MacroDeclaration,
    TypeDeclaration,
)

_C_LANGUAGE = Language(tree_sitter_c.language())

_CONTAINER_NODES = {
    "translation_unit",
    "preproc_ifdef",
    "preproc_if",
    "preproc_else",
    "preproc_elif",
    "preproc_elifdef",
    "linkage_specification",
    "declaration_list",
    "ERROR",
}
_NAME_NODES = {"identifier", "type_identifier", "field_identifier"}
_STORAGE_NODES = {"storage_class_specifier", "attribute_specifier", "ms_declspec_modifier"}
_WHITESPACE = re.compile(r"\s+")
_TAG = re.compile(r"^[@\\](\w+)\s*(.*)$")


@dataclass
class DocBlock:
    """A doc comment split into prose and recognised tags."""

    description: str = ""
    comments: str = ""
    params: Dict[str, str] = field(default_factory=dict)
    returns: str = ""
    tags: Dict[str, str] = field(default_factory=dict)


def clean_comment(text: str) -> str:
    """Strip comment delimiters and leading asterisks."""
    if text.startswith("//"):
        return text.lstrip("/").lstrip("!<").strip()
    body = text[2:-2] if text.endswith("*/") else text[2:]
    body = body.lstrip("*!")
    if body.startswith("<"):
        body = body[1:]
    lines = []
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith("*"):
            stripped = stripped[1:]
            if stripped.startswith(" "):
                stripped = stripped[1:]
        lines.append(stripped.rstrip())
    return "\n".join(lines).strip()


def parse_doc(text: str, arg_names: Sequence[str] = ()) -> DocBlock:
    """Split a cleaned comment into description, remaining comments and tags.

    ``@param`` lines naming a declared argument are moved onto that argument;
    any other ``@param`` line is left in the comment text.
    """
    doc = DocBlock()
    prose: List[str] = []
    current_tag: Optional[Tuple[str, List[str]]] = None

    def _flush() -> None:
        if current_tag is None:
            return
        tag, parts = current_tag
        value = " ".join(part for part in parts if part).strip()
        if tag == "param":
            name, _, rest = value.partition(" ")
            name = name.strip()
            if name in arg_names:
                doc.params[name] = rest.strip()
            else:
                prose.append(f"@param {value}")
        elif tag in {"return", "returns"}:
            doc.returns = value
        else:
            doc.tags[tag] = value

    for line in text.splitlines():
        match = _TAG.match(line.strip())
        if match:
            _flush()
            current_tag = (match.group(1), [match.group(2).strip()])
            continue
        if current_tag is not None and line.strip():
            current_tag[1].append(line.strip())
            continue
        _flush()
        current_tag = None
        prose.append(line)
    _flush()

    paragraphs = [para.strip() for para in "\n".join(prose).split("\n\n") if para.strip()]
    brief = doc.tags.pop("brief", "")
    if brief:
        doc.description = brief
        doc.comments = "\n\n".join(paragraphs)
    elif paragraphs:
        doc.description = paragraphs[0]
        doc.comments = "\n\n".join(paragraphs[1:])
    return doc


class TreeSitterHeaderParser:
    """Parses C headers into declaration records.

    ``files`` maps header paths to their source text; ``prefix`` labels the
    module tree being parsed (the version being documented). Parser instances
    are not thread-safe.
    """

    def __init__(self, files: Mapping[str, str], *, prefix: str = "") -> None:
        self.files = dict(files)
        self.prefix = prefix
        self._parser = Parser(_C_LANGUAGE)
        self.logger = get_logger("parser")

    def parse_file(self, path: str, *, verbose: bool = False) -> Iterator[Declaration]:
        source = self.files[path].encode("utf-8")
        tree = self._parser.parse(source)
        walker = _HeaderWalker(path, source)
        for record in walker.walk(tree.root_node):
            if verbose:
                self.logger.debug("[%s] %s: %r", self.prefix, path, record)
            yield record


class _HeaderWalker:
    def __init__(self, path: str, source: bytes) -> None:
        self.path = path
        self.source = source

    # ------------------------------------------------------------------
    # Traversal

    def walk(self, root: Node) -> Iterator[Declaration]:
        yield self._file_record(root)
        yield from self._walk_children(root)

    def _walk_children(self, node: Node) -> Iterator[Declaration]:
        for child in node.children:
            kind = child.type
            if kind in _CONTAINER_NODES:
                yield from self._walk_children(child)
            elif kind in {"declaration", "function_definition"}:
                yield from self._function_records(child)
                yield from self._specifier_records(child, child.child_by_field_name("type"))
            elif kind == "type_definition":
                yield from self._typedef_records(child)
            elif kind in {"struct_specifier", "enum_specifier"}:
                yield from self._specifier_records(child, child)
            elif kind in {"preproc_def", "preproc_function_def"}:
                record = self._macro_record(child)
                if record is not None:
                    yield record

    def _file_record(self, root: Node) -> FileDeclaration:
        lineto = self.source.count(b"\n") + (0 if self.source.endswith(b"\n") else 1)
        first = root.children[0] if root.children else None
        doc = DocBlock()
        if first is not None and first.type == "comment":
            doc = parse_doc(clean_comment(self._text(first)))
        return FileDeclaration(
            kind="file",
            file=self.path,
            line=1,
            lineto=max(lineto, 1),
            comments=doc.comments or None,
            brief=doc.description or None,
            defgroup=doc.tags.get("defgroup"),
            ingroup=doc.tags.get("ingroup"),
        )

    # ------------------------------------------------------------------
    # Functions and callbacks

    def _function_records(self, node: Node) -> Iterator[FunctionDeclaration]:
        for declarator in node.children_by_field_name("declarator"):
            function = _find_function_declarator(declarator)
            if function is None:
                continue
            inner = function.child_by_field_name("declarator")
            if inner is None or inner.type != "identifier":
                continue
            name = self._text(inner)
            yield self._function_like(node, function, "function", name, inner.start_byte)

    def _function_like(
        self,
        node: Node,
        function: Node,
        kind: str,
        name: str,
        name_start: int,
    ) -> FunctionDeclaration:
        args = self._arguments(function.child_by_field_name("parameters"))
        doc = parse_doc(self._leading_comment(node), [arg.name for arg in args])
        args = tuple(
            Argument(name=arg.name, type=arg.type, comment=doc.params.get(arg.name, ""))
            for arg in args
        )
        parameters = function.child_by_field_name("parameters")
        argline = _squash(self._text(parameters)[1:-1]) if parameters is not None else ""
        return FunctionDeclaration(
            kind=kind,
            file=self.path,
            line=node.start_point[0] + 1,
            lineto=node.end_point[0] + 1,
            comments=doc.comments or None,
            description=doc.description or None,
            name=name,
            args=args,
            argline=argline,
            sig="::".join(arg.type for arg in args),
            return_type=self._return_type(node, name_start),
            return_comment=doc.returns,
        )

    def _arguments(self, parameters: Optional[Node]) -> List[Argument]:
        if parameters is None:
            return []
        args = []
        for param in parameters.named_children:
            if param.type == "variadic_parameter":
                args.append(Argument(name="...", type="..."))
                continue
            if param.type != "parameter_declaration":
                continue
            text = self._text(param)
            declarator = param.child_by_field_name("declarator")
            name_node = _find_name(declarator) if declarator is not None else None
            if name_node is None:
                if _squash(text) == "void":
                    continue
                args.append(Argument(name="", type=_squash(text)))
                continue
            args.append(
                Argument(name=self._text(name_node), type=self._without_name(param, name_node))
            )
        return args

    def _without_name(self, node: Node, name_node: Node) -> str:
        """Text of ``node`` with the declared name cut out, e.g. ``const char *``."""
        before = self.source[node.start_byte : name_node.start_byte]
        after = self.source[name_node.end_byte : node.end_byte]
        text = (before + b" " + after).decode("utf-8", errors="replace")
        return _squash(text.rstrip().rstrip(";"))

    def _return_type(self, node: Node, name_start: int) -> str:
        start = None
        for child in node.children:
            if child.type in _STORAGE_NODES or child.type in {"comment", "typedef"}:
                continue
            start = child.start_byte
            break
        if start is None or start >= name_start:
            return ""
        text = self.source[start:name_start].decode("utf-8", errors="replace")
        type_node = node.child_by_field_name("type")
        if type_node is not None and type_node.type == "macro_type_specifier":
            inner = type_node.child_by_field_name("type")
            if inner is not None:
                text = text.replace(self._text(type_node), self._text(inner), 1)
        return _squash(text)

    # ------------------------------------------------------------------
    # Typedefs, structs and enums

    def _typedef_records(self, node: Node) -> Iterator[Declaration]:
        type_node = node.child_by_field_name("type")
        for declarator in node.children_by_field_name("declarator"):
            function = _find_function_declarator(declarator)
            if function is not None:
                name_node = _find_name(function.child_by_field_name("declarator"))
                if name_node is None:
                    continue
                name = self._text(name_node)
                inner = function.child_by_field_name("declarator")
                callback = self._function_like(node, function, "callback", name, inner.start_byte)
                yield callback
                yield TypeDeclaration(
                    kind="fnptr",
                    file=self.path,
                    line=callback.line,
                    lineto=callback.lineto,
                    comments=callback.comments,
                    description=callback.description,
                    name=name,
                    decl=name,
                    tdef="typedef",
                    block=self._text(node),
                    value=name,
                    argline=callback.argline,
                    return_type=callback.return_type,
                )
                continue

            name_node = _find_name(declarator)
            if name_node is None or type_node is None:
                continue
            name = self._text(name_node)
            if type_node.type == "struct_specifier":
                yield self._struct_record(node, type_node, name, tdef="typedef")
            elif type_node.type == "enum_specifier" and type_node.child_by_field_name("body"):
                yield self._enum_record(node, type_node, name, tdef="typedef")

    def _specifier_records(self, node: Node, specifier: Optional[Node]) -> Iterator[Declaration]:
        if specifier is None:
            return
        name_node = specifier.child_by_field_name("name")
        name = self._text(name_node) if name_node is not None else None
        has_body = specifier.child_by_field_name("body") is not None
        if specifier.type == "struct_specifier" and name and (has_body or node is specifier):
            yield self._struct_record(node, specifier, name, tdef=None)
        elif specifier.type == "enum_specifier" and has_body:
            yield self._enum_record(node, specifier, name, tdef=None)

    def _struct_record(
        self, node: Node, specifier: Node, name: str, *, tdef: Optional[str]
    ) -> TypeDeclaration:
        doc = parse_doc(self._leading_comment(node))
        body = specifier.child_by_field_name("body")
        fields = self._struct_fields(body) if body is not None else None
        return TypeDeclaration(
            kind="struct",
            file=self.path,
            line=node.start_point[0] + 1,
            lineto=node.end_point[0] + 1,
            comments=doc.comments or None,
            description=doc.description or None,
            name=name,
            decl=name,
            tdef=tdef,
            block=self._text(specifier) if body is not None else None,
            fields=fields,
            value=name,
        )

    def _struct_fields(self, body: Node) -> Tuple[Field, ...]:
        fields = []
        for child in body.named_children:
            if child.type != "field_declaration":
                continue
            comment = self._member_comment(child)
            for declarator in child.children_by_field_name("declarator"):
                name_node = _find_name(declarator)
                if name_node is None:
                    continue
                type_node = child.child_by_field_name("type")
                if type_node is not None and len(child.children_by_field_name("declarator")) > 1:
                    type_text = self._without_name(declarator, name_node)
                    type_text = _squash(f"{self._text(type_node)} {type_text}")
                else:
                    type_text = self._without_name(child, name_node)
                fields.append(Field(name=self._text(name_node), type=type_text, comments=comment))
        return tuple(fields)

    def _enum_record(
        self, node: Node, specifier: Node, name: Optional[str], *, tdef: Optional[str]
    ) -> EnumDeclaration:
        doc = parse_doc(self._leading_comment(node))
        body = specifier.child_by_field_name("body")
        enumerators = [child for child in body.named_children if child.type == "enumerator"]
        names = tuple(self._text(child.child_by_field_name("name")) for child in enumerators)
        fields = tuple(
            Field(
                name=self._text(child.child_by_field_name("name")),
                type="int",
                comments=self._member_comment(child),
            )
            for child in enumerators
        )
        start = body if name is None else node
        return EnumDeclaration(
            kind="enum",
            file=self.path,
            line=start.start_point[0] + 1,
            lineto=node.end_point[0] + 1,
            comments=doc.comments or None,
            description=doc.description or None,
            name=name,
            decl=names,
            body=self._text(body),
            block=self._text(specifier),
            tdef=tdef,
            fields=fields if name is not None else None,
        )

    # ------------------------------------------------------------------
    # Macros

    def _macro_record(self, node: Node) -> Optional[MacroDeclaration]:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        name = self._text(name_node)
        parent = node.parent
        if parent is not None and parent.type == "preproc_ifdef":
            guard = parent.child_by_field_name("name")
            if guard is not None and self._text(guard) == name:
                return None
        value_node = node.child_by_field_name("value")
        value = self._text(value_node).strip() if value_node is not None else ""
        params = node.child_by_field_name("parameters")
        if params is not None:
            value = f"{self._text(params)} {value}".strip()
        doc = parse_doc(self._leading_comment(node))
        return MacroDeclaration(
            kind="macro",
            file=self.path,
            line=node.start_point[0] + 1,
            lineto=_end_row(node) + 1,
            comments=doc.comments or None,
            description=doc.description or None,
            name=name,
            decl=name,
            value=value,
        )

    # ------------------------------------------------------------------
    # Comments

    def _leading_comment(self, node: Node) -> str:
        """Return the run of comments directly above ``node``."""
        comments: List[Node] = []
        expected_row = node.start_point[0]
        sibling = node.prev_sibling
        while sibling is not None and sibling.type == "comment":
            if sibling.end_point[0] < expected_row - 1:
                break
            previous = sibling.prev_sibling
            if (
                previous is not None
                and previous.type != "comment"
                and _end_row(previous) == sibling.start_point[0]
            ):
                break
            comments.append(sibling)
            expected_row = sibling.start_point[0]
            sibling = previous
        return "\n".join(clean_comment(self._text(item)) for item in reversed(comments))

    def _member_comment(self, node: Node) -> str:
        """Comment above a member, or trailing it on the same line."""
        leading = self._leading_comment(node)
        if leading:
            return _squash(leading)
        sibling = node.next_sibling
        while sibling is not None and sibling.type == ",":
            sibling = sibling.next_sibling
        if (
            sibling is not None
            and sibling.type == "comment"
            and sibling.start_point[0] == node.end_point[0]
        ):
            return _squash(clean_comment(self._text(sibling)))
        return ""

    def _text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="ignore")


def _find_function_declarator(node: Optional[Node]) -> Optional[Node]:
    while node is not None:
        if node.type == "function_declarator":
            return node
        if node.type not in {"pointer_declarator", "parenthesized_declarator", "attributed_declarator"}:
            return None
        node = _inner_declarator(node)
    return None


def _find_name(node: Optional[Node]) -> Optional[Node]:
    while node is not None:
        if node.type in _NAME_NODES:
            return node
        node = _inner_declarator(node)
    return None


def _inner_declarator(node: Node) -> Optional[Node]:
    inner = node.child_by_field_name("declarator")
    if inner is not None:
        return inner
    for child in node.named_children:
        if child.type not in {"comment", "type_qualifier"}:
            return child
    return None


def _end_row(node: Node) -> int:
    """Last row of ``node``; preprocessor lines end at column 0 of the next row."""
    row, column = node.end_point
    if column == 0 and row > node.start_point[0]:
        return row - 1
    return row


def _squash(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


__all__ = ["DocBlock", "TreeSitterHeaderParser", "clean_comment", "parse_doc"]
