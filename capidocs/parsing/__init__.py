"""Header parser interface and the default tree-sitter implementation."""

from __future__ import annotations

from typing import Callable, Iterable, Mapping, Protocol

from ..models import Declaration
from .tree_sitter import TreeSitterHeaderParser


class HeaderParser(Protocol):
    """Contract for parsers that turn one header into declaration records."""

    def parse_file(self, path: str, *, verbose: bool = False) -> Iterable[Declaration]:
        """Yield records for ``path`` in declaration order."""


ParserFactory = Callable[..., HeaderParser]
"""Called as ``factory(files, prefix=...)`` with a ``path -> source`` mapping."""


def default_parser_factory(files: Mapping[str, str], *, prefix: str = "") -> HeaderParser:
    return TreeSitterHeaderParser(files, prefix=prefix)


__all__ = ["HeaderParser", "ParserFactory", "TreeSitterHeaderParser", "default_parser_factory"]
