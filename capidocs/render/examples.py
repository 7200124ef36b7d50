"""Literate rendering of example sources into cross-linked HTML pages."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import CLexer

from .markdown import MarkdownRenderer

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"
STYLESHEET = TEMPLATES_DIR / "css.css"

PostRenderHook = Callable[[str, "RenderedExample"], str]


@dataclass
class Section:
    docs: List[str] = field(default_factory=list)
    code: List[str] = field(default_factory=list)


@dataclass
class RenderedExample:
    source: str
    output_path: str
    html: str = ""


def example_output_path(version: str, source: str) -> str:
    stem = posixpath.splitext(source)[0]
    return f"ex/{version}/{stem}.html"


def split_sections(text: str) -> List[Section]:
    """Split C source into alternating comment and code sections.

    Only comments that occupy whole lines become prose; trailing comments stay
    with the code they annotate.
    """
    sections: List[Section] = []
    current = Section()
    in_block = False
    for line in text.splitlines():
        stripped = line.strip()
        if in_block:
            end = stripped.find("*/")
            if end >= 0:
                current.docs.append(_clean_block_line(stripped[:end]))
                in_block = False
            else:
                current.docs.append(_clean_block_line(stripped))
            continue
        if stripped.startswith("//"):
            if current.code:
                sections.append(current)
                current = Section()
            current.docs.append(stripped[2:].strip())
            continue
        if stripped.startswith("/*"):
            end = stripped.find("*/")
            if end < 0 or stripped.endswith("*/"):
                if current.code:
                    sections.append(current)
                    current = Section()
                if end < 0:
                    current.docs.append(_clean_block_line(stripped[2:]))
                    in_block = True
                else:
                    current.docs.append(_clean_block_line(stripped[2:end]))
                continue
        current.code.append(line)
    if current.docs or current.code:
        sections.append(current)
    return sections


def _clean_block_line(text: str) -> str:
    text = text.strip()
    if text.startswith("*"):
        text = text[1:]
        if text.startswith(" "):
            text = text[1:]
    return text.rstrip()


class ExampleRenderer:
    """Renders one example file plus a jump list to its sibling files."""

    def __init__(
        self,
        markdown: Optional[MarkdownRenderer] = None,
        environment: Optional[Environment] = None,
    ) -> None:
        self._markdown = markdown or MarkdownRenderer()
        self._env = environment or Environment(
            loader=FileSystemLoader(str(TEMPLATES_DIR)),
            autoescape=select_autoescape(["html"]),
        )
        self._formatter = HtmlFormatter(nowrap=True)
        self._lexer = CLexer()

    def render(
        self,
        path: str,
        siblings: Sequence[str],
        lookup: Callable[[str], str],
        *,
        version: str,
        hooks: Sequence[PostRenderHook] = (),
    ) -> RenderedExample:
        output_path = example_output_path(version, path)
        result = RenderedExample(source=path, output_path=output_path)

        sections = []
        for section in split_sections(lookup(path)):
            sections.append(
                {
                    "docs": self._markdown.render("\n".join(section.docs)),
                    "code": highlight("\n".join(section.code), self._lexer, self._formatter)
                    if any(line.strip() for line in section.code)
                    else "",
                }
            )

        page_dir = posixpath.dirname(output_path)
        sources = [
            {
                "name": sibling,
                "href": posixpath.relpath(example_output_path(version, sibling), page_dir),
                "current": sibling == path,
            }
            for sibling in sorted(siblings)
        ]

        depth = output_path.count("/") - 1
        template = self._env.get_template("example.html")
        html = template.render(
            title=posixpath.basename(path),
            version=version,
            dirsup="../" * depth if depth else "./",
            sources=sources,
            sections=sections,
        )
        for hook in hooks:
            html = hook(html, result)
        result.html = html
        return result


__all__ = [
    "ExampleRenderer",
    "PostRenderHook",
    "RenderedExample",
    "STYLESHEET",
    "example_output_path",
    "split_sections",
]
