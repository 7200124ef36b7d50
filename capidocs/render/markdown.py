"""Markdown rendering for declaration comments."""

from __future__ import annotations

import markdown


class MarkdownRenderer:
    """Renders comment text to HTML.

    Python-Markdown ignores underscores inside words, so identifiers such as
    ``git_repository_open`` are never turned into emphasis. Instances keep
    parser state between calls and must not be shared across threads.
    """

    def __init__(self) -> None:
        self._md = markdown.Markdown(extensions=["fenced_code", "tables"], output_format="html")

    def render(self, text: str | None) -> str:
        if not text or not text.strip():
            return ""
        self._md.reset()
        return self._md.convert(text)


__all__ = ["MarkdownRenderer"]
