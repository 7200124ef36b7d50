"""Renderers for comment text and literate examples."""

from .examples import ExampleRenderer, RenderedExample
from .markdown import MarkdownRenderer

__all__ = ["ExampleRenderer", "MarkdownRenderer", "RenderedExample"]
