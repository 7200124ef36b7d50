"""Logging utilities for capidocs commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable

_LOGGER_NAME = "capidocs"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the capidocs hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the capidocs logger with console output and optional file sink."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when the CLI is invoked multiple times.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("[capidocs] %(levelname)s %(message)s"))
    logger.addHandler(stream_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


@dataclass(frozen=True)
class TraceFilter:
    """Selects the files, functions and types whose processing is traced."""

    everything: bool = False
    files: FrozenSet[str] = field(default_factory=frozenset)
    functions: FrozenSet[str] = field(default_factory=frozenset)
    types: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_options(
        cls,
        *,
        everything: bool = False,
        files: Iterable[str] = (),
        functions: Iterable[str] = (),
        types: Iterable[str] = (),
    ) -> "TraceFilter":
        return cls(
            everything=everything,
            files=frozenset(files),
            functions=frozenset(functions),
            types=frozenset(types),
        )

    @property
    def active(self) -> bool:
        return self.everything or bool(self.files or self.functions or self.types)

    def wants(self, kind: str, name: str | None) -> bool:
        """Return True when records of ``kind`` named ``name`` should be traced."""
        if self.everything:
            return True
        if not name:
            return False
        if kind == "file":
            return name in self.files
        if kind in {"function", "callback"}:
            return name in self.functions
        if kind in {"type", "struct", "enum", "fnptr"}:
            return name in self.types
        return False


__all__ = ["TraceFilter", "configure_logging", "get_logger"]
