from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterator

import pytest

from tests._fixtures.repo_builder import RepoBuilder

_GIT_IDENTITY_VARS = (
    "GIT_AUTHOR_NAME",
    "GIT_AUTHOR_EMAIL",
    "GIT_COMMITTER_NAME",
    "GIT_COMMITTER_EMAIL",
    "GIT_CONFIG_GLOBAL",
    "EMAIL",
)


@pytest.fixture
def isolated_git(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep user and system git configuration out of the test."""
    if shutil.which("git") is None:
        pytest.skip("git executable not available")
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for name in _GIT_IDENTITY_VARS:
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def git_repo(tmp_path: Path, isolated_git: Path) -> RepoBuilder:
    """Provide a real git repository with a configured identity."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def anonymous_git_repo(tmp_path: Path, isolated_git: Path) -> RepoBuilder:
    """Provide a real git repository without ``user.name``/``user.email``."""
    return RepoBuilder(tmp_path, identity=False)


@pytest.fixture(autouse=True)
def _reset_capidocs_logger() -> Iterator[None]:
    """Let caplog see capidocs records even after the CLI configured logging."""
    logger = logging.getLogger("capidocs")
    yield
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
