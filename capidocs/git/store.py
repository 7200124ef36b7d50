"""Content-addressable object store backed by git plumbing commands.

Everything goes through the object database: blobs are hashed in with
``hash-object``, trees assembled with ``mktree`` and commits created with
``commit-tree`` before the branch ref is moved with ``update-ref``. No
working directory is ever checked out or modified.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ..logging import get_logger

BLOB_MODE = "100644"
TREE_MODE = "040000"
_NULL_OID = "0" * 40

Runner = Callable[..., bytes]


class StoreError(RuntimeError):
    """Raised when a git plumbing command fails."""


class IdentityError(RuntimeError):
    """Raised when the repository has no author identity configured."""


@dataclass(frozen=True)
class Identity:
    name: str
    email: str

    def env(self) -> Dict[str, str]:
        return {
            "GIT_AUTHOR_NAME": self.name,
            "GIT_AUTHOR_EMAIL": self.email,
            "GIT_COMMITTER_NAME": self.name,
            "GIT_COMMITTER_EMAIL": self.email,
        }


@dataclass(frozen=True)
class TreeEntry:
    mode: str
    type: str
    oid: str
    path: str


class GitStore:
    """Reads and writes git objects for a repository without a checkout."""

    def __init__(self, repo_path: Path | str, runner: Runner | None = None) -> None:
        self.repo_path = Path(repo_path)
        self._runner = runner or self._default_runner
        self.logger = get_logger("store")

    # ------------------------------------------------------------------
    # Repository metadata

    def config_value(self, key: str) -> Optional[str]:
        try:
            value = self._run(["git", "config", "--get", key]).decode("utf-8").strip()
        except subprocess.CalledProcessError:
            return None
        return value or None

    def identity(self) -> Identity:
        """Return the configured author identity or raise ``IdentityError``."""
        name = self.config_value("user.name")
        email = self.config_value("user.email")
        if not name or not email:
            raise IdentityError(
                "'user.name' or 'user.email' is not configured; documentation cannot be committed"
            )
        return Identity(name=name, email=email)

    def tags(self) -> List[str]:
        output = self._checked(["git", "for-each-ref", "--format=%(refname)", "refs/tags"])
        prefix = "refs/tags/"
        tags = []
        for line in output.decode("utf-8").splitlines():
            line = line.strip()
            if line.startswith(prefix):
                tags.append(line[len(prefix):])
        return tags

    # ------------------------------------------------------------------
    # Reading

    def resolve(self, rev: str) -> Optional[str]:
        """Return the object id ``rev`` names, or None when it does not exist."""
        try:
            output = self._run(["git", "rev-parse", "--verify", "--quiet", rev])
        except subprocess.CalledProcessError:
            return None
        oid = output.decode("utf-8").strip()
        return oid or None

    def version_tree(self, version: str, path: str = "") -> Optional[str]:
        """Return the tree (or subtree at ``path``) of a tag or ``HEAD``."""
        rev = "HEAD" if version == "HEAD" else f"refs/tags/{version}"
        cleaned = path.strip("/")
        if cleaned:
            return self.resolve(f"{rev}:{cleaned}")
        return self.resolve(f"{rev}^{{tree}}")

    def branch_tip(self, branch: str) -> Optional[str]:
        return self.resolve(f"refs/heads/{branch}^{{commit}}")

    def branch_path(self, branch: str, path: str) -> Optional[str]:
        """Return the object at ``path`` in the tip of ``branch``."""
        if self.branch_tip(branch) is None:
            return None
        return self.resolve(f"refs/heads/{branch}:{path}")

    def ls_tree(self, tree: str) -> List[TreeEntry]:
        """List every blob under ``tree`` recursively."""
        output = self._checked(["git", "ls-tree", "-r", "-z", "--full-tree", tree])
        entries = []
        for raw in output.split(b"\0"):
            if not raw:
                continue
            meta, _, path = raw.partition(b"\t")
            mode, kind, oid = meta.decode("ascii").split(" ")
            entries.append(TreeEntry(mode=mode, type=kind, oid=oid, path=path.decode("utf-8")))
        return entries

    def read_blob(self, oid: str) -> bytes:
        return self._checked(["git", "cat-file", "blob", oid])

    def read_text(self, oid: str) -> str:
        return self.read_blob(oid).decode("utf-8", errors="replace")

    # ------------------------------------------------------------------
    # Writing

    def write_blob(self, data: bytes) -> str:
        output = self._checked(["git", "hash-object", "-w", "--stdin"], input=data)
        return output.decode("ascii").strip()

    def write_tree(self, index: Mapping[str, str]) -> str:
        """Write nested trees for a flat ``path -> blob oid`` index."""
        root: Dict[str, object] = {}
        for path, oid in index.items():
            parts = [part for part in path.split("/") if part]
            if not parts:
                raise StoreError(f"Invalid output path {path!r}")
            node = root
            for part in parts[:-1]:
                child = node.setdefault(part, {})
                if not isinstance(child, dict):
                    raise StoreError(f"Output path {path!r} conflicts with a file")
                node = child
            if isinstance(node.get(parts[-1]), dict):
                raise StoreError(f"Output path {path!r} conflicts with a directory")
            node[parts[-1]] = oid
        return self._write_tree_level(root)

    def commit_tree(
        self,
        tree: str,
        *,
        parents: Sequence[str],
        message: str,
        identity: Identity,
    ) -> str:
        args = ["git", "commit-tree", tree]
        for parent in parents:
            args.extend(["-p", parent])
        args.extend(["-m", message])
        env = os.environ.copy()
        env.update(identity.env())
        output = self._checked(args, env=env)
        return output.decode("ascii").strip()

    def update_branch(self, branch: str, commit: str, previous: Optional[str]) -> None:
        """Point ``branch`` at ``commit``, failing if it moved since ``previous``."""
        self._checked(
            ["git", "update-ref", f"refs/heads/{branch}", commit, previous or _NULL_OID]
        )

    # ------------------------------------------------------------------
    # Helpers

    def _write_tree_level(self, node: Mapping[str, object]) -> str:
        lines = []
        for name in sorted(node):
            value = node[name]
            if isinstance(value, Mapping):
                lines.append(f"{TREE_MODE} tree {self._write_tree_level(value)}\t{name}")
            else:
                lines.append(f"{BLOB_MODE} blob {value}\t{name}")
        payload = "".join(f"{line}\0" for line in lines).encode("utf-8")
        output = self._checked(["git", "mktree", "-z"], input=payload)
        return output.decode("ascii").strip()

    def _checked(
        self,
        args: Iterable[str],
        *,
        input: bytes | None = None,
        env: dict[str, str] | None = None,
    ) -> bytes:
        args = list(args)
        try:
            return self._run(args, input=input, env=env)
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or b"").decode("utf-8", errors="replace").strip()
            raise StoreError(f"`{' '.join(args[:2])}` failed: {stderr or exc}") from exc

    def _run(
        self,
        args: Iterable[str],
        *,
        input: bytes | None = None,
        env: dict[str, str] | None = None,
    ) -> bytes:
        return self._runner(args, cwd=self.repo_path, input=input, env=env)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        input: bytes | None = None,
        env: dict[str, str] | None = None,
    ) -> bytes:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            env=env,
            input=input,
            check=True,
            capture_output=True,
        )
        return completed.stdout


__all__ = [
    "BLOB_MODE",
    "GitStore",
    "Identity",
    "IdentityError",
    "StoreError",
    "TreeEntry",
]
