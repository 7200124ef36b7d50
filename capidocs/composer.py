"""Stages generated documentation and commits it to the docs branch."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from .config import ProjectConfig
from .git.store import GitStore, Identity
from .logging import get_logger
from .models import DocModel, GenerationResult, OutputObject
from .render.examples import STYLESHEET
from .signatures import SignatureTracker
from .versions import HEAD

COMMIT_MESSAGE = "generated docs"
SITE_ROOT = Path(__file__).resolve().parent / "site"
MANIFEST_PATH = "project.json"
STYLESHEET_PATH = "ex/css.css"


def model_path(version: str) -> str:
    return f"{version}.json"


def examples_root(version: str) -> str:
    return f"ex/{version}"


class OutputComposer:
    """Collects output objects in a path index and writes them as one commit.

    Nothing is written to the object store until ``commit``; in dry-run mode
    ``commit`` writes nothing at all.
    """

    def __init__(
        self,
        store: GitStore,
        config: ProjectConfig,
        *,
        dry_run: bool = False,
        only_missing: bool = False,
        requested: Iterable[str] = (),
        site_root: Optional[Path] = None,
        stylesheet: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.config = config
        self.dry_run = dry_run
        self.only_missing = only_missing
        self.requested = set(requested)
        self.site_root = site_root or SITE_ROOT
        self.stylesheet = stylesheet or STYLESHEET
        self.logger = get_logger("composer")
        self._index: Dict[str, OutputObject] = {}
        self.staged_versions: List[str] = []

    @property
    def index(self) -> Dict[str, OutputObject]:
        return dict(self._index)

    # ------------------------------------------------------------------
    # Reuse of previous builds

    def can_reuse(self, version: str) -> bool:
        return self.only_missing and version != HEAD and version not in self.requested

    def load_existing(self, version: str) -> Optional[GenerationResult]:
        """Return the previously built result for ``version`` when reuse applies."""
        if not self.can_reuse(version):
            return None
        model_oid = self.store.branch_path(self.config.branch, model_path(version))
        if model_oid is None:
            return None
        self.logger.info("Reusing built documentation for %s", version)
        model = DocModel.from_json(self.store.read_text(model_oid))
        examples = []
        tree = self.store.branch_path(self.config.branch, examples_root(version))
        if tree is not None:
            for entry in self.store.ls_tree(tree):
                if entry.type != "blob":
                    continue
                examples.append(
                    OutputObject(path=f"{examples_root(version)}/{entry.path}", oid=entry.oid)
                )
        return GenerationResult(model=model, examples=examples, reused=True)

    # ------------------------------------------------------------------
    # Staging

    def stage(self, index: int, version: str, result: GenerationResult) -> None:
        """Reducer callback: stage one version's model and example pages."""
        if not result.ok:
            return
        self._add(OutputObject(path=model_path(version), data=result.model.to_json().encode("utf-8")))
        for item in result.examples:
            self._add(item)
        self.staged_versions.append(version)

    def build_manifest(self, versions: Sequence[str], tracker: SignatureTracker) -> Dict[str, object]:
        built = [version for version in versions if version in self.staged_versions]
        return {
            "versions": list(reversed(built)),
            "github": self.config.github,
            "name": self.config.name,
            "signatures": tracker.to_dict(),
        }

    def stage_manifest(self, versions: Sequence[str], tracker: SignatureTracker) -> None:
        manifest = self.build_manifest(versions, tracker)
        payload = json.dumps(manifest, sort_keys=True, ensure_ascii=False, separators=(",", ":"))
        self._add(OutputObject(path=MANIFEST_PATH, data=payload.encode("utf-8")))

    def stage_assets(self) -> None:
        """Copy the example stylesheet and every site asset verbatim."""
        self._add(OutputObject(path=STYLESHEET_PATH, data=self.stylesheet.read_bytes()))
        if not self.site_root.is_dir():
            return
        for path in sorted(self.site_root.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(self.site_root).as_posix()
            self._add(OutputObject(path=relative, data=path.read_bytes()))

    def _add(self, item: OutputObject) -> None:
        self._index[item.path] = item

    # ------------------------------------------------------------------
    # Writing

    def commit(self, identity: Identity) -> Optional[str]:
        """Write staged objects, a tree and a commit on the configured branch."""
        if self.dry_run:
            self.logger.info("Dry run: %d objects staged, nothing written", len(self._index))
            return None

        branch = self.config.branch
        self.logger.info("* writing to branch %s", branch)
        index = {}
        for path in sorted(self._index):
            item = self._index[path]
            index[path] = item.oid if item.data is None else self.store.write_blob(item.data)
        tree = self.store.write_tree(index)
        self.logger.info("wrote tree   %s", tree)

        previous = self.store.branch_tip(branch)
        commit = self.store.commit_tree(
            tree,
            parents=[previous] if previous else [],
            message=COMMIT_MESSAGE,
            identity=identity,
        )
        self.logger.info("wrote commit %s", commit)
        self.store.update_branch(branch, commit, previous)
        self.logger.info("updated %s", branch)
        return commit


__all__ = [
    "COMMIT_MESSAGE",
    "MANIFEST_PATH",
    "OutputComposer",
    "SITE_ROOT",
    "STYLESHEET_PATH",
    "examples_root",
    "model_path",
]
