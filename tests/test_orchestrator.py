"""Tests for capidocs.orchestrator."""

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Dict, List

import pytest

from capidocs.config import ProjectConfig
from capidocs.git.store import GitStore, Identity, IdentityError, TreeEntry
from capidocs.models import DocModel, FunctionDeclaration, FunctionEntry, GenerationResult
from capidocs.orchestrator import Orchestrator, function_linker, normalize_text
from capidocs.render.examples import RenderedExample
from capidocs.versions import HEAD, UnknownVersionError


class FakeStore:
    """Serves version trees from memory; records nothing it is not asked for."""

    def __init__(self, trees: Dict[str, Dict[str, str]], identity=Identity("Doc Bot", "docs@example.com")):
        self.trees = trees
        self._identity = identity
        self.blobs: Dict[str, bytes] = {}
        self.commits: List[str] = []

    def tags(self) -> List[str]:
        return [version for version in self.trees if version != HEAD]

    def identity(self) -> Identity:
        if self._identity is None:
            raise IdentityError("'user.name' or 'user.email' is not configured")
        return self._identity

    def version_tree(self, version: str, path: str = "") -> str | None:
        if version not in self.trees:
            return None
        prefix = path.strip("/")
        if prefix and not any(name.startswith(prefix + "/") for name in self.trees[version]):
            return None
        return f"{version}:{prefix}"

    def ls_tree(self, tree: str) -> List[TreeEntry]:
        version, _, prefix = tree.partition(":")
        entries = []
        for name in sorted(self.trees[version]):
            if prefix and not name.startswith(prefix + "/"):
                continue
            relative = name[len(prefix) + 1:] if prefix else name
            entries.append(TreeEntry("100644", "blob", f"{version}:{name}", relative))
        return entries

    def read_text(self, oid: str) -> str:
        version, _, name = oid.partition(":")
        return self.trees[version][name]

    def branch_tip(self, branch: str) -> None:
        return None

    def branch_path(self, branch: str, path: str) -> None:
        return None

    def write_blob(self, data: bytes) -> str:
        oid = f"{len(self.blobs):040d}"
        self.blobs[oid] = data
        return oid

    def write_tree(self, index) -> str:
        self.index = dict(index)
        return "t" * 40

    def commit_tree(self, tree, *, parents, message, identity) -> str:
        self.commits.append(message)
        return "c" * 40

    def update_branch(self, branch, commit, previous) -> None:
        self.updated = (branch, commit, previous)


class SignatureParser:
    """Parser double: every header line ``name sig`` becomes a function record."""

    def __init__(self, files, *, prefix="", fail_for=()) -> None:
        if prefix in fail_for:
            raise RuntimeError(f"parser exploded on {prefix}")
        self.files = files

    def parse_file(self, path, *, verbose=False):
        for number, line in enumerate(self.files[path].splitlines(), start=1):
            name, _, sig = line.partition(" ")
            yield FunctionDeclaration(
                kind="function", file=path, line=number, lineto=number, name=name,
                sig=sig, description=f"{name} docs", comments="", args=(), argline=sig,
                return_type="int",
            )


def _factory(fail_for=()):
    def factory(files, *, prefix=""):
        return SignatureParser(files, prefix=prefix, fail_for=fail_for)

    return factory


@pytest.fixture
def config(tmp_path: Path) -> ProjectConfig:
    return ProjectConfig(root=tmp_path, branch="gh-pages", name="widget", prefix="widget_", workers=4)


TREES = {
    "0.9.0": {"include/widget.h": "widget_open void\n"},
    "1.0.0": {"include/widget.h": "widget_open void\nbar void\n"},
    "2.0.0": {"include/widget.h": "widget_open void\nbar int\n"},
    HEAD: {"include/widget.h": "widget_open void\nbar int\nwidget_close void\n"},
}


def test_failed_version_does_not_stop_the_run(
    config: ProjectConfig, caplog: pytest.LogCaptureFixture
) -> None:
    config.input = "include"
    store = FakeStore(TREES)
    orchestrator = Orchestrator(store, config, parser_factory=_factory(fail_for={"0.9.0"}))

    with caplog.at_level(logging.INFO, logger="capidocs"):
        outcome = orchestrator.generate_docs()

    assert outcome.failed == ["0.9.0"]
    assert outcome.versions == ["1.0.0", "2.0.0", HEAD]
    assert any("0.9.0" in r.getMessage() and r.levelno == logging.ERROR for r in caplog.records)
    assert "0.9.0.json" not in store.index
    manifest = json.loads(store.blobs[store.index["project.json"]])
    assert manifest["versions"] == [HEAD, "2.0.0", "1.0.0"]
    assert manifest["signatures"]["bar"] == {"exists": ["1.0.0", "2.0.0", HEAD], "changes": {"2.0.0": True}}
    head = DocModel.from_json(store.blobs[store.index["HEAD.json"]].decode("utf-8"))
    assert sorted(head.functions) == ["bar", "widget_close", "widget_open"]
    assert head.prefix == "include"
    assert head.groups == [("bar", ["bar"]), ("close", ["widget_close"]), ("open", ["widget_open"])]
    assert store.commits == ["generated docs"]


def test_generate_docs_respects_explicit_versions(config: ProjectConfig) -> None:
    store = FakeStore(TREES)
    orchestrator = Orchestrator(store, config, parser_factory=_factory())

    outcome = orchestrator.generate_docs(requested=[HEAD, "1.0.0"], dry_run=True)

    assert outcome.versions == ["1.0.0", HEAD]
    assert outcome.commit is None
    assert store.commits == []


def test_unknown_requested_version_aborts_before_generation(config: ProjectConfig) -> None:
    calls = []

    def factory(files, *, prefix=""):
        calls.append(prefix)
        return SignatureParser(files, prefix=prefix)

    orchestrator = Orchestrator(FakeStore(TREES), config, parser_factory=factory)

    with pytest.raises(UnknownVersionError):
        orchestrator.generate_docs(requested=["3.0.0"])
    assert calls == []


def test_missing_identity_aborts_before_generation(config: ProjectConfig) -> None:
    calls = []

    def factory(files, *, prefix=""):
        calls.append(prefix)
        return SignatureParser(files, prefix=prefix)

    store = FakeStore(TREES, identity=None)
    orchestrator = Orchestrator(store, config, parser_factory=factory)

    with pytest.raises(IdentityError):
        orchestrator.generate_docs()
    assert calls == []
    assert store.blobs == {}


class DelayedOrchestrator(Orchestrator):
    """Makes the first version finish after the second one."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.second_done = threading.Event()

    def generate(self, version: str) -> GenerationResult:
        if version == "1.0.0":
            self.second_done.wait(timeout=5)
            time.sleep(0.2)
        result = super().generate(version)
        if version == "2.0.0":
            self.second_done.set()
        return result


def _reduce_order(config: ProjectConfig, tally_order: str):
    trees = {version: TREES[version] for version in ("1.0.0", "2.0.0", HEAD)}
    orchestrator = DelayedOrchestrator(
        FakeStore(trees), config, parser_factory=_factory(), tally_order=tally_order, workers=3
    )
    order: List[str] = []
    orchestrator.process_project(["1.0.0", "2.0.0", HEAD], lambda i, version, result: order.append(version))
    return orchestrator, order


def test_version_tally_order_reduces_in_submission_order(config: ProjectConfig) -> None:
    orchestrator, order = _reduce_order(config, "version")

    assert order == ["1.0.0", "2.0.0", HEAD]
    assert orchestrator.tracker.histories["bar"].changes == {"2.0.0": True}


def test_completion_tally_order_reduces_as_tasks_finish(config: ProjectConfig) -> None:
    orchestrator, order = _reduce_order(config, "completion")

    assert order.index("2.0.0") < order.index("1.0.0")
    assert orchestrator.tracker.histories["bar"].exists == ["1.0.0", "2.0.0", HEAD]


def test_check_warnings_uses_latest_release_and_head(config: ProjectConfig) -> None:
    seen = []

    def factory(files, *, prefix=""):
        seen.append(prefix)
        return SignatureParser(files, prefix=prefix)

    trees = dict(TREES)
    trees["2.1.0-rc1"] = TREES["2.0.0"]
    orchestrator = Orchestrator(FakeStore(trees), config, parser_factory=factory)

    warnings = orchestrator.check_warnings()

    assert sorted(seen) == ["2.0.0", HEAD]
    assert warnings == []


def test_examples_are_rendered_and_linked(config: ProjectConfig) -> None:
    config.examples = "examples"
    trees = {
        HEAD: {
            "include/widget.h": "widget_open void\n",
            "examples/general.c": "// Open one.\nint main(void) { return widget_open(); }\n",
            "examples/README.md": "not an example\n",
        }
    }
    orchestrator = Orchestrator(FakeStore(trees), config, parser_factory=_factory())

    result = orchestrator.generate(HEAD)

    assert [item.path for item in result.examples] == ["ex/HEAD/general.html"]
    assert result.model.examples == [("general.c", "ex/HEAD/general.html")]
    html = result.examples[0].data.decode("utf-8")
    assert 'href="../../#HEAD/group/open/widget_open"' in html
    links = result.model.functions["widget_open"].examples
    assert links == {"general.c": ["ex/HEAD/general.html#widget_open-1"]}


def test_function_linker_respects_word_boundaries() -> None:
    model = DocModel()
    model.functions["git_open"] = FunctionEntry(group="open")
    model.functions["open"] = FunctionEntry(group="")
    link = function_linker("v1.0.0", model)
    example = RenderedExample(source="demo.c", output_path="ex/v1.0.0/demo.html")

    html = link("<span>git_open</span>(x); reopen(y);", example)

    assert html.count("<a ") == 1
    assert 'href="../../#v1.0.0/group/open/git_open"' in html
    assert model.functions["open"].examples == {}


def test_normalize_text_composes_unicode() -> None:
    model = DocModel()
    model.functions["f"] = FunctionEntry(description="Cafe\u0301", comments=None)

    normalize_text(model)

    assert model.functions["f"].description == "Caf\u00e9"
    assert model.functions["f"].comments == ""


def test_end_to_end_against_real_repository(git_repo) -> None:
    header_v1 = """
    /** Open a widget. */
    int widget_open(void);
    """
    header_v2 = """
    /** Open a widget. */
    int widget_open(int flags);

    /** Close a widget. */
    void widget_close(void);
    """
    git_repo.write({"capidocs.json": json.dumps({"branch": "gh-pages", "name": "widget", "input": "include"})})
    git_repo.release("v1.0.0", {"include/widget.h": header_v1})
    git_repo.release("v1.0.1-rc1", {"include/widget.h": header_v1})
    git_repo.write({"include/widget.h": header_v2})
    git_repo.commit("head")

    store = GitStore(git_repo.path())
    config = ProjectConfig(root=git_repo.path(), branch="gh-pages", name="widget", input="include", workers=2)
    outcome = Orchestrator(store, config).generate_docs()

    assert outcome.versions == ["v1.0.0", HEAD]
    assert outcome.commit == store.branch_tip("gh-pages")
    manifest = json.loads(store.read_text(store.branch_path("gh-pages", "project.json")))
    assert manifest["versions"] == [HEAD, "v1.0.0"]
    assert manifest["signatures"]["widget_open"]["changes"] == {HEAD: True}
    head = DocModel.from_json(store.read_text(store.branch_path("gh-pages", "HEAD.json")))
    assert head.functions["widget_close"].description == "<p>Close a widget.</p>"
    assert store.branch_path("gh-pages", "ex/css.css") is not None
    assert store.branch_path("gh-pages", "index.html") is not None
    assert [w.identifier for w in outcome.warnings] == ["widget_open"]

    previous = outcome.commit
    rerun = Orchestrator(store, config).generate_docs(only_missing=True)
    assert store.resolve(f"{rerun.commit}^") == previous
    for path in ("project.json", "v1.0.0.json", "HEAD.json"):
        assert store.resolve(f"{rerun.commit}:{path}") == store.resolve(f"{previous}:{path}")
