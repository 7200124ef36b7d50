"""Version orchestration for the doc and check flows."""

from __future__ import annotations

import itertools
import logging
import re
import unicodedata
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .aggregator import RecordAggregator
from .checks import ApiWarning, collect_warnings
from .composer import OutputComposer
from .config import ProjectConfig
from .git.store import GitStore
from .logging import TraceFilter, get_logger
from .models import DocModel, GenerationResult, OutputObject
from .parsing import ParserFactory, default_parser_factory
from .render.examples import ExampleRenderer, PostRenderHook, RenderedExample
from .render.markdown import MarkdownRenderer
from .signatures import SignatureTracker
from .versions import HEAD, chronological, discover_versions, release_versions, select_versions
from .xref import cross_reference

Reducer = Callable[[int, str, GenerationResult], None]
Reuse = Callable[[str], Optional[GenerationResult]]


class GenerationError(RuntimeError):
    """Raised inside a generation task when a version cannot be read."""


@dataclass
class RunOutcome:
    """Summary of a ``generate_docs`` run."""

    versions: List[str]
    failed: List[str] = field(default_factory=list)
    warnings: List[ApiWarning] = field(default_factory=list)
    commit: Optional[str] = None
    dry_run: bool = False


class Orchestrator:
    """Generates every version in parallel and folds the results serially.

    Generation tasks only touch their own ``DocModel``. The signature tracker,
    the head model and the staging callback are only used from the reducer,
    which runs on the calling thread.
    """

    def __init__(
        self,
        store: GitStore,
        config: ProjectConfig,
        *,
        parser_factory: Optional[ParserFactory] = None,
        example_renderer: Optional[ExampleRenderer] = None,
        trace: Optional[TraceFilter] = None,
        tally_order: Optional[str] = None,
        workers: Optional[int] = None,
    ) -> None:
        self.store = store
        self.config = config
        self.parser_factory = parser_factory or default_parser_factory
        self._example_renderer = example_renderer
        self.trace = trace or TraceFilter()
        self.tally_order = tally_order or config.tally_order
        self.workers = workers or config.worker_count
        self.logger = get_logger("orchestrator")
        self.tracker = SignatureTracker()
        self.head_model: Optional[DocModel] = None
        self.failed: List[str] = []

    # ------------------------------------------------------------------
    # Flows

    def generate_docs(
        self,
        *,
        dry_run: bool = False,
        only_missing: bool = False,
        requested: Sequence[str] = (),
    ) -> RunOutcome:
        """Build documentation for every version and commit it to the docs branch."""
        versions = chronological(select_versions(discover_versions(self.store.tags()), requested))
        identity = self.store.identity()

        composer = OutputComposer(
            self.store,
            self.config,
            dry_run=dry_run,
            only_missing=only_missing,
            requested=requested,
        )
        composer.stage_assets()
        self.process_project(versions, composer.stage, reuse=composer.load_existing)

        warnings: List[ApiWarning] = []
        if self.head_model is not None:
            warnings = self._collect_head_warnings()

        composer.stage_manifest(versions, self.tracker)
        commit = composer.commit(identity)
        return RunOutcome(
            versions=list(composer.staged_versions),
            failed=list(self.failed),
            warnings=warnings,
            commit=commit,
            dry_run=dry_run,
        )

    def check_warnings(self) -> List[ApiWarning]:
        """Process the latest release and ``HEAD`` and return the head warnings."""
        versions = release_versions(self.store.tags())[-1:] + [HEAD]
        self.process_project(versions)
        if self.head_model is None:
            return []
        return self._collect_head_warnings()

    def _collect_head_warnings(self) -> List[ApiWarning]:
        input_dir = self.config.option_version(HEAD, "input", "")
        return collect_warnings(self.head_model, self.tracker, head=HEAD, input_dir=input_dir)

    # ------------------------------------------------------------------
    # Parallel generate, serial reduce

    def process_project(
        self,
        versions: Sequence[str],
        on_result: Optional[Reducer] = None,
        *,
        reuse: Optional[Reuse] = None,
    ) -> SignatureTracker:
        self.tracker = SignatureTracker()
        self.head_model = None
        self.failed = []

        total = len(versions)
        pending: Dict[int, Tuple[str, GenerationResult]] = {}
        next_index = 0
        max_workers = max(1, min(self.workers, total))

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(self._run_task, index, version, total, reuse): (index, version)
                for index, version in enumerate(versions)
            }
            for future in as_completed(futures):
                index, version = futures[future]
                result = future.result()
                if self.tally_order == "completion":
                    self._reduce(index, version, result, total, on_result)
                    continue
                pending[index] = (version, result)
                while next_index in pending:
                    ready_version, ready_result = pending.pop(next_index)
                    self._reduce(next_index, ready_version, ready_result, total, on_result)
                    next_index += 1

        self.tracker.finalize()
        return self.tracker

    def _run_task(
        self,
        index: int,
        version: str,
        total: int,
        reuse: Optional[Reuse],
    ) -> GenerationResult:
        self.logger.info("Generating documentation for %s [%d/%d]", version, index + 1, total)
        try:
            if reuse is not None:
                existing = reuse(version)
                if existing is not None:
                    return existing
            return self.generate(version)
        except Exception as exc:
            self._log_exception(f"version {version}: generation failed", exc)
            return GenerationResult.failed()

    def _reduce(
        self,
        index: int,
        version: str,
        result: GenerationResult,
        total: int,
        on_result: Optional[Reducer],
    ) -> None:
        if not result.ok:
            self.failed.append(version)
        else:
            self.tracker.tally(version, result.model)
            normalize_text(result.model)
            self.logger.info("Adding documentation for %s [%d/%d]", version, index + 1, total)
            if version == HEAD:
                self.head_model = result.model
        if on_result is not None:
            on_result(index, version, result)

    # ------------------------------------------------------------------
    # Generation task

    def generate(self, version: str) -> GenerationResult:
        """Parse one version's headers and render its examples."""
        input_dir = self.config.option_version(version, "input", "")
        tree = self.store.version_tree(version, input_dir)
        if tree is None:
            raise GenerationError(f"no header tree {input_dir or '/'!r} in {version}")

        blobs = {entry.path: entry.oid for entry in self.store.ls_tree(tree) if entry.type == "blob"}
        headers = sorted(path for path in blobs if path.endswith(".h"))
        files = {path: self.store.read_text(blobs[path]) for path in headers}

        markdown = MarkdownRenderer()
        parser = self.parser_factory(files, prefix=version)
        aggregator = RecordAggregator(markdown=markdown, trace=self.trace)
        for header in headers:
            verbose = self.trace.wants("file", header)
            aggregator.add_file(header, parser.parse_file(header, verbose=verbose))

        model = aggregator.model
        model.prefix = input_dir
        cross_reference(model, self.config.prefix, trace=self.trace)
        examples = self._render_examples(version, model, markdown)
        return GenerationResult(model=model, examples=examples)

    def _render_examples(
        self,
        version: str,
        model: DocModel,
        markdown: MarkdownRenderer,
    ) -> List[OutputObject]:
        root = self.config.option_version(version, "examples")
        if not root:
            return []
        tree = self.store.version_tree(version, root)
        if tree is None:
            return []

        blobs = {entry.path: entry.oid for entry in self.store.ls_tree(tree) if entry.type == "blob"}
        sources = sorted(path for path in blobs if path.endswith(".c"))
        renderer = self._example_renderer or ExampleRenderer(markdown=markdown)
        hook = function_linker(version, model)

        outputs = []
        for source in sources:
            rendered = renderer.render(
                source,
                sources,
                lambda path: self.store.read_text(blobs[path]),
                version=version,
                hooks=[hook],
            )
            outputs.append(OutputObject(path=rendered.output_path, data=rendered.html.encode("utf-8")))
            model.examples.append((source, rendered.output_path))
        return outputs

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


def function_linker(version: str, model: DocModel) -> PostRenderHook:
    """Return a hook linking documented function names in example HTML.

    Every occurrence gets a numbered anchor which is recorded on the function
    entry under the example's source path.
    """
    names = sorted(model.functions, key=len, reverse=True)
    if not names:
        return lambda html, example: html
    pattern = re.compile(r"(?<!\w)(%s)(?=\W)" % "|".join(re.escape(name) for name in names))

    def link(html: str, example: RenderedExample) -> str:
        counter = itertools.count(1)

        def anchor(match: re.Match) -> str:
            name = match.group(1)
            label = f"{name}-{next(counter)}"
            entry = model.functions[name]
            entry.examples.setdefault(example.source, []).append(f"{example.output_path}#{label}")
            href = f"../../#{version}/group/{entry.group or ''}/{name}"
            return f'<a name="{label}" class="fnlink" href="{href}">{name}</a>'

        return pattern.sub(anchor, html)

    return link


def normalize_text(model: DocModel) -> DocModel:
    """Coerce comment and description fields to NFC-normalised text."""
    for entry in itertools.chain(model.functions.values(), model.callbacks.values()):
        entry.description = _text(entry.description)
        entry.comments = _text(entry.comments)
        entry.args = [replace(arg, comment=_text(arg.comment)) for arg in entry.args]
        if entry.returns is not None:
            entry.returns.comment = _text(entry.returns.comment)
    for entry in model.globals.values():
        entry.description = _text(entry.description)
        entry.comments = _text(entry.comments)
    for entry in model.types.values():
        entry.description = _text(entry.description)
        entry.comments = _text(entry.comments)
        entry.fields = [replace(item, comments=_text(item.comments)) for item in entry.fields]
    for file_entry in model.files:
        if "comments" in file_entry.meta:
            file_entry.meta["comments"] = _text(file_entry.meta["comments"])
    return model


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return unicodedata.normalize("NFC", str(value))


__all__ = [
    "GenerationError",
    "Orchestrator",
    "RunOutcome",
    "function_linker",
    "normalize_text",
]
