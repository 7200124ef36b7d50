"""CLI entrypoints for capidocs commands."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .checks import format_locations, format_report
from .config import CONFIG_FILENAMES, ConfigError, default_config_template, load_config
from .git.store import GitStore, IdentityError, StoreError
from .logging import TraceFilter, configure_logging
from .orchestrator import Orchestrator
from .versions import UnknownVersionError

FATAL_ERRORS = (ConfigError, IdentityError, UnknownVersionError, StoreError)


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_log_file_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "--log-file",
        type=Path,
        default=argparse.SUPPRESS if suppress_default else None,
        metavar="PATH",
        help="Also write log records to this file.",
    )


def _add_config_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        default=CONFIG_FILENAMES[0],
        help="Path to the configuration file or its directory (defaults to ./capidocs.json).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="capidocs",
        description="Build versioned C API documentation from a git history.",
    )
    _add_verbose_option(parser)
    _add_log_file_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    doc_parser = subparsers.add_parser(
        "doc",
        help="Generate documentation for every release and commit it to the docs branch.",
    )
    _add_verbose_option(doc_parser, suppress_default=True)
    _add_log_file_option(doc_parser, suppress_default=True)
    _add_config_option(doc_parser)
    doc_parser.add_argument(
        "--for",
        dest="versions",
        action="append",
        default=[],
        metavar="VERSION",
        help="Only generate documentation for this version (repeatable).",
    )
    doc_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Generate everything but do not write the commit.",
    )
    doc_parser.add_argument(
        "--only-missing",
        action="store_true",
        help="Reuse documentation already built on the docs branch.",
    )
    doc_parser.add_argument(
        "--tally-order",
        choices=("version", "completion"),
        default=None,
        help="Order in which finished versions are folded into the signature history.",
    )
    doc_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of versions generated concurrently.",
    )
    doc_parser.add_argument("--debug", action="store_true", help="Trace every record.")
    doc_parser.add_argument(
        "--debug-file", action="append", default=[], metavar="PATH", help="Trace records of a header."
    )
    doc_parser.add_argument(
        "--debug-function",
        action="append",
        default=[],
        metavar="NAME",
        help="Trace a function or callback.",
    )
    doc_parser.add_argument(
        "--debug-type", action="append", default=[], metavar="NAME", help="Trace a type."
    )

    check_parser = subparsers.add_parser(
        "check",
        help="Check the latest release and HEAD for documentation problems.",
    )
    _add_verbose_option(check_parser, suppress_default=True)
    _add_log_file_option(check_parser, suppress_default=True)
    _add_config_option(check_parser)

    gen_parser = subparsers.add_parser(
        "gen",
        help="Write a starter configuration file.",
    )
    _add_verbose_option(gen_parser, suppress_default=True)
    _add_log_file_option(gen_parser, suppress_default=True)
    gen_parser.add_argument(
        "name",
        nargs="?",
        default=None,
        help="Project name (defaults to the current directory name).",
    )
    gen_parser.add_argument(
        "-o",
        "--output",
        default=CONFIG_FILENAMES[0],
        help="Where to write the configuration (defaults to ./capidocs.json).",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for capidocs commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    trace = TraceFilter.from_options(
        everything=bool(getattr(args, "debug", False)),
        files=getattr(args, "debug_file", ()),
        functions=getattr(args, "debug_function", ()),
        types=getattr(args, "debug_type", ()),
    )
    configure_logging(
        verbose=bool(args.verbose) or trace.active,
        log_file=args.log_file,
    )

    if args.command == "gen":
        _run_gen(parser, args)
        return

    try:
        config = load_config(Path(args.config))
        store = GitStore(config.root)
        orchestrator = Orchestrator(
            store,
            config,
            trace=trace,
            tally_order=getattr(args, "tally_order", None),
            workers=getattr(args, "workers", None),
        )
        if args.command == "doc":
            _run_doc(orchestrator, args)
        elif args.command == "check":
            warnings = orchestrator.check_warnings()
            for line in format_locations(warnings):
                print(line)
        else:  # pragma: no cover - argparse enforces choices
            parser.exit(1, "Unknown command\n")
    except FATAL_ERRORS as exc:
        parser.exit(1, f"capidocs {args.command} failed: {exc}\n")


def _run_doc(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    outcome = orchestrator.generate_docs(
        dry_run=bool(args.dry_run),
        only_missing=bool(args.only_missing),
        requested=list(args.versions),
    )
    if outcome.warnings:
        print("* checking your api")
        for line in format_report(outcome.warnings):
            print(line)
    for version in outcome.failed:
        print(f"generation failed for {version}")
    if outcome.dry_run:
        print(f"Dry run: documentation for {len(outcome.versions)} versions not written")
    elif outcome.commit:
        print(f"Documentation committed as {outcome.commit}")


def _run_gen(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    output = Path(args.output)
    if output.exists():
        parser.exit(1, f"{output} already exists\n")
    name = args.name or Path.cwd().name
    output.write_text(json.dumps(default_config_template(name), indent=2) + "\n", encoding="utf-8")
    print(f"Configuration written to {output}")


if __name__ == "__main__":
    main(sys.argv[1:])
