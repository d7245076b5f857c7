# src/main.py - v1
"""CLI entry point: one subcommand per session operation.

Usage:
    grandlib survey --mode greenfield --description-file idea.md
    grandlib interview [--topic SLUG] [--resume] [--answers FILE] [--skip REASON]
    grandlib draft [--wave N] [--doc ID] [--approve]
    grandlib reconcile [--recheck] [--resolve ID [--dismiss REASON] [--note TEXT] [--target DOC]]
    grandlib status
    grandlib add --type TYPE --title TITLE [--requires REQ ...]
    grandlib update --topic SLUG [--note TEXT]

Every failure prints the broken artifact or phase and the next command.
Exit codes: 0 ok, 1 other error, 2 setup, 3 budget, 4 worker.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from grandlibrary.config.settings import ConfigurationError, Settings, load_settings
from grandlibrary.core.errors import GrandLibraryError
from grandlibrary.logging.logger import setup_logging
from grandlibrary.version import __version__

logger = logging.getLogger(__name__)

EXIT_CODES: dict[str, int] = {"setup": 2, "budget": 3, "worker": 4, "internal": 1}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        overrides: dict[str, object] = {}
        if args.root is not None:
            overrides["project_root"] = args.root
        if args.verbose:
            overrides["log_level"] = "DEBUG"
        settings = load_settings(**overrides)
    except ConfigurationError as exc:
        print(f"error: invalid configuration: {exc}", file=sys.stderr)
        print("next: fix the values in .env", file=sys.stderr)
        return 2

    setup_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    try:
        return asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except GrandLibraryError as exc:
        _print_error(exc)
        return EXIT_CODES[exc.category]
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _print_error(exc: GrandLibraryError) -> None:
    print(f"error: {exc.message}", file=sys.stderr)
    if exc.remedy:
        print(f"next: {exc.remedy}", file=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="grandlib",
        description=f"grand-library v{__version__}: plan, interview, draft and reconcile "
        "a project documentation suite",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--root", type=Path, default=None,
        help="Project root (default: PROJECT_ROOT or the current directory)",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- survey ---
    p_survey = subparsers.add_parser("survey", help="Start a session: brief, topics, manifest")
    p_survey.add_argument(
        "--mode", choices=("greenfield", "existing"), default="greenfield",
        help="greenfield (from a description) or existing (also reads the project tree)",
    )
    group = p_survey.add_mutually_exclusive_group()
    group.add_argument("--description", default="", help="Project description text")
    group.add_argument(
        "--description-file", type=Path, default=None,
        help="File holding the project description",
    )
    p_survey.add_argument("--name", default=None, help="Project name")
    p_survey.set_defaults(func=_cmd_survey)

    # --- interview ---
    p_interview = subparsers.add_parser("interview", help="Interview the next topic")
    p_interview.add_argument("--topic", default=None, help="Interview this topic")
    p_interview.add_argument(
        "--resume", action="store_true", help="Continue at the next pending topic",
    )
    p_interview.add_argument(
        "--answers", type=Path, default=None, help="File with operator answers",
    )
    p_interview.add_argument(
        "--skip", default=None, metavar="REASON", help="Skip the topic, recording why",
    )
    p_interview.set_defaults(func=_cmd_interview)

    # --- draft ---
    p_draft = subparsers.add_parser("draft", help="Generate the current wave")
    p_draft.add_argument("--wave", type=int, default=None, help="Wave to generate")
    p_draft.add_argument("--doc", default=None, help="Generate (or regenerate) one document")
    p_draft.add_argument(
        "--approve", action="store_true", help="Approve the wave awaiting approval",
    )
    p_draft.set_defaults(func=_cmd_draft)

    # --- reconcile ---
    p_reconcile = subparsers.add_parser("reconcile", help="Cross-check the suite")
    p_reconcile.add_argument(
        "--recheck", action="store_true", help="Run all passes again from a clean slate",
    )
    p_reconcile.add_argument("--resolve", default=None, metavar="ID", help="Resolve a finding")
    p_reconcile.add_argument(
        "--dismiss", default=None, metavar="REASON", help="Dismiss the finding instead",
    )
    p_reconcile.add_argument("--note", default="", help="Note for the fix or resolution")
    p_reconcile.add_argument(
        "--target", default=None, help="Document to regenerate for a conflict",
    )
    p_reconcile.set_defaults(func=_cmd_reconcile)

    # --- status ---
    p_status = subparsers.add_parser("status", help="Show session progress")
    p_status.set_defaults(func=_cmd_status)

    # --- add ---
    p_add = subparsers.add_parser("add", help="Add a document to the manifest")
    p_add.add_argument("--type", dest="doc_type", required=True, help="Document type")
    p_add.add_argument("--title", required=True, help="Document title")
    p_add.add_argument(
        "--requires", nargs="*", default=[],
        help="Requirements: topic:<slug> or doc:<id>",
    )
    p_add.set_defaults(func=_cmd_add)

    # --- update ---
    p_update = subparsers.add_parser("update", help="Re-interview a topic and cascade")
    p_update.add_argument("--topic", required=True, help="Topic to re-interview")
    p_update.add_argument("--note", default="", help="What changed")
    p_update.set_defaults(func=_cmd_update)

    return parser


def _build_orchestrator(settings: Settings):
    from grandlibrary.dispatch.dispatcher import WorkerDispatcher
    from grandlibrary.pipeline.llm_factory import LLMFactory
    from grandlibrary.pipeline.orchestrator import PhaseOrchestrator
    from grandlibrary.storage.local_store import LocalRecordStore
    from grandlibrary.tracking.call_logger import CallLogger

    dispatcher = WorkerDispatcher(LLMFactory(settings), settings, CallLogger())
    return PhaseOrchestrator(settings, LocalRecordStore(settings.root), dispatcher)


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    orchestrator = _build_orchestrator(settings)
    try:
        result = await args.func(args, orchestrator)
    finally:
        await orchestrator.flush_calls()
    if result is None:
        return 0
    for note in result.notes:
        print(note)
    for failure in result.failures:
        _print_error(failure)
    if result.failures:
        return EXIT_CODES[result.failures[0].category]
    print(f"\n{await orchestrator.status()}")
    return 0


def _read_text(path: Path | None) -> str:
    if path is None:
        return ""
    if not path.is_file():
        raise GrandLibraryError(f"File not found: {path}", remedy="check the path and retry")
    return path.read_text(encoding="utf-8")


async def _cmd_survey(args: argparse.Namespace, orchestrator):
    description = args.description or _read_text(args.description_file)
    return await orchestrator.survey(mode=args.mode, description=description, name=args.name)


async def _cmd_interview(args: argparse.Namespace, orchestrator):
    return await orchestrator.interview(
        topic=args.topic,
        resume=args.resume,
        answers=_read_text(args.answers) or None,
        skip=args.skip,
    )


async def _cmd_draft(args: argparse.Namespace, orchestrator):
    return await orchestrator.draft(wave=args.wave, doc=args.doc, approve=args.approve)


async def _cmd_reconcile(args: argparse.Namespace, orchestrator):
    if args.resolve:
        return await orchestrator.resolve(
            args.resolve, dismiss=args.dismiss, note=args.note, target=args.target,
        )
    return await orchestrator.reconcile(recheck=args.recheck)


async def _cmd_status(args: argparse.Namespace, orchestrator) -> None:
    print(await orchestrator.status())


async def _cmd_add(args: argparse.Namespace, orchestrator):
    return await orchestrator.add(args.doc_type, args.title, args.requires)


async def _cmd_update(args: argparse.Namespace, orchestrator):
    return await orchestrator.update(args.topic, note=args.note)


if __name__ == "__main__":
    sys.exit(main())
