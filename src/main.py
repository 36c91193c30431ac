# src/main.py - v1
"""CLI entry point: run, plan, verify commands.

Usage:
    pagesflow run [--source DIR] [--ref REF | --event FILE] [options]
    pagesflow plan
    pagesflow verify <output_dir>
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from pagesflow.version import __version__

if TYPE_CHECKING:
    from pagesflow.config.settings import Settings

logger = logging.getLogger("pagesflow.main")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2
EXIT_CANCELLED = 3

_STATUS_EXIT = {"succeeded": EXIT_OK, "cancelled": EXIT_CANCELLED}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    from pagesflow.config.settings import ConfigurationError, load_settings
    from pagesflow.logging.logger import setup_logging

    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_FAILED

    try:
        settings = load_settings(**_settings_overrides(args))
    except (ConfigurationError, ValueError) as exc:
        print(f"pagesflow: invalid configuration: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return EXIT_FAILED


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="pagesflow",
        description=f"pagesflow v{__version__}: build and publish a static SPA",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser("run", help="Build and publish the site")
    p_run.add_argument(
        "-s", "--source", type=Path, default=Path("."),
        help="Application checkout (default: current directory)",
    )
    p_run.add_argument(
        "--ref", default=None,
        help="Git ref that triggered the run (default: the watched branch)",
    )
    p_run.add_argument("--sha", default="", help="Commit being deployed")
    p_run.add_argument(
        "--event", type=Path, default=None,
        help="GitHub event payload JSON (overrides --ref/--sha)",
    )
    p_run.add_argument(
        "--skip-provision", action="store_true",
        help="Assume the toolchain is already installed",
    )
    p_run.add_argument(
        "--dry-run", action="store_true",
        help="Build and verify but do not publish",
    )
    p_run.add_argument(
        "--report-dir", type=Path, default=None,
        help="Write a JSON run report here",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- plan ---
    p_plan = subparsers.add_parser("plan", help="Show the phase plan")
    p_plan.set_defaults(func=_cmd_plan)

    # --- verify ---
    p_verify = subparsers.add_parser(
        "verify", help="Check a built output directory is ready to publish",
    )
    p_verify.add_argument("output_dir", type=Path, help="Built site directory")
    p_verify.set_defaults(func=_cmd_verify)

    return parser


def _settings_overrides(args: argparse.Namespace) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if getattr(args, "report_dir", None) is not None:
        overrides["report_dir"] = args.report_dir
    return overrides


async def _cmd_run(args: argparse.Namespace, settings: Settings) -> int:
    """Execute one pipeline run."""
    from pagesflow.concurrency.controller import ConcurrencyController
    from pagesflow.pipeline.runner import PipelineRunner
    from pagesflow.pipeline.trigger import TriggerEvent, should_trigger
    from pagesflow.tracking.report import build_run_report, export_run_summary

    source: Path = args.source
    if not source.is_dir():
        logger.error("Not a directory: %s", source)
        return EXIT_FAILED

    if args.event is not None:
        event = TriggerEvent.from_event_file(args.event, settings.workflow_name)
    else:
        event = TriggerEvent(
            workflow=settings.workflow_name,
            ref=args.ref or f"refs/heads/{settings.watched_branch}",
            sha=args.sha,
        )

    if not should_trigger(event, settings.watched_branch):
        print(f"Nothing to do for {event.event_name} on {event.ref}")
        return EXIT_OK

    # Registry shared with concurrent `pagesflow run` processes on this host.
    controller = ConcurrencyController(
        state_dir=settings.staging_root.expanduser() / "groups"
    )
    runner = PipelineRunner(
        settings,
        controller=controller,
        provision=not args.skip_provision,
        publish=not args.dry_run,
    )
    state = await runner.execute(event, source.resolve())
    print(export_run_summary(build_run_report(state)))
    return _STATUS_EXIT.get(state.status, EXIT_FAILED)


async def _cmd_plan(args: argparse.Namespace, settings: Settings) -> int:
    """Print the phase sequence with the commands each phase runs."""
    from pagesflow.build.commands import phase_invocations, render_command
    from pagesflow.config.phases import RUN_PHASES

    invocations = phase_invocations(settings)
    out = settings.output_dir
    notes = {
        "provision": (
            f"rustup {settings.toolchain_channel} "
            f"[{', '.join(settings.toolchain_targets_list)}] + "
            f"{', '.join(crate for crate, _ in settings.cli_tools_list)}"
        ),
        "fallback_snapshot": f"{out / settings.index_file} -> {out / settings.fallback_file} (pre-search)",
        "fallback_sync": f"{out / settings.index_file} -> {out / settings.fallback_file} (search-enabled)",
        "handoff": f"verify {settings.index_file} == {settings.fallback_file}, stage copy",
        "publish": (
            f"{out} -> {settings.publish_branch}:{settings.target_folder} "
            "(non-destructive)"
        ),
    }
    for idx, phase in enumerate(RUN_PHASES, start=1):
        if phase in invocations:
            detail = " ".join(render_command(invocations[phase], settings))
        else:
            detail = notes.get(phase, "")
        print(f"{idx}. {phase:<18} {detail}")
    return EXIT_OK


async def _cmd_verify(args: argparse.Namespace, settings: Settings) -> int:
    """Check hand-off invariants of an existing output directory."""
    from pagesflow.build.orchestrator import verify_output_dir
    from pagesflow.core.errors import HandoffError

    output_dir: Path = args.output_dir
    if not output_dir.is_dir():
        logger.error("Not a directory: %s", output_dir)
        return EXIT_FAILED
    try:
        digest = verify_output_dir(output_dir, settings)
    except HandoffError as exc:
        print(f"FAIL {exc}")
        return EXIT_FAILED
    print(f"OK {settings.index_file} == {settings.fallback_file} ({digest[:12]})")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
