# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Run the internal-symbol prefixing flow from the command line."""

import argparse
import logging
import sys
from pathlib import Path
from typing import TextIO

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from prefixer import (
    DEFAULT_PREFIX,
    ConfigError,
    OutputError,
    PrefixConfig,
    PrefixResult,
    SnapshotError,
    prefix_internals,
    validate_config,
)
from prefixer.model import RenameDecision
from prefixer.python import DEFAULT_SAFE_DECORATORS

logger = logging.getLogger(__name__)

TABLE_COLUMN_RATIOS: dict[str, int] = {
    "symbol": 3,
    "kind": 1,
    "location": 3,
    "new_name": 2,
    "reason": 3,
}


def configure_logging(level: int = logging.INFO) -> None:
    """Configure application logging with Rich handler.

    Args:
        level: Logging severity threshold.
    """
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        prog="surface-prefixer",
        description="Prefix every symbol that is not part of a project's public API.",
    )
    parser.add_argument("-p", "--project", required=True, help="Project root directory.")
    parser.add_argument(
        "-e",
        "--entry",
        action="append",
        required=True,
        help="Entry module whose exports form the public API (repeatable).",
    )
    parser.add_argument(
        "-o", "--out-dir", required=True, help="Directory receiving the rewritten project."
    )
    parser.add_argument(
        "--prefix", default=DEFAULT_PREFIX, help="Prefix for internal names."
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Report decisions without writing files."
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    parser.add_argument(
        "--skip-validation",
        action="store_true",
        help="Do not check that the output compiles and resolves.",
    )
    parser.add_argument(
        "--safe-decorator",
        action="append",
        default=[],
        help="Decorator (qualified or short name) that never reads names (repeatable).",
    )
    return parser


def run(argv: list[str], stdout: TextIO, stderr: TextIO) -> int:
    """Run prefixing command.

    Args:
        argv: CLI arguments.
        stdout: Standard output stream.
        stderr: Standard error stream.

    Returns:
        Exit code.
    """
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit:
        logger.warning("Argument parsing failed (argv=%s)", argv)
        return 2
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    console = Console(file=stdout, force_terminal=False, color_system="truecolor")
    config = PrefixConfig(
        project_path=Path(args.project),
        entry_points=tuple(Path(entry) for entry in args.entry),
        out_dir=Path(args.out_dir),
        prefix=args.prefix,
        dry_run=args.dry_run,
        verbose=args.verbose,
        skip_validation=args.skip_validation,
        safe_decorators=DEFAULT_SAFE_DECORATORS | frozenset(args.safe_decorator),
    )
    _emit_marker(console=console, phase="validation", state="start")
    try:
        validate_config(config)
    except ConfigError as exc:
        logger.warning("Validation failed (error=%s)", exc)
        stderr.write(f"{exc}\n")
        return 2
    _emit_marker(console=console, phase="validation", state="done")

    try:
        result = prefix_internals(config)
    except (ConfigError, SnapshotError) as exc:
        logger.warning("Analysis failed (error=%s)", exc)
        stderr.write(f"{exc}\n")
        return 2
    except OutputError as exc:
        logger.warning("Write failed (error=%s)", exc)
        stderr.write(f"Write failed: {exc}\n")
        return 2
    _emit_marker(console=console, phase="analysis", state="done")
    for failure in result.load_failures:
        stderr.write(f"Skipped unreadable file: {failure}\n")

    if config.dry_run:
        _write_decisions(console, "WILL PREFIX (internal):", result.will_prefix)
        _write_decisions(console, "WILL NOT PREFIX (public API):", result.will_not_prefix)
        _write_warnings(console, result.warnings)
        _emit_summary(console=console, summary=_summary(result))
        return 0

    _emit_marker(console=console, phase="write", state="done")
    _emit_summary(console=console, summary=_summary(result))
    console.print(f"Prefixed {len(result.will_prefix)} symbols.")
    console.print(f"Skipped {len(result.will_not_prefix)} public API symbols.")
    _write_warnings(console, result.warnings)
    if result.rename_errors:
        console.print("RENAME ERRORS:")
        for error in result.rename_errors:
            console.print(f"  {error}", markup=False, soft_wrap=True)
    if result.validation_errors:
        console.print("OUTPUT VALIDATION FAILED:")
        for failure in result.validation_errors:
            console.print(f"  {failure}", markup=False, soft_wrap=True)
        return 1
    if config.skip_validation:
        console.print("Output validation skipped.")
    else:
        console.print("Output compiles successfully.")
    return 1 if result.rename_errors else 0


def _emit_marker(console: Console, phase: str, state: str) -> None:
    console.print(f"{phase}:{state}")


def _emit_summary(console: Console, summary: dict[str, int]) -> None:
    fields = " ".join(f"{key}={value}" for key, value in summary.items())
    console.print(fields)


def _summary(result: PrefixResult) -> dict[str, int]:
    return {
        "symbols_prefixed": len(result.will_prefix),
        "symbols_kept": len(result.will_not_prefix),
        "warnings": len(result.warnings),
        "files_written": len(result.output_files),
        "rename_errors": len(result.rename_errors),
        "elapsed_ms": result.elapsed_ms,
    }


def _write_decisions(console: Console, title: str, decisions: list[RenameDecision]) -> None:
    """Print classification decisions as one table.

    Args:
        console: Output console.
        title: Section heading.
        decisions: Decisions to list.
    """
    console.print(title)
    if not decisions:
        console.print("  (none)")
        return
    table = Table(show_header=True, show_lines=True, expand=True)
    table.add_column("symbol", ratio=TABLE_COLUMN_RATIOS["symbol"], overflow="fold")
    table.add_column("kind", ratio=TABLE_COLUMN_RATIOS["kind"], overflow="fold")
    table.add_column("location", ratio=TABLE_COLUMN_RATIOS["location"], overflow="fold")
    table.add_column("new_name", ratio=TABLE_COLUMN_RATIOS["new_name"], overflow="fold")
    table.add_column("reason", ratio=TABLE_COLUMN_RATIOS["reason"], overflow="fold")
    for decision in decisions:
        table.add_row(
            decision.qualified_name,
            decision.kind,
            f"{decision.file_path}:{decision.line}",
            decision.new_name,
            decision.reason,
        )
    console.print(table)


def _write_warnings(console: Console, warnings: list[str]) -> None:
    if not warnings:
        return
    console.print("WARNINGS:")
    for warning in warnings:
        console.print(f"  {warning}", markup=False, soft_wrap=True)


def main() -> None:
    """Run prefixing CLI."""
    configure_logging()
    exit_code = run(sys.argv[1:], stdout=sys.stdout, stderr=sys.stderr)
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
