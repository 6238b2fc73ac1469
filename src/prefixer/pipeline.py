# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Run surface resolution, classification, renaming and output in order."""

import logging
import time
from dataclasses import dataclass
from pathlib import Path

from prefixer.classifier import classify
from prefixer.config import ConfigError, PrefixConfig, validate_config
from prefixer.model import RenameDecision, SourceFile
from prefixer.planner import compute_renames
from prefixer.python.program import PythonProgram
from prefixer.surface import resolve_surface
from prefixer.validator import validate_output
from prefixer.writer import copy_descriptors, write_outputs

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrefixResult:
    """Represent the outcome of one prefixing run.

    Attributes:
        will_prefix: Decisions for symbols receiving the prefix.
        will_not_prefix: Decisions for symbols keeping their name.
        warnings: Dynamic access warnings.
        output_files: Source paths mapped to final text; empty for dry runs.
        rename_errors: Non-fatal per-symbol rename failures.
        validation_errors: Output failures, or ``None`` when skipped or clean.
        load_failures: Project files that could not be read or parsed.
        elapsed_ms: Wall time of the run.
    """

    will_prefix: list[RenameDecision]
    will_not_prefix: list[RenameDecision]
    warnings: list[str]
    output_files: dict[Path, str]
    rename_errors: list[str]
    validation_errors: list[str] | None
    load_failures: list[str]
    elapsed_ms: int


def prefix_internals(config: PrefixConfig) -> PrefixResult:
    """Prefix every symbol that is not part of the public API.

    Args:
        config: Run configuration.

    Returns:
        Decisions, warnings, output texts and error lists.

    Raises:
        ConfigError: If the configuration or an entry point is invalid.
        SnapshotError: If the project cannot be loaded.
        OutputError: If output files cannot be written.
    """
    started = time.monotonic()
    validate_config(config)
    program = PythonProgram.load(
        config.project_root, safe_decorators=config.safe_decorators
    )
    entries = _entry_files(program, config)

    surface = resolve_surface(program, entries)
    classification = classify(program, surface, entries, config.prefix)
    load_failures = [str(failure) for failure in program.failures]

    if config.dry_run:
        logger.info(
            "Dry run completed (prefix=%s keep=%s)",
            len(classification.to_prefix),
            len(classification.to_keep),
        )
        return PrefixResult(
            will_prefix=classification.to_prefix,
            will_not_prefix=classification.to_keep,
            warnings=classification.warnings,
            output_files={},
            rename_errors=[],
            validation_errors=None,
            load_failures=load_failures,
            elapsed_ms=_elapsed_ms(started),
        )

    renames = compute_renames(
        program.reference_service(),
        program,
        classification.symbols_to_rename,
        surface,
        classification.kept_symbols,
    )
    out_dir = config.out_dir.resolve()
    write_outputs(renames.output_files, config.project_root, out_dir)
    copy_descriptors(config.project_root, out_dir)

    validation_errors: list[str] | None = None
    if not config.skip_validation:
        failures = validate_output(out_dir, safe_decorators=config.safe_decorators)
        validation_errors = failures or None
    return PrefixResult(
        will_prefix=classification.to_prefix,
        will_not_prefix=classification.to_keep,
        warnings=classification.warnings,
        output_files=renames.output_files,
        rename_errors=renames.errors,
        validation_errors=validation_errors,
        load_failures=load_failures,
        elapsed_ms=_elapsed_ms(started),
    )


def _entry_files(program: PythonProgram, config: PrefixConfig) -> list[SourceFile]:
    entries: list[SourceFile] = []
    for path in config.entry_paths():
        source_file = program.get_source_file(path)
        if source_file is None:
            raise ConfigError(f"Entry point not found in program: {path}")
        entries.append(source_file)
    return entries


def _elapsed_ms(started: float) -> int:
    return int(round((time.monotonic() - started) * 1000))
