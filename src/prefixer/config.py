# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Run configuration for internal-symbol prefixing."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from prefixer.python.binder import DEFAULT_SAFE_DECORATORS

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "_"


class ConfigError(RuntimeError):
    """Represent invalid run configuration."""


@dataclass(frozen=True)
class PrefixConfig:
    """Represent one prefixing run.

    Attributes:
        project_path: Project root directory.
        entry_points: Entry module paths whose exports define the public API.
        out_dir: Directory receiving the rewritten project.
        prefix: Token prepended to internal names.
        dry_run: Report decisions without writing files.
        verbose: Emit debug logging.
        skip_validation: Skip compiling and checking the output.
        safe_decorators: Decorators that never read declared names.
    """

    project_path: Path
    entry_points: tuple[Path, ...]
    out_dir: Path
    prefix: str = DEFAULT_PREFIX
    dry_run: bool = False
    verbose: bool = False
    skip_validation: bool = False
    safe_decorators: frozenset[str] = field(default=DEFAULT_SAFE_DECORATORS)

    @property
    def project_root(self) -> Path:
        return self.project_path.resolve()

    def entry_paths(self) -> list[Path]:
        """Return entry paths resolved against the project root."""
        resolved: list[Path] = []
        for entry in self.entry_points:
            path = entry if entry.is_absolute() else self.project_root / entry
            if not path.exists() and not entry.is_absolute():
                path = entry.resolve()
            resolved.append(path.resolve())
        return resolved


def validate_config(config: PrefixConfig) -> None:
    """Check configuration constraints before loading the project.

    Args:
        config: Run configuration.

    Raises:
        ConfigError: If any constraint is not met.
    """
    root = config.project_root
    if not root.exists():
        raise ConfigError(f"Project path does not exist: {root}")
    if not root.is_dir():
        raise ConfigError(f"Project path must be a directory: {root}")
    if not config.entry_points:
        raise ConfigError("At least one entry point is required")
    for entry in config.entry_paths():
        if not entry.is_file():
            raise ConfigError(f"Entry point does not exist: {entry}")
    if not config.prefix or not f"{config.prefix}x".isidentifier():
        raise ConfigError(f"Prefix cannot start an identifier: {config.prefix!r}")
    if config.prefix.startswith("__"):
        raise ConfigError(f"Prefix cannot start with a double underscore: {config.prefix!r}")
    if config.dry_run:
        return
    out_dir = config.out_dir.resolve()
    if out_dir == root or root in out_dir.parents or out_dir in root.parents:
        raise ConfigError("Project and output paths must not overlap")
    if out_dir.exists() and not out_dir.is_dir():
        raise ConfigError(f"Output path must be a directory: {out_dir}")
    if out_dir.is_dir() and any(out_dir.iterdir()):
        raise ConfigError(f"Output path must be empty: {out_dir}")
    logger.debug("Configuration validated (project=%s out_dir=%s)", root, out_dir)
