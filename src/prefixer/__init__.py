# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Public import surface for internal-symbol prefixing."""

from prefixer.applier import apply_edits
from prefixer.classifier import ClassificationResult, classify
from prefixer.config import DEFAULT_PREFIX, ConfigError, PrefixConfig, validate_config
from prefixer.pipeline import PrefixResult, prefix_internals
from prefixer.planner import RenamePlan, RenameResult, compute_renames, plan
from prefixer.snapshot import ReferenceLookupError, SnapshotError
from prefixer.surface import resolve_surface
from prefixer.writer import OutputError

__all__ = [
    "ClassificationResult",
    "ConfigError",
    "DEFAULT_PREFIX",
    "OutputError",
    "PrefixConfig",
    "PrefixResult",
    "ReferenceLookupError",
    "RenamePlan",
    "RenameResult",
    "SnapshotError",
    "apply_edits",
    "classify",
    "compute_renames",
    "plan",
    "prefix_internals",
    "resolve_surface",
    "validate_config",
]
