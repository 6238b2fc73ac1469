# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Apply positional text edits to source files."""

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from prefixer.model import Edit

logger = logging.getLogger(__name__)


def apply_edits(edits: Iterable[Edit], sources: Mapping[Path, str]) -> dict[Path, str]:
    """Apply deduplicated edits and return the final text of every file.

    Edits for the same ``(start, length)`` span collapse to the last one
    proposed. Surviving edits are applied from the highest offset down so
    earlier offsets stay valid. Files without edits are returned verbatim.

    Args:
        edits: Proposed edits in discovery order.
        sources: Original text keyed by file path.

    Returns:
        Final text keyed by file path, covering every input file.
    """
    by_file: dict[Path, dict[tuple[int, int], Edit]] = {}
    for edit in edits:
        if edit.path not in sources:
            logger.debug("Skipping edit outside project sources (path=%s)", edit.path)
            continue
        by_file.setdefault(edit.path, {})[(edit.start, edit.length)] = edit

    output: dict[Path, str] = {}
    for path, text in sources.items():
        file_edits = by_file.get(path)
        if not file_edits:
            output[path] = text
            continue
        output[path] = _apply_file_edits(path, text, file_edits.values())
    return output


def _apply_file_edits(path: Path, text: str, edits: Iterable[Edit]) -> str:
    ordered = sorted(edits, key=lambda item: (item.start, item.length), reverse=True)
    patched = text
    lower_bound = len(text) + 1
    for edit in ordered:
        end = edit.start + edit.length
        if end > lower_bound or edit.start < 0 or end > len(text):
            logger.warning(
                "Skipping overlapping edit (path=%s start=%s length=%s)",
                path,
                edit.start,
                edit.length,
            )
            continue
        patched = patched[: edit.start] + edit.new_text + patched[end:]
        lower_bound = edit.start
    return patched
