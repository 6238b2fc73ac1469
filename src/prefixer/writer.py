# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Place rewritten files below the output directory."""

import logging
import shutil
from pathlib import Path, PurePath

logger = logging.getLogger(__name__)

EXTERNAL_DIR_NAME = "__external__"
DESCRIPTOR_FILE_NAMES: tuple[str, ...] = (
    "pyproject.toml",
    "setup.cfg",
    "setup.py",
    ".gitignore",
)


class OutputError(RuntimeError):
    """Represent failure to place or write an output file."""


def resolve_output_path(source_path: Path, project_root: Path, out_dir: Path) -> Path:
    """Map a source path to its location in the output tree.

    Files under the project root keep their relative path. Other files land
    under ``__external__`` with parent-directory segments neutralized.

    Args:
        source_path: Absolute source file path.
        project_root: Absolute project root.
        out_dir: Absolute output directory.

    Returns:
        Output path.

    Raises:
        OutputError: If the path would resolve outside the output directory.
    """
    try:
        relative = PurePath(source_path.relative_to(project_root))
    except ValueError:
        parts = [
            "__up__" if part == ".." else part
            for part in source_path.parts
            if part not in (source_path.anchor, ".")
        ]
        relative = PurePath(EXTERNAL_DIR_NAME, *parts)
    destination = (out_dir / relative).resolve()
    root = out_dir.resolve()
    if destination != root and root not in destination.parents:
        raise OutputError(f"Refusing to write outside output directory: {destination}")
    return destination


def write_outputs(
    output_files: dict[Path, str], project_root: Path, out_dir: Path
) -> list[Path]:
    """Write every output file through a sibling temporary file.

    Args:
        output_files: Source paths mapped to final text.
        project_root: Absolute project root.
        out_dir: Output directory.

    Returns:
        Written output paths.

    Raises:
        OutputError: If a file cannot be placed or written.
    """
    written: list[Path] = []
    for source_path, text in sorted(output_files.items()):
        destination = resolve_output_path(source_path, project_root, out_dir)
        tmp_path = destination.with_suffix(f"{destination.suffix}.tmp")
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8", newline="") as handle:
                handle.write(text)
            tmp_path.replace(destination)
        except OSError as exc:
            logger.warning("Failed writing file (path=%s error=%s)", destination, exc)
            raise OutputError(f"Failed writing {destination}: {exc}") from exc
        written.append(destination)
    logger.info("Output files written (count=%s out_dir=%s)", len(written), out_dir)
    return written


def copy_descriptors(project_root: Path, out_dir: Path) -> list[Path]:
    """Copy project descriptor files verbatim when present at the root.

    Args:
        project_root: Absolute project root.
        out_dir: Output directory.

    Returns:
        Copied output paths.

    Raises:
        OutputError: If a descriptor cannot be copied.
    """
    copied: list[Path] = []
    for name in DESCRIPTOR_FILE_NAMES:
        source = project_root / name
        if not source.is_file():
            continue
        destination = out_dir / name
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)
        except OSError as exc:
            logger.warning("Failed copying descriptor (path=%s error=%s)", source, exc)
            raise OutputError(f"Failed copying {source}: {exc}") from exc
        copied.append(destination)
    return copied
