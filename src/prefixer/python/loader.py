# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Discover and parse the Python sources of a project."""

import ast
import logging
import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

import pathspec

from prefixer.model import SourceFile

logger = logging.getLogger(__name__)

_SKIPPED_DIR_NAMES: set[str] = {".git", "__pycache__", "site-packages"}
_SOURCE_SUFFIXES: set[str] = {".py", ".pyi"}


@dataclass(frozen=True)
class LoadFailure:
    """Represent one source file that could not be read or parsed."""

    relative_path: str
    message: str
    line: int = 0

    def __str__(self) -> str:
        return f"{self.relative_path}:{self.line}: {self.message}"


class IgnoreMatcher:
    """Match project paths against .gitignore patterns."""

    def __init__(self, spec: pathspec.GitIgnoreSpec) -> None:
        """Initialize matcher.

        Args:
            spec: Compiled gitignore matcher.
        """
        self._spec = spec

    @classmethod
    def from_project_root(cls, project_root: Path) -> "IgnoreMatcher":
        """Build matcher from root and nested .gitignore files.

        Args:
            project_root: Project root.

        Returns:
            Configured ignore matcher.

        Raises:
            OSError: If .gitignore files cannot be read.
            UnicodeDecodeError: If .gitignore files contain invalid UTF-8.
        """
        patterns: list[str] = []
        for ignore_path in sorted(project_root.rglob(".gitignore")):
            base = ignore_path.parent.relative_to(project_root).as_posix()
            if base == ".":
                base = ""
            for line in ignore_path.read_text(encoding="utf-8").splitlines():
                patterns.append(_translate_gitignore_line(line=line, base=base))
        return cls(spec=pathspec.GitIgnoreSpec.from_lines(patterns))

    def matches(self, relative_path: str, is_dir: bool) -> bool:
        """Check whether a path should be ignored.

        Args:
            relative_path: Project-relative POSIX path.
            is_dir: Whether the path is a directory.

        Returns:
            True when path should be ignored.
        """
        normalized = relative_path.replace(os.sep, "/").strip("/")
        if not normalized:
            return False
        if self._spec.match_file(normalized):
            return True
        return is_dir and self._spec.match_file(f"{normalized}/")


def discover_sources(project_root: Path) -> list[Path]:
    """List project source and stub files, honouring .gitignore rules.

    Args:
        project_root: Project root directory.

    Returns:
        Source paths in breadth-first, name-sorted order.

    Raises:
        OSError: If directories or .gitignore files cannot be read.
        UnicodeDecodeError: If .gitignore files contain invalid UTF-8.
    """
    matcher = IgnoreMatcher.from_project_root(project_root=project_root)
    found: list[Path] = []
    queue: list[Path] = [project_root]
    while queue:
        current = queue.pop(0)
        for child in sorted(current.iterdir(), key=lambda item: item.name):
            relative = child.relative_to(project_root).as_posix()
            if child.is_dir():
                if child.name in _SKIPPED_DIR_NAMES or matcher.matches(relative, True):
                    logger.debug("Skipping directory (path=%s)", relative)
                    continue
                queue.append(child)
                continue
            if child.suffix not in _SOURCE_SUFFIXES:
                continue
            if matcher.matches(relative, False):
                logger.debug("Skipping ignored source (path=%s)", relative)
                continue
            found.append(child)
    return found


def module_name_for(relative_path: str, root_name: str) -> tuple[str, bool]:
    """Derive the dotted module name of a project-relative source path.

    A leading ``src`` directory is not part of the import path.

    Args:
        relative_path: Project-relative POSIX path.
        root_name: Project directory name, used for a root ``__init__``.

    Returns:
        Module name and whether the file is a package ``__init__``.
    """
    parts = list(PurePosixPath(relative_path).with_suffix("").parts)
    if len(parts) > 1 and parts[0] == "src":
        parts = parts[1:]
    is_package = parts[-1] == "__init__"
    if is_package:
        parts = parts[:-1]
    return ".".join(parts) or root_name, is_package


def load_source(path: Path, project_root: Path) -> SourceFile:
    """Read and parse one source file.

    Args:
        path: Source path beneath the project root.
        project_root: Project root directory.

    Returns:
        Parsed source file.

    Raises:
        OSError: If the file cannot be read.
        UnicodeDecodeError: If the file is not valid UTF-8.
        SyntaxError: If the file cannot be parsed.
    """
    relative = path.relative_to(project_root).as_posix()
    # Decoding bytes keeps the original line endings intact.
    raw = path.read_bytes()
    text = raw.decode("utf-8")
    tree = ast.parse(raw, filename=str(path))
    module_name, is_package = module_name_for(relative, project_root.name)
    is_stub = path.suffix == ".pyi"
    return SourceFile(
        path=path,
        relative_path=relative,
        module_name=module_name,
        text=text,
        tree=tree,
        is_project=not is_stub,
        is_stub=is_stub,
        is_package=is_package,
    )


def load_project(project_root: Path) -> tuple[list[SourceFile], list[LoadFailure]]:
    """Load every discoverable source file of a project.

    Args:
        project_root: Project root directory.

    Returns:
        Parsed files and recoverable per-file failures.

    Raises:
        OSError: If the project tree cannot be listed.
        UnicodeDecodeError: If .gitignore files contain invalid UTF-8.
    """
    files: list[SourceFile] = []
    failures: list[LoadFailure] = []
    for path in discover_sources(project_root):
        try:
            files.append(load_source(path, project_root))
        except (OSError, UnicodeDecodeError, SyntaxError, ValueError) as exc:
            relative = path.relative_to(project_root).as_posix()
            logger.warning(
                "Skipping file due to parse/read failure (path=%s error=%s)",
                relative,
                exc,
            )
            line = (exc.lineno or 0) if isinstance(exc, SyntaxError) else 0
            failures.append(LoadFailure(relative_path=relative, message=str(exc), line=line))
    return files, failures


def _translate_gitignore_line(line: str, base: str) -> str:
    """Translate one .gitignore line to a root-relative pattern.

    Args:
        line: Original .gitignore line.
        base: Parent directory relative to project root.

    Returns:
        Root-relative pattern line.
    """
    if not base or not line or line.lstrip().startswith("#"):
        return line
    if line.startswith(r"\!") or line.startswith(r"\#"):
        return line
    is_negation = line.startswith("!")
    pattern = line[1:] if is_negation else line
    anchored = pattern.startswith("/")
    normalized_pattern = pattern[1:] if anchored else pattern
    prefixed = f"{base}/{normalized_pattern}" if normalized_pattern else base
    if anchored:
        prefixed = f"/{prefixed}"
    return f"!{prefixed}" if is_negation else prefixed
