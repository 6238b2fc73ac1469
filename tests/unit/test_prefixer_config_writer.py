# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for run configuration checks and output placement."""

from pathlib import Path

import pytest

from prefixer import ConfigError, OutputError, PrefixConfig, validate_config
from prefixer.writer import (
    EXTERNAL_DIR_NAME,
    copy_descriptors,
    resolve_output_path,
    write_outputs,
)


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _config(project: Path, out_dir: Path, **overrides: object) -> PrefixConfig:
    values: dict[str, object] = {
        "project_path": project,
        "entry_points": (Path("pkg/__init__.py"),),
        "out_dir": out_dir,
    }
    values.update(overrides)
    return PrefixConfig(**values)


def test_pfx_411_config_rejects_missing_project(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Project path does not exist"):
        validate_config(_config(tmp_path / "missing", tmp_path / "out"))


def test_pfx_412_config_rejects_missing_entry_point(sample_project: Path, tmp_path: Path) -> None:
    config = _config(
        sample_project, tmp_path / "out", entry_points=(Path("pkg/absent.py"),)
    )

    with pytest.raises(ConfigError, match="Entry point does not exist"):
        validate_config(config)


def test_pfx_413_config_requires_an_entry_point(sample_project: Path, tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="At least one entry point is required"):
        validate_config(_config(sample_project, tmp_path / "out", entry_points=()))


def test_pfx_414_config_rejects_prefix_that_cannot_start_identifier(
    sample_project: Path, tmp_path: Path
) -> None:
    with pytest.raises(ConfigError, match="Prefix cannot start an identifier"):
        validate_config(_config(sample_project, tmp_path / "out", prefix="1x"))


def test_pfx_415_config_rejects_overlapping_and_non_empty_output(
    sample_project: Path, tmp_path: Path
) -> None:
    with pytest.raises(ConfigError, match="must not overlap"):
        validate_config(_config(sample_project, sample_project / "out"))

    out_dir = tmp_path / "out"
    _write_file(out_dir / "existing.txt", "hello")
    with pytest.raises(ConfigError, match="Output path must be empty"):
        validate_config(_config(sample_project, out_dir))


def test_pfx_416_config_skips_output_checks_for_dry_run(
    sample_project: Path, tmp_path: Path
) -> None:
    out_dir = tmp_path / "out"
    _write_file(out_dir / "existing.txt", "hello")

    validate_config(_config(sample_project, out_dir, dry_run=True))


def test_pfx_417_writer_places_project_and_external_files(tmp_path: Path) -> None:
    project = tmp_path / "project"
    out_dir = tmp_path / "out"

    inside = resolve_output_path(project / "pkg" / "mod.py", project, out_dir)
    outside = resolve_output_path(tmp_path / "vendor" / "lib.py", project, out_dir)

    assert inside == (out_dir / "pkg" / "mod.py").resolve()
    assert outside.is_relative_to((out_dir / EXTERNAL_DIR_NAME).resolve())
    assert outside.name == "lib.py"


def test_pfx_418_writer_preserves_line_endings(tmp_path: Path) -> None:
    project = tmp_path / "project"
    out_dir = tmp_path / "out"
    source = project / "pkg" / "mod.py"

    written = write_outputs({source: "a = 1\r\nb = 2\n"}, project, out_dir)

    assert written == [(out_dir / "pkg" / "mod.py").resolve()]
    assert written[0].read_bytes() == b"a = 1\r\nb = 2\n"
    assert not written[0].with_suffix(".py.tmp").exists()


def test_pfx_419_writer_copies_descriptor_files(tmp_path: Path) -> None:
    project = tmp_path / "project"
    out_dir = tmp_path / "out"
    _write_file(project / "pyproject.toml", '[project]\nname = "pkg"\n')
    _write_file(project / ".gitignore", "build/\n")

    copied = copy_descriptors(project, out_dir)

    assert sorted(path.name for path in copied) == [".gitignore", "pyproject.toml"]
    assert (out_dir / ".gitignore").read_text(encoding="utf-8") == "build/\n"


def test_pfx_420_writer_raises_output_error_when_target_is_directory(
    tmp_path: Path,
) -> None:
    project = tmp_path / "project"
    out_dir = tmp_path / "out"
    (out_dir / "pkg" / "mod.py").mkdir(parents=True)

    with pytest.raises(OutputError, match="Failed writing"):
        write_outputs({project / "pkg" / "mod.py": "x = 1\n"}, project, out_dir)


def test_pfx_421_config_rejects_name_mangling_prefix(
    sample_project: Path, tmp_path: Path
) -> None:
    with pytest.raises(ConfigError, match="Prefix cannot start with a double underscore"):
        validate_config(_config(sample_project, tmp_path / "out", prefix="__"))

    validate_config(_config(sample_project, tmp_path / "out", prefix="_x_"))
