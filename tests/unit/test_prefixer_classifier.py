# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for prefix/keep classification."""

from pathlib import Path

from prefixer import ClassificationResult, classify, resolve_surface
from prefixer.python import PythonProgram


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _classify(root: Path, prefix: str = "_") -> ClassificationResult:
    program = PythonProgram.load(root)
    entry_file = program.get_source_file(root / "pkg" / "__init__.py")
    assert entry_file is not None
    surface = resolve_surface(program, [entry_file])
    return classify(program, surface, [entry_file], prefix)


def _reasons(result: ClassificationResult, prefixed: bool) -> dict[str, str]:
    decisions = result.to_prefix if prefixed else result.to_keep
    return {decision.qualified_name: decision.reason for decision in decisions}


def test_pfx_201_classifier_applies_container_policies(sample_project: Path) -> None:
    result = _classify(sample_project)

    assert _reasons(result, prefixed=True) == {
        "setup_logging": "internal function (not exported by entry module)",
        "Tracker": "internal class",
        "Tracker.bump": "member of internal class",
        "Tracker.count": "member of internal class",
        "normalize": "internal function",
    }
    assert _reasons(result, prefixed=False) == {
        "Engine": "public API",
        "Engine.apply": "public API member",
        "Engine.scale": "public API member",
        "run": "public API",
    }
    assert result.warnings == []


def test_pfx_202_classifier_reports_new_names_and_locations(sample_project: Path) -> None:
    result = _classify(sample_project)

    decisions = {decision.qualified_name: decision for decision in result.to_prefix}
    tracker = decisions["Tracker"]
    assert tracker.new_name == "_Tracker"
    assert tracker.kind == "class"
    assert tracker.file_path == "pkg/core.py"
    assert tracker.line == 13
    assert decisions["Tracker.count"].kind == "property"
    assert decisions["Tracker.count"].line == 15
    kept = {decision.qualified_name: decision for decision in result.to_keep}
    assert kept["Engine"].new_name == "Engine"


def test_pfx_203_classifier_skips_reserved_and_prefixed_names(sample_project: Path) -> None:
    result = _classify(sample_project)

    names = {
        decision.symbol_name for decision in [*result.to_prefix, *result.to_keep]
    }
    assert "__init__" not in names
    assert "__all__" not in names
    assert "_bootstrap" not in names
    assert "_cache" not in names


def test_pfx_204_classifier_decisions_are_disjoint(sample_project: Path) -> None:
    result = _classify(sample_project)

    assert not set(result.symbols_to_rename) & result.kept_symbols
    assert len(result.symbols_to_rename) == len(result.to_prefix)
    assert len(result.kept_symbols) == len(result.to_keep)


def test_pfx_205_classifier_keeps_reflection_sensitive_declarations(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(root / "pkg" / "__init__.py", "__all__ = []\n")
    _write_file(
        root / "pkg" / "registry.py",
        (
            "HANDLERS: dict[str, object] = {}\n"
            "\n"
            "\n"
            "def register(target):\n"
            "    HANDLERS[target.__name__] = target\n"
            "    return target\n"
            "\n"
            "\n"
            "@register\n"
            "class Plugin:\n"
            "    @register\n"
            "    def handle(self) -> None:\n"
            "        return None\n"
            "\n"
            "    def helper(self) -> None:\n"
            "        return None\n"
        ),
    )

    result = _classify(root)

    kept = _reasons(result, prefixed=False)
    prefixed = _reasons(result, prefixed=True)
    assert kept["Plugin"] == "reflection-sensitive decorator"
    assert kept["Plugin.handle"] == "reflection-sensitive decorator"
    assert prefixed["Plugin.helper"] == "member of internal class"
    assert prefixed["register"] == "internal function"
    assert prefixed["HANDLERS"] == "internal variable"


def test_pfx_206_classifier_warns_about_dynamic_access(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(root / "pkg" / "__init__.py", "__all__ = []\n")
    _write_file(
        root / "pkg" / "access.py",
        (
            "from typing import TypedDict\n"
            "\n"
            "\n"
            "class Stats(TypedDict):\n"
            "    count: int\n"
            "\n"
            "\n"
            "def lookup(obj: object, name: str) -> object:\n"
            "    return getattr(obj, name)\n"
            "\n"
            "\n"
            "def literal(obj: object) -> object:\n"
            '    return getattr(obj, "count")\n'
            "\n"
            "\n"
            "def pick(stats: Stats, key: str) -> int:\n"
            "    return stats[key]\n"
        ),
    )

    result = _classify(root)

    assert result.warnings == [
        "Dynamic attribute access at pkg/access.py:9 - may break after prefixing",
        "Dynamic key access at pkg/access.py:17 - may break after prefixing",
    ]


def test_pfx_207_classifier_pins_overrides_of_public_and_external_members(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.workers import Base\n\n__all__ = ["Base"]\n',
    )
    _write_file(
        root / "pkg" / "workers.py",
        (
            "import threading\n"
            "\n"
            "\n"
            "class Base:\n"
            "    def run(self) -> None:\n"
            "        return None\n"
            "\n"
            "\n"
            "class Worker(Base):\n"
            "    def run(self) -> None:\n"
            "        return None\n"
            "\n"
            "    def extra(self) -> None:\n"
            "        return None\n"
            "\n"
            "\n"
            "class Runner(threading.Thread):\n"
            "    def run(self) -> None:\n"
            "        return None\n"
        ),
    )

    result = _classify(root)

    kept = _reasons(result, prefixed=False)
    prefixed = _reasons(result, prefixed=True)
    assert kept["Worker.run"] == "overrides public or external member"
    assert kept["Runner.run"] == "overrides public or external member"
    assert prefixed["Worker"] == "internal class"
    assert prefixed["Worker.extra"] == "member of internal class"
    assert prefixed["Runner"] == "internal class"


def test_pfx_208_classifier_applies_interface_and_enum_policies(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.kinds import Color, Reader\n\n__all__ = ["Color", "Reader"]\n',
    )
    _write_file(
        root / "pkg" / "kinds.py",
        (
            "from enum import Enum\n"
            "from typing import Protocol\n"
            "\n"
            "\n"
            "class Reader(Protocol):\n"
            "    def read(self) -> bytes: ...\n"
            "\n"
            "\n"
            "class Writer(Protocol):\n"
            "    def write(self, data: bytes) -> None: ...\n"
            "\n"
            "\n"
            "class Color(Enum):\n"
            "    RED = 1\n"
            "\n"
            "\n"
            "class Shade(Enum):\n"
            "    DARK = 1\n"
        ),
    )

    result = _classify(root)

    kept = _reasons(result, prefixed=False)
    prefixed = _reasons(result, prefixed=True)
    assert kept["Reader"] == "public API"
    assert kept["Reader.read"] == "public API member"
    assert kept["Color.RED"] == "public API enum member"
    assert prefixed["Writer"] == "internal interface"
    assert prefixed["Writer.write"] == "member of internal interface"
    assert prefixed["Shade"] == "internal enum"
    assert prefixed["Shade.DARK"] == "member of internal enum"


def test_pfx_209_classifier_renames_nothing_in_already_prefixed_project(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.core import run\n\n__all__ = ["run"]\n',
    )
    _write_file(
        root / "pkg" / "core.py",
        (
            "class _Tracker:\n"
            "    def __init__(self) -> None:\n"
            "        self._count = 0\n"
            "\n"
            "\n"
            "def _helper() -> int:\n"
            "    return _Tracker()._count\n"
            "\n"
            "\n"
            "def run() -> int:\n"
            "    return _helper()\n"
        ),
    )

    result = _classify(root)

    assert result.to_prefix == []
    assert _reasons(result, prefixed=False) == {"run": "public API"}


def test_pfx_210_classifier_uses_configured_prefix(sample_project: Path) -> None:
    result = _classify(sample_project, prefix="internal_")

    new_names = {decision.qualified_name: decision.new_name for decision in result.to_prefix}
    assert new_names["Tracker"] == "internal_Tracker"
    assert new_names["normalize"] == "internal_normalize"


def test_pfx_211_classifier_keeps_named_tuple_fields_for_underscore_prefix(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.points import origin\n\n__all__ = ["origin"]\n',
    )
    _write_file(
        root / "pkg" / "points.py",
        (
            "from typing import NamedTuple\n"
            "\n"
            "\n"
            "class Point(NamedTuple):\n"
            "    x: int\n"
            "    y: int = 0\n"
            "\n"
            "    def norm(self) -> int:\n"
            "        return abs(self.x) + abs(self.y)\n"
            "\n"
            "\n"
            "def origin() -> int:\n"
            "    return Point(0).norm()\n"
        ),
    )

    result = _classify(root)

    kept = _reasons(result, prefixed=False)
    prefixed = _reasons(result, prefixed=True)
    assert kept["Point.x"] == "NamedTuple field names cannot start with underscore"
    assert kept["Point.y"] == "NamedTuple field names cannot start with underscore"
    assert prefixed["Point"] == "internal class"
    assert prefixed["Point.norm"] == "member of internal class"
    named = _reasons(_classify(root, prefix="internal_"), prefixed=True)
    assert named["Point.x"] == "member of internal class"


def test_pfx_212_classifier_keeps_members_reached_through_untyped_receivers(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.jobs import poke, size\n\n__all__ = ["poke", "size"]\n',
    )
    _write_file(
        root / "pkg" / "jobs.py",
        (
            "class Tracker:\n"
            "    def __init__(self) -> None:\n"
            "        self.count = 0\n"
            "\n"
            "    def bump(self) -> int:\n"
            "        self.count += 1\n"
            "        return self.count\n"
            "\n"
            "\n"
            "def poke(tracker):\n"
            "    return tracker.bump()\n"
            "\n"
            "\n"
            "def size(items: list[int]) -> int:\n"
            "    return items.count(1)\n"
        ),
    )

    result = _classify(root)

    kept = _reasons(result, prefixed=False)
    prefixed = _reasons(result, prefixed=True)
    assert kept["Tracker.bump"] == "accessed through untyped receiver"
    assert prefixed["Tracker.count"] == "member of internal class"
    assert prefixed["Tracker"] == "internal class"
    assert result.warnings == [
        "Untyped receiver for 'bump' at pkg/jobs.py:11 - kept unprefixed"
    ]
