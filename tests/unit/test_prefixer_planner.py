# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for nominal and structural rename planning."""

from pathlib import Path

from prefixer import (
    ReferenceLookupError,
    RenameResult,
    classify,
    compute_renames,
    plan,
    resolve_surface,
)
from prefixer.model import Occurrence
from prefixer.python import PythonProgram


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _rename(root: Path, prefix: str = "_") -> RenameResult:
    program = PythonProgram.load(root)
    entry_file = program.get_source_file(root / "pkg" / "__init__.py")
    assert entry_file is not None
    surface = resolve_surface(program, [entry_file])
    classification = classify(program, surface, [entry_file], prefix)
    return compute_renames(
        program.reference_service(),
        program,
        classification.symbols_to_rename,
        surface,
        classification.kept_symbols,
    )


def _output(result: RenameResult, path: Path) -> str:
    return result.output_files[path.resolve()]


class _FailingReferenceService:
    def find_rename_locations(self, path: Path, offset: int) -> list[Occurrence]:
        raise ReferenceLookupError(f"No declaration found at {path}:{offset}")


def test_pfx_301_planner_renames_declarations_and_references(sample_project: Path) -> None:
    result = _rename(sample_project)

    assert result.errors == []
    assert _output(result, sample_project / "pkg" / "core.py") == (
        "from pkg.helpers import _normalize as normalize\n"
        "\n"
        "\n"
        "class Engine:\n"
        "    def __init__(self, scale: int) -> None:\n"
        "        self.scale = scale\n"
        "        self._cache: dict[int, int] = {}\n"
        "\n"
        "    def apply(self, value: int) -> int:\n"
        "        return normalize(value) * self.scale\n"
        "\n"
        "\n"
        "class _Tracker:\n"
        "    def __init__(self) -> None:\n"
        "        self._count = 0\n"
        "\n"
        "    def _bump(self) -> int:\n"
        "        self._count += 1\n"
        "        return self._count\n"
        "\n"
        "\n"
        "def run(value: int) -> int:\n"
        "    tracker = _Tracker()\n"
        "    tracker._bump()\n"
        "    return Engine(2).apply(value)\n"
    )
    assert _output(result, sample_project / "pkg" / "helpers.py") == (
        "def _normalize(value: int) -> int:\n"
        "    return abs(value)\n"
    )


def test_pfx_302_planner_emits_untouched_files_verbatim(sample_project: Path) -> None:
    notes = sample_project / "pkg" / "notes.py"

    result = _rename(sample_project)

    assert _output(result, notes) == notes.read_bytes().decode("utf-8")
    assert "\r\n" in _output(result, notes)


def test_pfx_303_planner_renames_typed_dict_keys_in_literals_and_lookups(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.stats import summary\n\n__all__ = ["summary"]\n',
    )
    _write_file(
        root / "pkg" / "stats.py",
        (
            "from typing import TypedDict\n"
            "\n"
            "\n"
            "class Stats(TypedDict):\n"
            "    count: int\n"
            "\n"
            "\n"
            "def build_stats(count: int) -> Stats:\n"
            '    return {"count": count}\n'
            "\n"
            "\n"
            "def summary(count: int) -> int:\n"
            '    return build_stats(count)["count"]\n'
        ),
    )

    result = _rename(root)

    assert _output(result, root / "pkg" / "stats.py") == (
        "from typing import TypedDict\n"
        "\n"
        "\n"
        "class _Stats(TypedDict):\n"
        "    _count: int\n"
        "\n"
        "\n"
        "def _build_stats(count: int) -> _Stats:\n"
        '    return {"_count": count}\n'
        "\n"
        "\n"
        "def summary(count: int) -> int:\n"
        '    return _build_stats(count)["_count"]\n'
    )


def test_pfx_304_planner_renames_inline_record_keys_linked_by_name(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.geometry import Vector, length\n\n__all__ = ["length"]\n',
    )
    _write_file(
        root / "pkg" / "geometry.py",
        (
            "from __future__ import annotations\n"
            "\n"
            "from typing import TypedDict, cast\n"
            "\n"
            "\n"
            "class Vector(TypedDict):\n"
            "    n: int\n"
            "\n"
            "\n"
            "def length(value: object) -> int:\n"
            '    return cast(Vector, value)["n"]\n'
            "\n"
            "\n"
            'def norm(point: TypedDict[{"n": int, "m": int}]) -> int:\n'
            '    return point["n"] + point["m"]\n'
        ),
    )

    result = _rename(root)

    assert _output(result, root / "pkg" / "__init__.py") == (
        'from pkg.geometry import _Vector as Vector, length\n\n__all__ = ["length"]\n'
    )
    assert _output(result, root / "pkg" / "geometry.py") == (
        "from __future__ import annotations\n"
        "\n"
        "from typing import TypedDict, cast\n"
        "\n"
        "\n"
        "class _Vector(TypedDict):\n"
        "    _n: int\n"
        "\n"
        "\n"
        "def length(value: object) -> int:\n"
        '    return cast(_Vector, value)["_n"]\n'
        "\n"
        "\n"
        'def _norm(point: TypedDict[{"_n": int, "m": int}]) -> int:\n'
        '    return point["_n"] + point["m"]\n'
    )


def test_pfx_305_planner_leaves_public_properties_sharing_a_renamed_name(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.api import Request, send\n\n__all__ = ["Request", "send"]\n',
    )
    _write_file(
        root / "pkg" / "api.py",
        (
            "from typing import TypedDict\n"
            "\n"
            "\n"
            "class Request(TypedDict):\n"
            "    items: list[int]\n"
            "\n"
            "\n"
            "class Batch:\n"
            "    def __init__(self) -> None:\n"
            "        self.items: list[int] = []\n"
            "\n"
            "\n"
            "def send(request: Request) -> int:\n"
            '    return len(request["items"])\n'
            "\n"
            "\n"
            "def batch_size(batch: Batch) -> int:\n"
            "    return len(batch.items)\n"
        ),
    )

    result = _rename(root)

    output = _output(result, root / "pkg" / "api.py")
    assert "class Request(TypedDict):\n    items: list[int]\n" in output
    assert 'return len(request["items"])' in output
    assert "self._items: list[int] = []" in output
    assert "def _batch_size(batch: _Batch) -> int:\n    return len(batch._items)" in output


def test_pfx_306_planner_renames_functional_record_keys_structurally(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.shapes import total\n\n__all__ = ["total"]\n',
    )
    _write_file(
        root / "pkg" / "shapes.py",
        (
            "from typing import TypedDict\n"
            "\n"
            "\n"
            "class Box(TypedDict):\n"
            "    width: int\n"
            "\n"
            "\n"
            'Frame = TypedDict("Frame", {"width": int})\n'
            "\n"
            "\n"
            "def frame_width(frame: Frame) -> int:\n"
            '    return frame["width"]\n'
            "\n"
            "\n"
            "def box_width(box: Box) -> int:\n"
            '    return box["width"]\n'
            "\n"
            "\n"
            "def total(size: int) -> int:\n"
            '    return frame_width({"width": size}) + box_width({"width": size})\n'
        ),
    )

    result = _rename(root)

    output = _output(result, root / "pkg" / "shapes.py")
    assert '_Frame = TypedDict("_Frame", {"_width": int})' in output
    assert 'return frame["_width"]' in output
    assert 'return box["_width"]' in output
    assert "class _Box(TypedDict):\n    _width: int\n" in output
    assert (
        'return _frame_width({"_width": size}) + _box_width({"_width": size})' in output
    )


def test_pfx_307_planner_renames_record_constructor_keywords(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.config import make_depth\n\n__all__ = ["make_depth"]\n',
    )
    _write_file(
        root / "pkg" / "config.py",
        (
            "from dataclasses import dataclass\n"
            "\n"
            "\n"
            "@dataclass\n"
            "class Options:\n"
            "    depth: int = 1\n"
            "\n"
            "\n"
            "def make_depth() -> int:\n"
            "    return Options(depth=3).depth\n"
        ),
    )

    result = _rename(root)

    output = _output(result, root / "pkg" / "config.py")
    assert "class _Options:\n    _depth: int = 1\n" in output
    assert "return _Options(_depth=3)._depth" in output


def test_pfx_308_planner_reports_lookup_failures_and_continues(
    sample_project: Path,
) -> None:
    program = PythonProgram.load(sample_project)
    entry_file = program.get_source_file(sample_project / "pkg" / "__init__.py")
    assert entry_file is not None
    surface = resolve_surface(program, [entry_file])
    classification = classify(program, surface, [entry_file], "_")

    rename_plan = plan(
        _FailingReferenceService(),
        program,
        classification.symbols_to_rename,
        surface,
        classification.kept_symbols,
    )

    assert len(rename_plan.errors) == len(classification.symbols_to_rename)
    offset = (sample_project / "pkg" / "helpers.py").read_text().index("normalize")
    assert (
        f"Could not find rename locations for normalize at pkg/helpers.py:{offset}"
        in rename_plan.errors
    )


def test_pfx_309_planner_renames_names_in_global_statements(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.state import run\n\n__all__ = ["run"]\n',
    )
    _write_file(
        root / "pkg" / "state.py",
        (
            "counter = 0\n"
            "total = 0\n"
            "\n"
            "\n"
            "def run() -> int:\n"
            "    global counter, total\n"
            "    counter += 1\n"
            "    total += counter\n"
            "    return total\n"
        ),
    )

    result = _rename(root)

    assert _output(result, root / "pkg" / "state.py") == (
        "_counter = 0\n"
        "_total = 0\n"
        "\n"
        "\n"
        "def run() -> int:\n"
        "    global _counter, _total\n"
        "    _counter += 1\n"
        "    _total += _counter\n"
        "    return _total\n"
    )


def test_pfx_310_planner_renames_variant_specific_members_of_union_receivers(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.shapes import describe\n\n__all__ = ["describe"]\n',
    )
    _write_file(
        root / "pkg" / "shapes.py",
        (
            "class Circle:\n"
            "    def __init__(self, radius: int) -> None:\n"
            "        self.radius = radius\n"
            "\n"
            "\n"
            "class Square:\n"
            "    def __init__(self, side: int) -> None:\n"
            "        self.side = side\n"
            "\n"
            "\n"
            "def pick(flag: bool) -> Circle | Square:\n"
            "    return Circle(1) if flag else Square(2)\n"
            "\n"
            "\n"
            "def describe(flag: bool) -> int:\n"
            "    shape = pick(flag)\n"
            "    if isinstance(shape, Circle):\n"
            "        return shape.radius\n"
            "    return shape.side\n"
        ),
    )

    result = _rename(root)

    assert _output(result, root / "pkg" / "shapes.py") == (
        "class _Circle:\n"
        "    def __init__(self, radius: int) -> None:\n"
        "        self._radius = radius\n"
        "\n"
        "\n"
        "class _Square:\n"
        "    def __init__(self, side: int) -> None:\n"
        "        self._side = side\n"
        "\n"
        "\n"
        "def _pick(flag: bool) -> _Circle | _Square:\n"
        "    return _Circle(1) if flag else _Square(2)\n"
        "\n"
        "\n"
        "def describe(flag: bool) -> int:\n"
        "    shape = _pick(flag)\n"
        "    if isinstance(shape, _Circle):\n"
        "        return shape._radius\n"
        "    return shape._side\n"
    )


def test_pfx_311_planner_renames_matching_inline_records_across_modules(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.geometry import total\n\n__all__ = ["total"]\n',
    )
    _write_file(
        root / "pkg" / "geometry.py",
        (
            "from typing import TypedDict\n"
            "\n"
            "from pkg.left import left_norm\n"
            "from pkg.right import right_norm\n"
            "\n"
            "\n"
            "class Vector(TypedDict):\n"
            "    n: int\n"
            "\n"
            "\n"
            "def total(size: int) -> int:\n"
            '    return left_norm({"n": size}) + right_norm({"n": size})\n'
        ),
    )
    for name in ("left", "right"):
        _write_file(
            root / "pkg" / f"{name}.py",
            (
                "from __future__ import annotations\n"
                "\n"
                "from typing import TypedDict\n"
                "\n"
                "\n"
                f'def {name}_norm(point: TypedDict[{{"n": int}}]) -> int:\n'
                '    return point["n"]\n'
            ),
        )

    result = _rename(root)

    for name in ("left", "right"):
        assert _output(result, root / "pkg" / f"{name}.py") == (
            "from __future__ import annotations\n"
            "\n"
            "from typing import TypedDict\n"
            "\n"
            "\n"
            f'def _{name}_norm(point: TypedDict[{{"_n": int}}]) -> int:\n'
            '    return point["_n"]\n'
        )
    geometry = _output(result, root / "pkg" / "geometry.py")
    assert "class _Vector(TypedDict):\n    _n: int\n" in geometry
    assert 'return left_norm({"_n": size}) + right_norm({"_n": size})' in geometry


def test_pfx_312_planner_renames_named_tuple_helper_keywords_and_keys(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.points import shift\n\n__all__ = ["shift"]\n',
    )
    _write_file(
        root / "pkg" / "points.py",
        (
            "from typing import NamedTuple\n"
            "\n"
            "\n"
            "class Point(NamedTuple):\n"
            "    x: int\n"
            "\n"
            "\n"
            "def shift(value: int) -> int:\n"
            "    point = Point(value)\n"
            "    moved = point._replace(x=value + 1)\n"
            '    return moved._asdict()["x"] + moved.x\n'
        ),
    )

    result = _rename(root, prefix="internal_")

    assert _output(result, root / "pkg" / "points.py") == (
        "from typing import NamedTuple\n"
        "\n"
        "\n"
        "class internal_Point(NamedTuple):\n"
        "    internal_x: int\n"
        "\n"
        "\n"
        "def shift(value: int) -> int:\n"
        "    point = internal_Point(value)\n"
        "    moved = point._replace(internal_x=value + 1)\n"
        '    return moved._asdict()["internal_x"] + moved.internal_x\n'
    )


def test_pfx_313_planner_keeps_named_tuple_fields_sharing_a_renamed_name(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.pairs import total\n\n__all__ = ["total"]\n',
    )
    _write_file(
        root / "pkg" / "pairs.py",
        (
            "from collections import namedtuple\n"
            "\n"
            'Pair = namedtuple("Pair", ["left", "right"])\n'
            "\n"
            "\n"
            "class Node:\n"
            "    def __init__(self, left: int) -> None:\n"
            "        self.left = left\n"
            "\n"
            "\n"
            "def total(value: int) -> int:\n"
            "    pair = Pair(value, value)\n"
            "    return pair.left + Node(value).left\n"
        ),
    )

    result = _rename(root)

    assert _output(result, root / "pkg" / "pairs.py") == (
        "from collections import namedtuple\n"
        "\n"
        '_Pair = namedtuple("_Pair", ["left", "right"])\n'
        "\n"
        "\n"
        "class _Node:\n"
        "    def __init__(self, left: int) -> None:\n"
        "        self._left = left\n"
        "\n"
        "\n"
        "def total(value: int) -> int:\n"
        "    pair = _Pair(value, value)\n"
        "    return pair.left + _Node(value)._left\n"
    )


def test_pfx_314_planner_leaves_calls_through_untyped_receivers_intact(
    tmp_path: Path,
) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.jobs import poke\n\n__all__ = ["poke"]\n',
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
        ),
    )

    result = _rename(root)

    assert _output(result, root / "pkg" / "jobs.py") == (
        "class _Tracker:\n"
        "    def __init__(self) -> None:\n"
        "        self._count = 0\n"
        "\n"
        "    def bump(self) -> int:\n"
        "        self._count += 1\n"
        "        return self._count\n"
        "\n"
        "\n"
        "def poke(tracker):\n"
        "    return tracker.bump()\n"
    )
