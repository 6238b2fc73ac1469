# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for public surface resolution."""

from pathlib import Path

from prefixer import resolve_surface
from prefixer.model import Symbol
from prefixer.python import PythonProgram


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _surface_names(root: Path, entry: str = "pkg/__init__.py") -> set[str]:
    program = PythonProgram.load(root)
    entry_file = program.get_source_file(root / entry)
    assert entry_file is not None
    surface = resolve_surface(program, [entry_file])
    return {_display(symbol) for symbol in surface if _is_reported(symbol)}


def _is_reported(symbol: Symbol) -> bool:
    return symbol.kind not in ("external", "module") and symbol.is_project_local


def _display(symbol: Symbol) -> str:
    parent = symbol.parent
    if parent is not None and parent.is_container and "anonymous" not in parent.flags:
        return f"{parent.name}.{symbol.name}"
    return symbol.name


def test_pfx_101_surface_follows_signature_types(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.api import Client\n\n__all__ = ["Client"]\n',
    )
    _write_file(
        root / "pkg" / "api.py",
        (
            "from pkg.options import Options, Settings\n"
            "\n"
            "\n"
            "class Client:\n"
            "    def __init__(self, options: Options) -> None:\n"
            "        self._options = options\n"
            "\n"
            "    @property\n"
            "    def settings(self) -> Settings:\n"
            "        return Settings()\n"
            "\n"
            "    def _reset(self) -> None:\n"
            "        return None\n"
            "\n"
            "\n"
            "class Hidden:\n"
            "    pass\n"
        ),
    )
    _write_file(
        root / "pkg" / "options.py",
        (
            "class Options:\n"
            "    verbose: bool = False\n"
            "\n"
            "\n"
            "class Settings:\n"
            "    def __init__(self) -> None:\n"
            "        self.level = 1\n"
            "\n"
            "\n"
            "class Unused:\n"
            "    pass\n"
        ),
    )

    names = _surface_names(root)

    assert {
        "Client",
        "Client.__init__",
        "Client.settings",
        "Options",
        "Options.verbose",
        "Settings",
        "Settings.__init__",
        "Settings.level",
    } <= names
    assert "Client._reset" not in names
    assert "Client._options" not in names
    assert "Hidden" not in names
    assert "Unused" not in names


def test_pfx_102_surface_walks_heritage_and_terminates_on_cycles(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.nodes import Tree\n\n__all__ = ["Tree"]\n',
    )
    _write_file(
        root / "pkg" / "nodes.py",
        (
            "class Base:\n"
            "    def describe(self) -> str:\n"
            '        return "base"\n'
            "\n"
            "\n"
            "class Payload:\n"
            "    pass\n"
            "\n"
            "\n"
            "class Tree(Base, list[Payload]):\n"
            '    def child(self) -> "Leaf":\n'
            "        return Leaf(self)\n"
            "\n"
            "\n"
            "class Leaf:\n"
            "    def __init__(self, parent: Tree) -> None:\n"
            "        self.parent = parent\n"
        ),
    )

    names = _surface_names(root)

    assert {
        "Tree",
        "Tree.child",
        "Base",
        "Base.describe",
        "Payload",
        "Leaf",
        "Leaf.__init__",
        "Leaf.parent",
    } <= names


def test_pfx_103_surface_exposes_every_member_of_public_enum(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.colors import Color\n\n__all__ = ["Color"]\n',
    )
    _write_file(
        root / "pkg" / "colors.py",
        (
            "from enum import Enum\n"
            "\n"
            "\n"
            "class Color(Enum):\n"
            "    RED = 1\n"
            "    _SECRET = 2\n"
            "\n"
            "\n"
            "class Shade(Enum):\n"
            "    DARK = 1\n"
        ),
    )

    names = _surface_names(root)

    assert {"Color", "Color.RED", "Color._SECRET"} <= names
    assert "Shade" not in names
    assert "Shade.DARK" not in names


def test_pfx_104_surface_follows_type_alias_without_dunder_all(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        "from pkg.shapes import Area, measure\n",
    )
    _write_file(
        root / "pkg" / "shapes.py",
        (
            "class Square:\n"
            "    side: int\n"
            "\n"
            "\n"
            "class Circle:\n"
            "    radius: int\n"
            "\n"
            "\n"
            "Area = dict[str, Square]\n"
            "\n"
            "\n"
            "def measure(area: Area) -> int:\n"
            "    return len(area)\n"
        ),
    )

    names = _surface_names(root)

    assert {"Area", "measure", "Square", "Square.side"} <= names
    assert "Circle" not in names


def test_pfx_105_surface_follows_inline_typed_dict_members(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.report import render\n\n__all__ = ["render"]\n',
    )
    _write_file(
        root / "pkg" / "report.py",
        (
            "from __future__ import annotations\n"
            "\n"
            "from typing import TypedDict\n"
            "\n"
            "\n"
            "class Row:\n"
            "    label: str\n"
            "\n"
            "\n"
            'def render(table: TypedDict[{"rows": list[Row]}]) -> str:\n'
            '    return ""\n'
        ),
    )

    names = _surface_names(root)

    assert {"render", "rows", "Row", "Row.label"} <= names


def test_pfx_106_surface_keeps_unresolved_export_binding(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(
        root / "pkg" / "__init__.py",
        'from pkg.missing import Ghost\n\n__all__ = ["Ghost"]\n',
    )

    program = PythonProgram.load(root)
    entry_file = program.get_source_file(root / "pkg" / "__init__.py")
    assert entry_file is not None
    surface = resolve_surface(program, [entry_file])

    ghosts = [symbol for symbol in surface if symbol.name == "Ghost"]
    assert len(ghosts) == 1
    assert ghosts[0].is_alias


def test_pfx_107_surface_includes_submodules_named_in_dunder_all(tmp_path: Path) -> None:
    root = tmp_path / "project"
    _write_file(root / "pkg" / "__init__.py", '__all__ = ["tools"]\n')
    _write_file(
        root / "pkg" / "tools.py",
        (
            "def public_tool() -> None:\n"
            "    return None\n"
            "\n"
            "\n"
            "def _private_tool() -> None:\n"
            "    return None\n"
        ),
    )

    names = _surface_names(root)

    assert "public_tool" in names
    assert "_private_tool" not in names
