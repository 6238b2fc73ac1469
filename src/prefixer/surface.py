# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Compute the public surface reachable from entry module exports."""

import ast
import logging
from collections.abc import Callable, Iterable

from prefixer.annotations import (
    LITERAL_FORMS,
    METADATA_FORMS,
    TYPEDDICT_FORMS,
    parse_forward_ref,
)
from prefixer.model import SourceFile, Symbol, is_private_name
from prefixer.snapshot import ProgramSnapshot, SnapshotError

logger = logging.getLogger(__name__)


def resolve_surface(
    snapshot: ProgramSnapshot, entry_modules: Iterable[SourceFile]
) -> set[Symbol]:
    """Compute the closure of symbols observable through entry modules.

    Starting from every export of every entry module, the walk follows
    membership, heritage and type-reference edges until no new symbol is
    reached. Import bindings are replaced by their resolved targets.

    Args:
        snapshot: Program snapshot.
        entry_modules: Entry module files.

    Returns:
        Public surface symbols (identity set).
    """
    walker = _SurfaceWalker(snapshot=snapshot)
    for entry in entry_modules:
        for symbol in snapshot.exports_of(entry):
            walker.push(symbol)
    surface = walker.run()
    logger.debug("Resolved public surface (symbols=%s)", len(surface))
    return surface


class _SurfaceWalker:
    """Hold traversal state for one surface computation."""

    def __init__(self, snapshot: ProgramSnapshot) -> None:
        self._snapshot = snapshot
        self._visited: set[Symbol] = set()
        self._stack: list[Symbol] = []
        self._expanders: dict[str, Callable[[Symbol], None]] = {
            "module": self._expand_module,
            "class": self._expand_class,
            "protocol": self._expand_interface,
            "typeddict": self._expand_interface,
            "enum": self._expand_interface,
            "function": self._expand_callable,
            "method": self._expand_callable,
            "accessor": self._expand_callable,
            "property": self._expand_annotated,
            "variable": self._expand_annotated,
            "enum-member": self._expand_annotated,
            "type-alias": self._expand_type_alias,
        }

    def push(self, symbol: Symbol) -> None:
        self._stack.append(symbol)

    def run(self) -> set[Symbol]:
        while self._stack:
            symbol = self._resolve(self._stack.pop())
            if symbol in self._visited:
                continue
            self._visited.add(symbol)
            expand = self._expanders.get(symbol.kind)
            if expand is not None:
                expand(symbol)
        return set(self._visited)

    def _resolve(self, symbol: Symbol) -> Symbol:
        if not symbol.is_alias:
            return symbol
        try:
            return self._snapshot.resolve_alias(symbol)
        except SnapshotError as exc:
            logger.debug(
                "Keeping unresolved alias in surface (name=%s error=%s)", symbol.name, exc
            )
            return symbol

    def _expand_module(self, symbol: Symbol) -> None:
        for decl in symbol.declarations:
            for exported in self._snapshot.exports_of(decl.source_file):
                self.push(exported)

    def _expand_class(self, symbol: Symbol) -> None:
        for member in symbol.members.values():
            if not is_private_name(member.name):
                self.push(member)
        self._expand_heritage(symbol)

    def _expand_interface(self, symbol: Symbol) -> None:
        # Interfaces, records and enums expose every member.
        for member in symbol.members.values():
            self.push(member)
        self._expand_heritage(symbol)

    def _expand_heritage(self, symbol: Symbol) -> None:
        for decl in symbol.declarations:
            if isinstance(decl.node, ast.ClassDef):
                for base in decl.node.bases:
                    self._walk_type(decl.source_file, base)
                self._walk_type_params(decl.source_file, decl.node)

    def _expand_callable(self, symbol: Symbol) -> None:
        for decl in symbol.declarations:
            node = decl.node
            if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                self._walk_type(decl.source_file, decl.annotation)
                continue
            arguments = node.args
            for arg in [
                *arguments.posonlyargs,
                *arguments.args,
                *arguments.kwonlyargs,
                arguments.vararg,
                arguments.kwarg,
            ]:
                if arg is not None:
                    self._walk_type(decl.source_file, arg.annotation)
            self._walk_type(decl.source_file, node.returns)
            self._walk_type_params(decl.source_file, node)

    def _expand_annotated(self, symbol: Symbol) -> None:
        for decl in symbol.declarations:
            self._walk_type(decl.source_file, decl.annotation)

    def _expand_type_alias(self, symbol: Symbol) -> None:
        if symbol.structure is not None:
            self.push(symbol.structure)
        for decl in symbol.declarations:
            if symbol.structure is None:
                self._walk_type(decl.source_file, decl.value)
            if isinstance(decl.node, ast.TypeAlias):
                self._walk_type_params(decl.source_file, decl.node)

    def _walk_type_params(self, source_file: SourceFile, node: ast.AST) -> None:
        for param in getattr(node, "type_params", []):
            self._walk_type(source_file, getattr(param, "bound", None))

    def _walk_type(self, source_file: SourceFile, node: ast.AST | None) -> None:
        """Push every symbol named by a type expression.

        Args:
            source_file: File holding the expression.
            node: Type expression, possibly a string forward reference.
        """
        if node is None:
            return
        if isinstance(node, ast.Constant):
            if isinstance(node.value, str):
                self._walk_type(source_file, parse_forward_ref(node.value))
            return
        if isinstance(node, (ast.Name, ast.Attribute)):
            symbol = self._snapshot.symbol_at(source_file, node)
            if symbol is not None:
                self.push(symbol)
            return
        if isinstance(node, ast.Subscript):
            self._walk_type(source_file, node.value)
            form = self._form_name(source_file, node.value)
            if form in LITERAL_FORMS:
                return
            if form in TYPEDDICT_FORMS and isinstance(node.slice, ast.Dict):
                for member in self._snapshot.structural_members(source_file, node.slice):
                    self.push(member)
                return
            elements = (
                list(node.slice.elts)
                if isinstance(node.slice, ast.Tuple)
                else [node.slice]
            )
            if form in METADATA_FORMS:
                elements = elements[:1]
            for element in elements:
                self._walk_type(source_file, element)
            return
        if isinstance(node, (ast.Tuple, ast.List)):
            for element in node.elts:
                self._walk_type(source_file, element)
            return
        if isinstance(node, ast.BinOp):
            self._walk_type(source_file, node.left)
            self._walk_type(source_file, node.right)
            return
        if isinstance(node, ast.Starred):
            self._walk_type(source_file, node.value)

    def _form_name(self, source_file: SourceFile, node: ast.expr) -> str:
        if not isinstance(node, (ast.Name, ast.Attribute)):
            return ""
        symbol = self._snapshot.symbol_at(source_file, node)
        if symbol is None:
            return ""
        symbol = self._resolve(symbol)
        return symbol.qualified_name if symbol.kind == "external" else ""
