# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Nominal reference lookup over a loaded Python program."""

import ast
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from prefixer.annotations import (
    CAST_FORMS,
    LITERAL_FORMS,
    NAMED_FACTORY_FORMS,
    TYPEDDICT_FORMS,
    parse_forward_ref,
)
from prefixer.model import Occurrence, SourceFile, Symbol
from prefixer.python.binder import absolute_module
from prefixer.python.types import ClassObjectType, InstanceType, variants_of
from prefixer.snapshot import ReferenceLookupError

if TYPE_CHECKING:
    from prefixer.python.program import PythonProgram

logger = logging.getLogger(__name__)

_DYNAMIC_ATTRIBUTE_CALLS: frozenset[str] = frozenset(
    {"builtins.getattr", "builtins.setattr", "builtins.hasattr", "builtins.delattr"}
)


class PythonReferenceService:
    """Find every occurrence of a declared symbol across the program.

    The occurrence index is built once, on the first lookup, by visiting every
    loaded file.
    """

    def __init__(self, program: "PythonProgram") -> None:
        self._program = program
        self._declared_at: dict[tuple[Path, int], Symbol] | None = None
        self._index: dict[Symbol, list[Occurrence]] = {}

    def find_rename_locations(self, path: Path, offset: int) -> list[Occurrence]:
        """Return every occurrence of the symbol declared at a name position.

        Args:
            path: File holding the declaration.
            offset: Character offset of the declared name.

        Returns:
            Occurrences sorted by path and offset.

        Raises:
            ReferenceLookupError: If no declaration sits at the position.
        """
        declared_at = self._ensure_index()
        symbol = declared_at.get((path, offset))
        if symbol is None:
            raise ReferenceLookupError(f"No declaration found at {path}:{offset}")
        found: dict[tuple[Path, int], Occurrence] = {}
        for decl in symbol.declarations:
            if decl.name_length == 0:
                continue
            key = (decl.source_file.path, decl.name_offset)
            found.setdefault(
                key,
                Occurrence(
                    path=decl.source_file.path,
                    start=decl.name_offset,
                    length=decl.name_length,
                ),
            )
        for occurrence in self._index.get(symbol, []):
            found.setdefault((occurrence.path, occurrence.start), occurrence)
        logger.debug(
            "Found rename locations (symbol=%s occurrences=%s)", symbol.name, len(found)
        )
        return sorted(found.values(), key=lambda item: (str(item.path), item.start))

    def _ensure_index(self) -> dict[tuple[Path, int], Symbol]:
        if self._declared_at is not None:
            return self._declared_at
        declared_at: dict[tuple[Path, int], Symbol] = {}
        for source_file in self._program.source_files():
            for symbol in self._program.binder(source_file).by_node.values():
                if symbol.is_alias:
                    continue
                for decl in symbol.declarations:
                    if decl.name_length:
                        declared_at.setdefault((decl.source_file.path, decl.name_offset), symbol)
        for source_file in self._program.source_files():
            collector = _ReferenceCollector(self._program, source_file, self._index)
            collector.visit(source_file.tree)
            collector.collect_module_strings()
        self._declared_at = declared_at
        logger.info(
            "Reference index built (declarations=%s referenced_symbols=%s)",
            len(declared_at),
            len(self._index),
        )
        return declared_at


class _ReferenceCollector(ast.NodeVisitor):
    """Record the occurrences of project symbols within one file."""

    def __init__(
        self,
        program: "PythonProgram",
        source_file: SourceFile,
        index: dict[Symbol, list[Occurrence]],
    ) -> None:
        self._program = program
        self._inference = program.inference
        self._file = source_file
        self._index = index

    def _add(
        self, symbol: Symbol | None, start: int, length: int, suffix_text: str = ""
    ) -> None:
        if symbol is None or symbol.is_alias or symbol.kind in ("external", "module"):
            return
        self._index.setdefault(symbol, []).append(
            Occurrence(
                path=self._file.path, start=start, length=length, suffix_text=suffix_text
            )
        )

    def _add_members(self, type_: object, name: str, start: int) -> None:
        for variant in variants_of(type_):
            self._add(self._inference.member_lookup(variant, name), start, len(name))

    def _add_properties(self, type_: object, name: str, start: int) -> None:
        for variant in variants_of(type_):
            self._add(self._program.property_of(variant, name), start, len(name))

    def visit_Name(self, node: ast.Name) -> None:
        binding = self._inference.resolve_name(self._file, node)
        if isinstance(binding, Symbol):
            self._add(binding, self._file.node_start(node), len(node.id))

    def visit_Attribute(self, node: ast.Attribute) -> None:
        self.generic_visit(node)
        start = self._file.node_end(node) - len(node.attr)
        base_type = self._inference.type_of(self._file, node.value)
        if base_type is None:
            self._add(self._inference.annotation_symbol(self._file, node), start, len(node.attr))
            return
        self._add_members(base_type, node.attr, start)

    def visit_Global(self, node: ast.Global) -> None:
        # Nonlocal names bind function locals, which keep their names.
        offsets = self._file.scope_statement_offsets(node)
        for name, offset in zip(node.names, offsets):
            if offset is not None:
                self._add(self._program.lookup_global(self._file, name), offset, len(name))

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        module = absolute_module(self._file, node)
        for alias in node.names:
            if alias.name == "*":
                continue
            target = self._program.resolve_target(module, alias.name)
            # The importing module keeps its local name.
            suffix = "" if alias.asname else f" as {alias.name}"
            self._add(target, self._file.node_start(alias), len(alias.name), suffix)

    def visit_Assign(self, node: ast.Assign) -> None:
        self.generic_visit(node)
        value = node.value
        if not (isinstance(value, ast.Call) and value.args and len(node.targets) == 1):
            return
        target = node.targets[0]
        if not isinstance(target, ast.Name):
            return
        if self._program.qualify(self._file, value.func) not in NAMED_FACTORY_FORMS:
            return
        first = value.args[0]
        span = self._file.string_span(first)
        if span is None or first.value != target.id:
            return
        binding = self._inference.resolve_name(self._file, target)
        if isinstance(binding, Symbol):
            self._add(binding, span[0], span[1])

    def visit_Call(self, node: ast.Call) -> None:
        self.generic_visit(node)
        if node.keywords:
            constructed = self._inference.constructed_type(self._file, node)
            if constructed is not None:
                for keyword in node.keywords:
                    if keyword.arg is not None:
                        self._add_properties(
                            constructed, keyword.arg, self._file.node_start(keyword)
                        )
        callee = self._inference.expression_symbol(self._file, node.func)
        if callee is None or callee.kind != "external":
            return
        if callee.qualified_name in _DYNAMIC_ATTRIBUTE_CALLS and len(node.args) >= 2:
            span = self._file.string_span(node.args[1])
            if span is not None:
                owner = self._inference.type_of(self._file, node.args[0])
                self._add_members(owner, node.args[1].value, span[0])
        elif callee.qualified_name in CAST_FORMS and node.args:
            self._annotation_strings(node.args[0])

    def visit_Dict(self, node: ast.Dict) -> None:
        self.generic_visit(node)
        spans = [
            (key, self._file.string_span(key)) for key in node.keys if key is not None
        ]
        if not any(span for _, span in spans):
            return
        expected = self._inference.contextual_type(self._file, node)
        if expected is None:
            return
        for key, span in spans:
            if span is not None:
                self._add_properties(expected, key.value, span[0])

    def visit_Subscript(self, node: ast.Subscript) -> None:
        self.generic_visit(node)
        span = self._file.string_span(node.slice)
        if span is None:
            return
        for variant in variants_of(self._inference.type_of(self._file, node.value)):
            if isinstance(variant, InstanceType) and variant.symbol.kind == "typeddict":
                self._add_properties(variant, node.slice.value, span[0])
            elif isinstance(variant, ClassObjectType) and variant.symbol.kind == "enum":
                self._add_properties(variant, node.slice.value, span[0])
        view = self._inference.record_view(self._file, node.value)
        if view is not None:
            self._add_properties(view, node.slice.value, span[0])

    def visit_MatchMapping(self, node: ast.MatchMapping) -> None:
        self.generic_visit(node)
        subject = self._inference.pattern_type(self._file, node)
        for key in node.keys:
            span = self._file.string_span(key)
            if span is not None:
                self._add_properties(subject, key.value, span[0])

    def visit_MatchClass(self, node: ast.MatchClass) -> None:
        self.generic_visit(node)
        if not node.kwd_attrs:
            return
        subject = self._inference.pattern_type(self._file, node)
        offsets = self._file.keyword_pattern_offsets(node)
        for attr, offset in zip(node.kwd_attrs, offsets):
            if offset is not None:
                self._add_members(subject, attr, offset)

    def visit_arg(self, node: ast.arg) -> None:
        self.generic_visit(node)
        self._annotation_strings(node.annotation)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self.generic_visit(node)
        self._annotation_strings(node.returns)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self.generic_visit(node)
        self._annotation_strings(node.returns)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        self.generic_visit(node)
        self._annotation_strings(node.annotation)

    def collect_module_strings(self) -> None:
        """Record ``__all__`` and ``__slots__`` entries naming project symbols."""
        binder = self._program.binder(self._file)
        for constant in binder.all_constants or []:
            span = self._file.string_span(constant)
            if span is not None:
                self._add(binder.module.members.get(constant.value), span[0], span[1])
        for owner, constant in binder.slot_constants:
            span = self._file.string_span(constant)
            if span is not None:
                self._add(owner.members.get(constant.value), span[0], span[1])

    def _annotation_strings(self, node: ast.AST | None) -> None:
        """Record names inside string forward references of a type expression."""
        if node is None:
            return
        if isinstance(node, ast.Constant):
            if isinstance(node.value, str):
                self._forward_reference(node)
            return
        if isinstance(node, ast.Subscript):
            form = self._program.qualify(self._file, node.value)
            if form in LITERAL_FORMS:
                return
            if form in TYPEDDICT_FORMS and isinstance(node.slice, ast.Dict):
                for value in node.slice.values:
                    self._annotation_strings(value)
                return
        for child in ast.iter_child_nodes(node):
            self._annotation_strings(child)

    def _forward_reference(self, node: ast.Constant) -> None:
        body_start = self._file.string_body_start(node)
        parsed = parse_forward_ref(node.value)
        if body_start is None or parsed is None or "\n" in node.value:
            return
        base = body_start + len(node.value) - len(node.value.lstrip())
        stripped = node.value.strip()
        for item in ast.walk(parsed):
            if isinstance(item, ast.Name):
                offset = base + _char_column(stripped, item.col_offset)
                self._add(
                    self._inference.annotation_symbol(self._file, item), offset, len(item.id)
                )
            elif isinstance(item, ast.Attribute):
                end = base + _char_column(stripped, item.end_col_offset)
                self._add(
                    self._inference.annotation_symbol(self._file, item),
                    end - len(item.attr),
                    len(item.attr),
                )


def _char_column(text: str, byte_column: int) -> int:
    return len(text.encode("utf-8")[:byte_column].decode("utf-8", errors="ignore"))
