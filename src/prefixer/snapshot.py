# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Read-only program snapshot contracts consumed by the prefixing core."""

import ast
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from prefixer.model import Occurrence, SourceFile, Symbol

if TYPE_CHECKING:
    from prefixer.python.types import Type


class SnapshotError(RuntimeError):
    """Represent program snapshot construction or alias resolution failure."""


class ReferenceLookupError(RuntimeError):
    """Represent failure to find occurrences for a declaration."""


class ProgramSnapshot(Protocol):
    """Define symbol-table and type queries over a parsed program."""

    def source_files(self) -> list[SourceFile]:
        """Return every loaded file, project-local or not."""

    def get_source_file(self, path: Path) -> SourceFile | None:
        """Return the loaded file for a path, if any."""

    def module_symbol(self, source_file: SourceFile) -> Symbol:
        """Return the module symbol bound to a file."""

    def exports_of(self, source_file: SourceFile) -> list[Symbol]:
        """Return the symbols a module exports."""

    def resolve_alias(self, symbol: Symbol) -> Symbol:
        """Follow import bindings to the declared symbol.

        Raises:
            SnapshotError: If the binding cannot be resolved.
        """

    def symbol_at(self, source_file: SourceFile, node: ast.AST) -> Symbol | None:
        """Return the symbol a declaration or type-position name refers to."""

    def structural_members(self, source_file: SourceFile, node: ast.AST) -> list[Symbol]:
        """Return the anonymous property symbols minted by a structural literal."""

    def type_of(self, source_file: SourceFile, node: ast.AST) -> "Type | None":
        """Return the inferred type of an expression."""

    def contextual_type(self, source_file: SourceFile, node: ast.AST) -> "Type | None":
        """Return the type an expression is expected to have at its position."""

    def constructed_type(self, source_file: SourceFile, node: ast.Call) -> "Type | None":
        """Return the record type built by a constructor call."""

    def pattern_type(self, source_file: SourceFile, node: ast.pattern) -> "Type | None":
        """Return the type a match pattern is applied to."""

    def record_view(self, source_file: SourceFile, node: ast.expr) -> "Type | None":
        """Return the record whose fields key a mapping view such as ``_asdict()``."""

    def is_foreign_value(self, source_file: SourceFile, node: ast.AST) -> bool:
        """Check whether an expression of unknown type cannot hold a project instance."""

    def declared_type(self, symbol: Symbol) -> "Type | None":
        """Return the declared type of a symbol."""

    def property_of(self, type_: "Type | None", name: str) -> Symbol | None:
        """Return the member called ``name`` of a non-union type."""

    def record_of(self, type_: "Type | None") -> Symbol | None:
        """Return the project record a non-union type instantiates, if any."""

    def union_variants(self, type_: "Type | None") -> list["Type"]:
        """Return the variants of a union, or the type itself."""


class ReferenceService(Protocol):
    """Define nominal occurrence lookup by declaration position."""

    def find_rename_locations(self, path: Path, offset: int) -> list[Occurrence]:
        """Return every occurrence of the symbol declared at a name position.

        Raises:
            ReferenceLookupError: If no declaration sits at the position.
        """
