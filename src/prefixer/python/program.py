# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Program snapshot built from the Python sources of one project."""

import ast
import builtins
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from prefixer.annotations import (
    ENUM_BASES,
    NAMEDTUPLE_FORMS,
    PROTOCOL_FORMS,
    TYPEDDICT_FORMS,
)
from prefixer.model import PROPERTY_KINDS, SourceFile, Symbol, is_special_name
from prefixer.python.binder import DEFAULT_SAFE_DECORATORS, ModuleBinder, absolute_module
from prefixer.python.inference import TypeInference
from prefixer.python.loader import LoadFailure, load_project
from prefixer.python.types import InstanceType, Type, variants_of
from prefixer.snapshot import SnapshotError

if TYPE_CHECKING:
    from prefixer.python.references import PythonReferenceService

logger = logging.getLogger(__name__)

_BUILTIN_NAMES: frozenset[str] = frozenset(dir(builtins))


class PythonProgram:
    """Hold the parsed files, symbol tables and type queries of one project.

    Implements the read-only program snapshot consumed by surface resolution,
    classification and rename planning.
    """

    def __init__(
        self,
        root: Path,
        files: list[SourceFile],
        failures: list[LoadFailure] | None = None,
        safe_decorators: frozenset[str] = DEFAULT_SAFE_DECORATORS,
    ) -> None:
        """Bind every file and resolve class hierarchies.

        Args:
            root: Project root directory.
            files: Parsed source files.
            failures: Files that could not be loaded.
            safe_decorators: Decorators that never read declared names.
        """
        self.root = root
        self.failures = list(failures or [])
        self._files = list(files)
        self._by_path: dict[Path, SourceFile] = {
            source_file.path.resolve(): source_file for source_file in self._files
        }
        self._binders: dict[SourceFile, ModuleBinder] = {}
        self._modules: dict[str, SourceFile] = {}
        self._externals: dict[str, Symbol] = {}
        self._inline_records: dict[ast.AST, Symbol] = {}
        self._parents: dict[SourceFile, dict[ast.AST, ast.AST]] = {}
        self._refined: set[Symbol] = set()
        self._reference_service: "PythonReferenceService | None" = None
        self._inference = TypeInference(self)

        for source_file in self._files:
            binder = ModuleBinder(source_file, safe_decorators)
            binder.bind()
            self._binders[source_file] = binder
            existing = self._modules.get(source_file.module_name)
            if existing is None or (existing.is_stub and not source_file.is_stub):
                self._modules[source_file.module_name] = source_file
        self._expand_star_imports()
        for source_file in self._files:
            self._mint_inline_records(source_file)
        for source_file in self._files:
            for symbol in self._containers(self._binders[source_file].module):
                self._refine_class(symbol)
        logger.info(
            "Program snapshot built (files=%s modules=%s failures=%s)",
            len(self._files),
            len(self._modules),
            len(self.failures),
        )

    @classmethod
    def load(
        cls,
        root: Path,
        safe_decorators: frozenset[str] = DEFAULT_SAFE_DECORATORS,
    ) -> "PythonProgram":
        """Load every source file under a project root.

        Args:
            root: Project root directory.
            safe_decorators: Decorators that never read declared names.

        Returns:
            Program snapshot.

        Raises:
            SnapshotError: If the root is missing or cannot be listed.
        """
        resolved = root.resolve()
        if not resolved.is_dir():
            raise SnapshotError(f"Project directory does not exist: {root}")
        try:
            files, failures = load_project(resolved)
        except (OSError, UnicodeDecodeError) as exc:
            raise SnapshotError(f"Failed to read project {root}: {exc}") from exc
        return cls(resolved, files, failures, safe_decorators)

    # Snapshot queries

    def source_files(self) -> list[SourceFile]:
        return list(self._files)

    def get_source_file(self, path: Path) -> SourceFile | None:
        return self._by_path.get(path.resolve())

    def module_symbol(self, source_file: SourceFile) -> Symbol:
        return self._binders[source_file].module

    def exports_of(self, source_file: SourceFile) -> list[Symbol]:
        """Return the symbols a module exports.

        ``__all__`` wins when declared; otherwise every public module-level
        binding except plain ``import x`` bindings is exported.

        Args:
            source_file: Module file.

        Returns:
            Exported symbols, possibly import bindings.
        """
        binder = self._binders[source_file]
        module = binder.module
        if binder.all_constants is not None:
            exported: list[Symbol] = []
            for constant in binder.all_constants:
                member = module.members.get(constant.value)
                if member is None and source_file.is_package:
                    member = self.module_by_name(f"{source_file.module_name}.{constant.value}")
                if member is None:
                    logger.debug(
                        "Skipping unknown __all__ entry (module=%s name=%s)",
                        source_file.module_name,
                        constant.value,
                    )
                    continue
                exported.append(member)
            return exported
        return [
            member
            for name, member in module.members.items()
            if not name.startswith("_")
            and not (member.alias_target is not None and member.alias_target[1] is None)
        ]

    def resolve_alias(self, symbol: Symbol) -> Symbol:
        seen: set[int] = set()
        current = symbol
        while current.alias_target is not None:
            if id(current) in seen:
                raise SnapshotError(f"Circular import binding for {symbol.name}")
            seen.add(id(current))
            module, name = current.alias_target
            target = self.resolve_target(module, name)
            if target is None:
                shown = f"{module}.{name}" if name else module
                raise SnapshotError(f"Cannot resolve import binding {symbol.name} to {shown}")
            current = target
        return current

    def symbol_at(self, source_file: SourceFile, node: ast.AST) -> Symbol | None:
        declared = self._binders[source_file].by_node.get(node)
        if declared is not None:
            return declared
        if isinstance(node, (ast.Name, ast.Attribute)):
            return self._inference.annotation_symbol(source_file, node)
        return None

    def structural_members(self, source_file: SourceFile, node: ast.AST) -> list[Symbol]:
        if not isinstance(node, ast.Dict):
            return []
        return list(self.inline_record(source_file, node).members.values())

    def type_of(self, source_file: SourceFile, node: ast.AST) -> Type | None:
        return self._inference.type_of(source_file, node)

    def contextual_type(self, source_file: SourceFile, node: ast.AST) -> Type | None:
        return self._inference.contextual_type(source_file, node)

    def constructed_type(self, source_file: SourceFile, node: ast.Call) -> Type | None:
        return self._inference.constructed_type(source_file, node)

    def pattern_type(self, source_file: SourceFile, node: ast.pattern) -> Type | None:
        return self._inference.pattern_type(source_file, node)

    def record_view(self, source_file: SourceFile, node: ast.expr) -> Type | None:
        return self._inference.record_view(source_file, node)

    def is_foreign_value(self, source_file: SourceFile, node: ast.AST) -> bool:
        return self._inference.is_foreign_value(source_file, node)

    def declared_type(self, symbol: Symbol) -> Type | None:
        return self._inference.declared_type(symbol)

    def property_of(self, type_: Type | None, name: str) -> Symbol | None:
        member = self._inference.member_lookup(type_, name)
        if member is None or member.kind not in PROPERTY_KINDS:
            return None
        return member

    def record_of(self, type_: Type | None) -> Symbol | None:
        if not isinstance(type_, InstanceType):
            return None
        symbol = type_.symbol
        if self._inference.is_record(symbol) and symbol.is_project_local:
            return symbol
        return None

    def union_variants(self, type_: Type | None) -> list[Type]:
        return variants_of(type_)

    def reference_service(self) -> "PythonReferenceService":
        """Return the nominal reference service bound to this program."""
        if self._reference_service is None:
            from prefixer.python.references import PythonReferenceService

            self._reference_service = PythonReferenceService(self)
        return self._reference_service

    # Helpers used by inference and reference collection

    @property
    def inference(self) -> TypeInference:
        return self._inference

    def binder(self, source_file: SourceFile) -> ModuleBinder:
        return self._binders[source_file]

    def parents(self, source_file: SourceFile) -> dict[ast.AST, ast.AST]:
        """Return the child-to-parent map of a file's syntax tree."""
        cached = self._parents.get(source_file)
        if cached is None:
            cached = {
                child: node
                for node in ast.walk(source_file.tree)
                for child in ast.iter_child_nodes(node)
            }
            self._parents[source_file] = cached
        return cached

    def symbol_for_node(self, source_file: SourceFile, node: ast.AST) -> Symbol | None:
        return self._binders[source_file].by_node.get(node)

    def lookup_global(self, source_file: SourceFile, name: str) -> Symbol | None:
        member = self._binders[source_file].module.members.get(name)
        if member is not None:
            return member
        if name in _BUILTIN_NAMES:
            return self.external(f"builtins.{name}")
        return None

    def qualify(self, source_file: SourceFile, node: ast.expr) -> str:
        return self._binders[source_file].qualify(node)

    def external(self, qualified_name: str) -> Symbol:
        """Return the cached symbol standing for a name outside the project."""
        symbol = self._externals.get(qualified_name)
        if symbol is None:
            symbol = Symbol(
                name=qualified_name.rsplit(".", 1)[-1],
                kind="external",
                qualified_name=qualified_name,
            )
            self._externals[qualified_name] = symbol
        return symbol

    def module_by_name(self, module_name: str) -> Symbol | None:
        source_file = self._modules.get(module_name)
        return self._binders[source_file].module if source_file is not None else None

    def module_file(self, module_name: str) -> SourceFile | None:
        return self._modules.get(module_name)

    def resolve_target(self, module: str, name: str | None) -> Symbol | None:
        """Resolve one import binding step.

        Args:
            module: Absolute module name.
            name: Imported name, or ``None`` for a module import.

        Returns:
            Target symbol, an external symbol for modules outside the project,
            or ``None`` when a project module or name is missing.
        """
        module_symbol = self.module_by_name(module)
        if module_symbol is None:
            if self._is_project_package(module):
                return None
            return self.external(f"{module}.{name}" if name else module)
        if name is None:
            return module_symbol
        member = module_symbol.members.get(name)
        if member is not None:
            return member
        return self.module_by_name(f"{module}.{name}")

    def import_target(
        self, source_file: SourceFile, node: ast.ImportFrom, name: str
    ) -> Symbol | None:
        target = self.resolve_target(absolute_module(source_file, node), name)
        if target is None or not target.is_alias:
            return target
        try:
            return self.resolve_alias(target)
        except SnapshotError as exc:
            logger.debug("Unresolved import (name=%s error=%s)", name, exc)
            return None

    def inline_record(self, source_file: SourceFile, node: ast.Dict) -> Symbol:
        """Return the anonymous record minted for an inline ``TypedDict`` literal."""
        record = self._inline_records.get(node)
        if record is None:
            record = self._binders[source_file].build_record(
                "<inline>", node, node, namedtuple=False
            )
            self._inline_records[node] = record
        return record

    def inline_records(self) -> list[Symbol]:
        return list(self._inline_records.values())

    def _is_project_package(self, module: str) -> bool:
        head = module.split(".")[0]
        return any(name == head or name.startswith(f"{head}.") for name in self._modules)

    def _expand_star_imports(self) -> None:
        """Bind names imported with ``*`` until no module gains a new name."""
        changed = True
        while changed:
            changed = False
            for binder in self._binders.values():
                for module_name in binder.star_imports:
                    target_file = self._modules.get(module_name)
                    if target_file is None:
                        continue
                    for exported in self.exports_of(target_file):
                        if exported.name in binder.module.members:
                            continue
                        binder.module.members[exported.name] = Symbol(
                            name=exported.name,
                            kind="alias",
                            alias_target=(module_name, exported.name),
                            parent=binder.module,
                        )
                        changed = True

    def _mint_inline_records(self, source_file: SourceFile) -> None:
        binder = self._binders[source_file]
        for node in ast.walk(source_file.tree):
            if not isinstance(node, ast.Subscript) or not isinstance(node.slice, ast.Dict):
                continue
            if binder.qualify(node.value) in TYPEDDICT_FORMS:
                self.inline_record(source_file, node.slice)

    def _containers(self, module: Symbol) -> list[Symbol]:
        found: list[Symbol] = []
        stack = [member for member in module.members.values() if not member.is_alias]
        while stack:
            symbol = stack.pop()
            if symbol.is_container:
                found.append(symbol)
                stack.extend(symbol.members.values())
        return found

    def _refine_class(self, symbol: Symbol) -> None:
        """Resolve bases and derive protocol, record and enum kinds."""
        if symbol in self._refined:
            return
        self._refined.add(symbol)
        bases: list[Symbol] = []
        for decl in symbol.declarations:
            if not isinstance(decl.node, ast.ClassDef):
                continue
            for base_node in decl.node.bases:
                base = self._resolve_base(decl.source_file, base_node)
                if base is not None and base not in bases:
                    bases.append(base)
        symbol.bases = bases
        for base in bases:
            if base.is_container:
                self._refine_class(base)
            qualified = base.qualified_name if base.kind == "external" else ""
            if qualified in PROTOCOL_FORMS:
                symbol.kind = "protocol"
            elif qualified in TYPEDDICT_FORMS or base.kind == "typeddict":
                symbol.kind = "typeddict"
                symbol.flags.update({"record", "typeddict"})
            elif qualified in ENUM_BASES or base.kind == "enum":
                symbol.kind = "enum"
            elif qualified in NAMEDTUPLE_FORMS or "namedtuple" in base.flags:
                symbol.flags.update({"record", "namedtuple"})
            elif "dataclass" in base.flags:
                symbol.flags.add("record")
        if symbol.kind == "enum":
            for member in symbol.members.values():
                if member.kind != "property" or "instance" in member.flags:
                    continue
                if is_special_name(member.name):
                    continue
                if any(decl.value is not None for decl in member.declarations):
                    member.kind = "enum-member"

    def _resolve_base(self, source_file: SourceFile, node: ast.expr) -> Symbol | None:
        if isinstance(node, ast.Subscript):
            node = node.value
        if not isinstance(node, (ast.Name, ast.Attribute)):
            return None
        symbol = self._inference.annotation_symbol(source_file, node)
        if symbol is not None and symbol.is_alias:
            try:
                symbol = self.resolve_alias(symbol)
            except SnapshotError as exc:
                logger.debug("Unresolved base class (error=%s)", exc)
                symbol = None
        if symbol is not None and symbol.structure is not None:
            symbol = symbol.structure
        if symbol is None or not (symbol.is_container or symbol.kind == "external"):
            shown = ast.unparse(node)
            return self.external(f"<unresolved>.{shown}")
        return symbol
