# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Bind module, class and instance symbols of one Python source file."""

import ast
import builtins
import logging
import re
from collections.abc import Iterator

from prefixer.annotations import (
    NAMEDTUPLE_FORMS,
    NEWTYPE_FORMS,
    TYPE_ALIAS_FORMS,
    TYPEDDICT_FORMS,
)
from prefixer.model import Declaration, SourceFile, Symbol, SymbolKind

logger = logging.getLogger(__name__)

_DEF_NAME = re.compile(r"(?:async\s+)?(?:def|class)\s+")
_BUILTIN_NAMES: frozenset[str] = frozenset(dir(builtins))
_ACCESSOR_DECORATORS: frozenset[str] = frozenset(
    {"builtins.property", "functools.cached_property", "abc.abstractproperty"}
)
_ACCESSOR_COMPANIONS: frozenset[str] = frozenset({"setter", "getter", "deleter"})
_TYPE_CONSTRUCTORS: frozenset[str] = frozenset(
    {
        "builtins.list",
        "builtins.dict",
        "builtins.set",
        "builtins.frozenset",
        "builtins.tuple",
        "builtins.type",
    }
)

DEFAULT_SAFE_DECORATORS: frozenset[str] = frozenset(
    {
        "builtins.property",
        "builtins.staticmethod",
        "builtins.classmethod",
        "abc.abstractmethod",
        "abc.abstractproperty",
        "typing.overload",
        "typing.override",
        "typing.final",
        "typing.runtime_checkable",
        "typing_extensions.overload",
        "typing_extensions.override",
        "typing_extensions.final",
        "typing_extensions.runtime_checkable",
        "functools.cached_property",
        "functools.cache",
        "functools.lru_cache",
        "functools.wraps",
        "functools.total_ordering",
        "functools.singledispatch",
        "contextlib.contextmanager",
        "contextlib.asynccontextmanager",
        "dataclasses.dataclass",
        "enum.unique",
    }
)


def iter_statements(body: list[ast.stmt]) -> Iterator[ast.stmt]:
    """Yield statements of a block, descending into conditional and guarded blocks."""
    for stmt in body:
        yield stmt
        if isinstance(stmt, ast.If):
            yield from iter_statements(stmt.body)
            yield from iter_statements(stmt.orelse)
        elif isinstance(stmt, (ast.Try, ast.TryStar)):
            yield from iter_statements(stmt.body)
            for handler in stmt.handlers:
                yield from iter_statements(handler.body)
            yield from iter_statements(stmt.orelse)
            yield from iter_statements(stmt.finalbody)
        elif isinstance(stmt, (ast.With, ast.AsyncWith)):
            yield from iter_statements(stmt.body)


def target_names(target: ast.expr) -> Iterator[ast.Name]:
    """Yield the plain names bound by an assignment target."""
    if isinstance(target, ast.Name):
        yield target
    elif isinstance(target, (ast.Tuple, ast.List)):
        for element in target.elts:
            yield from target_names(element)
    elif isinstance(target, ast.Starred):
        yield from target_names(target.value)


def dotted_parts(node: ast.expr) -> list[str] | None:
    """Return ``["a", "b", "c"]`` for ``a.b.c``, or ``None`` for other shapes."""
    parts: list[str] = []
    current = node
    while isinstance(current, ast.Attribute):
        parts.append(current.attr)
        current = current.value
    if not isinstance(current, ast.Name):
        return None
    parts.append(current.id)
    return list(reversed(parts))


def absolute_module(source_file: SourceFile, node: ast.ImportFrom) -> str:
    """Resolve the module of a ``from`` import to an absolute dotted name."""
    if node.level == 0:
        return node.module or ""
    package = source_file.module_name.split(".") if source_file.module_name else []
    if not source_file.is_package:
        package = package[:-1]
    if node.level > 1:
        package = package[: max(0, len(package) - (node.level - 1))]
    base = ".".join(package)
    if node.module:
        return f"{base}.{node.module}" if base else node.module
    return base


class ModuleBinder:
    """Build the symbol table of one module.

    Attributes:
        module: Module symbol whose members are the module-level bindings.
        all_constants: String nodes listed in ``__all__``, when declared.
        slot_constants: ``(class, string node)`` pairs from ``__slots__``.
        star_imports: Absolute module names imported with ``*``.
        by_node: Declaring nodes mapped to the symbols they introduce.
    """

    def __init__(
        self, source_file: SourceFile, safe_decorators: frozenset[str]
    ) -> None:
        self._file = source_file
        self._safe_decorators = safe_decorators
        self._imports: dict[str, tuple[str, str | None]] = {}
        self.module = Symbol(
            name=source_file.module_name.rsplit(".", 1)[-1],
            kind="module",
            qualified_name=source_file.module_name,
            declarations=[
                Declaration(
                    source_file=source_file,
                    node=source_file.tree,
                    name_offset=0,
                    name_length=0,
                )
            ],
        )
        self.all_constants: list[ast.Constant] | None = None
        self.slot_constants: list[tuple[Symbol, ast.Constant]] = []
        self.star_imports: list[str] = []
        self.by_node: dict[ast.AST, Symbol] = {}

    def bind(self) -> Symbol:
        """Bind every module-level declaration and return the module symbol."""
        statements = list(iter_statements(self._file.tree.body))
        for stmt in statements:
            if isinstance(stmt, (ast.Import, ast.ImportFrom)):
                self._collect_import(stmt)
        for stmt in statements:
            self._bind_module_statement(stmt)
        return self.module

    def qualify(self, node: ast.expr) -> str:
        """Qualify a dotted expression through this module's imports.

        Args:
            node: Name or attribute chain.

        Returns:
            Dotted qualified name, or an empty string for other shapes.
        """
        parts = dotted_parts(node)
        if parts is None:
            return ""
        head, rest = parts[0], parts[1:]
        target = self._imports.get(head)
        if target is not None:
            module, name = target
            resolved = [module] if name is None else [module, name]
            return ".".join([*resolved, *rest])
        if head in self.module.members:
            return ".".join([self._file.module_name, *parts])
        if head in _BUILTIN_NAMES:
            return ".".join(["builtins", *parts])
        return ".".join(parts)

    def _collect_import(self, node: ast.Import | ast.ImportFrom) -> None:
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    self._imports[alias.asname] = (alias.name, None)
                else:
                    head = alias.name.split(".")[0]
                    self._imports[head] = (head, None)
            return
        module = absolute_module(self._file, node)
        for alias in node.names:
            if alias.name != "*":
                self._imports[alias.asname or alias.name] = (module, alias.name)

    def _bind_module_statement(self, stmt: ast.stmt) -> None:
        owner = self.module
        if isinstance(stmt, ast.ClassDef):
            self._bind_class(stmt, owner)
        elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
            self._define(owner, stmt.name, "function", self._def_declaration(stmt))
        elif isinstance(stmt, ast.Import):
            for alias in stmt.names:
                exposed = alias.asname or alias.name.split(".")[0]
                self._bind_alias(exposed, self._imports[exposed], alias)
        elif isinstance(stmt, ast.ImportFrom):
            module = absolute_module(self._file, stmt)
            for alias in stmt.names:
                if alias.name == "*":
                    self.star_imports.append(module)
                    continue
                self._bind_alias(alias.asname or alias.name, (module, alias.name), alias)
        elif isinstance(stmt, ast.Assign):
            self._bind_module_assign(stmt)
        elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
            kind: SymbolKind = "variable"
            value = stmt.value
            if self.qualify(stmt.annotation) in TYPE_ALIAS_FORMS:
                kind = "type-alias"
            self._define(
                owner,
                stmt.target.id,
                kind,
                self._name_declaration(stmt, stmt.target, stmt.annotation, value),
                stmt.target,
            )
        elif isinstance(stmt, ast.AugAssign) and isinstance(stmt.target, ast.Name):
            if stmt.target.id == "__all__" and isinstance(stmt.value, (ast.List, ast.Tuple)):
                self.all_constants = (self.all_constants or []) + _string_elements(
                    stmt.value
                )
        elif isinstance(stmt, ast.TypeAlias):
            self._define(
                owner,
                stmt.name.id,
                "type-alias",
                self._name_declaration(stmt, stmt.name, None, stmt.value),
                stmt.name,
            )

    def _bind_alias(
        self, exposed: str, target: tuple[str, str | None], node: ast.alias
    ) -> None:
        start = self._file.node_start(node)
        symbol = Symbol(
            name=exposed,
            kind="alias",
            alias_target=target,
            parent=self.module,
            declarations=[
                Declaration(
                    source_file=self._file,
                    node=node,
                    name_offset=start,
                    name_length=len(node.name),
                )
            ],
        )
        self.module.members[exposed] = symbol
        self.by_node[node] = symbol

    def _bind_module_assign(self, stmt: ast.Assign) -> None:
        single = (
            stmt.targets[0]
            if len(stmt.targets) == 1 and isinstance(stmt.targets[0], ast.Name)
            else None
        )
        if single is not None and single.id == "__all__":
            if isinstance(stmt.value, (ast.List, ast.Tuple)):
                self.all_constants = _string_elements(stmt.value)
        for target in stmt.targets:
            for name in target_names(target):
                value = stmt.value if name is single else None
                kind: SymbolKind = "variable"
                structure = None
                if value is not None:
                    kind, value, structure = self._classify_assigned_value(name, value)
                symbol = self._define(
                    self.module,
                    name.id,
                    kind,
                    self._name_declaration(stmt, name, None, value),
                    name,
                )
                if structure is not None:
                    symbol.structure = structure
                    structure.parent = symbol

    def _classify_assigned_value(
        self, target: ast.Name, value: ast.expr
    ) -> tuple[SymbolKind, ast.expr, Symbol | None]:
        """Detect type aliases and functional record definitions."""
        if isinstance(value, ast.Call):
            form = self.qualify(value.func)
            if form in TYPEDDICT_FORMS and len(value.args) >= 2:
                if isinstance(value.args[1], ast.Dict):
                    return "type-alias", value, self.build_record(
                        target.id, value, value.args[1], namedtuple=False
                    )
            if form in NAMEDTUPLE_FORMS and len(value.args) >= 2:
                if isinstance(value.args[1], (ast.List, ast.Tuple)):
                    return "type-alias", value, self.build_record(
                        target.id, value, value.args[1], namedtuple=True
                    )
            if form in NEWTYPE_FORMS and len(value.args) >= 2:
                return "type-alias", value.args[1], None
            return "variable", value, None
        if self._looks_like_type(value):
            return "type-alias", value, None
        return "variable", value, None

    def build_record(
        self, name: str, owner_node: ast.AST, fields: ast.expr, namedtuple: bool
    ) -> Symbol:
        """Mint an anonymous record symbol for a structural literal.

        Args:
            name: Display name of the record.
            owner_node: Node introducing the record.
            fields: ``{"key": type}`` dict, ``[("key", type)]`` list or ``["key"]`` list.
            namedtuple: Whether fields are attribute-accessed tuple fields.

        Returns:
            Record symbol whose members are anonymous properties.
        """
        record = Symbol(
            name=name,
            kind="class" if namedtuple else "typeddict",
            flags={"anonymous", "record", "namedtuple" if namedtuple else "typeddict"},
            declarations=[
                Declaration(
                    source_file=self._file,
                    node=owner_node,
                    name_offset=self._file.node_start(owner_node),
                    name_length=0,
                )
            ],
        )
        for key, annotation in _record_fields(fields):
            span = self._file.string_span(key)
            if span is None:
                continue
            member = Symbol(
                name=key.value,
                kind="property",
                parent=record,
                flags={"anonymous"},
                declarations=[
                    Declaration(
                        source_file=self._file,
                        node=key,
                        name_offset=span[0],
                        name_length=span[1],
                        annotation=annotation,
                    )
                ],
            )
            record.members.setdefault(key.value, member)
            self.by_node[key] = record.members[key.value]
        return record

    def _looks_like_type(self, value: ast.expr) -> bool:
        if isinstance(value, ast.Subscript):
            form = self.qualify(value.value)
            if form.startswith(("typing.", "typing_extensions.", "collections.abc.")):
                return True
            if form in _TYPE_CONSTRUCTORS:
                return True
            head = dotted_parts(value.value)
            return head is not None and self._is_local_class(head[0])
        if isinstance(value, ast.BinOp) and isinstance(value.op, ast.BitOr):
            return all(
                self._looks_like_type(side) or self._is_type_operand(side)
                for side in (value.left, value.right)
            )
        return False

    def _is_type_operand(self, node: ast.expr) -> bool:
        if isinstance(node, ast.Constant) and node.value is None:
            return True
        if isinstance(node, ast.Name):
            return self._is_local_class(node.id) or self.qualify(node) in _TYPE_CONSTRUCTORS | {
                "builtins.int",
                "builtins.str",
                "builtins.float",
                "builtins.bool",
                "builtins.bytes",
            }
        return False

    def _is_local_class(self, name: str) -> bool:
        symbol = self.module.members.get(name)
        return symbol is not None and symbol.kind == "class"

    def _bind_class(self, node: ast.ClassDef, owner: Symbol) -> Symbol:
        symbol = self._define(owner, node.name, "class", self._def_declaration(node))
        if any(
            self.qualify(_decorator_target(item)) == "dataclasses.dataclass"
            for item in node.decorator_list
        ):
            symbol.flags.update({"dataclass", "record"})
        for stmt in iter_statements(node.body):
            if isinstance(stmt, ast.ClassDef):
                self._bind_class(stmt, symbol)
            elif isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef)):
                kind: SymbolKind = "accessor" if self._is_accessor(stmt) else "method"
                self._define(symbol, stmt.name, kind, self._def_declaration(stmt))
            elif isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                self._define(
                    symbol,
                    stmt.target.id,
                    "property",
                    self._name_declaration(stmt, stmt.target, stmt.annotation, stmt.value),
                    stmt.target,
                )
            elif isinstance(stmt, ast.Assign):
                self._bind_class_assign(stmt, symbol)
        self._bind_instance_attributes(node, symbol)
        return symbol

    def _bind_class_assign(self, stmt: ast.Assign, owner: Symbol) -> None:
        for target in stmt.targets:
            for name in target_names(target):
                if name.id == "__slots__" and isinstance(
                    stmt.value, (ast.List, ast.Tuple)
                ):
                    for constant in _string_elements(stmt.value):
                        self.slot_constants.append((owner, constant))
                value = stmt.value if target is name else None
                self._define(
                    owner,
                    name.id,
                    "property",
                    self._name_declaration(stmt, name, None, value),
                    name,
                )

    def _bind_instance_attributes(self, node: ast.ClassDef, owner: Symbol) -> None:
        """Bind attributes assigned through the instance parameter of methods."""
        methods = [
            stmt
            for stmt in iter_statements(node.body)
            if isinstance(stmt, (ast.FunctionDef, ast.AsyncFunctionDef))
        ]
        methods.sort(key=lambda method: method.name != "__init__")
        for method in methods:
            decorators = {self.qualify(_decorator_target(item)) for item in method.decorator_list}
            if decorators & {"builtins.staticmethod", "builtins.classmethod"}:
                continue
            params = [*method.args.posonlyargs, *method.args.args]
            if not params:
                continue
            self_name = params[0].arg
            for stmt in _walk_method_body(method):
                for target, annotation, value in _assignment_targets(stmt):
                    if not (
                        isinstance(target, ast.Attribute)
                        and isinstance(target.value, ast.Name)
                        and target.value.id == self_name
                    ):
                        continue
                    existing = owner.members.get(target.attr)
                    if existing is not None and (
                        "instance" not in existing.flags or annotation is None
                    ):
                        continue
                    end = self._file.node_end(target)
                    decl = Declaration(
                        source_file=self._file,
                        node=stmt,
                        name_offset=end - len(target.attr),
                        name_length=len(target.attr),
                        annotation=annotation,
                        value=value,
                    )
                    if existing is None:
                        existing = Symbol(
                            name=target.attr,
                            kind="property",
                            parent=owner,
                            flags={"instance"},
                        )
                        owner.members[target.attr] = existing
                    existing.declarations.append(decl)
                    self.by_node[target] = existing

    def _is_accessor(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> bool:
        for item in node.decorator_list:
            target = _decorator_target(item)
            if self.qualify(target) in _ACCESSOR_DECORATORS:
                return True
            if isinstance(target, ast.Attribute) and target.attr in _ACCESSOR_COMPANIONS:
                return True
        return False

    def _is_reflection_sensitive(self, decorators: list[ast.expr]) -> bool:
        for item in decorators:
            target = _decorator_target(item)
            if isinstance(target, ast.Attribute) and target.attr in _ACCESSOR_COMPANIONS:
                continue
            qualified = self.qualify(target)
            if not qualified:
                return True
            short = qualified.rsplit(".", 1)[-1]
            if qualified in self._safe_decorators or short in self._safe_decorators:
                continue
            return True
        return False

    def _define(
        self,
        owner: Symbol,
        name: str,
        kind: SymbolKind,
        decl: Declaration,
        name_node: ast.AST | None = None,
    ) -> Symbol:
        existing = owner.members.get(name)
        if existing is not None and not existing.is_alias and "instance" not in existing.flags:
            existing.declarations.append(decl)
            if kind == "type-alias" or (kind == "accessor" and existing.kind == "method"):
                existing.kind = kind
            symbol = existing
        else:
            symbol = Symbol(name=name, kind=kind, parent=owner, declarations=[decl])
            if existing is not None and "instance" in existing.flags:
                symbol.declarations.extend(existing.declarations)
            owner.members[name] = symbol
        self.by_node[name_node if name_node is not None else decl.node] = symbol
        return symbol

    def _def_declaration(
        self, node: ast.ClassDef | ast.FunctionDef | ast.AsyncFunctionDef
    ) -> Declaration:
        start = self._file.node_start(node)
        match = _DEF_NAME.match(self._file.text, start)
        name_offset = start + (match.end() - match.start()) if match else start
        annotation = None
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            annotation = node.returns
        return Declaration(
            source_file=self._file,
            node=node,
            name_offset=name_offset,
            name_length=len(node.name),
            annotation=annotation,
            reflection_sensitive=self._is_reflection_sensitive(node.decorator_list),
        )

    def _name_declaration(
        self,
        stmt: ast.stmt,
        name: ast.Name,
        annotation: ast.expr | None,
        value: ast.expr | None,
    ) -> Declaration:
        return Declaration(
            source_file=self._file,
            node=stmt,
            name_offset=self._file.node_start(name),
            name_length=len(name.id),
            annotation=annotation,
            value=value,
        )


def _decorator_target(node: ast.expr) -> ast.expr:
    return node.func if isinstance(node, ast.Call) else node


def _string_elements(node: ast.List | ast.Tuple) -> list[ast.Constant]:
    return [
        element
        for element in node.elts
        if isinstance(element, ast.Constant) and isinstance(element.value, str)
    ]


def _record_fields(fields: ast.expr) -> Iterator[tuple[ast.Constant, ast.expr | None]]:
    if isinstance(fields, ast.Dict):
        for key, value in zip(fields.keys, fields.values):
            if isinstance(key, ast.Constant) and isinstance(key.value, str):
                yield key, value
        return
    if isinstance(fields, (ast.List, ast.Tuple)):
        for element in fields.elts:
            if isinstance(element, ast.Constant) and isinstance(element.value, str):
                yield element, None
            elif (
                isinstance(element, ast.Tuple)
                and len(element.elts) == 2
                and isinstance(element.elts[0], ast.Constant)
                and isinstance(element.elts[0].value, str)
            ):
                yield element.elts[0], element.elts[1]


def _walk_method_body(method: ast.FunctionDef | ast.AsyncFunctionDef) -> Iterator[ast.AST]:
    stack: list[ast.AST] = list(method.body)
    while stack:
        node = stack.pop(0)
        yield node
        for child in ast.iter_child_nodes(node):
            if not isinstance(child, ast.ClassDef):
                stack.append(child)


def _assignment_targets(
    node: ast.AST,
) -> Iterator[tuple[ast.expr, ast.expr | None, ast.expr | None]]:
    """Yield ``(target, annotation, value)`` for assignment-like statements."""
    if isinstance(node, ast.Assign):
        for target in node.targets:
            value = node.value if len(node.targets) == 1 else None
            if isinstance(target, (ast.Tuple, ast.List)):
                for element in target.elts:
                    yield element, None, None
            else:
                yield target, None, value
    elif isinstance(node, ast.AnnAssign):
        yield node.target, node.annotation, node.value
    elif isinstance(node, (ast.For, ast.AsyncFor)):
        yield node.target, None, None
    elif isinstance(node, (ast.With, ast.AsyncWith)):
        for item in node.items:
            if item.optional_vars is not None:
                yield item.optional_vars, None, None
