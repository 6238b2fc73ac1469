# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Resolve names through scopes and infer static types of expressions."""

import ast
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from prefixer.annotations import (
    CAST_FORMS,
    LITERAL_FORMS,
    METADATA_FORMS,
    OPTIONAL_FORMS,
    SELF_FORMS,
    TYPEDDICT_FORMS,
    UNION_FORMS,
    WRAPPER_FORMS,
    parse_forward_ref,
)
from prefixer.model import SourceFile, Symbol, is_special_name
from prefixer.python.binder import target_names
from prefixer.python.types import (
    ClassObjectType,
    ContainerType,
    FunctionType,
    InstanceType,
    ModuleType,
    SuperType,
    Type,
    make_union,
    variants_of,
)
from prefixer.snapshot import SnapshotError

if TYPE_CHECKING:
    from prefixer.python.program import PythonProgram

logger = logging.getLogger(__name__)


def _qualified(modules: tuple[str, ...], names: tuple[str, ...]) -> frozenset[str]:
    return frozenset(f"{module}.{name}" for module in modules for name in names)


_SEQUENCE_FORMS = _qualified(
    ("builtins",), ("list", "set", "frozenset")
) | _qualified(
    ("typing", "collections.abc"),
    (
        "List",
        "Set",
        "FrozenSet",
        "Sequence",
        "MutableSequence",
        "Iterable",
        "Iterator",
        "Collection",
        "AbstractSet",
        "MutableSet",
        "Generator",
        "AsyncIterator",
        "AsyncIterable",
        "AsyncGenerator",
        "Deque",
    ),
) | {"collections.deque"}
_MAPPING_FORMS = _qualified(("builtins",), ("dict",)) | _qualified(
    ("typing", "collections.abc", "collections"),
    ("Dict", "Mapping", "MutableMapping", "DefaultDict", "OrderedDict", "defaultdict"),
)
_TUPLE_FORMS = frozenset({"builtins.tuple", "typing.Tuple"})
_TYPE_FORMS = frozenset({"builtins.type", "typing.Type"})
_ITERATING_BUILTINS = frozenset(
    {
        "builtins.list",
        "builtins.sorted",
        "builtins.tuple",
        "builtins.set",
        "builtins.frozenset",
        "builtins.reversed",
        "builtins.iter",
    }
)
_CLASS_RECEIVER_METHODS = frozenset({"__new__", "__init_subclass__", "__class_getitem__"})
# Named tuple helpers returning another instance of the receiver's class.
_NAMEDTUPLE_BUILDERS = frozenset({"_replace", "_make"})
_SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda)
_COMPREHENSIONS = (ast.ListComp, ast.SetComp, ast.DictComp, ast.GeneratorExp)
_FOREIGN_EXPRESSIONS = (
    ast.Constant,
    ast.JoinedStr,
    ast.List,
    ast.Tuple,
    ast.Set,
    ast.Dict,
    ast.BinOp,
    ast.UnaryOp,
    ast.Compare,
    *_COMPREHENSIONS,
)


@dataclass(frozen=True)
class LocalBinding:
    """Represent a name bound in a function, lambda or comprehension scope."""

    scope: ast.AST
    name: str


@dataclass
class _ScopeLocals:
    params: dict[str, ast.arg] = field(default_factory=dict)
    sites: dict[str, list[ast.AST]] = field(default_factory=dict)
    annotations: dict[str, ast.expr] = field(default_factory=dict)
    globals: set[str] = field(default_factory=set)
    nonlocals: set[str] = field(default_factory=set)

    def binds(self, name: str) -> bool:
        if name in self.globals or name in self.nonlocals:
            return False
        return name in self.params or name in self.sites or name in self.annotations

    def add_site(self, name: str, node: ast.AST) -> None:
        self.sites.setdefault(name, []).append(node)


class TypeInference:
    """Answer scope, type and contextual-type queries for a loaded program."""

    def __init__(self, program: "PythonProgram") -> None:
        self._program = program
        self._scopes: dict[ast.AST, _ScopeLocals] = {}
        self._expr_cache: dict[ast.AST, Type | None] = {}
        self._declared_cache: dict[Symbol, Type | None] = {}
        self._active: set[object] = set()
        self._handlers: dict[type, Callable[[SourceFile, ast.AST], Type | None]] = {
            ast.Name: self._infer_name,
            ast.Attribute: self._infer_attribute,
            ast.Call: self._infer_call,
            ast.Subscript: self._infer_subscript,
            ast.Await: lambda source_file, node: self.type_of(source_file, node.value),
            ast.NamedExpr: lambda source_file, node: self.type_of(source_file, node.value),
            ast.Starred: lambda source_file, node: self.type_of(source_file, node.value),
            ast.IfExp: self._infer_conditional,
            ast.BoolOp: self._infer_bool_op,
            ast.Tuple: self._infer_tuple,
            ast.List: self._infer_sequence_display,
            ast.Set: self._infer_sequence_display,
            ast.Dict: self._infer_dict_display,
            ast.ListComp: self._infer_comprehension,
            ast.SetComp: self._infer_comprehension,
            ast.GeneratorExp: self._infer_comprehension,
            ast.DictComp: self._infer_dict_comprehension,
        }

    # Name resolution

    def resolve_name(self, source_file: SourceFile, node: ast.Name) -> Symbol | LocalBinding | None:
        """Resolve a name to the symbol or local binding it refers to.

        Args:
            source_file: File holding the name.
            node: Name node.

        Returns:
            Module or class-level symbol, local binding, builtin external symbol,
            or ``None`` when the name is unbound.
        """
        parents = self._program.parents(source_file)
        name = node.id
        child: ast.AST = node
        current = parents.get(node)
        crossed_function = False
        while current is not None and not isinstance(current, ast.Module):
            if isinstance(current, _SCOPE_NODES):
                in_body = (
                    child is current.body
                    if isinstance(current, ast.Lambda)
                    else any(child is stmt for stmt in current.body)
                )
                if in_body:
                    scope = self.scope_locals(current)
                    if name in scope.globals:
                        break
                    if scope.binds(name):
                        return LocalBinding(scope=current, name=name)
                    crossed_function = True
            elif isinstance(current, _COMPREHENSIONS):
                first_iter = current.generators[0].iter
                if not _contains(first_iter, node):
                    if self.scope_locals(current).binds(name):
                        return LocalBinding(scope=current, name=name)
                    crossed_function = True
            elif isinstance(current, ast.ClassDef) and not crossed_function:
                if any(child is stmt for stmt in current.body):
                    owner = self._program.symbol_for_node(source_file, current)
                    member = owner.members.get(name) if owner is not None else None
                    if member is not None and "instance" not in member.flags:
                        return member
            child = current
            current = parents.get(current)
        return self._program.lookup_global(source_file, name)

    def scope_locals(self, scope: ast.AST) -> _ScopeLocals:
        cached = self._scopes.get(scope)
        if cached is not None:
            return cached
        locals_ = _ScopeLocals()
        if isinstance(scope, _COMPREHENSIONS):
            for generator in scope.generators:
                for name in target_names(generator.target):
                    locals_.add_site(name.id, name)
        else:
            arguments = scope.args
            for arg in [
                *arguments.posonlyargs,
                *arguments.args,
                *arguments.kwonlyargs,
                arguments.vararg,
                arguments.kwarg,
            ]:
                if arg is not None:
                    locals_.params[arg.arg] = arg
            body = [scope.body] if isinstance(scope, ast.Lambda) else list(scope.body)
            _collect_bindings(body, locals_)
        self._scopes[scope] = locals_
        return locals_

    def expression_symbol(self, source_file: SourceFile, node: ast.expr) -> Symbol | None:
        """Resolve a name or attribute chain to a resolved symbol, when static."""
        if isinstance(node, ast.Name):
            binding = self.resolve_name(source_file, node)
            return self._resolved(binding) if isinstance(binding, Symbol) else None
        if isinstance(node, ast.Attribute):
            base = self.expression_symbol(source_file, node.value)
            if base is None:
                return None
            if base.kind == "external":
                return self._program.external(f"{base.qualified_name}.{node.attr}")
            if base.kind == "module":
                return self._resolved(self.member_lookup(ModuleType(base), node.attr))
        return None

    def annotation_symbol(self, source_file: SourceFile, node: ast.expr) -> Symbol | None:
        """Resolve a name used in a type position without resolving import bindings."""
        if isinstance(node, ast.Name):
            if node in self._program.parents(source_file):
                binding = self.resolve_name(source_file, node)
                return binding if isinstance(binding, Symbol) else None
            return self._program.lookup_global(source_file, node.id)
        if isinstance(node, ast.Attribute):
            base = self._resolved(self.annotation_symbol(source_file, node.value))
            if base is None:
                return None
            if base.kind == "external":
                return self._program.external(f"{base.qualified_name}.{node.attr}")
            if base.kind == "module":
                return self.member_lookup(ModuleType(base), node.attr)
            if base.is_container:
                return self._mro_member(base, node.attr)
        return None

    # Annotations

    def evaluate_annotation(
        self,
        source_file: SourceFile,
        node: ast.expr | None,
        owner: Symbol | None = None,
    ) -> Type | None:
        """Evaluate a type expression to a type value.

        Args:
            source_file: File holding the expression.
            node: Type expression, possibly a string forward reference.
            owner: Class that ``Self`` refers to.

        Returns:
            Type value, or ``None`` when the annotation carries no usable type.
        """
        if node is None:
            return None
        if isinstance(node, ast.Constant):
            if isinstance(node.value, str):
                return self.evaluate_annotation(
                    source_file, parse_forward_ref(node.value), owner
                )
            return None
        if isinstance(node, (ast.Name, ast.Attribute)):
            symbol = self._resolved(self.annotation_symbol(source_file, node))
            return self._annotation_from_symbol(symbol, owner)
        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return make_union(
                [
                    self.evaluate_annotation(source_file, node.left, owner),
                    self.evaluate_annotation(source_file, node.right, owner),
                ]
            )
        if isinstance(node, ast.Subscript):
            return self._evaluate_subscript(source_file, node, owner)
        return None

    def _annotation_from_symbol(self, symbol: Symbol | None, owner: Symbol | None) -> Type | None:
        if symbol is None:
            return None
        if symbol.is_container:
            return InstanceType(symbol)
        if symbol.kind == "type-alias":
            if symbol.structure is not None:
                return InstanceType(symbol.structure)
            return self._alias_value(symbol, owner)
        if symbol.kind == "external":
            if symbol.qualified_name in SELF_FORMS and owner is not None:
                return InstanceType(owner)
            if symbol.qualified_name in _SEQUENCE_FORMS:
                return ContainerType("sequence", (None,))
            if symbol.qualified_name in _MAPPING_FORMS:
                return ContainerType("mapping", (None, None))
        return None

    def _alias_value(self, symbol: Symbol, owner: Symbol | None) -> Type | None:
        if symbol in self._active:
            return None
        self._active.add(symbol)
        try:
            for decl in symbol.declarations:
                result = self.evaluate_annotation(decl.source_file, decl.value, owner)
                if result is not None:
                    return result
            return None
        finally:
            self._active.discard(symbol)

    def _evaluate_subscript(
        self, source_file: SourceFile, node: ast.Subscript, owner: Symbol | None
    ) -> Type | None:
        base = self._resolved(self.annotation_symbol(source_file, node.value))
        if base is None:
            return None
        elements = list(node.slice.elts) if isinstance(node.slice, ast.Tuple) else [node.slice]

        def evaluate(index: int) -> Type | None:
            if index >= len(elements):
                return None
            return self.evaluate_annotation(source_file, elements[index], owner)

        if base.is_container:
            return InstanceType(base)
        if base.kind == "type-alias":
            return self._annotation_from_symbol(base, owner)
        if base.kind != "external":
            return None
        form = base.qualified_name
        if form in LITERAL_FORMS:
            return None
        if form in OPTIONAL_FORMS or form in METADATA_FORMS or form in WRAPPER_FORMS:
            return evaluate(0)
        if form in UNION_FORMS:
            return make_union(evaluate(index) for index in range(len(elements)))
        if form in TYPEDDICT_FORMS and isinstance(node.slice, ast.Dict):
            return InstanceType(self._program.inline_record(source_file, node.slice))
        if form in _SEQUENCE_FORMS:
            return ContainerType("sequence", (evaluate(0),))
        if form in _MAPPING_FORMS:
            return ContainerType("mapping", (evaluate(0), evaluate(1)))
        if form in _TUPLE_FORMS:
            if len(elements) == 2 and _is_ellipsis(elements[1]):
                return ContainerType("sequence", (evaluate(0),))
            return ContainerType("tuple", tuple(evaluate(i) for i in range(len(elements))))
        if form in _TYPE_FORMS:
            return make_union(
                ClassObjectType(variant.symbol)
                for variant in variants_of(evaluate(0))
                if isinstance(variant, InstanceType)
            )
        return None

    # Symbols and members

    def value_type(self, symbol: Symbol | None, receiver: Type | None = None) -> Type | None:
        """Return the type of the value a symbol binds."""
        symbol = self._resolved(symbol)
        if symbol is None:
            return None
        if symbol.kind == "module":
            return ModuleType(symbol)
        if symbol.is_container:
            return ClassObjectType(symbol)
        if symbol.kind == "type-alias":
            if symbol.structure is not None:
                return ClassObjectType(symbol.structure)
            return make_union(
                ClassObjectType(variant.symbol)
                for variant in variants_of(self._alias_value(symbol, None))
                if isinstance(variant, InstanceType)
            )
        if symbol.kind in ("function", "method"):
            return FunctionType(symbol, receiver)
        if symbol.kind == "accessor":
            return self.return_type(symbol, receiver)
        if symbol.kind == "enum-member":
            return InstanceType(symbol.parent) if symbol.parent is not None else None
        if symbol.kind in ("property", "variable"):
            return self.declared_type(symbol)
        return None

    def declared_type(self, symbol: Symbol) -> Type | None:
        """Return the annotated type of a symbol, or the type of its assigned value."""
        if symbol in self._declared_cache:
            return self._declared_cache[symbol]
        if symbol in self._active:
            return None
        self._active.add(symbol)
        try:
            result = self._compute_declared_type(symbol)
        finally:
            self._active.discard(symbol)
        self._declared_cache[symbol] = result
        return result

    def _compute_declared_type(self, symbol: Symbol) -> Type | None:
        if symbol.kind == "accessor":
            return self.return_type(symbol, None)
        if symbol.kind in ("function", "method"):
            return FunctionType(symbol)
        if symbol.kind == "enum-member" and symbol.parent is not None:
            return InstanceType(symbol.parent)
        owner = symbol.parent if symbol.parent is not None and symbol.parent.is_container else None
        for decl in symbol.declarations:
            result = self.evaluate_annotation(decl.source_file, decl.annotation, owner)
            if result is not None:
                return result
        for decl in symbol.declarations:
            if decl.value is not None and symbol.kind in ("property", "variable"):
                result = self.type_of(decl.source_file, decl.value)
                if result is not None:
                    return result
        return None

    def member_lookup(self, type_: Type | None, name: str) -> Symbol | None:
        """Return the member called ``name`` of a non-union type."""
        if isinstance(type_, (InstanceType, ClassObjectType)):
            return self._mro_member(type_.symbol, name)
        if isinstance(type_, SuperType):
            for base in type_.symbol.bases:
                member = self._mro_member(base, name)
                if member is not None:
                    return member
            return None
        if isinstance(type_, ModuleType):
            member = type_.symbol.members.get(name)
            if member is not None:
                return member
            return self._program.module_by_name(f"{type_.symbol.qualified_name}.{name}")
        return None

    def _mro_member(self, cls: Symbol, name: str) -> Symbol | None:
        seen: set[Symbol] = set()
        queue = [cls]
        while queue:
            current = queue.pop(0)
            if current in seen:
                continue
            seen.add(current)
            member = current.members.get(name)
            if member is not None:
                return member
            queue.extend(current.bases)
        return None

    def return_type(self, function: Symbol, receiver: Type | None) -> Type | None:
        """Return the declared (or inferred) return type of a callable symbol."""
        owner = self._self_symbol(function, receiver)
        for decl in function.declarations:
            node = decl.node
            if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)) and node.returns:
                return self.evaluate_annotation(decl.source_file, node.returns, owner)
        key = ("returns", function)
        if key in self._active:
            return None
        self._active.add(key)
        try:
            results: list[Type | None] = []
            for decl in function.declarations:
                if isinstance(decl.node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                    for value in _return_values(decl.node):
                        results.append(self.type_of(decl.source_file, value))
            return make_union(results)
        finally:
            self._active.discard(key)

    def element_type(self, type_: Type | None) -> Type | None:
        """Return the type produced by iterating a value."""
        results: list[Type | None] = []
        for variant in variants_of(type_):
            if isinstance(variant, ContainerType):
                if variant.kind == "tuple":
                    results.extend(variant.args)
                elif variant.args:
                    results.append(variant.args[0])
            elif isinstance(variant, InstanceType):
                iterator = self._mro_member(variant.symbol, "__iter__")
                if iterator is not None:
                    results.append(self.element_type(self.return_type(iterator, variant)))
        return make_union(results)

    def is_record(self, symbol: Symbol) -> bool:
        return "record" in symbol.flags or symbol.kind == "typeddict"

    def record_fields(self, symbol: Symbol) -> list[Symbol]:
        """Return the constructor fields of a record class in declaration order."""
        fields: dict[str, Symbol] = {}
        lineage: list[Symbol] = []
        queue = [symbol]
        while queue:
            current = queue.pop(0)
            if current in lineage or current.kind == "external":
                continue
            lineage.append(current)
            queue.extend(current.bases)
        for cls in reversed(lineage):
            for member in cls.members.values():
                if member.kind != "property" or "instance" in member.flags:
                    continue
                if is_special_name(member.name):
                    continue
                if not any(decl.annotation is not None for decl in member.declarations):
                    continue
                fields[member.name] = member
        return list(fields.values())

    # Expressions

    def type_of(self, source_file: SourceFile, node: ast.AST | None) -> Type | None:
        """Infer the static type of an expression.

        Args:
            source_file: File holding the expression.
            node: Expression node.

        Returns:
            Inferred type, or ``None`` when unknown.
        """
        if node is None:
            return None
        if node in self._expr_cache:
            return self._expr_cache[node]
        if node in self._active:
            return None
        handler = self._handlers.get(type(node))
        if handler is None:
            return None
        self._active.add(node)
        try:
            result = handler(source_file, node)
        finally:
            self._active.discard(node)
        self._expr_cache[node] = result
        return result

    def _infer_name(self, source_file: SourceFile, node: ast.Name) -> Type | None:
        binding = self.resolve_name(source_file, node)
        if isinstance(binding, LocalBinding):
            return self.local_type(source_file, binding)
        return self.value_type(binding)

    def _infer_attribute(self, source_file: SourceFile, node: ast.Attribute) -> Type | None:
        base = self.type_of(source_file, node.value)
        results: list[Type | None] = []
        for variant in variants_of(base):
            member = self.member_lookup(variant, node.attr)
            if member is None:
                continue
            receiver = variant if isinstance(variant, (InstanceType, ClassObjectType)) else None
            if isinstance(variant, SuperType):
                receiver = InstanceType(variant.symbol)
            results.append(self.value_type(member, receiver))
        return make_union(results)

    def _infer_call(self, source_file: SourceFile, node: ast.Call) -> Type | None:
        callee_symbol = self.expression_symbol(source_file, node.func)
        if callee_symbol is not None and callee_symbol.kind == "external":
            return self._infer_builtin_call(source_file, node, callee_symbol.qualified_name)
        if isinstance(node.func, ast.Attribute) and node.func.attr in _NAMEDTUPLE_BUILDERS:
            built = self.namedtuple_of(source_file, node.func.value)
            if built is not None:
                return built
        results: list[Type | None] = []
        for variant in variants_of(self.type_of(source_file, node.func)):
            if isinstance(variant, ClassObjectType):
                results.append(InstanceType(variant.symbol))
            elif isinstance(variant, FunctionType):
                results.append(self.return_type(variant.symbol, variant.receiver))
            elif isinstance(variant, InstanceType):
                call = self._mro_member(variant.symbol, "__call__")
                if call is not None:
                    results.append(self.return_type(call, variant))
        return make_union(results)

    def _infer_builtin_call(
        self, source_file: SourceFile, node: ast.Call, qualified_name: str
    ) -> Type | None:
        args = node.args
        if qualified_name in CAST_FORMS and args:
            owner = self.enclosing_class(source_file, node)
            return self.evaluate_annotation(source_file, args[0], owner)
        if qualified_name == "builtins.super":
            if len(args) >= 1:
                owners = variants_of(self.type_of(source_file, args[0]))
                for variant in owners:
                    if isinstance(variant, ClassObjectType):
                        return SuperType(variant.symbol)
            owner = self.enclosing_class(source_file, node)
            return SuperType(owner) if owner is not None else None
        if qualified_name == "builtins.type" and len(args) == 1:
            return make_union(
                ClassObjectType(variant.symbol)
                for variant in variants_of(self.type_of(source_file, args[0]))
                if isinstance(variant, InstanceType)
            )
        if qualified_name in _ITERATING_BUILTINS and args:
            element = self.element_type(self.type_of(source_file, args[0]))
            return ContainerType("sequence", (element,))
        if qualified_name == "builtins.next" and args:
            return self.element_type(self.type_of(source_file, args[0]))
        if qualified_name == "builtins.enumerate" and args:
            element = self.element_type(self.type_of(source_file, args[0]))
            return ContainerType("sequence", (ContainerType("tuple", (None, element)),))
        if qualified_name == "builtins.zip" and args:
            elements = tuple(self.element_type(self.type_of(source_file, arg)) for arg in args)
            return ContainerType("sequence", (ContainerType("tuple", elements),))
        return None

    def _infer_subscript(self, source_file: SourceFile, node: ast.Subscript) -> Type | None:
        base = self.type_of(source_file, node.value)
        key = node.slice
        results: list[Type | None] = []
        for variant in variants_of(base):
            if isinstance(variant, ContainerType):
                results.append(_container_item(variant, key))
            elif isinstance(variant, InstanceType):
                if (
                    variant.symbol.kind == "typeddict"
                    and isinstance(key, ast.Constant)
                    and isinstance(key.value, str)
                ):
                    member = self._mro_member(variant.symbol, key.value)
                    results.append(self.declared_type(member) if member else None)
                    continue
                getitem = self._mro_member(variant.symbol, "__getitem__")
                if getitem is not None:
                    results.append(self.return_type(getitem, variant))
            elif isinstance(variant, ClassObjectType):
                if variant.symbol.kind == "enum":
                    results.append(InstanceType(variant.symbol))
                else:
                    results.append(variant)
        return make_union(results)

    def _infer_conditional(self, source_file: SourceFile, node: ast.IfExp) -> Type | None:
        return make_union(
            [self.type_of(source_file, node.body), self.type_of(source_file, node.orelse)]
        )

    def _infer_bool_op(self, source_file: SourceFile, node: ast.BoolOp) -> Type | None:
        return make_union(self.type_of(source_file, value) for value in node.values)

    def _infer_tuple(self, source_file: SourceFile, node: ast.Tuple) -> Type | None:
        return ContainerType(
            "tuple", tuple(self.type_of(source_file, element) for element in node.elts)
        )

    def _infer_sequence_display(
        self, source_file: SourceFile, node: ast.List | ast.Set
    ) -> Type | None:
        element = make_union(self.type_of(source_file, item) for item in node.elts)
        return ContainerType("sequence", (element,))

    def _infer_dict_display(self, source_file: SourceFile, node: ast.Dict) -> Type | None:
        expected = self.contextual_type(source_file, node)
        if any(
            isinstance(variant, InstanceType) and self.is_record(variant.symbol)
            for variant in variants_of(expected)
        ):
            return expected
        keys = make_union(self.type_of(source_file, key) for key in node.keys if key)
        values = make_union(self.type_of(source_file, value) for value in node.values)
        return ContainerType("mapping", (keys, values))

    def _infer_comprehension(self, source_file: SourceFile, node: ast.AST) -> Type | None:
        return ContainerType("sequence", (self.type_of(source_file, node.elt),))

    def _infer_dict_comprehension(self, source_file: SourceFile, node: ast.DictComp) -> Type | None:
        return ContainerType(
            "mapping",
            (self.type_of(source_file, node.key), self.type_of(source_file, node.value)),
        )

    # Locals

    def local_type(self, source_file: SourceFile, binding: LocalBinding) -> Type | None:
        """Infer a local variable's type from its parameter or every binding site."""
        key = (binding.scope, binding.name)
        if key in self._active:
            return None
        self._active.add(key)
        try:
            scope = self.scope_locals(binding.scope)
            param = scope.params.get(binding.name)
            if param is not None:
                return self._param_type(source_file, binding.scope, param)
            annotation = scope.annotations.get(binding.name)
            if annotation is not None:
                owner = self.enclosing_class(source_file, binding.scope)
                return self.evaluate_annotation(source_file, annotation, owner)
            return make_union(
                self._site_type(source_file, site)
                for site in scope.sites.get(binding.name, [])
            )
        finally:
            self._active.discard(key)

    def _param_type(self, source_file: SourceFile, scope: ast.AST, param: ast.arg) -> Type | None:
        if isinstance(scope, ast.Lambda):
            return None
        owner = self._method_owner(source_file, scope)
        if param.annotation is not None:
            annotated = self.evaluate_annotation(source_file, param.annotation, owner)
            if param is scope.args.vararg:
                return ContainerType("sequence", (annotated,))
            if param is scope.args.kwarg:
                return ContainerType("mapping", (None, annotated))
            return annotated
        positional = [*scope.args.posonlyargs, *scope.args.args]
        if owner is None or not positional or positional[0] is not param:
            return None
        decorators = {
            self._program.qualify(source_file, _decorator_target(item))
            for item in scope.decorator_list
        }
        if "builtins.staticmethod" in decorators:
            return None
        if "builtins.classmethod" in decorators or scope.name in _CLASS_RECEIVER_METHODS:
            return ClassObjectType(owner)
        return InstanceType(owner)

    def _site_type(self, source_file: SourceFile, site: ast.AST) -> Type | None:
        parents = self._program.parents(source_file)
        if isinstance(site, ast.ExceptHandler):
            return make_union(
                InstanceType(variant.symbol)
                for variant in variants_of(self.type_of(source_file, site.type))
                if isinstance(variant, ClassObjectType)
            )
        if isinstance(site, ast.pattern):
            if isinstance(site, ast.MatchAs) and isinstance(site.pattern, ast.MatchClass):
                return self.pattern_type(source_file, site.pattern)
            return self.pattern_type(source_file, site)
        if isinstance(site, ast.alias):
            parent = parents.get(site)
            if isinstance(parent, ast.ImportFrom):
                return self.value_type(
                    self._program.import_target(source_file, parent, site.name)
                )
            module = site.name if site.asname else site.name.split(".")[0]
            return self.value_type(self._program.module_by_name(module))
        root = site
        path: list[ast.AST] = [site]
        parent = parents.get(root)
        while isinstance(parent, (ast.Tuple, ast.List, ast.Starred)):
            root = parent
            path.append(root)
            parent = parents.get(root)
        value_type = self._target_source_type(source_file, root, parent)
        for outer, inner in zip(reversed(path), list(reversed(path))[1:]):
            if isinstance(outer, ast.Starred):
                continue
            if isinstance(inner, ast.Starred):
                value_type = ContainerType("sequence", (self.element_type(value_type),))
                continue
            index = next(i for i, element in enumerate(outer.elts) if element is inner)
            value_type = _unpack_item(value_type, index, self)
        return value_type

    def _target_source_type(
        self, source_file: SourceFile, target: ast.AST, parent: ast.AST | None
    ) -> Type | None:
        if isinstance(parent, ast.Assign):
            return self.type_of(source_file, parent.value)
        if isinstance(parent, ast.AnnAssign):
            owner = self.enclosing_class(source_file, parent)
            return self.evaluate_annotation(source_file, parent.annotation, owner)
        if isinstance(parent, (ast.For, ast.AsyncFor, ast.comprehension)):
            return self.element_type(self.type_of(source_file, parent.iter))
        if isinstance(parent, ast.withitem):
            return self._entered_type(self.type_of(source_file, parent.context_expr))
        if isinstance(parent, ast.NamedExpr):
            return self.type_of(source_file, parent.value)
        return None

    def _entered_type(self, type_: Type | None) -> Type | None:
        results: list[Type | None] = []
        for variant in variants_of(type_):
            if isinstance(variant, ContainerType):
                results.append(self.element_type(variant))
            elif isinstance(variant, InstanceType):
                for name in ("__enter__", "__aenter__"):
                    enter = self._mro_member(variant.symbol, name)
                    if enter is not None:
                        results.append(self.return_type(enter, variant))
                        break
        return make_union(results)

    # Context

    def contextual_type(self, source_file: SourceFile, node: ast.AST) -> Type | None:
        """Return the type an expression is expected to have at its position.

        Args:
            source_file: File holding the expression.
            node: Expression node.

        Returns:
            Expected type from an annotation, parameter, record field or
            enclosing display, or ``None``.
        """
        key = ("context", node)
        if key in self._active:
            return None
        self._active.add(key)
        try:
            return self._compute_contextual_type(source_file, node)
        finally:
            self._active.discard(key)

    def _compute_contextual_type(self, source_file: SourceFile, node: ast.AST) -> Type | None:
        parents = self._program.parents(source_file)
        parent = parents.get(node)
        if isinstance(parent, ast.Return) and parent.value is node:
            function = self._enclosing_function(source_file, parent)
            if function is None or function.returns is None:
                return None
            owner = self._method_owner(source_file, function)
            return self.evaluate_annotation(source_file, function.returns, owner)
        if isinstance(parent, ast.AnnAssign) and parent.value is node:
            owner = self.enclosing_class(source_file, parent)
            return self.evaluate_annotation(source_file, parent.annotation, owner)
        if isinstance(parent, ast.Assign) and parent.value is node and len(parent.targets) == 1:
            return self._target_declared_type(source_file, parent.targets[0])
        if isinstance(parent, ast.Call) and any(arg is node for arg in parent.args):
            index = next(i for i, arg in enumerate(parent.args) if arg is node)
            return self.parameter_type(source_file, parent, index=index)
        if isinstance(parent, ast.keyword) and parent.arg is not None:
            call = parents.get(parent)
            if isinstance(call, ast.Call):
                return self.parameter_type(source_file, call, keyword=parent.arg)
            return None
        if isinstance(parent, ast.Dict) and any(value is node for value in parent.values):
            index = next(i for i, value in enumerate(parent.values) if value is node)
            key = parent.keys[index]
            if not (isinstance(key, ast.Constant) and isinstance(key.value, str)):
                return None
            outer = self.contextual_type(source_file, parent)
            return make_union(
                self.declared_type(member)
                for variant in variants_of(outer)
                if (member := self.member_lookup(variant, key.value)) is not None
            )
        if isinstance(parent, (ast.List, ast.Set, ast.Tuple)) and any(
            item is node for item in parent.elts
        ):
            outer = self.contextual_type(source_file, parent)
            results: list[Type | None] = []
            for variant in variants_of(outer):
                if isinstance(variant, ContainerType):
                    if variant.kind == "tuple" and isinstance(parent, ast.Tuple):
                        index = next(i for i, item in enumerate(parent.elts) if item is node)
                        results.append(variant.args[index] if index < len(variant.args) else None)
                    elif variant.kind == "sequence" and variant.args:
                        results.append(variant.args[0])
            return make_union(results)
        if isinstance(parent, (ast.IfExp, ast.BoolOp)):
            if isinstance(parent, ast.IfExp) and node is parent.test:
                return None
            return self.contextual_type(source_file, parent)
        return None

    def _target_declared_type(self, source_file: SourceFile, target: ast.expr) -> Type | None:
        if isinstance(target, ast.Name):
            binding = self.resolve_name(source_file, target)
            if isinstance(binding, LocalBinding):
                annotation = self.scope_locals(binding.scope).annotations.get(binding.name)
                owner = self.enclosing_class(source_file, binding.scope)
                return self.evaluate_annotation(source_file, annotation, owner)
            if isinstance(binding, Symbol):
                owner = binding.parent if binding.parent and binding.parent.is_container else None
                for decl in binding.declarations:
                    if decl.annotation is not None and binding.kind in ("property", "variable"):
                        return self.evaluate_annotation(decl.source_file, decl.annotation, owner)
            return None
        if isinstance(target, ast.Attribute):
            results: list[Type | None] = []
            for variant in variants_of(self.type_of(source_file, target.value)):
                member = self.member_lookup(variant, target.attr)
                if member is None or member.kind not in ("property", "variable"):
                    continue
                owner = member.parent if member.parent and member.parent.is_container else None
                for decl in member.declarations:
                    if decl.annotation is not None:
                        results.append(
                            self.evaluate_annotation(decl.source_file, decl.annotation, owner)
                        )
                        break
            return make_union(results)
        if isinstance(target, ast.Subscript):
            return self._infer_subscript(source_file, target)
        return None

    def parameter_type(
        self,
        source_file: SourceFile,
        call: ast.Call,
        index: int | None = None,
        keyword: str | None = None,
    ) -> Type | None:
        """Return the declared type of the parameter an argument binds to."""
        callee_symbol = self.expression_symbol(source_file, call.func)
        if callee_symbol is not None and callee_symbol.kind == "external":
            if callee_symbol.qualified_name in CAST_FORMS and index == 1:
                owner = self.enclosing_class(source_file, call)
                return self.evaluate_annotation(source_file, call.args[0], owner)
            return None
        results: list[Type | None] = []
        for variant in variants_of(self.type_of(source_file, call.func)):
            if isinstance(variant, ClassObjectType):
                cls = variant.symbol
                if self.is_record(cls):
                    fields = self.record_fields(cls)
                    if keyword is not None:
                        field_symbol = next((f for f in fields if f.name == keyword), None)
                    elif index is not None and index < len(fields):
                        field_symbol = fields[index]
                    else:
                        field_symbol = None
                    results.append(self.declared_type(field_symbol) if field_symbol else None)
                    continue
                init = self._mro_member(cls, "__init__")
                if init is not None:
                    results.append(
                        self._signature_parameter(init, InstanceType(cls), index, keyword)
                    )
            elif isinstance(variant, FunctionType):
                results.append(
                    self._signature_parameter(variant.symbol, variant.receiver, index, keyword)
                )
        return make_union(results)

    def _signature_parameter(
        self,
        function: Symbol,
        receiver: Type | None,
        index: int | None,
        keyword: str | None,
    ) -> Type | None:
        for decl in function.declarations:
            node = decl.node
            if not isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
                continue
            decorators = {
                self._program.qualify(decl.source_file, _decorator_target(item))
                for item in node.decorator_list
            }
            if "typing.overload" in decorators:
                continue
            positional = [*node.args.posonlyargs, *node.args.args]
            if function.kind == "method" and "builtins.staticmethod" not in decorators:
                if isinstance(receiver, InstanceType) or (
                    isinstance(receiver, ClassObjectType)
                    and "builtins.classmethod" in decorators
                ):
                    positional = positional[1:]
            param: ast.arg | None = None
            if keyword is not None:
                param = next(
                    (
                        arg
                        for arg in [*node.args.args, *node.args.kwonlyargs]
                        if arg.arg == keyword
                    ),
                    node.args.kwarg,
                )
            elif index is not None:
                param = positional[index] if index < len(positional) else node.args.vararg
            if param is None or param.annotation is None:
                return None
            owner = self._self_symbol(function, receiver)
            return self.evaluate_annotation(decl.source_file, param.annotation, owner)
        return None

    def constructed_type(self, source_file: SourceFile, call: ast.Call) -> Type | None:
        """Return the record type built by a constructor call, if any."""
        callee_symbol = self.expression_symbol(source_file, call.func)
        if callee_symbol is not None and callee_symbol.qualified_name == "builtins.dict":
            return self.contextual_type(source_file, call)
        if isinstance(call.func, ast.Attribute) and call.func.attr == "_replace":
            return self.namedtuple_of(source_file, call.func.value)
        return make_union(
            InstanceType(variant.symbol)
            for variant in variants_of(self.type_of(source_file, call.func))
            if isinstance(variant, ClassObjectType) and self.is_record(variant.symbol)
        )

    def namedtuple_of(self, source_file: SourceFile, node: ast.expr) -> Type | None:
        """Return the named tuple instance type of an instance or class expression."""
        return make_union(
            InstanceType(variant.symbol)
            for variant in variants_of(self.type_of(source_file, node))
            if isinstance(variant, (InstanceType, ClassObjectType))
            and "namedtuple" in variant.symbol.flags
        )

    def record_view(self, source_file: SourceFile, node: ast.expr) -> Type | None:
        """Return the record whose fields key a ``record._asdict()`` mapping."""
        if (
            isinstance(node, ast.Call)
            and isinstance(node.func, ast.Attribute)
            and node.func.attr == "_asdict"
        ):
            return self.namedtuple_of(source_file, node.func.value)
        return None

    def pattern_type(self, source_file: SourceFile, pattern: ast.AST) -> Type | None:
        """Return the type a match pattern is applied to."""
        if isinstance(pattern, ast.MatchClass):
            return make_union(
                InstanceType(variant.symbol)
                for variant in variants_of(self.type_of(source_file, pattern.cls))
                if isinstance(variant, ClassObjectType)
            )
        parents = self._program.parents(source_file)
        parent = parents.get(pattern)
        if isinstance(parent, ast.match_case):
            match = parents.get(parent)
            if isinstance(match, ast.Match):
                return self.type_of(source_file, match.subject)
            return None
        if isinstance(parent, (ast.MatchAs, ast.MatchOr)):
            return self.pattern_type(source_file, parent)
        if isinstance(parent, ast.MatchMapping):
            index = next((i for i, item in enumerate(parent.patterns) if item is pattern), None)
            if index is None:
                return None
            key = parent.keys[index]
            if not (isinstance(key, ast.Constant) and isinstance(key.value, str)):
                return None
            return self._member_declared_type(self.pattern_type(source_file, parent), key.value)
        if isinstance(parent, ast.MatchClass):
            index = next(
                (i for i, item in enumerate(parent.kwd_patterns) if item is pattern), None
            )
            if index is None:
                return None
            return self._member_declared_type(
                self.pattern_type(source_file, parent), parent.kwd_attrs[index]
            )
        if isinstance(parent, ast.MatchSequence):
            return self.element_type(self.pattern_type(source_file, parent))
        return None

    def _member_declared_type(self, type_: Type | None, name: str) -> Type | None:
        return make_union(
            self.declared_type(member)
            for variant in variants_of(type_)
            if (member := self.member_lookup(variant, name)) is not None
        )

    # Foreign values

    def is_foreign_value(self, source_file: SourceFile, node: ast.AST | None) -> bool:
        """Check whether an expression of unknown type cannot hold a project instance.

        Literals, results of external calls and names declared with an
        annotation are foreign. Unannotated parameters, and values flowing
        from them, are not.

        Args:
            source_file: File holding the expression.
            node: Expression node.

        Returns:
            True when the value provably comes from outside the project.
        """
        if node is None:
            return False
        key = ("foreign", node)
        if key in self._active:
            return False
        self._active.add(key)
        try:
            return self._compute_foreign(source_file, node)
        finally:
            self._active.discard(key)

    def _compute_foreign(self, source_file: SourceFile, node: ast.AST) -> bool:
        if isinstance(node, _FOREIGN_EXPRESSIONS):
            return True
        if isinstance(node, ast.Name):
            binding = self.resolve_name(source_file, node)
            if isinstance(binding, LocalBinding):
                return self._local_is_foreign(source_file, binding)
            return self._symbol_is_foreign(binding)
        if isinstance(node, ast.Attribute):
            base = self.type_of(source_file, node.value)
            if base is None:
                return self.is_foreign_value(source_file, node.value)
            members = [self.member_lookup(variant, node.attr) for variant in variants_of(base)]
            return all(member is None or self._symbol_is_foreign(member) for member in members)
        if isinstance(node, ast.Call):
            callee_symbol = self.expression_symbol(source_file, node.func)
            if callee_symbol is not None and callee_symbol.kind == "external":
                return True
            callee = self.type_of(source_file, node.func)
            if callee is None:
                return self.is_foreign_value(source_file, node.func)
            return all(
                isinstance(variant, FunctionType) and _has_return_annotation(variant.symbol)
                for variant in variants_of(callee)
            )
        if isinstance(node, (ast.Subscript, ast.Await, ast.Starred, ast.NamedExpr)):
            return self.is_foreign_value(source_file, node.value)
        if isinstance(node, ast.IfExp):
            return self.is_foreign_value(source_file, node.body) and self.is_foreign_value(
                source_file, node.orelse
            )
        if isinstance(node, ast.BoolOp):
            return all(self.is_foreign_value(source_file, value) for value in node.values)
        return False

    def _local_is_foreign(self, source_file: SourceFile, binding: LocalBinding) -> bool:
        scope = self.scope_locals(binding.scope)
        param = scope.params.get(binding.name)
        if param is not None:
            return param.annotation is not None
        if binding.name in scope.annotations:
            return True
        sites = scope.sites.get(binding.name, [])
        return bool(sites) and all(self._site_is_foreign(source_file, site) for site in sites)

    def _site_is_foreign(self, source_file: SourceFile, site: ast.AST) -> bool:
        if isinstance(site, (ast.alias, ast.ExceptHandler)):
            return True
        if isinstance(site, ast.pattern):
            return False
        parents = self._program.parents(source_file)
        parent = parents.get(site)
        while isinstance(parent, (ast.Tuple, ast.List, ast.Starred)):
            parent = parents.get(parent)
        if isinstance(parent, ast.AugAssign):
            return True
        if isinstance(parent, (ast.Assign, ast.AnnAssign, ast.NamedExpr)):
            return self.is_foreign_value(source_file, parent.value)
        if isinstance(parent, (ast.For, ast.AsyncFor, ast.comprehension)):
            return self.is_foreign_value(source_file, parent.iter)
        if isinstance(parent, ast.withitem):
            return self.is_foreign_value(source_file, parent.context_expr)
        return False

    def _symbol_is_foreign(self, symbol: Symbol | None) -> bool:
        symbol = self._resolved(symbol)
        if symbol is None:
            return False
        if symbol.kind in ("external", "module"):
            return True
        if symbol.kind == "accessor":
            return _has_return_annotation(symbol)
        if symbol.kind not in ("property", "variable"):
            return False
        if any(decl.annotation is not None for decl in symbol.declarations):
            return True
        values = [decl for decl in symbol.declarations if decl.value is not None]
        return bool(values) and all(
            self.is_foreign_value(decl.source_file, decl.value) for decl in values
        )

    # Helpers

    def enclosing_class(self, source_file: SourceFile, node: ast.AST) -> Symbol | None:
        """Return the class whose body (or method body) contains a node."""
        parents = self._program.parents(source_file)
        current = parents.get(node)
        while current is not None:
            if isinstance(current, ast.ClassDef):
                return self._program.symbol_for_node(source_file, current)
            current = parents.get(current)
        return None

    def _enclosing_function(
        self, source_file: SourceFile, node: ast.AST
    ) -> ast.FunctionDef | ast.AsyncFunctionDef | None:
        parents = self._program.parents(source_file)
        current = parents.get(node)
        while current is not None:
            if isinstance(current, (ast.FunctionDef, ast.AsyncFunctionDef)):
                return current
            if isinstance(current, (ast.Lambda, ast.ClassDef)):
                return None
            current = parents.get(current)
        return None

    def _method_owner(self, source_file: SourceFile, function: ast.AST) -> Symbol | None:
        parents = self._program.parents(source_file)
        current = parents.get(function)
        while isinstance(current, (ast.If, ast.Try, ast.TryStar, ast.With, ast.AsyncWith)):
            current = parents.get(current)
        if isinstance(current, ast.ClassDef):
            return self._program.symbol_for_node(source_file, current)
        return None

    def _self_symbol(self, function: Symbol, receiver: Type | None) -> Symbol | None:
        if isinstance(receiver, (InstanceType, ClassObjectType)):
            return receiver.symbol
        parent = function.parent
        return parent if parent is not None and parent.is_container else None

    def _resolved(self, symbol: Symbol | None) -> Symbol | None:
        if symbol is None or not symbol.is_alias:
            return symbol
        try:
            return self._program.resolve_alias(symbol)
        except SnapshotError as exc:
            logger.debug("Unresolved binding (name=%s error=%s)", symbol.name, exc)
            return None


def _decorator_target(node: ast.expr) -> ast.expr:
    return node.func if isinstance(node, ast.Call) else node


def _has_return_annotation(function: Symbol) -> bool:
    return any(
        isinstance(decl.node, (ast.FunctionDef, ast.AsyncFunctionDef))
        and decl.node.returns is not None
        for decl in function.declarations
    )


def _is_ellipsis(node: ast.expr) -> bool:
    return isinstance(node, ast.Constant) and node.value is Ellipsis


def _contains(root: ast.AST, node: ast.AST) -> bool:
    return any(item is node for item in ast.walk(root))


def _container_item(container: ContainerType, key: ast.expr) -> Type | None:
    if container.kind == "mapping":
        return container.args[1] if len(container.args) > 1 else None
    if isinstance(key, ast.Slice):
        return container
    if container.kind == "tuple":
        if isinstance(key, ast.Constant) and isinstance(key.value, int):
            index = key.value
            if -len(container.args) <= index < len(container.args):
                return container.args[index]
            return None
        return make_union(container.args)
    return container.args[0] if container.args else None


def _unpack_item(type_: Type | None, index: int, inference: TypeInference) -> Type | None:
    results: list[Type | None] = []
    for variant in variants_of(type_):
        if isinstance(variant, ContainerType) and variant.kind == "tuple":
            results.append(variant.args[index] if index < len(variant.args) else None)
        else:
            results.append(inference.element_type(variant))
    return make_union(results)


def _return_values(function: ast.FunctionDef | ast.AsyncFunctionDef) -> list[ast.expr]:
    values: list[ast.expr] = []
    stack: list[ast.AST] = list(function.body)
    while stack:
        node = stack.pop()
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)):
            continue
        if isinstance(node, ast.Return) and node.value is not None:
            values.append(node.value)
        stack.extend(ast.iter_child_nodes(node))
    return values


def _collect_bindings(body: list[ast.AST], locals_: _ScopeLocals) -> None:
    """Record every name a function body binds, without entering nested scopes."""
    stack: list[ast.AST] = list(body)
    while stack:
        node = stack.pop()
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
            locals_.add_site(node.name, node)
            continue
        if isinstance(node, ast.Lambda):
            continue
        if isinstance(node, _COMPREHENSIONS):
            for item in ast.walk(node):
                if isinstance(item, ast.NamedExpr) and isinstance(item.target, ast.Name):
                    locals_.add_site(item.target.id, item.target)
            continue
        if isinstance(node, ast.Global):
            locals_.globals.update(node.names)
        elif isinstance(node, ast.Nonlocal):
            locals_.nonlocals.update(node.names)
        elif isinstance(node, ast.Name) and isinstance(node.ctx, (ast.Store, ast.Del)):
            locals_.add_site(node.id, node)
        elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
            locals_.annotations.setdefault(node.target.id, node.annotation)
        elif isinstance(node, ast.ExceptHandler) and node.name:
            locals_.add_site(node.name, node)
        elif isinstance(node, (ast.MatchAs, ast.MatchStar)) and node.name:
            locals_.add_site(node.name, node)
        elif isinstance(node, ast.MatchMapping) and node.rest:
            locals_.add_site(node.rest, node)
        elif isinstance(node, (ast.Import, ast.ImportFrom)):
            for alias in node.names:
                if alias.name != "*":
                    locals_.add_site(alias.asname or alias.name.split(".")[0], alias)
        stack.extend(ast.iter_child_nodes(node))
