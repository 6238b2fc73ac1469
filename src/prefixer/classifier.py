# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Classify project symbols as prefixed or kept, with auditable reasons."""

import ast
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from prefixer.model import (
    RenameDecision,
    SourceFile,
    Symbol,
    is_namedtuple_field,
    is_private_name,
    is_special_name,
)
from prefixer.snapshot import ProgramSnapshot

logger = logging.getLogger(__name__)

_DYNAMIC_CALL_NAMES: set[str] = {"getattr", "setattr", "hasattr", "delattr"}

_KIND_LABELS: dict[str, str] = {
    "class": "class",
    "protocol": "interface",
    "typeddict": "interface",
    "enum": "enum",
    "function": "function",
    "variable": "variable",
    "type-alias": "type alias",
}

# External bases whose members cannot collide with project member names.
_INERT_EXTERNAL_BASES: frozenset[str] = frozenset(
    {
        "builtins.object",
        "builtins.BaseException",
        "builtins.Exception",
        "abc.ABC",
        "enum.Enum",
        "enum.IntEnum",
        "enum.StrEnum",
        "enum.Flag",
        "enum.IntFlag",
        "typing.Generic",
        "typing.Protocol",
        "typing.TypedDict",
        "typing.NamedTuple",
        "typing_extensions.Protocol",
        "typing_extensions.TypedDict",
    }
)

MemberPolicy = Callable[[bool, Symbol, bool], tuple[bool, str]]


@dataclass(frozen=True)
class ClassificationResult:
    """Represent classifier output.

    Attributes:
        to_prefix: Decisions for symbols that receive the prefix.
        to_keep: Decisions for symbols that keep their name.
        warnings: Free-text warnings about dynamic access and untyped receivers.
        symbols_to_rename: Prefixed symbols mapped to their new names.
        kept_symbols: Symbols explicitly kept.
    """

    to_prefix: list[RenameDecision]
    to_keep: list[RenameDecision]
    warnings: list[str]
    symbols_to_rename: dict[Symbol, str]
    kept_symbols: frozenset[Symbol]


def classify(
    snapshot: ProgramSnapshot,
    surface: set[Symbol],
    entry_modules: Iterable[SourceFile],
    prefix: str,
) -> ClassificationResult:
    """Decide prefix or keep for every project-local declaration.

    Args:
        snapshot: Program snapshot.
        surface: Public surface symbols.
        entry_modules: Entry module files.
        prefix: Prefix token.

    Returns:
        Classification decisions, warnings and the rename map.
    """
    classifier = _Classifier(
        snapshot=snapshot,
        surface=surface,
        entry_modules=list(entry_modules),
        prefix=prefix,
    )
    for source_file in snapshot.source_files():
        if not source_file.is_project or source_file.is_stub:
            continue
        classifier.classify_module(source_file)
    result = classifier.result()
    logger.info(
        "Classification completed (prefix=%s keep=%s warnings=%s)",
        len(result.to_prefix),
        len(result.to_keep),
        len(result.warnings),
    )
    return result


def _class_member_policy(
    container_public: bool, member: Symbol, in_surface: bool
) -> tuple[bool, str]:
    if not container_public:
        return True, "member of internal class"
    if in_surface:
        return False, "public API member"
    if is_private_name(member.name):
        return True, "private member of public class"
    return True, "non-public member of public class"


def _interface_member_policy(
    container_public: bool, member: Symbol, in_surface: bool
) -> tuple[bool, str]:
    if not container_public:
        return True, "member of internal interface"
    if in_surface:
        return False, "public API member"
    return True, "member of public interface"


def _enum_member_policy(
    container_public: bool, member: Symbol, in_surface: bool
) -> tuple[bool, str]:
    if not container_public:
        return True, "member of internal enum"
    if in_surface:
        return False, "public API enum member"
    return False, "member of public enum"


_MEMBER_POLICIES: dict[str, MemberPolicy] = {
    "class": _class_member_policy,
    "protocol": _interface_member_policy,
    "typeddict": _interface_member_policy,
    "enum": _enum_member_policy,
}


class _Classifier:
    """Hold per-run classification state."""

    def __init__(
        self,
        snapshot: ProgramSnapshot,
        surface: set[Symbol],
        entry_modules: list[SourceFile],
        prefix: str,
    ) -> None:
        self._snapshot = snapshot
        self._surface = surface
        self._entry_paths = {entry.path for entry in entry_modules}
        self._prefix = prefix
        self._processed: set[Symbol] = set()
        self._to_prefix: list[RenameDecision] = []
        self._to_keep: list[RenameDecision] = []
        self._warnings: list[str] = []
        self._renames: dict[Symbol, str] = {}
        self._kept: set[Symbol] = set()
        self._subclasses: dict[Symbol, list[Symbol]] = {}
        self._opaque: dict[Symbol, bool] = {}
        self._untyped_sites: dict[str, list[tuple[SourceFile, ast.AST]]] = {}
        self._warned_names: set[str] = set()
        self._index_hierarchy()
        self._index_untyped_sites()

    def result(self) -> ClassificationResult:
        return ClassificationResult(
            to_prefix=list(self._to_prefix),
            to_keep=list(self._to_keep),
            warnings=list(self._warnings),
            symbols_to_rename=dict(self._renames),
            kept_symbols=frozenset(self._kept),
        )

    def classify_module(self, source_file: SourceFile) -> None:
        module = self._snapshot.module_symbol(source_file)
        for symbol in module.members.values():
            if symbol.is_alias or not self._declared_in(symbol, source_file):
                continue
            if symbol.is_container:
                self._classify_container(symbol, symbol.name, source_file)
                continue
            self._classify_top_level(symbol, source_file)
        self._collect_dynamic_access(source_file)

    def _classify_top_level(self, symbol: Symbol, source_file: SourceFile) -> None:
        if symbol in self._surface:
            self._classify_one(symbol, symbol.name, False, "public API")
            return
        label = _KIND_LABELS.get(symbol.kind, symbol.kind)
        reason = f"internal {label}"
        if source_file.path in self._entry_paths:
            reason = f"{reason} (not exported by entry module)"
        self._classify_one(symbol, symbol.name, True, reason)

    def _classify_container(
        self, container: Symbol, qualified_name: str, source_file: SourceFile
    ) -> None:
        if container.parent is not None and container.parent.kind == "module":
            self._classify_top_level(container, source_file)
        container_public = container in self._surface
        policy = _MEMBER_POLICIES[container.kind]
        for member in container.members.values():
            member_name = f"{qualified_name}.{member.name}"
            should_prefix, reason = policy(
                container_public, member, member in self._surface
            )
            if should_prefix and self._is_pinned_override(container, member.name):
                should_prefix, reason = False, "overrides public or external member"
            if should_prefix and self._prefix.startswith("_") and is_namedtuple_field(member):
                should_prefix, reason = False, "NamedTuple field names cannot start with underscore"
            untyped = should_prefix and member.name in self._untyped_sites
            if untyped:
                should_prefix, reason = False, "accessed through untyped receiver"
            if self._classify_one(member, member_name, should_prefix, reason) and untyped:
                self._warn_untyped(member.name)
            if member.is_container:
                self._classify_container(member, member_name, source_file)

    def _classify_one(
        self, symbol: Symbol, qualified_name: str, should_prefix: bool, reason: str
    ) -> bool:
        if symbol in self._processed:
            return False
        self._processed.add(symbol)
        decl = next(
            (item for item in symbol.declarations if item.source_file.is_project),
            None,
        )
        if decl is None:
            return False
        if is_special_name(symbol.name) or symbol.name.startswith(self._prefix):
            return False
        if any(item.reflection_sensitive for item in symbol.declarations):
            should_prefix, reason = False, "reflection-sensitive decorator"
        new_name = f"{self._prefix}{symbol.name}" if should_prefix else symbol.name
        decision = RenameDecision(
            symbol_name=symbol.name,
            qualified_name=qualified_name,
            kind=symbol.kind,
            file_path=decl.source_file.relative_path,
            line=decl.line,
            new_name=new_name,
            reason=reason,
        )
        if should_prefix:
            self._to_prefix.append(decision)
            self._renames[symbol] = new_name
        else:
            self._to_keep.append(decision)
            self._kept.add(symbol)
        return True

    def _declared_in(self, symbol: Symbol, source_file: SourceFile) -> bool:
        return any(decl.source_file is source_file for decl in symbol.declarations)

    def _index_hierarchy(self) -> None:
        for source_file in self._snapshot.source_files():
            if not source_file.is_project or source_file.is_stub:
                continue
            stack = list(self._snapshot.module_symbol(source_file).members.values())
            while stack:
                symbol = stack.pop()
                if symbol.is_alias or not symbol.is_container:
                    continue
                for base in symbol.bases:
                    self._subclasses.setdefault(base, []).append(symbol)
                stack.extend(symbol.members.values())

    def _index_untyped_sites(self) -> None:
        """Record member names accessed through receivers of unknown origin."""
        for source_file in self._snapshot.source_files():
            if not source_file.is_project or source_file.is_stub:
                continue
            for node in ast.walk(source_file.tree):
                site = _attribute_site(node)
                if site is None or is_special_name(site[0]):
                    continue
                name, receiver = site
                if self._snapshot.type_of(source_file, receiver) is not None:
                    continue
                if self._snapshot.is_foreign_value(source_file, receiver):
                    continue
                self._untyped_sites.setdefault(name, []).append((source_file, node))
        logger.debug("Indexed untyped receivers (names=%s)", len(self._untyped_sites))

    def _hierarchy_of(self, container: Symbol) -> list[Symbol]:
        """Return project classes connected to a container by inheritance."""
        seen: set[Symbol] = {container}
        ordered = [container]
        stack = [container]
        while stack:
            current = stack.pop()
            neighbours = [*current.bases, *self._subclasses.get(current, [])]
            for neighbour in neighbours:
                if neighbour in seen or not neighbour.is_project_local:
                    continue
                seen.add(neighbour)
                ordered.append(neighbour)
                stack.append(neighbour)
        return ordered

    def _is_pinned_override(self, container: Symbol, name: str) -> bool:
        """Check whether a member name must stay stable across its override family.

        Args:
            container: Class declaring the member.
            name: Member name.

        Returns:
            True when a same-named member elsewhere in the hierarchy is public,
            reflection-sensitive, or may override an external base member.
        """
        for cls in self._hierarchy_of(container):
            member = cls.members.get(name)
            if member is None:
                continue
            if cls is not container and member in self._surface:
                return True
            if any(decl.reflection_sensitive for decl in member.declarations):
                return True
            if self._has_opaque_ancestry(cls):
                return True
        return False

    def _has_opaque_ancestry(self, cls: Symbol) -> bool:
        cached = self._opaque.get(cls)
        if cached is not None:
            return cached
        self._opaque[cls] = False
        opaque = False
        for base in cls.bases:
            if base.kind == "external":
                if base.qualified_name not in _INERT_EXTERNAL_BASES and not (
                    base.qualified_name.startswith("builtins.")
                    and base.name.endswith(("Error", "Exception", "Warning"))
                ):
                    opaque = True
            elif base.is_project_local and self._has_opaque_ancestry(base):
                opaque = True
        self._opaque[cls] = opaque
        return opaque

    def _collect_dynamic_access(self, source_file: SourceFile) -> None:
        for node in ast.walk(source_file.tree):
            if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
                if node.func.id not in _DYNAMIC_CALL_NAMES or len(node.args) < 2:
                    continue
                key = node.args[1]
                if isinstance(key, ast.Constant) and isinstance(key.value, str):
                    continue
                self._warn(source_file, node, "Dynamic attribute access")
            elif isinstance(node, ast.Subscript) and isinstance(node.ctx, ast.Load):
                if isinstance(node.slice, (ast.Constant, ast.Slice)):
                    continue
                value_type = self._snapshot.type_of(source_file, node.value)
                if value_type is None:
                    continue
                if any(
                    self._snapshot.record_of(variant) is not None
                    for variant in self._snapshot.union_variants(value_type)
                ):
                    self._warn(source_file, node, "Dynamic key access")

    def _warn_untyped(self, name: str) -> None:
        if name in self._warned_names:
            return
        self._warned_names.add(name)
        for source_file, node in self._untyped_sites[name]:
            self._warn(
                source_file, node, f"Untyped receiver for '{name}'", "kept unprefixed"
            )

    def _warn(
        self,
        source_file: SourceFile,
        node: ast.AST,
        label: str,
        outcome: str = "may break after prefixing",
    ) -> None:
        message = f"{label} at {source_file.relative_path}:{node.lineno} - {outcome}"
        logger.debug("Recorded classification warning (warning=%s)", message)
        self._warnings.append(message)


def _attribute_site(node: ast.AST) -> tuple[str, ast.expr] | None:
    """Return ``(member name, receiver)`` for attribute access and literal getattr."""
    if isinstance(node, ast.Attribute):
        return node.attr, node.value
    if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
        if node.func.id not in _DYNAMIC_CALL_NAMES or len(node.args) < 2:
            return None
        key = node.args[1]
        if isinstance(key, ast.Constant) and isinstance(key.value, str):
            return key.value, node.args[0]
    return None
