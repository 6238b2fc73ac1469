# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Domain models shared by surface resolution, classification and renaming."""

import ast
import bisect
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

SymbolKind = Literal[
    "module",
    "class",
    "protocol",
    "typeddict",
    "enum",
    "enum-member",
    "function",
    "variable",
    "method",
    "property",
    "accessor",
    "type-alias",
    "alias",
    "external",
]

CONTAINER_KINDS: frozenset[str] = frozenset({"class", "protocol", "typeddict", "enum"})
INTERFACE_KINDS: frozenset[str] = frozenset({"protocol", "typeddict"})
PROPERTY_KINDS: frozenset[str] = frozenset({"property", "accessor", "enum-member"})

_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_STRING_LITERAL = re.compile(
    r"(?P<prefix>[uU]?)(?P<quote>'''|\"\"\"|'|\")(?P<body>[^'\"\\\r\n]*)(?P=quote)$"
)


@dataclass(eq=False)
class SourceFile:
    """Represent one parsed source file of the program.

    Attributes:
        path: Absolute file path.
        relative_path: Project-relative POSIX path used for reporting.
        module_name: Dotted module name.
        text: Decoded file text.
        tree: Parsed module tree.
        is_project: Whether the file is project-local and eligible for edits.
        is_stub: Whether the file only declares types (``.pyi``).
        is_package: Whether the file is a package ``__init__`` module.
    """

    path: Path
    relative_path: str
    module_name: str
    text: str
    tree: ast.Module
    is_project: bool = True
    is_stub: bool = False
    is_package: bool = False
    _line_starts: list[int] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        starts = [0]
        for match in _LINE_BREAK.finditer(self.text):
            starts.append(match.end())
        self._line_starts = starts

    def offset(self, lineno: int, col_offset: int) -> int:
        """Convert an ``ast`` position to a character offset.

        Args:
            lineno: 1-based line number.
            col_offset: UTF-8 byte column reported by ``ast``.

        Returns:
            Character offset into ``text``.
        """
        line_start = self._line_starts[lineno - 1]
        line_end = (
            self._line_starts[lineno]
            if lineno < len(self._line_starts)
            else len(self.text)
        )
        prefix = self.text[line_start:line_end].encode("utf-8")[:col_offset]
        return line_start + len(prefix.decode("utf-8", errors="ignore"))

    def node_start(self, node: ast.AST) -> int:
        return self.offset(node.lineno, node.col_offset)

    def node_end(self, node: ast.AST) -> int:
        return self.offset(node.end_lineno, node.end_col_offset)

    def line_of(self, offset: int) -> int:
        """Return the 1-based line number containing a character offset."""
        return bisect.bisect_right(self._line_starts, offset)

    def string_span(self, node: ast.AST) -> tuple[int, int] | None:
        """Locate the identifier inside a plain string literal.

        Args:
            node: String constant node.

        Returns:
            ``(start, length)`` of the literal's content, or ``None`` when the
            literal is implicitly concatenated, escaped or not an identifier.
        """
        if not isinstance(node, ast.Constant) or not isinstance(node.value, str):
            return None
        if not node.value.isidentifier():
            return None
        start = self.string_body_start(node)
        return (start, len(node.value)) if start is not None else None

    def string_body_start(self, node: ast.Constant) -> int | None:
        """Return the offset of a plain string literal's content, if unescaped."""
        match = _STRING_LITERAL.match(self.text, self.node_start(node), self.node_end(node))
        if match is None or match.group("body") != node.value:
            return None
        return match.start("body")

    def keyword_pattern_offsets(self, node: ast.MatchClass) -> list[int | None]:
        """Locate the attribute names of a class pattern's keyword patterns.

        ``ast`` carries no positions for ``kwd_attrs``; each name is found in the
        text between the previous sub-pattern and its own pattern.

        Args:
            node: Class pattern node.

        Returns:
            One offset per keyword attribute, ``None`` where it is not found.
        """
        offsets: list[int | None] = []
        lower = self.node_end(node.cls)
        if node.patterns:
            lower = self.node_end(node.patterns[-1])
        for attr, pattern in zip(node.kwd_attrs, node.kwd_patterns):
            upper = self.node_start(pattern)
            segment = self.text[lower:upper]
            found = None
            for match in re.finditer(rf"\b{re.escape(attr)}\s*=\s*$", segment):
                found = lower + match.start()
            offsets.append(found)
            lower = self.node_end(pattern)
        return offsets

    def scope_statement_offsets(self, node: ast.Global | ast.Nonlocal) -> list[int | None]:
        """Locate the names listed by a ``global`` or ``nonlocal`` statement.

        ``ast`` only positions the statement, so names are matched in order in
        the text following the keyword.
        """
        offsets: list[int | None] = []
        base = self.node_start(node)
        segment = self.text[base : self.node_end(node)]
        keyword = re.match(r"(?:global|nonlocal)\b", segment)
        lower = keyword.end() if keyword else 0
        for name in node.names:
            match = re.compile(rf"(?<!\w){re.escape(name)}(?!\w)").search(segment, lower)
            if match is None:
                offsets.append(None)
                continue
            offsets.append(base + match.start())
            lower = match.end()
        return offsets


@dataclass(frozen=True, eq=False)
class Declaration:
    """Represent one source location introducing a symbol.

    Attributes:
        source_file: File holding the declaration.
        node: Declaring statement or expression.
        name_offset: Character offset of the declared name.
        name_length: Length of the declared name.
        annotation: Declared type expression, when one exists.
        value: Assigned value or alias right-hand side, when one exists.
        reflection_sensitive: Whether a decorator may read the name at runtime.
    """

    source_file: SourceFile
    node: ast.AST
    name_offset: int
    name_length: int
    annotation: ast.expr | None = None
    value: ast.expr | None = None
    reflection_sensitive: bool = False

    @property
    def line(self) -> int:
        return self.source_file.line_of(self.name_offset)


@dataclass(eq=False)
class Symbol:
    """Represent a uniquely identified program entity.

    Identity is object identity; two structurally identical record keys are
    distinct symbols.

    Attributes:
        name: Declared name.
        kind: Symbol kind.
        declarations: Declaring locations in source order.
        parent: Owning module or container symbol.
        members: Own members keyed by name, in declaration order.
        alias_target: ``(module, name)`` for import bindings; ``name`` is ``None``
            when the binding is a module.
        qualified_name: Dotted name for module and external symbols.
        bases: Resolved base classes of a container.
        structure: Anonymous record minted by a functional type alias.
        flags: Extra traits such as ``record``, ``dataclass`` or ``anonymous``.
    """

    name: str
    kind: SymbolKind
    declarations: list[Declaration] = field(default_factory=list)
    parent: "Symbol | None" = None
    members: dict[str, "Symbol"] = field(default_factory=dict)
    alias_target: tuple[str, str | None] | None = None
    qualified_name: str = ""
    bases: list["Symbol"] = field(default_factory=list)
    structure: "Symbol | None" = None
    flags: set[str] = field(default_factory=set)

    @property
    def is_alias(self) -> bool:
        return self.alias_target is not None

    @property
    def is_container(self) -> bool:
        return self.kind in CONTAINER_KINDS

    @property
    def is_project_local(self) -> bool:
        """Check whether any declaration lives in a project source file."""
        return any(decl.source_file.is_project for decl in self.declarations)

    def __repr__(self) -> str:
        return f"Symbol({self.kind} {self.qualified_name or self.name})"


@dataclass(frozen=True)
class Occurrence:
    """Represent one textual occurrence returned by the reference service.

    Attributes:
        path: File holding the occurrence.
        start: Character offset of the name.
        length: Length of the replaced span.
        prefix_text: Literal text to insert before the new name.
        suffix_text: Literal text to insert after the new name.
    """

    path: Path
    start: int
    length: int
    prefix_text: str = ""
    suffix_text: str = ""


@dataclass(frozen=True)
class Edit:
    """Represent one positional text replacement."""

    path: Path
    start: int
    length: int
    new_text: str


@dataclass(frozen=True)
class RenameDecision:
    """Represent one auditable classification decision.

    Attributes:
        symbol_name: Declared symbol name.
        qualified_name: ``Container.member`` or bare top-level name.
        kind: Symbol kind.
        file_path: Project-relative source file path.
        line: 1-based declaration line.
        new_name: Prefixed name, or the unchanged name for kept symbols.
        reason: Policy reason.
    """

    symbol_name: str
    qualified_name: str
    kind: SymbolKind
    file_path: str
    line: int
    new_name: str
    reason: str


def is_special_name(name: str) -> bool:
    """Check whether a name is reserved by the runtime (dunder or enum sunder)."""
    if len(name) > 4 and name.startswith("__") and name.endswith("__"):
        return True
    return (
        len(name) > 2
        and name.startswith("_")
        and name.endswith("_")
        and not name.startswith("__")
        and name[1] != "_"
        and name[-2] != "_"
    )


def is_private_name(name: str) -> bool:
    """Check whether a member name is private by convention."""
    return name.startswith("_") and not is_special_name(name)


def is_namedtuple_field(symbol: Symbol) -> bool:
    """Check whether a symbol is a field of a named tuple class.

    The runtime rejects named tuple field names that start with an underscore.
    """
    parent = symbol.parent
    if parent is None or "namedtuple" not in parent.flags:
        return False
    if symbol.kind != "property" or "instance" in symbol.flags:
        return False
    return "anonymous" in symbol.flags or any(
        decl.annotation is not None for decl in symbol.declarations
    )
