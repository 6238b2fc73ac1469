# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Plan rename edits from classification decisions."""

import ast
import logging
from collections.abc import Callable, Collection, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from prefixer.applier import apply_edits
from prefixer.model import PROPERTY_KINDS, Edit, SourceFile, Symbol, is_namedtuple_field
from prefixer.snapshot import (
    ProgramSnapshot,
    ReferenceLookupError,
    ReferenceService,
    SnapshotError,
)

if TYPE_CHECKING:
    from prefixer.python.types import Type

logger = logging.getLogger(__name__)

TypeGetter = Callable[[], "Type | None"]


@dataclass(frozen=True)
class RenamePlan:
    """Represent planned edits and per-symbol lookup failures."""

    edits: list[Edit]
    errors: list[str]


@dataclass(frozen=True)
class RenameResult:
    """Represent final file texts and per-symbol lookup failures.

    Attributes:
        output_files: Final text for every project source file.
        errors: Non-fatal rename failures.
    """

    output_files: dict[Path, str]
    errors: list[str]


def plan(
    reference_service: ReferenceService,
    snapshot: ProgramSnapshot,
    to_rename: dict[Symbol, str],
    surface: set[Symbol],
    kept: Collection[Symbol] = frozenset(),
) -> RenamePlan:
    """Collect every edit needed to apply the rename map.

    Pass 1 asks the reference service for the nominal occurrences of each
    symbol. Pass 2 walks every project file for attribute, key, keyword and
    pattern occurrences whose owning property is only linked structurally.

    Args:
        reference_service: Nominal occurrence lookup.
        snapshot: Program snapshot.
        to_rename: Symbols mapped to their new names.
        surface: Public surface symbols.
        kept: Symbols the classifier explicitly kept.

    Returns:
        Planned edits and non-fatal errors.
    """
    edits: list[Edit] = []
    errors: list[str] = []
    edited: set[tuple[Path, int]] = set()

    for symbol, new_name in to_rename.items():
        decl = next(
            (item for item in symbol.declarations if item.source_file.is_project),
            None,
        )
        if decl is None:
            message = f"Could not locate a project declaration for {symbol.name}"
            logger.warning("Rename skipped (symbol=%s error=%s)", symbol.name, message)
            errors.append(message)
            continue
        path = decl.source_file.path
        try:
            occurrences = reference_service.find_rename_locations(path, decl.name_offset)
        except ReferenceLookupError as exc:
            message = (
                f"Could not find rename locations for {symbol.name} "
                f"at {decl.source_file.relative_path}:{decl.name_offset}"
            )
            logger.warning("Rename skipped (symbol=%s error=%s)", symbol.name, exc)
            errors.append(message)
            continue
        for occurrence in occurrences:
            edits.append(
                Edit(
                    path=occurrence.path,
                    start=occurrence.start,
                    length=occurrence.length,
                    new_text=f"{occurrence.prefix_text}{new_name}{occurrence.suffix_text}",
                )
            )
            edited.add((occurrence.path, occurrence.start))
    nominal_count = len(edits)

    renamed_names = {
        symbol.name: new_name
        for symbol, new_name in to_rename.items()
        if symbol.kind in PROPERTY_KINDS
    }
    structural = _StructuralPass(
        snapshot=snapshot,
        surface=surface,
        kept=kept,
        renamed_names=renamed_names,
        edited=edited,
    )
    edits.extend(structural.run())
    logger.info(
        "Rename planning completed (nominal_edits=%s structural_edits=%s errors=%s)",
        nominal_count,
        len(edits) - nominal_count,
        len(errors),
    )
    return RenamePlan(edits=edits, errors=errors)


def compute_renames(
    reference_service: ReferenceService,
    snapshot: ProgramSnapshot,
    to_rename: dict[Symbol, str],
    surface: set[Symbol],
    kept: Collection[Symbol] = frozenset(),
) -> RenameResult:
    """Plan and apply renames for every project source file.

    Args:
        reference_service: Nominal occurrence lookup.
        snapshot: Program snapshot.
        to_rename: Symbols mapped to their new names.
        surface: Public surface symbols.
        kept: Symbols the classifier explicitly kept.

    Returns:
        Final text of every project file plus non-fatal errors.
    """
    rename_plan = plan(reference_service, snapshot, to_rename, surface, kept)
    sources = {
        source_file.path: source_file.text
        for source_file in snapshot.source_files()
        if source_file.is_project and not source_file.is_stub
    }
    return RenameResult(
        output_files=apply_edits(rename_plan.edits, sources),
        errors=rename_plan.errors,
    )


class _StructuralPass:
    """Find structurally linked property occurrences missed by nominal lookup."""

    def __init__(
        self,
        snapshot: ProgramSnapshot,
        surface: set[Symbol],
        kept: Collection[Symbol],
        renamed_names: dict[str, str],
        edited: set[tuple[Path, int]],
    ) -> None:
        self._snapshot = snapshot
        self._surface = surface
        self._kept = kept
        self._renamed_names = renamed_names
        self._edited = edited
        self._edits: list[Edit] = []
        self._blocked: set[Symbol] = set()

    def run(self) -> list[Edit]:
        if not self._renamed_names:
            return []
        files = [
            source_file
            for source_file in self._snapshot.source_files()
            if source_file.is_project and not source_file.is_stub
        ]
        for source_file in files:
            self._collect_pass_through_blocks(source_file)
        for source_file in files:
            for node in ast.walk(source_file.tree):
                for name, start, get_type in self._shapes(source_file, node):
                    self._consider(source_file, name, start, get_type)
        return self._edits

    def _shapes(
        self, source_file: SourceFile, node: ast.AST
    ) -> Iterator[tuple[str, int, TypeGetter]]:
        """Yield ``(name, offset, type getter)`` for each structural occurrence."""
        snapshot = self._snapshot
        if isinstance(node, ast.Attribute):
            start = source_file.node_end(node) - len(node.attr)
            yield node.attr, start, lambda: snapshot.type_of(source_file, node.value)
        elif isinstance(node, ast.Subscript):
            span = source_file.string_span(node.slice)
            if span is not None:
                yield node.slice.value, span[0], lambda: snapshot.type_of(
                    source_file, node.value
                ) or snapshot.record_view(source_file, node.value)
        elif isinstance(node, ast.Dict):
            for key in node.keys:
                span = source_file.string_span(key) if key is not None else None
                if span is not None:
                    yield key.value, span[0], lambda: snapshot.contextual_type(
                        source_file, node
                    )
        elif isinstance(node, ast.Call):
            for keyword in node.keywords:
                if keyword.arg is not None:
                    yield keyword.arg, source_file.node_start(
                        keyword
                    ), lambda: snapshot.constructed_type(source_file, node)
        elif isinstance(node, ast.MatchMapping):
            for key in node.keys:
                span = source_file.string_span(key)
                if span is not None:
                    yield key.value, span[0], lambda: snapshot.pattern_type(
                        source_file, node
                    )
        elif isinstance(node, ast.MatchClass):
            offsets = source_file.keyword_pattern_offsets(node)
            for attr, offset in zip(node.kwd_attrs, offsets):
                if offset is not None:
                    yield attr, offset, lambda: snapshot.pattern_type(source_file, node)

    def _consider(
        self, source_file: SourceFile, name: str, start: int, get_type: TypeGetter
    ) -> None:
        new_name = self._renamed_names.get(name)
        if new_name is None or (source_file.path, start) in self._edited:
            return
        properties = self._properties(get_type(), name)
        if not properties:
            return
        if any(self._is_protected(prop) for prop in properties):
            return
        if new_name.startswith("_") and any(is_namedtuple_field(prop) for prop in properties):
            return
        internal = [prop for prop in properties if prop.is_project_local]
        if not internal:
            return
        self._emit(source_file.path, start, len(name), new_name)
        for prop in internal:
            for decl in prop.declarations:
                if decl.source_file.is_project and not decl.source_file.is_stub:
                    self._emit(decl.source_file.path, decl.name_offset, len(name), new_name)

    def _emit(self, path: Path, start: int, length: int, new_text: str) -> None:
        if (path, start) in self._edited:
            return
        self._edited.add((path, start))
        self._edits.append(Edit(path=path, start=start, length=length, new_text=new_text))

    def _is_protected(self, prop: Symbol) -> bool:
        return prop in self._surface or prop in self._kept or prop in self._blocked

    def _properties(self, type_: "Type | None", name: str) -> list[Symbol]:
        if type_ is None:
            return []
        found: list[Symbol] = []
        for variant in self._snapshot.union_variants(type_):
            prop = self._snapshot.property_of(variant, name)
            if prop is None:
                continue
            if prop.is_alias:
                try:
                    prop = self._snapshot.resolve_alias(prop)
                except SnapshotError:
                    continue
            if prop not in found:
                found.append(prop)
        return found

    def _collect_pass_through_blocks(self, source_file: SourceFile) -> None:
        """Block internal properties that exchange values with public ones.

        A value flowing between two record shapes keeps its keys, so when one
        side of the flow is public the same-named property on the other side
        must keep its name too.

        Args:
            source_file: Project file to scan.
        """
        for node in ast.walk(source_file.tree):
            for value in _flow_values(node):
                source_type = self._snapshot.type_of(source_file, value)
                if source_type is None:
                    continue
                target_type = self._snapshot.contextual_type(source_file, value)
                if target_type is None:
                    continue
                names = self._record_member_names(source_type) | self._record_member_names(
                    target_type
                )
                for name in names & self._renamed_names.keys():
                    source_props = self._properties(source_type, name)
                    target_props = self._properties(target_type, name)
                    if not source_props or not target_props:
                        continue
                    self._block_across(source_props, target_props, name)
                    self._block_across(target_props, source_props, name)

    def _block_across(self, side: list[Symbol], other: list[Symbol], name: str) -> None:
        if not any(prop in self._surface for prop in side):
            return
        for prop in other:
            if prop not in self._surface and prop not in self._blocked:
                logger.debug("Blocked pass-through property (name=%s)", name)
                self._blocked.add(prop)

    def _record_member_names(self, type_: "Type | None") -> set[str]:
        names: set[str] = set()
        for variant in self._snapshot.union_variants(type_):
            record = self._snapshot.record_of(variant)
            if record is not None:
                names.update(record.members)
        return names


def _flow_values(node: ast.AST) -> list[ast.expr]:
    if isinstance(node, ast.Call):
        values = [arg for arg in node.args if not isinstance(arg, ast.Starred)]
        values.extend(keyword.value for keyword in node.keywords if keyword.arg)
        return values
    if isinstance(node, (ast.Return, ast.AnnAssign)) and node.value is not None:
        return [node.value]
    return []
