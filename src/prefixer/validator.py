# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Check that a rewritten project still compiles and resolves its names."""

import ast
import logging
from collections.abc import Callable
from pathlib import Path

from prefixer.annotations import GENERIC_FORMS
from prefixer.model import SourceFile, Symbol, is_special_name
from prefixer.python.binder import DEFAULT_SAFE_DECORATORS, absolute_module
from prefixer.python.program import PythonProgram
from prefixer.python.types import InstanceType, ModuleType, variants_of

logger = logging.getLogger(__name__)

_CLOSED_EXTERNAL_BASES: frozenset[str] = (
    frozenset({"builtins.object", "abc.ABC"}) | GENERIC_FORMS
)
_DYNAMIC_LOOKUP_HOOKS: tuple[str, ...] = ("__getattr__", "__getattribute__")

Reporter = Callable[[ast.AST, str], None]


def validate_output(
    out_dir: Path, safe_decorators: frozenset[str] = DEFAULT_SAFE_DECORATORS
) -> list[str]:
    """Reload the output tree and report broken names.

    Args:
        out_dir: Output directory holding the rewritten project.
        safe_decorators: Decorators that never read declared names.

    Returns:
        Failures formatted as ``"<relative path>:<line>: <message>"``.
    """
    program = PythonProgram.load(out_dir, safe_decorators=safe_decorators)
    failures = [str(failure) for failure in program.failures]
    checker = _OutputChecker(program)
    for source_file in program.source_files():
        if source_file.is_stub:
            continue
        failures.extend(checker.check(source_file))
    logger.info("Output validation completed (failures=%s)", len(failures))
    return failures


class _OutputChecker:
    """Hold per-program caches for output checks."""

    def __init__(self, program: PythonProgram) -> None:
        self._program = program
        self._inference = program.inference
        self._closed: dict[Symbol, bool] = {}

    def check(self, source_file: SourceFile) -> list[str]:
        failures: list[str] = []

        def report(node: ast.AST, message: str) -> None:
            line = getattr(node, "lineno", 0)
            failures.append(f"{source_file.relative_path}:{line}: {message}")

        try:
            compile(source_file.tree, str(source_file.path), "exec")
        except SyntaxError as exc:
            failures.append(f"{source_file.relative_path}:{exc.lineno or 0}: {exc.msg}")
            return failures

        binder = self._program.binder(source_file)
        module = binder.module
        for constant in binder.all_constants or []:
            if constant.value in module.members:
                continue
            if self._program.module_by_name(f"{source_file.module_name}.{constant.value}"):
                continue
            report(constant, f"__all__ names missing binding '{constant.value}'")

        for node in ast.walk(source_file.tree):
            if isinstance(node, ast.ImportFrom):
                self._check_import(source_file, node, report)
            elif isinstance(node, ast.Attribute) and isinstance(node.ctx, ast.Load):
                self._check_attribute(source_file, node, report)
            elif isinstance(node, ast.Subscript) and isinstance(node.ctx, ast.Load):
                self._check_record_key(source_file, node, report)
        return failures

    def _check_import(
        self, source_file: SourceFile, node: ast.ImportFrom, report: Reporter
    ) -> None:
        module = absolute_module(source_file, node)
        if self._program.module_file(module) is None:
            return
        for alias in node.names:
            if alias.name == "*":
                continue
            if self._program.resolve_target(module, alias.name) is None:
                report(node, f"Cannot import name '{alias.name}' from '{module}'")

    def _check_attribute(
        self, source_file: SourceFile, node: ast.Attribute, report: Reporter
    ) -> None:
        if is_special_name(node.attr):
            return
        base_type = self._inference.type_of(source_file, node.value)
        variants = variants_of(base_type)
        if len(variants) != 1:
            return
        variant = variants[0]
        if isinstance(variant, ModuleType) and variant.symbol.is_project_local:
            if self._inference.member_lookup(variant, node.attr) is None:
                report(
                    node,
                    f"Module '{variant.symbol.qualified_name}' has no attribute '{node.attr}'",
                )
        elif isinstance(variant, InstanceType) and self._is_closed(variant.symbol):
            if self._inference.member_lookup(variant, node.attr) is None:
                report(node, f"'{variant.symbol.name}' object has no attribute '{node.attr}'")

    def _check_record_key(
        self, source_file: SourceFile, node: ast.Subscript, report: Reporter
    ) -> None:
        key = node.slice
        if not (isinstance(key, ast.Constant) and isinstance(key.value, str)):
            return
        for variant in variants_of(self._inference.type_of(source_file, node.value)):
            if not isinstance(variant, InstanceType):
                continue
            record = variant.symbol
            if record.kind != "typeddict" or not record.is_project_local:
                continue
            if self._inference.member_lookup(variant, key.value) is None:
                report(node, f"TypedDict '{record.name}' has no key '{key.value}'")

    def _is_closed(self, cls: Symbol) -> bool:
        """Check whether every attribute of a class's instances is statically known."""
        cached = self._closed.get(cls)
        if cached is not None:
            return cached
        self._closed[cls] = False
        closed = (
            cls.kind == "class"
            and cls.is_project_local
            and "namedtuple" not in cls.flags
            and not any(hook in cls.members for hook in _DYNAMIC_LOOKUP_HOOKS)
            and not any(decl.reflection_sensitive for decl in cls.declarations)
        )
        for base in cls.bases if closed else []:
            if base.kind == "external":
                closed = base.qualified_name in _CLOSED_EXTERNAL_BASES
            else:
                closed = self._is_closed(base)
            if not closed:
                break
        self._closed[cls] = closed
        return closed
