# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Static type values used by expression inference."""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal, Union

from prefixer.model import Symbol

ContainerKind = Literal["sequence", "mapping", "tuple"]


@dataclass(frozen=True)
class InstanceType:
    """Represent an instance of a class, interface, enum or record."""

    symbol: Symbol


@dataclass(frozen=True)
class ClassObjectType:
    """Represent a class object itself (``Foo`` rather than ``Foo()``)."""

    symbol: Symbol


@dataclass(frozen=True)
class ModuleType:
    """Represent an imported module object."""

    symbol: Symbol


@dataclass(frozen=True)
class FunctionType:
    """Represent a function, or a method accessed through a receiver.

    Attributes:
        symbol: Function or method symbol.
        receiver: Instance or class the method was accessed on.
    """

    symbol: Symbol
    receiver: "Type | None" = None


@dataclass(frozen=True)
class SuperType:
    """Represent ``super()`` inside a class body."""

    symbol: Symbol


@dataclass(frozen=True)
class ContainerType:
    """Represent a builtin container with known element types.

    Attributes:
        kind: Container family.
        args: Element types; ``None`` entries are unknown.
    """

    kind: ContainerKind
    args: tuple["Type | None", ...] = ()


@dataclass(frozen=True)
class UnionType:
    """Represent a union of two or more distinct types."""

    variants: tuple["Type", ...]


Type = Union[
    InstanceType,
    ClassObjectType,
    ModuleType,
    FunctionType,
    SuperType,
    ContainerType,
    UnionType,
]


def make_union(types: Iterable["Type | None"]) -> "Type | None":
    """Combine types into a flattened, de-duplicated union.

    Args:
        types: Candidate types; unknown entries are dropped.

    Returns:
        ``None`` when nothing is known, the single type, or a union.
    """
    variants: list[Type] = []
    for item in types:
        if item is None:
            continue
        for variant in variants_of(item):
            if variant not in variants:
                variants.append(variant)
    if not variants:
        return None
    if len(variants) == 1:
        return variants[0]
    return UnionType(variants=tuple(variants))


def variants_of(type_: "Type | None") -> list["Type"]:
    if type_ is None:
        return []
    if isinstance(type_, UnionType):
        return list(type_.variants)
    return [type_]
