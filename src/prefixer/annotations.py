# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Typing special forms and forward-reference parsing helpers."""

import ast
import logging

logger = logging.getLogger(__name__)


def _forms(*names: str) -> frozenset[str]:
    return frozenset(
        f"{module}.{name}" for name in names for module in ("typing", "typing_extensions")
    )


LITERAL_FORMS = _forms("Literal")
METADATA_FORMS = _forms("Annotated")
WRAPPER_FORMS = _forms(
    "ClassVar", "Final", "Required", "NotRequired", "ReadOnly", "TypeGuard", "TypeIs"
)
OPTIONAL_FORMS = _forms("Optional")
UNION_FORMS = _forms("Union")
TYPEDDICT_FORMS = _forms("TypedDict")
NAMEDTUPLE_FORMS = _forms("NamedTuple") | {"collections.namedtuple"}
NEWTYPE_FORMS = _forms("NewType")
TYPEVAR_FORMS = _forms("TypeVar", "ParamSpec", "TypeVarTuple")
TYPE_ALIAS_FORMS = _forms("TypeAlias")
PROTOCOL_FORMS = _forms("Protocol")
SELF_FORMS = _forms("Self")
CAST_FORMS = _forms("cast")
GENERIC_FORMS = _forms("Generic")
ENUM_BASES: frozenset[str] = frozenset(
    {"enum.Enum", "enum.IntEnum", "enum.StrEnum", "enum.Flag", "enum.IntFlag"}
)

# Functional forms whose first argument repeats the bound variable name.
NAMED_FACTORY_FORMS = TYPEDDICT_FORMS | NAMEDTUPLE_FORMS | NEWTYPE_FORMS | TYPEVAR_FORMS


def parse_forward_ref(text: str) -> ast.expr | None:
    """Parse a string annotation into an expression.

    Args:
        text: Annotation text.

    Returns:
        Parsed expression, or ``None`` when the text is not valid Python.
    """
    try:
        return ast.parse(text.strip(), mode="eval").body
    except SyntaxError:
        logger.debug("Ignoring unparsable forward reference (text=%r)", text)
        return None
