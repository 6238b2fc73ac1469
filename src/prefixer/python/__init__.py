# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Python program snapshot: loading, binding, inference and references."""

from prefixer.python.binder import DEFAULT_SAFE_DECORATORS
from prefixer.python.program import PythonProgram
from prefixer.python.references import PythonReferenceService

__all__ = ["DEFAULT_SAFE_DECORATORS", "PythonProgram", "PythonReferenceService"]
