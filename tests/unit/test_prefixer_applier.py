# Copyright 2026 Zsolt Kulcsar and Contributors. Licensed under the EUPL-1.2 or later
"""Unit tests for positional edit application."""

from pathlib import Path

from prefixer import apply_edits
from prefixer.model import Edit


def test_pfx_401_applier_keeps_last_edit_for_duplicate_span() -> None:
    path = Path("/project/pkg/mod.py")
    edits = [
        Edit(path=path, start=4, length=6, new_text="_first"),
        Edit(path=path, start=4, length=6, new_text="_helper"),
    ]

    output = apply_edits(edits, {path: "def helper():\n    pass\n"})

    assert output[path] == "def _helper():\n    pass\n"


def test_pfx_402_applier_applies_edits_from_highest_offset_down() -> None:
    path = Path("/project/pkg/mod.py")
    text = "alpha beta gamma"
    edits = [
        Edit(path=path, start=0, length=5, new_text="_alpha"),
        Edit(path=path, start=11, length=5, new_text="_gamma"),
        Edit(path=path, start=6, length=4, new_text="_beta"),
    ]

    output = apply_edits(edits, {path: text})

    assert output[path] == "_alpha _beta _gamma"


def test_pfx_403_applier_returns_untouched_files_verbatim() -> None:
    edited = Path("/project/pkg/a.py")
    untouched = Path("/project/pkg/b.py")
    sources = {
        edited: "value = 1\n",
        untouched: "# comment\r\nvalue = 2\r\n",
    }

    output = apply_edits(
        [Edit(path=edited, start=0, length=5, new_text="_value")], sources
    )

    assert set(output) == {edited, untouched}
    assert output[edited] == "_value = 1\n"
    assert output[untouched] == sources[untouched]


def test_pfx_404_applier_ignores_edits_for_unknown_files() -> None:
    known = Path("/project/pkg/a.py")
    unknown = Path("/elsewhere/b.py")

    output = apply_edits(
        [Edit(path=unknown, start=0, length=1, new_text="_x")], {known: "x = 1\n"}
    )

    assert output == {known: "x = 1\n"}


def test_pfx_405_applier_skips_overlapping_edit() -> None:
    path = Path("/project/pkg/mod.py")
    edits = [
        Edit(path=path, start=0, length=5, new_text="X"),
        Edit(path=path, start=2, length=5, new_text="Y"),
    ]

    output = apply_edits(edits, {path: "abcdefghij"})

    assert output[path] == "abYhij"


def test_pfx_406_applier_supports_suffix_text_in_replacement() -> None:
    path = Path("/project/pkg/mod.py")
    text = "from pkg.helpers import normalize\n"
    start = text.index("normalize")

    output = apply_edits(
        [Edit(path=path, start=start, length=9, new_text="_normalize as normalize")],
        {path: text},
    )

    assert output[path] == "from pkg.helpers import _normalize as normalize\n"
