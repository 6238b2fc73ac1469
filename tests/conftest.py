import sys
from pathlib import Path

import pytest


def _add_src_to_path() -> None:
    root = Path(__file__).resolve().parents[1]
    src_path = root / "src"
    if str(src_path) not in sys.path:
        sys.path.insert(0, str(src_path))


_add_src_to_path()

SAMPLE_FILES: dict[str, str] = {
    "pyproject.toml": '[project]\nname = "pkg"\nversion = "0.0.1"\n',
    "pkg/__init__.py": (
        "from pkg.core import Engine, run\n"
        "\n"
        '__all__ = ["Engine", "run"]\n'
        "\n"
        "\n"
        "def _bootstrap() -> None:\n"
        "    return None\n"
        "\n"
        "\n"
        "def setup_logging() -> None:\n"
        "    return None\n"
    ),
    "pkg/core.py": (
        "from pkg.helpers import normalize\n"
        "\n"
        "\n"
        "class Engine:\n"
        "    def __init__(self, scale: int) -> None:\n"
        "        self.scale = scale\n"
        "        self._cache: dict[int, int] = {}\n"
        "\n"
        "    def apply(self, value: int) -> int:\n"
        "        return normalize(value) * self.scale\n"
        "\n"
        "\n"
        "class Tracker:\n"
        "    def __init__(self) -> None:\n"
        "        self.count = 0\n"
        "\n"
        "    def bump(self) -> int:\n"
        "        self.count += 1\n"
        "        return self.count\n"
        "\n"
        "\n"
        "def run(value: int) -> int:\n"
        "    tracker = Tracker()\n"
        "    tracker.bump()\n"
        "    return Engine(2).apply(value)\n"
    ),
    "pkg/helpers.py": (
        "def normalize(value: int) -> int:\n"
        "    return abs(value)\n"
    ),
    "pkg/notes.py": '"""Release notes."""\r\n# Nothing to rename here.\r\n',
}


def write_project(root: Path, files: dict[str, str]) -> Path:
    """Write project files below a root directory and return the root."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content.encode("utf-8"))
    return root


@pytest.fixture
def sample_project(tmp_path: Path) -> Path:
    return write_project(tmp_path / "project", SAMPLE_FILES)
