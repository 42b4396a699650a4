from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from stagemake.ui.console import Console


def write_tree(root: Path, files: dict[str, str]) -> None:
    """Create files under root; descriptor text is dedented."""
    for rel, text in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(textwrap.dedent(text), encoding="utf-8")


@pytest.fixture
def console() -> Console:
    return Console()


@pytest.fixture
def tree(tmp_path: Path):
    def _make(files: dict[str, str]) -> Path:
        write_tree(tmp_path, files)
        return tmp_path

    return _make
