# Custom destination functions for stagemake.
#   stagemake build --plugin examples/rules.py <root>
# A Stagefile selects one with `destination: custom:<name>`.
from __future__ import annotations

from pathlib import Path


def _html(source: str, directory: Path) -> list[str]:
    return [str(Path(source).with_suffix(".html"))]


def _bundle(source: str, directory: Path) -> dict[str, list[str]]:
    # every page lands in one archive, rebuilt when any page changes
    return {"site.tar": [source]}


def register(registry) -> None:
    registry.register_custom("html", _html)
    registry.register_custom("bundle", _bundle)
