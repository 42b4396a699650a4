# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .config import ConfigDescriptor
    from .environment import EnvironmentLayer


@dataclass
class DirectoryNode:
    """A directory that takes part in the build, with its descriptor and environment."""
    path: Path
    key: str  # path relative to the invocation root, POSIX separators ("." for the root)
    descriptor: "ConfigDescriptor"
    env: "EnvironmentLayer"


@dataclass
class Job:
    """
    One command to execute.

    `destination` is None for stage-wide always-run commands and forced makes.
    `stage` is None for forced makes, which run before stage 0.
    """
    directory: Path
    command: str          # fully materialized, environment prefix included
    body: str             # rendered transform without the environment prefix
    reason: str
    stage: Optional[int]
    dir_key: str = "."
    destination: Optional[str] = None
    sources: list[str] = field(default_factory=list)  # contributing sources, for rollback
    parallel: Optional[int] = None

    @property
    def label(self) -> str:
        if self.destination is None:
            return self.dir_key
        if self.dir_key == ".":
            return self.destination
        return f"{self.dir_key}/{self.destination}"
