# walker.py
from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .config import load_descriptor
from .environment import EnvironmentLayer
from .model import DirectoryNode, Job
from .template import strip_shell
from .ui.console import Console

IGNORE = "ignore"
MAKE = "make"


@dataclass
class WalkContext:
    """
    State collected while walking the tree. Built once, read-only afterwards.
    """
    root: Path
    console: Console
    target: Optional[str] = None
    stage_names: Dict[int, str] = field(default_factory=dict)
    environments: Dict[Path, EnvironmentLayer] = field(default_factory=dict)
    forced_jobs: List[Job] = field(default_factory=list)

    def key_of(self, directory: Path) -> str:
        rel = directory.resolve().relative_to(self.root.resolve())
        return rel.as_posix() if rel.parts else "."


def _gate_passes(condition: str, directory: Path, env: EnvironmentLayer) -> bool:
    proc = subprocess.run(
        strip_shell(condition),
        shell=True,
        cwd=str(directory),
        env=env.process_env(),
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    return proc.returncode == 0


def _forced_make(rule: str, child: Path, env: EnvironmentLayer, ctx: WalkContext) -> Job:
    body = rule.strip()
    prefix = env.export_prefix()
    return Job(
        directory=child,
        command=f"{prefix} {body}" if prefix else body,
        body=body,
        reason="make forced",
        stage=None,
        dir_key=ctx.key_of(child),
    )


def _child_dirs(directory: Path) -> List[Path]:
    try:
        entries = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError:
        return []
    return [
        p for p in entries
        if p.is_dir() and not p.is_symlink() and not p.name.startswith(".")
    ]


def walk(
    directory: str | Path,
    inherited: EnvironmentLayer,
    ctx: WalkContext,
    *,
    _top: bool = True,
) -> List[DirectoryNode]:
    """
    Visit `directory` and its subtree.

    Returns the participating directories, children before their parent.
    A failing `disregard_unless` drops the directory and its whole subtree.
    Forced-make subdirectories are not entered; their jobs go to ctx.forced_jobs.
    """
    directory = Path(directory).resolve()
    console = ctx.console

    descriptor = load_descriptor(
        directory,
        console,
        target=ctx.target,
        required_target=_top,
    )

    # last writer wins
    ctx.stage_names.update(descriptor.naming)

    env = inherited.child(descriptor.inherit, directory)

    if descriptor.disregard_unless:
        if not _gate_passes(descriptor.disregard_unless, directory, env):
            console.print_debug(f"disregarding {ctx.key_of(directory)}: condition failed")
            return []

    nodes: List[DirectoryNode] = []
    for child in _child_dirs(directory):
        rule = descriptor.subdirs.get(child.name, "")
        if rule == IGNORE:
            console.print_debug(f"ignoring {ctx.key_of(child)}")
            continue
        words = rule.split()
        if words and words[0] == MAKE:
            ctx.forced_jobs.append(_forced_make(rule, child, env, ctx))
            continue
        if rule:
            console.print_warning(f"{ctx.key_of(directory)}: unknown subdirs rule {rule!r} for {child.name}")
        nodes.extend(walk(child, env, ctx, _top=False))

    ctx.environments[directory] = env
    nodes.append(DirectoryNode(path=directory, key=ctx.key_of(directory), descriptor=descriptor, env=env))
    return nodes


def discover_stages(nodes: List[DirectoryNode]) -> int:
    """Highest stage number declared anywhere (0 if none)."""
    return max((n.descriptor.max_stage for n in nodes), default=0)
