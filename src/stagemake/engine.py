# engine.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from .cache import DEFAULT_CACHE_FILE, BuildCache
from .environment import EnvironmentLayer
from .model import DirectoryNode
from .planner import plan_stage
from .resolver import DeriverRegistry, load_plugin
from .runner import Scheduler
from .ui.console import Console
from .walker import WalkContext, discover_stages, walk


@dataclass
class BuildResult:
    """Commands executed, keyed by "forced" and "stage N"."""
    executed: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(self.executed.values())


def scan(
    root: str | Path = ".",
    *,
    console: Console,
    target: Optional[str] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> tuple[WalkContext, List[DirectoryNode]]:
    """Walk the tree under `root`; returns the walk context and participating directories."""
    root_p = Path(root).resolve()
    ctx = WalkContext(root=root_p, console=console, target=target)
    nodes = walk(root_p, EnvironmentLayer.from_overrides(overrides), ctx)
    return ctx, nodes


def run_build(
    root: str | Path = ".",
    *,
    console: Optional[Console] = None,
    target: Optional[str] = None,
    overrides: Optional[Mapping[str, str]] = None,
    cache_file: Optional[str | Path] = None,
    plugins: Sequence[str | Path] = (),
    registry: Optional[DeriverRegistry] = None,
) -> BuildResult:
    """
    Bring every destination under `root` up to date.

    Stages run strictly in ascending order, each fully planned before any of
    its jobs execute. The cache is saved on the way out whether or not the
    build succeeded. Raises BuildError / JobFailure on fatal errors.
    """
    console = console or Console()
    root_p = Path(root).resolve()

    registry = registry or DeriverRegistry(console)
    for plugin in plugins:
        load_plugin(plugin, registry)

    ctx, nodes = scan(root_p, console=console, target=target, overrides=overrides)
    console.print_debug(f"participating directories: {[n.key for n in nodes]}")

    cache_path = Path(cache_file) if cache_file else root_p / DEFAULT_CACHE_FILE
    cache = BuildCache.load(cache_path, console)
    scheduler = Scheduler(cache, console)
    result = BuildResult()

    try:
        if ctx.forced_jobs:
            result.executed["forced"] = scheduler.run(ctx.forced_jobs)

        max_stage = discover_stages(nodes)
        for stage in range(max_stage + 1):
            jobs = plan_stage(nodes, stage, cache, registry, console)
            console.print_stage(stage, ctx.stage_names.get(stage), len(jobs))
            result.executed[f"stage {stage}"] = scheduler.run(jobs)
    finally:
        try:
            cache.save()
        except OSError as e:
            console.print_warning(f"could not save cache {cache.path}: {e}")

    return result
