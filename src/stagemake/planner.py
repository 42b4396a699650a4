# planner.py
from __future__ import annotations

from typing import Dict, List

from .cache import BuildCache
from .config import TransformSection
from .errors import ConfigError
from .model import DirectoryNode, Job
from .resolver import DeriverRegistry, Resolution, expand_sources, resolve
from .template import quote_all, render
from .ui.console import Console


def _source_label(node: DirectoryNode, source: str) -> str:
    if source.startswith("/") or node.key == ".":
        return source
    return f"{node.key}/{source}"


def _reason(node: DirectoryNode, changed: List[str]) -> str:
    labels = ", ".join(_source_label(node, s) for s in changed)
    if len(changed) == 1:
        return f"source changed ({labels})"
    return f"sources changed ({labels})"


def make_job(
    node: DirectoryNode,
    section: TransformSection,
    stage: int,
    *,
    reason: str,
    destination: str | None,
    inputs: List[str],
    sources: List[str],
) -> Job:
    body = render(
        section.transform,
        **{
            "in": quote_all(inputs),
            "out": quote_all([destination]) if destination else "",
            "dir": quote_all([str(node.path)]),
            "stage": str(stage),
        },
    )
    prefix = node.env.export_prefix()
    command = f"{prefix} {body}" if prefix and body else body
    return Job(
        directory=node.path,
        command=command,
        body=body,
        reason=reason,
        stage=stage,
        dir_key=node.key,
        destination=destination,
        sources=list(sources),
        parallel=section.parallel,
    )


def _hash_sources(cache: BuildCache, node: DirectoryNode, stage: int, sources: List[str]) -> List[str]:
    """Record every source's hash; return the ones that differ from the last run."""
    changed: List[str] = []
    for s in sources:
        cache.observe(stage, node.key, s, node.path / s)
        if cache.changed(stage, node.key, s):
            changed.append(s)
    return changed


def plan_section(
    node: DirectoryNode,
    section: TransformSection,
    stage: int,
    cache: BuildCache,
    registry: DeriverRegistry,
    console: Console,
) -> List[Job]:
    sources = expand_sources(node, section)

    if section.destination is None:
        # stage-wide command: no destination, always runs
        _hash_sources(cache, node, stage, sources)
        return [
            make_job(
                node, section, stage,
                reason="always run",
                destination=None,
                inputs=sources,
                sources=sources,
            )
        ]

    try:
        resolutions: Dict[str, Resolution] = resolve(node, section, registry, sources)
    except ConfigError as e:
        console.print_warning(f"{node.key}: stage {stage}: {e.message}; section skipped")
        return []
    jobs: List[Job] = []
    for dest in sorted(resolutions):
        res = resolutions[dest]
        changed = _hash_sources(cache, node, stage, res.sources)

        if section.onlyonce and jobs:
            # sources are still hashed, but one job per pass is enough
            continue

        if not (node.path / dest).exists():
            reason = "destination absent"
        elif changed:
            reason = _reason(node, changed)
        else:
            continue

        jobs.append(
            make_job(
                node, section, stage,
                reason=reason,
                destination=dest,
                inputs=res.inputs,
                sources=res.sources,
            )
        )
    return jobs


def plan_stage(
    nodes: List[DirectoryNode],
    stage: int,
    cache: BuildCache,
    registry: DeriverRegistry,
    console: Console,
) -> List[Job]:
    """
    Enumerate every job of a stage, in directory, section, destination order.
    Hashes are written to the cache's new table as a side effect.
    """
    cache.begin_stage(stage)
    jobs: List[Job] = []
    for node in sorted(nodes, key=lambda n: n.key):
        for idx, section in enumerate(node.descriptor.sections(stage)):
            found = plan_section(node, section, stage, cache, registry, console)
            console.print_debug(f"stage {stage} {node.key} section {idx}: {len(found)} job(s)")
            jobs.extend(found)
    return jobs
