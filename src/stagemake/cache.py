# cache.py
from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Dict, Iterable, Optional

from .ui.console import Console

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Per-source content cache:
#   (stage, directory, source) -> md5(source bytes)
#
# Two tables live side by side during a run:
#   old - what the previous run persisted (read-only, used for comparison)
#   new - what this run actually read (written while planning each stage)
#
# A destination is stale when it is missing, or when any contributing
# source hashes differently in `new` than in `old`.
#
# If a job fails, the entries it contributed are dropped from `new`, so the
# next run sees them as changed and retries the job.
#
# File layout:
#   {"version": 1, "stages": {"0": {"a/b": {"x.c": "<md5>"}}}}
# ---------------------------------------------------------------------

DEFAULT_CACHE_FILE = ".stagemake-cache.json"
CACHE_VERSION = 1

Table = Dict[int, Dict[str, Dict[str, str]]]


def _hash_file_contents(path: Path) -> str:
    h = hashlib.md5()
    with path.open("rb") as f:
        while True:
            chunk = f.read(1024 * 1024)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def _json_dumps_stable(obj) -> str:
    return json.dumps(obj, sort_keys=True, indent=1, ensure_ascii=False)


def _decode(raw) -> Table:
    if not isinstance(raw, dict) or raw.get("version") != CACHE_VERSION:
        raise ValueError("unsupported cache format")
    table: Table = {}
    for stage, dirs in (raw.get("stages") or {}).items():
        if not isinstance(dirs, dict):
            raise ValueError(f"bad stage entry {stage!r}")
        table[int(stage)] = {
            str(d): {str(s): str(h) for s, h in srcs.items()}
            for d, srcs in dirs.items()
        }
    return table


class BuildCache:
    """
    Content-hash cache for one invocation root.
    Mutated only by the control thread.
    """

    def __init__(self, path: str | Path, console: Console, old: Optional[Table] = None):
        self.path = Path(path)
        self.console = console
        self.old: Table = old or {}
        self.new: Table = {}
        self._memo: Dict[Path, str] = {}

    @classmethod
    def load(cls, path: str | Path, console: Console) -> "BuildCache":
        """Read the persisted table. Missing -> empty; corrupt -> empty + warning."""
        p = Path(path)
        if not p.exists():
            return cls(p, console)
        try:
            old = _decode(json.loads(p.read_text(encoding="utf-8")))
        except (OSError, ValueError, TypeError, AttributeError) as e:
            console.print_warning(f"ignoring unreadable cache {p}: {e}; rebuilding everything")
            return cls(p, console)
        return cls(p, console, old)

    # ---- per stage ----

    def begin_stage(self, stage: int) -> None:
        # files can change between stages (earlier stages produce inputs of later ones)
        self.new.setdefault(stage, {})
        self._memo.clear()

    def observe(self, stage: int, dir_key: str, source: str, path: Path) -> str:
        """Hash a source now and record the result in the new table."""
        path = path.resolve()
        digest = self._memo.get(path)
        if digest is None:
            digest = _hash_file_contents(path)
            self._memo[path] = digest
        self.new.setdefault(stage, {}).setdefault(dir_key, {})[source] = digest
        return digest

    def previous(self, stage: int, dir_key: str, source: str) -> Optional[str]:
        return self.old.get(stage, {}).get(dir_key, {}).get(source)

    def current(self, stage: int, dir_key: str, source: str) -> Optional[str]:
        return self.new.get(stage, {}).get(dir_key, {}).get(source)

    def changed(self, stage: int, dir_key: str, source: str) -> bool:
        now = self.current(stage, dir_key, source)
        return now is None or now != self.previous(stage, dir_key, source)

    def rollback(self, stage: Optional[int], dir_key: str, sources: Iterable[str]) -> None:
        """Forget what a failed job's sources hashed to."""
        if stage is None:
            return
        entries = self.new.get(stage, {}).get(dir_key)
        if not entries:
            return
        for s in sources:
            entries.pop(s, None)
        self.console.print_debug(f"cache rollback: stage {stage} {dir_key}: {list(sources)}")

    # ---- persistence ----

    def snapshot(self) -> Table:
        """
        The table to persist: stages planned this run come from `new` only,
        stages never reached keep their old entries.
        """
        out: Table = {s: dirs for s, dirs in self.old.items() if s not in self.new}
        for stage, dirs in self.new.items():
            out[stage] = {d: dict(srcs) for d, srcs in dirs.items() if srcs}
        return out

    def save(self) -> None:
        payload = {
            "version": CACHE_VERSION,
            "stages": {str(s): dirs for s, dirs in sorted(self.snapshot().items())},
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_text(_json_dumps_stable(payload), encoding="utf-8")
            os.replace(tmp, self.path)
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)
