# environment.py
from __future__ import annotations

import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional

from .errors import BuildError
from .template import is_shell, strip_shell


@dataclass
class EnvValue:
    """
    One variable value. A `SHELL:` value is computed on first use, in the
    directory that declared it, and then shared by every layer inheriting it.
    """
    raw: str
    cwd: Optional[Path] = None
    _computed: Optional[str] = field(default=None, repr=False)

    @property
    def lazy(self) -> bool:
        return is_shell(self.raw)

    @property
    def ready(self) -> bool:
        return not self.lazy or self._computed is not None

    def get(self, env: Mapping[str, str]) -> str:
        if not self.lazy:
            return self.raw
        if self._computed is None:
            cmd = strip_shell(self.raw)
            proc = subprocess.run(
                cmd,
                shell=True,
                cwd=str(self.cwd) if self.cwd else None,
                env=dict(env),
                text=True,
                capture_output=True,
            )
            if proc.returncode != 0:
                raise BuildError(
                    kind="environment",
                    message=f"shell-computed value failed (exit={proc.returncode}): {cmd}",
                    details={"directory": str(self.cwd), "stderr": proc.stderr.strip()[-2000:]},
                )
            self._computed = proc.stdout.strip()
        return self._computed


class EnvironmentLayer:
    """
    Effective variables for one directory.

    Names in `forced` came from the command line; no inherited or local
    value ever replaces them, at any depth.
    """

    def __init__(self, values: Dict[str, EnvValue] | None = None, forced: FrozenSet[str] = frozenset()):
        self._values: Dict[str, EnvValue] = dict(values or {})
        self.forced = forced

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, str] | None = None) -> "EnvironmentLayer":
        overrides = dict(overrides or {})
        return cls({k: EnvValue(str(v)) for k, v in overrides.items()}, frozenset(overrides))

    def child(self, inherit: Mapping[str, str], cwd: Path) -> "EnvironmentLayer":
        values = dict(self._values)
        for name, raw in inherit.items():
            if name in self.forced:
                continue
            values[name] = EnvValue(raw, cwd=cwd)
        return EnvironmentLayer(values, self.forced)

    def names(self) -> list[str]:
        return sorted(self._values)

    def __contains__(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        if name not in self._values:
            return default
        return self._resolve(name)

    def _resolve(self, name: str) -> str:
        # lazy values see os.environ plus every value that is already known
        value = self._values[name]
        if value.ready:
            return value.get({})
        base = dict(os.environ)
        base.update({k: v.get({}) for k, v in self._values.items() if v.ready})
        return value.get(base)

    def materialize(self) -> Dict[str, str]:
        return {name: self._resolve(name) for name in sorted(self._values)}

    def process_env(self) -> Dict[str, str]:
        """os.environ overlaid with this layer, for subprocesses the engine runs itself."""
        env = dict(os.environ)
        env.update(self.materialize())
        return env

    def export_prefix(self) -> str:
        """Shell text assigning every variable, prepended to job commands."""
        values = self.materialize()
        if not values:
            return ""
        assigns = " ".join(f"{k}={shlex.quote(v)}" for k, v in values.items())
        return f"export {assigns};"
