# resolver.py
from __future__ import annotations

import os
import runpy
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Protocol, Sequence, Union

from .config import TransformSection
from .errors import BuildError, ConfigError, MissingSourceError
from .model import DirectoryNode
from .template import is_shell, render, quote_all, strip_shell
from .ui.console import Console

COMPILE_TO_OBJECT = "compile-to-object"
DEPENDENCY_EXTRACTION = "dependency-extraction"
JAVA_TO_CLASS = "java-to-class"
CUSTOM_PREFIX = "custom:"

DEPEND_CMD_VAR = "DEPEND_CMD"
DEFAULT_DEPEND_CMD = "cc -MM @IN@"

# name of the variable holding the source file for SHELL: destination rules
SOURCE_VAR = "SOURCE"

CustomFunction = Callable[[str, Path], Union[Mapping[str, Sequence[str]], Sequence[str]]]


@dataclass
class Resolution:
    """What one destination is built from."""
    inputs: List[str] = field(default_factory=list)   # primary sources, fed to @IN@
    sources: List[str] = field(default_factory=list)  # every contributing file, hashed

    def add(self, source: str, contributing: Sequence[str]) -> None:
        if source not in self.inputs:
            self.inputs.append(source)
        for s in contributing:
            if s not in self.sources:
                self.sources.append(s)


class DestinationDeriver(Protocol):
    def derive(self, node: DirectoryNode, source: str) -> Dict[str, List[str]]:
        """Map one source to {destination: contributing sources}."""
        ...


# ----------------------------------------------------------------------
# Built-in derivers
# ----------------------------------------------------------------------

class SuffixDeriver:
    def __init__(self, from_suffix: str, to_suffix: str, console: Console):
        self.from_suffix = from_suffix
        self.to_suffix = to_suffix
        self.console = console

    def destination_for(self, node: DirectoryNode, source: str) -> str | None:
        if not source.endswith(self.from_suffix):
            self.console.print_warning(
                f"{node.key}: {source} does not end in {self.from_suffix}; skipped"
            )
            return None
        return source[: -len(self.from_suffix)] + self.to_suffix

    def derive(self, node: DirectoryNode, source: str) -> Dict[str, List[str]]:
        dest = self.destination_for(node, source)
        return {dest: [source]} if dest else {}


def parse_make_deps(text: str) -> List[str] | None:
    """
    Parse GNU-make style `target: dep dep \\` output.

    Returns the dependency list of the first rule, or None if the text
    holds no rule.
    """
    joined = text.replace("\\\r\n", " ").replace("\\\n", " ")
    for line in joined.splitlines():
        if ":" not in line:
            continue
        _target, _, deps = line.partition(":")
        # "C:\..." style drive letters would need more care; not supported
        return deps.split()
    return None


class DependencyDeriver(SuffixDeriver):
    """`.c` -> `.o`, contributing sources taken from the dependency listing command."""

    def __init__(self, console: Console):
        super().__init__(".c", ".o", console)

    def list_dependencies(self, node: DirectoryNode, source: str) -> List[str]:
        template = node.env.get(DEPEND_CMD_VAR) or DEFAULT_DEPEND_CMD
        cmd = render(template, **{"in": quote_all([source]), "dir": str(node.path)})
        proc = subprocess.run(
            cmd,
            shell=True,
            cwd=str(node.path),
            env=node.env.process_env(),
            text=True,
            capture_output=True,
        )
        deps = parse_make_deps(proc.stdout) if proc.returncode == 0 else None
        if not deps:
            self.console.print_warning(
                f"{node.key}: could not list dependencies of {source} (exit={proc.returncode}); "
                f"using the source alone"
            )
            return [source]
        if source not in deps:
            deps.insert(0, source)
        return deps

    def derive(self, node: DirectoryNode, source: str) -> Dict[str, List[str]]:
        dest = self.destination_for(node, source)
        if not dest:
            return {}
        return {dest: self.list_dependencies(node, source)}


class ShellDeriver:
    """Each line printed by the command is a destination of the source."""

    def __init__(self, command: str):
        self.command = command

    def derive(self, node: DirectoryNode, source: str) -> Dict[str, List[str]]:
        env = node.env.process_env()
        env[SOURCE_VAR] = source
        proc = subprocess.run(
            self.command,
            shell=True,
            cwd=str(node.path),
            env=env,
            text=True,
            capture_output=True,
        )
        if proc.returncode != 0:
            raise BuildError(
                kind="destination",
                message=f"destination command failed (exit={proc.returncode}): {self.command}",
                details={"directory": node.key, "source": source, "stderr": proc.stderr.strip()[-2000:]},
            )
        return {line.strip(): [source] for line in proc.stdout.splitlines() if line.strip()}


class LiteralDeriver:
    def __init__(self, names: Sequence[str]):
        self.names = list(names)

    def derive(self, node: DirectoryNode, source: str) -> Dict[str, List[str]]:
        return {name: [source] for name in self.names}


class CustomDeriver:
    def __init__(self, name: str, fn: CustomFunction):
        self.name = name
        self.fn = fn

    def derive(self, node: DirectoryNode, source: str) -> Dict[str, List[str]]:
        result = self.fn(source, node.path)
        if isinstance(result, Mapping):
            return {str(dest): list(srcs) or [source] for dest, srcs in result.items()}
        return {str(dest): [source] for dest in result}


# ----------------------------------------------------------------------
# Registry
# ----------------------------------------------------------------------

class DeriverRegistry:
    """Looks derivers up by rule tag. Custom functions are registered by the host."""

    def __init__(self, console: Console):
        self.console = console
        self._builtin: Dict[str, DestinationDeriver] = {
            COMPILE_TO_OBJECT: SuffixDeriver(".c", ".o", console),
            DEPENDENCY_EXTRACTION: DependencyDeriver(console),
            JAVA_TO_CLASS: SuffixDeriver(".java", ".class", console),
        }
        self._custom: Dict[str, CustomDeriver] = {}

    def register_custom(self, name: str, fn: CustomFunction) -> None:
        self._custom[name] = CustomDeriver(name, fn)

    def custom_names(self) -> List[str]:
        return sorted(self._custom)

    def lookup(self, rule: str) -> DestinationDeriver:
        rule = rule.strip()
        if rule in self._builtin:
            return self._builtin[rule]
        if is_shell(rule):
            return ShellDeriver(strip_shell(rule))
        if rule.startswith(CUSTOM_PREFIX):
            name = rule[len(CUSTOM_PREFIX):].strip()
            if name not in self._custom:
                raise ConfigError(f"no custom destination function named {name!r}", known=self.custom_names())
            return self._custom[name]
        return LiteralDeriver(rule.split())


def load_plugin(path: str | Path, registry: DeriverRegistry) -> None:
    """
    Load custom destination functions from a python file.

    The file must define:
      - register(registry) -> None
    which calls registry.register_custom(name, fn) for each function.
    """
    plugin_path = Path(path).expanduser().resolve()
    if not plugin_path.exists():
        raise FileNotFoundError(f"Plugin file not found: {plugin_path}")
    if plugin_path.suffix != ".py":
        raise ValueError(f"Plugin must be a .py file, got: {plugin_path.name}")

    globals_dict = runpy.run_path(str(plugin_path), run_name=f"stagemake_plugin_{plugin_path.stem}")
    register = globals_dict.get("register")
    if not callable(register):
        raise TypeError(f"Plugin {plugin_path.name} must define register(registry).")
    register(registry)


# ----------------------------------------------------------------------
# Source expansion + resolution
# ----------------------------------------------------------------------

def _check_readable(node: DirectoryNode, source: str) -> None:
    path = node.path / source
    if not path.is_file() or not os.access(path, os.R_OK):
        raise MissingSourceError(source, node.key)


def expand_sources(node: DirectoryNode, section: TransformSection) -> List[str]:
    """Resolve a section's source list; every entry must be a readable file."""
    spec = section.source or ""
    if is_shell(spec):
        cmd = strip_shell(spec)
        proc = subprocess.run(
            cmd,
            shell=True,
            cwd=str(node.path),
            env=node.env.process_env(),
            text=True,
            capture_output=True,
        )
        if proc.returncode != 0:
            raise BuildError(
                kind="source",
                message=f"source command failed (exit={proc.returncode}): {cmd}",
                details={"directory": node.key, "stderr": proc.stderr.strip()[-2000:]},
            )
        sources = [line.strip() for line in proc.stdout.splitlines() if line.strip()]
    else:
        sources = spec.split()

    for s in sources:
        _check_readable(node, s)
    return sources


def resolve(
    node: DirectoryNode,
    section: TransformSection,
    registry: DeriverRegistry,
    sources: List[str] | None = None,
) -> Dict[str, Resolution]:
    """
    Map each destination of a section to what it is built from.
    Contributions from several sources to one destination are merged.
    """
    if sources is None:
        sources = expand_sources(node, section)
    deriver = registry.lookup(section.destination or "")

    out: Dict[str, Resolution] = {}
    for source in sources:
        for dest, contributing in deriver.derive(node, source).items():
            for c in contributing:
                if c != source:
                    _check_readable(node, c)
            out.setdefault(dest, Resolution()).add(source, contributing)
    return out
